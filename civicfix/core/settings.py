"""
Core settings and environment variables for CivicFix.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "CivicFix"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - Frontend URLs allowed to access this API (comma separated)
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:8080,http://127.0.0.1:5173"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON
    FIREBASE_STORAGE_BUCKET: Optional[str] = None

    # Mock DB mode for local development without Firebase credentials
    USE_MOCK_DB: bool = False

    # Collections
    REPORTS_COLLECTION: str = "reports"
    USERS_COLLECTION: str = "users"

    # Evidence uploads
    MAX_EVIDENCE_BYTES: int = 10 * 1024 * 1024

    # Collaborator call bounds (seconds)
    WRITE_TIMEOUT_SECONDS: float = 10.0
    FETCH_TIMEOUT_SECONDS: float = 15.0

    # Live subscription reconnect policy
    RECONNECT_BASE_DELAY: float = 0.5
    RECONNECT_MAX_DELAY: float = 30.0
    RECONNECT_MAX_ATTEMPTS: int = 8

    # Ignore change events carrying a lower version than the local row.
    # Only needed when the backing store can reorder events.
    RECONCILE_REJECT_STALE_VERSIONS: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
