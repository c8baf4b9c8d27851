"""
User Service - read-only access to user profiles.

Credentials are verified upstream; this service only resolves an
already-authenticated user id to its profile and role.
"""

from typing import Optional
import logging

from pydantic import ValidationError as PydanticValidationError

from civicfix.core.errors import FetchError
from civicfix.core.settings import settings
from civicfix.models.user import User
from civicfix.services.persistence import get_backend
from civicfix.services.persistence.base import PersistenceBackend

logger = logging.getLogger(__name__)


class UserService:
    """
    Service for user lookups.
    """

    def __init__(self, backend: Optional[PersistenceBackend] = None, table: Optional[str] = None):
        self.backend = backend or get_backend()
        self.table = table or settings.USERS_COLLECTION

    async def get_user(self, user_id: str) -> Optional[User]:
        """
        Get user by ID.

        Returns:
            User or None if not found / malformed

        Raises:
            FetchError: backend unreachable
        """
        try:
            row = await self.backend.get(self.table, user_id)
        except Exception as e:
            logger.error(f"Failed to get user {user_id}: {e}", exc_info=True)
            raise FetchError(f"Failed to load user profile: {e}") from e

        if row is None:
            return None

        try:
            return User.model_validate(row)
        except PydanticValidationError as e:
            logger.warning(f"User {user_id} has an invalid profile: {e}")
            return None

    async def current_user(self, user_id: Optional[str]) -> Optional[User]:
        """Resolve the identity forwarded by the auth gateway, if any."""
        if not user_id or not user_id.strip():
            return None
        return await self.get_user(user_id.strip())
