"""
Test configuration and fixtures.

Provides:
- In-memory persistence backend with fault injection
- Citizen and staff identities
- A report store and a factory for valid drafts
- HTTPX AsyncClient wired to the app with live sync started
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from civicfix.core.settings import settings
from civicfix.main import app, start_sync, stop_sync
from civicfix.models.report import ReportDraft
from civicfix.models.user import User, UserType
from civicfix.services.evidence_service import MemoryEvidenceStore, set_evidence_store
from civicfix.services.persistence import MemoryBackend
from civicfix.services.report_store import ReportStore

BASE_TIME = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Identities
# =============================================================================

@pytest.fixture
def citizen() -> User:
    return User(id="citizen-ana", user_type=UserType.CITIZEN, full_name="Ana Ruiz")


@pytest.fixture
def other_citizen() -> User:
    return User(id="citizen-ben", user_type=UserType.CITIZEN, full_name="Ben Okafor")


@pytest.fixture
def staff() -> User:
    return User(id="staff-chen", user_type=UserType.EMPLOYEE, full_name="Chen Li")


# =============================================================================
# Persistence
# =============================================================================

@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend) -> ReportStore:
    return ReportStore(backend, write_timeout=1.0, fetch_timeout=1.0, reject_stale_versions=False)


@pytest.fixture
def settle():
    """Let callbacks scheduled with call_soon (change events, stream errors) run."""
    async def _settle(rounds: int = 5):
        for _ in range(rounds):
            await asyncio.sleep(0)
    return _settle


@pytest.fixture
def make_draft():
    def _make(**overrides) -> ReportDraft:
        fields = {
            "title": "Pothole",
            "description": "Deep pothole in the right lane.",
            "category": "Public Works",
            "location_lat": 40.7128,
            "location_lng": -74.006,
        }
        fields.update(overrides)
        return ReportDraft(**fields)
    return _make


@pytest.fixture
def seed_report(backend):
    """Insert a report row directly, as another client would."""
    counter = {"n": 0}

    async def _seed(**overrides) -> dict:
        counter["n"] += 1
        row = {
            "title": f"Report {counter['n']}",
            "description": "Seeded report",
            "category": "Public Works",
            "status": "pending",
            "priority": "medium",
            "reporter_id": "citizen-ana",
            "created_at": BASE_TIME + timedelta(minutes=counter["n"]),
            "status_history": [],
        }
        row.update(overrides)
        return await backend.insert(settings.REPORTS_COLLECTION, row)
    return _seed


# =============================================================================
# API
# =============================================================================

@pytest_asyncio.fixture
async def api_backend(citizen, other_citizen, staff):
    backend = MemoryBackend()
    for user in (citizen, other_citizen, staff):
        await backend.insert(settings.USERS_COLLECTION, user.model_dump(mode="json"))
    set_evidence_store(MemoryEvidenceStore())
    await start_sync(app, backend)
    yield backend
    await stop_sync(app)
    set_evidence_store(None)


@pytest_asyncio.fixture
async def client(api_backend):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth(user: User) -> dict:
    return {"X-User-Id": user.id}


@pytest.fixture
def headers_for():
    return auth
