"""Shared fixtures: a file-backed SQLite database, a ticking clock and a wired service graph."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from family_portal.core.config import Settings, get_settings
from family_portal.core.database import build_engine, build_session_factory, init_db
from family_portal.models import User
from family_portal.services import FileStorage, Services, build_services


class TickClock:
    """Deterministic clock: every call moves time forward by ``step``."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class MemoryStorage(FileStorage):
    """Keeps uploads in a dict and hands out fake public URLs."""

    def __init__(self):
        self.files: dict[str, tuple[bytes, str]] = {}

    async def upload_file(self, data: bytes, path: str, content_type: str) -> str:
        self.files[path] = (data, content_type)
        return f"https://cdn.test/gallery/{path}"


# Role fixtures: two admins, a publisher, a plain member and a user whose
# admin flag is the string "true" (which must not count)
SEED_USERS = [
    ("admin1", {"is_admin": True, "full_name": "Grace Doe"}),
    ("admin2", {"is_admin": True}),
    ("publisher", {"is_publisher": True}),
    ("member", {"full_name": "Mark Doe", "theme": "dark"}),
    ("pretender", {"is_admin": "true"}),
]


@pytest.fixture
def clock() -> TickClock:
    return TickClock()


@pytest.fixture
def settings() -> Settings:
    return get_settings().model_copy(
        update={
            "identity_backend": "database",
            "supabase_url": None,
            "supabase_service_role_key": None,
            "pending_count_debounce_ms": 50,
            "admin_cache_ttl_seconds": 0.0,
        }
    )


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'portal.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def users(session_factory) -> list[str]:
    async with session_factory() as session:
        session.add_all(
            User(id=user_id, email=f"{user_id}@doe.family", user_metadata=metadata)
            for user_id, metadata in SEED_USERS
        )
        await session.commit()
    return [user_id for user_id, _ in SEED_USERS]


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def services(settings, session_factory, clock, users, storage) -> Services:
    return build_services(settings, session_factory, storage=storage, clock=clock)


@pytest.fixture
def family_member_payload() -> dict:
    return {
        "name": "Jane Doe",
        "gender": "Female",
        "birthDate": "1990-01-01",
        "fatherName": "John Doe",
        "motherName": "Mary Ann Doe",
        "orderOfBirth": 2,
    }
