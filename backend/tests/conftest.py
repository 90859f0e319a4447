"""
EntomoGuide Backend: Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own file-backed SQLite database and upload
       directory under pytest's tmp_path, plus a recording notification
       dispatcher, so nothing leaks between tests and no SMTP server is needed.
Who:   Used by all test files in the tests/ directory.

Fixture Hierarchy (all function-scoped):
    settings ─┬─ database ── db_session
              ├─ storage ─── attachments, catalog
              └─ app (create_app with the doubles) ── client
    dispatcher: RecordingDispatcher (set `.fail = True` to simulate SMTP down)
    admin_account / active_user / pending_user + their auth headers
"""

import os
import tempfile

# Environment for the module-level `settings` and `app` objects. Must be set
# before anything from entomoguide is imported.
_IMPORT_ROOT = tempfile.mkdtemp(prefix="entomoguide_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_IMPORT_ROOT}/import.db"
os.environ["JWT_SECRET"] = "test-secret-not-for-production-0123456789abcdef"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_ROOT"] = os.path.join(_IMPORT_ROOT, "uploads")
os.environ["VERIFY_IMAGE_CONTENT"] = "false"
os.environ["SMTP_HOST"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from entomoguide.config import Settings
from entomoguide.database import Database
from entomoguide.main import create_app
from entomoguide.models.account import Account, AccountStatus, Role
from entomoguide.models.catalog import Insect
from entomoguide.services.account_workflow import AccountWorkflow
from entomoguide.services.attachment_manager import AttachmentManager
from entomoguide.services.catalog_service import CatalogService
from entomoguide.services.credential_store import CredentialStore
from entomoguide.services.file_service import FileService
from entomoguide.services.notification import NotificationDispatcher, NotificationKind
from entomoguide.services.security import TokenService

TEST_JWT_SECRET = os.environ["JWT_SECRET"]

# Smallest valid PNG (1x1 pixel)
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06"
    b"\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\x00\x01\x00\x00\x05\x00"
    b"\x01\r\n-\xb4\x00\x00\x00\x00IEND\xaeB`\x82"
)


class RecordingDispatcher(NotificationDispatcher):
    """Notification double: records every attempt, fails on demand."""

    def __init__(self) -> None:
        self.attempts: List[Tuple[NotificationKind, Dict[str, Any]]] = []
        self.fail = False

    async def _deliver(self, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        self.attempts.append((kind, dict(payload)))
        if self.fail:
            raise ConnectionRefusedError("smtp relay unreachable")

    def kinds(self) -> List[NotificationKind]:
        return [kind for kind, _ in self.attempts]


def stored_files(storage: FileService) -> List[Path]:
    """Every file currently under the upload root."""
    return [p for p in storage.upload_root.iterdir() if p.is_file()]


# ══════════════════════════════════════════════════════════════════════════
# Infrastructure
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'entomoguide.db'}",
        jwt_secret=TEST_JWT_SECRET,
        bcrypt_rounds=4,
        upload_root=str(tmp_path / "uploads"),
        verify_image_content=False,
        smtp_host="",
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database.from_settings(settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def storage(settings) -> FileService:
    return FileService.from_settings(settings)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_JWT_SECRET, "HS256", expire_hours=8)


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(bcrypt_rounds=4)


@pytest.fixture
def workflow(store, tokens, dispatcher) -> AccountWorkflow:
    return AccountWorkflow(store, tokens, dispatcher)


@pytest.fixture
def attachments(storage) -> AttachmentManager:
    return AttachmentManager(storage, limit=3)


@pytest.fixture
def catalog(storage) -> CatalogService:
    return CatalogService(storage)


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def app(settings, database, storage, dispatcher):
    return create_app(settings=settings, database=database, storage=storage, dispatcher=dispatcher)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ══════════════════════════════════════════════════════════════════════════
# Data
# ══════════════════════════════════════════════════════════════════════════


async def _make_account(
    db_session, store: CredentialStore, email: str, role: Role, status: AccountStatus
) -> Account:
    account = await store.create(
        db_session, name=email.split("@")[0].title(), email=email, password="pw123", role=role
    )
    if status is not AccountStatus.PENDING:
        await store.set_status(db_session, account.id, status)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest_asyncio.fixture
async def admin_account(db_session, store) -> Account:
    return await _make_account(db_session, store, "admin@entomoguide.org", Role.ADMIN, AccountStatus.ACTIVE)


@pytest_asyncio.fixture
async def active_user(db_session, store) -> Account:
    return await _make_account(db_session, store, "bruno@entomoguide.org", Role.USER, AccountStatus.ACTIVE)


@pytest_asyncio.fixture
async def pending_user(db_session, store) -> Account:
    return await _make_account(db_session, store, "carla@entomoguide.org", Role.USER, AccountStatus.PENDING)


@pytest.fixture
def admin_headers(tokens, admin_account) -> Dict[str, str]:
    return {"Authorization": f"Bearer {tokens.issue(admin_account)}"}


@pytest.fixture
def user_headers(tokens, active_user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {tokens.issue(active_user)}"}


@pytest_asyncio.fixture
async def insect(db_session) -> Insect:
    entry = Insect(id=7, common_name="Joaninha", scientific_name="Coccinella septempunctata")
    db_session.add(entry)
    await db_session.commit()
    return entry
