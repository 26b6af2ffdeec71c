# backend/conftest.py
import sys
import os
import pytest
from pathlib import Path

# Add repo root to PYTHONPATH so `backend.*` imports resolve
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("DEV_MODE", None)


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    from backend.core.database import Database, IN_MEMORY_URL

    database = Database(IN_MEMORY_URL)
    database.connect()
    database.create_all()
    yield database
    database.close()


@pytest.fixture
def fake_llm():
    from backend.tests.mocks import FakeLLM
    return FakeLLM()


@pytest.fixture
def fake_billing():
    from backend.tests.mocks import FakeBillingProvider
    return FakeBillingProvider()


@pytest.fixture
def storage(tmp_path):
    from backend.features.audio.storage import LocalAudioStorage
    return LocalAudioStorage(root_dir=str(tmp_path / "storage"), public_base_url="http://testserver")


@pytest.fixture
def app(db, fake_llm, fake_billing, storage):
    from backend.main import create_app
    return create_app(database=db, llm=fake_llm, billing_provider=fake_billing, storage=storage)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def make_user(db):
    """Factory: create (or refresh) a user by open id."""
    from backend.features.users.service import UserDirectory

    directory = UserDirectory(db, owner_open_id="")

    def _make(open_id="user-a", **fields):
        user = directory.upsert_user(open_id, name=fields.pop("name", None), email=fields.pop("email", None))
        if fields:
            from sqlalchemy import update
            from backend.core.database import users
            with db.session() as session:
                session.execute(update(users).where(users.c.id == user.id).values(**fields))
            user = directory.get_user(user.id)
        return user

    return _make

