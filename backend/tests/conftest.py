import os
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
# Enable insecure dev auth globally for tests so X-TG-USER-ID header is accepted.
# Security tests that need to verify auth rejection will patch settings directly.
os.environ["ALLOW_INSECURE_DEV_AUTH"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from mistika.database import Base, SessionLocal, engine  # noqa: E402
from mistika.main import app  # noqa: E402
from mistika.tarot_engine import seed_cards  # noqa: E402


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client():
    # No Redis in tests: startup falls back to synchronous mode without retrying.
    with patch("mistika.main.create_pool", new=AsyncMock(side_effect=ConnectionError("redis disabled"))):
        with TestClient(app) as c:
            yield c


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def seeded_db(db_session):
    seed_cards(db_session)
    return db_session
