import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from data.database import Base, get_db
from main import app  # import your FastAPI app
from services.cache import get_cache_client, get_mock_cache_client
from services.storage import get_blob_store, get_mock_blob_store
from config import config
import api.events_routes
import api.report_routes

SQLALCHEMY_DATABASE_URL = config.database_url
config.valid_tokens = ["fake-client-token"]

AUTH_HEADERS = {"Authorization": "Bearer fake-client-token"}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create tables once
Base.metadata.create_all(bind=engine)

# Dependency override for DB
def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True, scope="session")
def setup_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def cache_client():
    cache = get_mock_cache_client()
    app.dependency_overrides[get_cache_client] = lambda: cache
    yield cache
    app.dependency_overrides.pop(get_cache_client, None)

@pytest.fixture
def blob_store():
    store = get_mock_blob_store()
    app.dependency_overrides[get_blob_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_blob_store, None)

@pytest.fixture
def queued_tasks(monkeypatch):
    """Captures the payloads sent to Celery instead of publishing them."""
    queued = {"events": [], "reports": []}

    def fake_task(name):
        def delay(payload):
            queued[name].append(payload)
            return MagicMock(id=f"task-{name}-{len(queued[name])}")
        task = MagicMock()
        task.delay.side_effect = delay
        return task

    events_task = fake_task("events")
    monkeypatch.setattr(api.events_routes, "insert_event_to_db", events_task)
    monkeypatch.setattr(api.events_routes, "insert_events_batch_to_db", events_task)
    monkeypatch.setattr(api.report_routes, "generate_report_task", fake_task("reports"))
    return queued

@pytest.fixture
def client(cache_client, blob_store, queued_tasks):
    with TestClient(app) as c:
        yield c
