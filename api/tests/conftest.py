import os
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ADMIN_ACCESS_TOKEN", "admin-test-token")
os.environ.setdefault("SCHEDULER_TOKEN", "scheduler-test-token")

from robocrm.main import app  # noqa: E402
from robocrm import db as db_module  # noqa: E402
from robocrm.db import get_session  # noqa: E402
from robocrm import storage as storage_module  # noqa: E402
from robocrm.errors import NotFound  # noqa: E402
from robocrm.services import reminders as reminders_service  # noqa: E402
from robocrm.services import reports as reports_service  # noqa: E402
from robocrm.services import versions as versions_service  # noqa: E402

ADMIN_HEADERS = {"X-Access-Token": os.environ["ADMIN_ACCESS_TOKEN"]}
SCHEDULER_HEADERS = {"X-Access-Token": os.environ["SCHEDULER_TOKEN"]}


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(test_engine, setup_db):
    with Session(test_engine) as s:
        yield s


@pytest.fixture
def mock_storage(monkeypatch) -> Dict[str, bytes]:
    store: Dict[str, bytes] = {}

    def fake_put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream", overwrite: bool = False):
        if key in store and not overwrite:
            raise storage_module.ArtifactExists(f"artifact {key} already exists")
        store[key] = bytes(data)

    def fake_get_bytes(key: str) -> bytes:
        if key not in store:
            raise NotFound(f"stored file {key} is missing")
        return store[key]

    def fake_delete_object(key: str):
        store.pop(key, None)

    def fake_public_url(key: str, expires_seconds: int) -> str:
        return f"https://storage.test/documents/{key}?expires={expires_seconds}"

    fakes = {
        "put_bytes": fake_put_bytes,
        "get_bytes": fake_get_bytes,
        "delete_object": fake_delete_object,
        "public_url": fake_public_url,
    }
    for target in (storage_module, versions_service):
        for name, fake in fakes.items():
            if hasattr(target, name):
                monkeypatch.setattr(target, name, fake)
    return store


@pytest.fixture
def sent_emails(monkeypatch):
    messages = []

    def fake_send_email(to, subject, body, html_body=None, attachments=None, sender_name=None, reply_to=None):
        messages.append(
            {
                "to": to,
                "subject": subject,
                "text": body,
                "html": html_body,
                "attachments": attachments or [],
                "sender_name": sender_name,
                "reply_to": reply_to,
            }
        )

    for target in (versions_service, reminders_service, reports_service):
        monkeypatch.setattr(target, "send_email", fake_send_email)
    return messages


@pytest.fixture
def client(test_engine, setup_db, mock_storage, sent_emails):
    db_module.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def salesperson(client):
    response = client.post(
        "/api/profiles",
        json={"email": "anna@example.com", "full_name": "Anna Nowak"},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 201
    data = response.json()
    return {"id": data["id"], "headers": {"X-Access-Token": data["access_token"]}}
