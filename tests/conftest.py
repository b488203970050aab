import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from healthmate import config, database
from healthmate.deps import get_ai, get_mailer
from main import app


class FakeAI:
    def __init__(self):
        self.fail = False
        self.analysis = {
            "summary": "Hemoglobin slightly low.",
            "abnormalities": ["Hemoglobin 11.2 g/dL"],
            "doctorQuestions": ["Should I take iron supplements?"],
        }
        self.calls = []

    def _result(self, kind, *args):
        self.calls.append((kind,) + args)
        if self.fail:
            raise RuntimeError("upstream unavailable")

    def analyze_file(self, path, report_type):
        self._result("file", path, report_type)
        return dict(self.analysis)

    def analyze_data(self, data, report_type):
        self._result("data", data, report_type)
        return dict(self.analysis)

    def chat(self, message, history):
        self._result("chat", message, list(history))
        return f"echo: {message}"


class FakeMailer:
    def __init__(self):
        self.fail = False
        self.sent = []

    def send_otp(self, recipient, code, expires_minutes):
        if self.fail:
            raise OSError("smtp down")
        self.sent.append((recipient, code))

    def last_code(self, email):
        codes = [c for r, c in self.sent if r == email]
        return codes[-1] if codes else None


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    database.Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    database.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def client(session_factory, fake_ai, mailer, upload_dir):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[database.get_db] = override_get_db
    app.dependency_overrides[get_ai] = lambda: fake_ai
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


def signup(client, email="user@mail.com", password="secret1", admin=False, **extra):
    body = {"email": email, "firstName": "Test", "lastName": "User", "password": password}
    body.update(extra)
    path = "/api/admin/signup" if admin else "/api/user/signup"
    return client.post(path, json=body)


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_token(client):
    return signup(client).json()["token"]


@pytest.fixture
def admin_token(client):
    return signup(client, email="admin@mail.com", admin=True).json()["token"]
