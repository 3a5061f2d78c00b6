# tests/conftest.py

import itertools
import os

# Before any app module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_USER"] = ""
os.environ["EMAIL_PASS"] = ""
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASS"] = ""

import pytest
from passlib.context import CryptContext
from starlette.testclient import TestClient

import config
import security
from database import Base, SessionLocal, engine, get_db
from main import app


# --- Test Database Setup ---
# DATABASE_URL above makes the app engine a single shared in-memory SQLite
# connection, which chat sockets reach through their own sessions too.
TestingSessionLocal = SessionLocal


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """bcrypt at minimum cost keeps signup/login fast."""
    monkeypatch.setattr(
        security, "pwd_context",
        CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=4),
    )


@pytest.fixture(autouse=True)
def no_email(monkeypatch):
    monkeypatch.setattr(config, "EMAIL_USER", "")
    monkeypatch.setattr(config, "EMAIL_PASS", "")


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


def override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def new_client(client):
    """Factory for extra clients; each one keeps its own session cookie."""
    made = []

    def _make():
        c = TestClient(app)
        made.append(c)
        return c

    yield _make
    for c in made:
        c.close()


# --- Identities ---

@pytest.fixture()
def admin_client(new_client):
    c = new_client()
    r = c.post(
        "/api/auth/login",
        json={"email": config.ADMIN_EMAIL, "password": config.ADMIN_PASSWORD, "role": "admin"},
    )
    assert r.status_code == 200, r.text
    return c


@pytest.fixture()
def make_organizer(admin_client, new_client):
    counter = itertools.count(1)

    def _make(name="Robotics Club"):
        n = next(counter)
        email = f"club{n}@clubs.test"
        r = admin_client.post("/api/admin/organizers", json={"name": name, "email": email})
        assert r.status_code == 201, r.text
        creds = r.json()
        c = new_client()
        r = c.post(
            "/api/auth/login",
            json={"email": email, "password": creds["password"], "role": "organizer"},
        )
        assert r.status_code == 200, r.text
        c.organizer_id = creds["organizer"]["id"]
        c.email = email
        return c

    return _make


@pytest.fixture()
def organizer_client(make_organizer):
    return make_organizer()


@pytest.fixture()
def make_participant(new_client):
    counter = itertools.count(1)

    def _make(first_name="Asha", last_name="Rao"):
        n = next(counter)
        c = new_client()
        r = c.post(
            "/api/auth/signup",
            json={
                "first_name": first_name,
                "last_name": last_name,
                "email": f"student{n}@students.test",
                "password": "secret123",
                "participant_type": "iiit",
            },
        )
        assert r.status_code == 201, r.text
        c.participant_id = r.json()["id"]
        c.email = r.json()["email"]
        return c

    return _make


# --- Events ---

HOODIE = {
    "name": "Hoodie",
    "price": 799.0,
    "quantity": 2,
    "max_purchase_per_participant": 1,
    "sizes": ["S", "M", "L"],
    "colors": ["Black"],
}
STICKERS = {
    "name": "Sticker pack",
    "price": 50.0,
    "quantity": 100,
    "max_purchase_per_participant": 5,
}


def advance(client, event_id, target):
    """Walk an event forward through the lifecycle up to ``target``."""
    order = ["draft", "published", "ongoing", "completed"]
    for status in order[1:order.index(target) + 1]:
        r = client.patch(f"/api/events/{event_id}/status", json={"status": status})
        assert r.status_code == 200, r.text


@pytest.fixture()
def make_event(organizer_client):
    def _make(status="published", event_type="normal", items=None, client=None, **fields):
        owner = client or organizer_client
        payload = {
            "name": "Hackathon",
            "description": "24 hour build",
            "event_type": event_type,
            "venue": "Himalaya 105",
            "start_date": "2030-03-01T10:00:00",
            "end_date": "2030-03-02T10:00:00",
        }
        payload.update(fields)
        if items is not None:
            payload["merchandise_items"] = items
        r = owner.post("/api/events", json=payload)
        assert r.status_code == 201, r.text
        event = r.json()
        if status != "draft":
            advance(owner, event["id"], status)
        return owner.get(f"/api/events/{event['id']}").json()

    return _make


@pytest.fixture()
def merch_event(make_event):
    return make_event(status="ongoing", event_type="merchandise", items=[HOODIE, STICKERS], name="Fest Merch")


def register(participant, event_id, **body):
    r = participant.post(f"/api/events/{event_id}/register", json=body or None)
    assert r.status_code == 201, r.text
    return r.json()
