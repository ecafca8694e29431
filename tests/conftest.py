"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database (foreign keys on) wired
into the app through a get_db override, so nothing touches a real file.
"""

import os

os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings
from database import Base, get_db, make_engine
from main import app
from models import User

get_settings.cache_clear()

DEFAULT_PASSWORD = "Abcdef12"


class UserSession:
    """A registered user driving the API with their own bearer token."""

    def __init__(self, client, token):
        self.client = client
        self.token = token
        self.headers = {"Authorization": f"Bearer {token}"}

    def get(self, path, **kwargs):
        return self.client.get(path, headers=self.headers, **kwargs)

    def post(self, path, json):
        return self.client.post(path, json=json, headers=self.headers)

    def put(self, path, json):
        return self.client.put(path, json=json, headers=self.headers)

    def delete(self, path):
        return self.client.delete(path, headers=self.headers)

    def create_account(self, name="Checking", type="Checking", initial_balance="100.00"):
        resp = self.post(
            "/accounts",
            {"name": name, "type": type, "initialBalance": initial_balance},
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    def create_category(self, name="Groceries", is_expense=True):
        resp = self.post("/categories", {"name": name, "isExpense": is_expense})
        assert resp.status_code == 201, resp.text
        return resp.json()

    def create_transaction(
        self,
        account_id,
        category_id,
        amount="-20.00",
        date="2024-05-01T10:00:00",
        description="Weekly shop",
        notes=None,
    ):
        resp = self.post(
            "/transactions",
            transaction_body(account_id, category_id, amount, date, description, notes),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()


def transaction_body(
    account_id,
    category_id,
    amount="-20.00",
    date="2024-05-01T10:00:00",
    description="Weekly shop",
    notes=None,
):
    return {
        "date": date,
        "amount": amount,
        "description": description,
        "notes": notes,
        "accountId": account_id,
        "categoryId": category_id,
    }


@pytest.fixture
def db_engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(email, password=DEFAULT_PASSWORD, first_name="Ann", last_name="Lee"):
        resp = client.post(
            "/auth/register",
            json={
                "email": email,
                "password": password,
                "firstName": first_name,
                "lastName": last_name,
            },
        )
        assert resp.status_code == 200, resp.text
        return UserSession(client, resp.json()["token"])

    return _register


@pytest.fixture
def alice(register):
    return register("a@x.com", first_name="Alice")


@pytest.fixture
def bob(register):
    return register("b@x.com", first_name="Bob")


@pytest.fixture
def make_user(db_session):
    """Insert a user row directly, for tests below the HTTP layer."""

    def _make_user(email):
        user = User(email=email, hashed_password="not-a-real-hash", first_name="T", last_name="U")
        db_session.add(user)
        db_session.commit()
        return user.id

    return _make_user


@pytest.fixture
def txn_body():
    return transaction_body
