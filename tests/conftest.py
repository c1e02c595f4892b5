import os

# Settings are read at import time, so the test environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from models.users import User, UserPreferences, Role
from models.product import Product
from utils.hashing import get_password_hash
from utils.tokenJWT import create_access_token

API = "/api/v1"
PASSWORD = "Password123"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    def _make_user(email="user@example.com", role=Role.USER, password=PASSWORD, is_active=True, **fields):
        user = User(
            email=email,
            password_hash=get_password_hash(password),
            role=role,
            first_name=fields.pop("first_name", "Jane"),
            last_name=fields.pop("last_name", "Doe"),
            is_active=is_active,
            **fields,
        )
        user.preferences = UserPreferences()
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_product(db):
    def _make_product(**fields):
        data = {
            "title": "Test Product",
            "description": "A product used in tests",
            "price": 50.0,
            "discount_percentage": 0,
            "stock": 10,
            "category": "smartphones",
            "brand": "Acme",
        }
        data.update(fields)
        product = Product(**data)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make_product


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture()
def user(make_user):
    return make_user()


@pytest.fixture()
def admin(make_user):
    return make_user(email="admin@example.com", role=Role.ADMIN, first_name="Admin", last_name="User")


@pytest.fixture()
def user_headers(user):
    return auth_headers(user)


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)
