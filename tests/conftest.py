import io
import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AUTH_USERINFO_URL"] = ""
os.environ["EMAIL_MODE"] = "console"
os.environ["AZURE_STORAGE_CONNECTION_STRING"] = ""

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.core.db import Base, get_db
from marketplace.core.reset_db import seed_categories
from marketplace.main import app
from marketplace.models.category import Category
from marketplace.models.profile import Profile
from marketplace.services.mailer import Mailer, get_mailer
from marketplace.services.storage import get_storage_optional

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

CDN = "https://cdn.test/marketplace"


class FakeStorage:
    """In-memory stand-in for BlobStorage."""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_delete = set()

    def upload(self, path, data, content_type=None):
        self.objects[path] = (data, content_type)
        return f"{CDN}/{path}"

    def delete(self, path):
        self.deleted.append(path)
        if path in self.fail_delete:
            raise RuntimeError("storage unavailable")
        self.objects.pop(path, None)

    def path_from_url(self, url):
        prefix = CDN + "/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):] or None


class FakeMailer(Mailer):
    name = "fake"

    def __init__(self):
        self.sent = []
        self.error = None

    def send(self, email):
        if self.error is not None:
            raise self.error
        self.sent.append(email)
        return f"fake-{len(self.sent)}"


def make_token(user_id, email=None, name=None, secret="test-secret"):
    claims = {"sub": user_id, "role": "authenticated"}
    if email:
        claims["email"] = email
    if name:
        claims["user_metadata"] = {"full_name": name}
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id, email=None, name=None):
    return {"Authorization": f"Bearer {make_token(user_id, email=email, name=name)}"}


def image_bytes(fmt="PNG", size=(64, 48), color=(200, 30, 30)):
    buff = io.BytesIO()
    Image.new("RGB", size, color).save(buff, format=fmt)
    return buff.getvalue()


def image_url(name="a"):
    return f"{CDN}/listing-images/seller/books/{name}.webp"


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSession()
    seed_categories(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def category(db):
    return db.query(Category).filter(Category.key == "books").one()


@pytest.fixture()
def other_category(db):
    return db.query(Category).filter(Category.key == "electronics").one()


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def client(db, storage, mailer):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_optional] = lambda: storage
    app.dependency_overrides[get_mailer] = lambda: mailer
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def add_profile(db, user_id, name, email=None):
    profile = Profile(user_id=user_id, name=name, email=email or f"{user_id}@campus.edu")
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture()
def seller(db):
    return add_profile(db, "seller", "Sam Seller", "sam@campus.edu")


@pytest.fixture()
def buyer(db):
    return add_profile(db, "buyer", "Bea Buyer", "bea@campus.edu")
