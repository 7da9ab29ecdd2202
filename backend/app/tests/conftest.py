import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.database import get_db
from app.core.roles import Role
from app.core.security import ACCESS_TOKEN, create_token, hash_password
from app.main import app as fastapi_app
from app.models.branch import Base
from app.models.user import User


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite no emite BEGIN por sí solo; sin esto los SAVEPOINT no funcionan bien
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None
    dbapi_connection.execute("PRAGMA foreign_keys=ON")


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify(self, user_id, domain, entity_id, new_status, previous_status=None):
        self.calls.append((user_id, domain, entity_id, new_status, previous_status))


class FailingNotifier:
    def notify(self, *args, **kwargs):
        raise RuntimeError("notifier down")


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
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()


def _make_user(db, email, role):
    user = User(email=email, name=email.split("@")[0], hashed_password=hash_password("secret123"), role=role.value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def admin_user(db):
    return _make_user(db, "admin@test.com", Role.admin)


@pytest.fixture()
def customer(db):
    return _make_user(db, "cliente@test.com", Role.cliente)


@pytest.fixture()
def other_customer(db):
    return _make_user(db, "otro@test.com", Role.cliente)


def auth_headers(user):
    token = create_token(str(user.id), 30, token_type=ACCESS_TOKEN)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture()
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture()
def other_headers(other_customer):
    return auth_headers(other_customer)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def failing_notifier():
    return FailingNotifier()
