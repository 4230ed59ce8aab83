import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db  # noqa: E402
from app.db import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.approver_policy import set_approver_policy  # noqa: E402
from app.services.permissions import Actor  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_approver_policy():
    yield
    set_approver_policy(None)


@pytest.fixture()
def make_user(db_session):
    def _make(role: UserRole, name: str | None = None, department: str = "Quality"):
        user = User(
            name=name or f"{role.value.title()} User",
            email=f"{role.value}@example.com",
            role=role,
            department=department,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def person(make_user):
    """The everyday author: an analyst without elevated capabilities."""
    return make_user(UserRole.analyst, "Avery Analyst")


@pytest.fixture()
def other_person(make_user):
    return make_user(UserRole.operator, "Olive Operator")


@pytest.fixture()
def coordinator(make_user):
    return make_user(UserRole.coordinator, "Casey Coordinator")


@pytest.fixture()
def manager(make_user):
    return make_user(UserRole.manager, "Morgan Manager")


@pytest.fixture()
def admin(make_user):
    return make_user(UserRole.admin, "Alex Admin")


def as_actor(user) -> Actor:
    return Actor.from_user(user)


@pytest.fixture()
def actor_of():
    return as_actor


@pytest.fixture()
def client(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def auth_headers(person):
    return {"X-Actor-Id": str(person.id)}


@pytest.fixture()
def headers_for():
    def _headers(user):
        return {"X-Actor-Id": str(user.id)}

    return _headers
