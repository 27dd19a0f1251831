import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from app.db.db import get_session
from app.main import app
from app.models import cctv, claim, item, notification, thread  # noqa: F401
from app.services.claim_engine import ClaimEngine
from app.services.events import EventBus
from app.services.notifications import NotificationDispatcher, get_dispatcher
from app.utils.auth_helper import get_current_user_optional, get_current_user_required

ADMIN_ID = "admin-1"
OWNER_ID = "owner-1"
CLAIMANT_ID = "claimant-1"


# ---------------------------------------------------------------------
# DATABASE
# ---------------------------------------------------------------------
@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def dispatcher(db_engine, event_bus):
    return NotificationDispatcher(db_engine, event_bus)


@pytest.fixture
def claim_engine(session, dispatcher, event_bus):
    return ClaimEngine(session, dispatcher, event_bus)


@pytest.fixture
def found_item(claim_engine):
    return claim_engine.register_item(
        ADMIN_ID,
        "found",
        title="Blue Sony Headphones",
        description="Found on the bench near platform 2.",
        category="Electronics",
        station="KL Sentral",
        mode="MRT",
        line="Kajang Line",
    )


@pytest.fixture
def lost_item(claim_engine):
    return claim_engine.register_item(
        OWNER_ID,
        "lost",
        title="Red Leather Wallet",
        description="Lost my red wallet containing ID and cards.",
        category="Personal Accessories",
        station="Pasar Seni",
    )


# ---------------------------------------------------------------------
# API
# ---------------------------------------------------------------------
@pytest.fixture
def client(db_engine, dispatcher):
    def get_session_override():
        with Session(db_engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    # remove overrides so tests don't leak state
    app.dependency_overrides.clear()


@pytest.fixture
def auth_user(client):
    """
    Override the token dependencies.
    Usage: auth_user("user", "u1") or auth_user("admin")
    """
    def _set_user(role="user", user_id=CLAIMANT_ID):
        user = {"sub": user_id, "role": role}
        app.dependency_overrides[get_current_user_required] = lambda: user
        app.dependency_overrides[get_current_user_optional] = lambda: user
    return _set_user
