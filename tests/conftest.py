"""Shared fixtures: in-memory database, sample epic, API client."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agentflow_core import crud, schemas
from agentflow_core.database import create_db_engine, get_db
from agentflow_core.events import EventBus
from agentflow_core.models import Base


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared across connections."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def epic(db):
    """Epic targeting acme/widgets with three planned tasks."""
    return crud.create_epic(
        db,
        schemas.EpicCreate(
            title="Developer-first workflow",
            intent="Ship the onboarding flow",
            repository="acme/widgets",
            tasks=[
                schemas.TaskCreateItem(title="Setup Auth", acceptance_criteria=["Login works"]),
                schemas.TaskCreateItem(title="Build dashboard"),
                schemas.TaskCreateItem(title="Write docs"),
            ],
        ),
    )


@pytest.fixture
def task(epic):
    """First task of the sample epic (PLANNED, attempts=0)."""
    return epic.tasks[0]


@pytest.fixture
def client(session_factory):
    """TestClient bound to the in-memory database and a fresh event bus."""
    from agentflow_core.api.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.events = EventBus()
    yield TestClient(app)
    app.dependency_overrides.clear()
