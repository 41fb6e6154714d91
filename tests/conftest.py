import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List
from uuid import UUID

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sprint_backlog.database import create_tables, get_db
from sprint_backlog.main import app
from sprint_backlog.models.user import User
from sprint_backlog.models.project import Project, Epic, Feature
from sprint_backlog.models.backlog import Story, Task
from sprint_backlog.models.sprint import Sprint, SprintStory
from sprint_backlog.models.worklog import Worklog


@dataclass
class SeededBacklog:
    """Plain ids of the seeded rows; ORM instances expire across rollbacks."""

    project_id: UUID
    other_project_id: UUID
    user_id: UUID
    stories: Dict[str, UUID] = field(default_factory=dict)
    tasks: Dict[str, List[UUID]] = field(default_factory=dict)
    foreign_story_id: UUID = None


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(session_factory) -> SeededBacklog:
    """
    One project with stories A..E under two epics, plus a second project.

    A: two done tasks, B: done + in_progress, C: one todo task,
    D: no tasks but 5 points, E: no tasks and no points.
    """
    async with session_factory() as session:
        user = User(email="dev@example.com", display_name="Dana Dev")
        project = Project(name="Web Shop")
        other = Project(name="Internal Tools")
        session.add_all([user, project, other])
        await session.flush()

        accounts = Epic(title="Accounts", priority=1, project_id=project.id)
        checkout = Epic(title="Checkout", priority=2, project_id=project.id)
        tooling = Epic(title="Tooling", project_id=other.id)
        session.add_all([accounts, checkout, tooling])
        await session.flush()

        login = Feature(title="Login", priority=1, epic_id=accounts.id)
        payments = Feature(title="Payments", priority=1, epic_id=checkout.id)
        scripts = Feature(title="Scripts", epic_id=tooling.id)
        session.add_all([login, payments, scripts])
        await session.flush()

        stories = {
            "A": Story(title="A story", story_points=3, estimated_dev_hours=Decimal("10"),
                       estimated_test_hours=Decimal("4"), feature_id=login.id),
            "B": Story(title="B story", story_points=2, estimated_dev_hours=Decimal("6"),
                       estimated_test_hours=Decimal("2"), feature_id=login.id),
            "C": Story(title="C story", story_points=1, feature_id=payments.id),
            "D": Story(title="D story", story_points=5, feature_id=payments.id),
            "E": Story(title="E story", feature_id=payments.id),
        }
        foreign = Story(title="Foreign story", feature_id=scripts.id)
        session.add_all(list(stories.values()) + [foreign])
        await session.flush()

        task_specs = {
            "A": [("done", Decimal("100"), Decimal("50"), None),
                  ("Done", Decimal("20"), None, None)],
            "B": [("done", Decimal("10"), Decimal("10"), Decimal("30")),
                  ("in_progress", None, None, None)],
            "C": [("todo", Decimal("5"), Decimal("5"), None)],
        }
        tasks: Dict[str, List[Task]] = {}
        for key, specs in task_specs.items():
            tasks[key] = []
            for index, (status, cost_dev, cost_test, explicit) in enumerate(specs):
                task = Task(
                    title=f"{key} task {index + 1}",
                    status=status,
                    cost_dev=cost_dev,
                    cost_test=cost_test,
                    total_cost=explicit,
                    story_id=stories[key].id,
                    assignee_id=user.id,
                )
                session.add(task)
                tasks[key].append(task)
        await session.flush()

        session.add(
            Worklog(
                date=date(2025, 3, 4),
                hours=Decimal("2.5"),
                task_id=tasks["A"][0].id,
                user_id=user.id,
            )
        )
        await session.commit()

        return SeededBacklog(
            project_id=project.id,
            other_project_id=other.id,
            user_id=user.id,
            stories={key: story.id for key, story in stories.items()},
            tasks={key: [task.id for task in key_tasks] for key, key_tasks in tasks.items()},
            foreign_story_id=foreign.id,
        )


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver/api/v1") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def asgi_transport(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield httpx.ASGITransport(app=app)
    app.dependency_overrides.clear()


@pytest.fixture
def memberships(session_factory):
    """Read story id -> priority for a sprint in a fresh session."""

    async def load(sprint_id: UUID) -> Dict[UUID, int]:
        async with session_factory() as session:
            result = await session.execute(
                select(SprintStory).where(SprintStory.sprint_id == sprint_id)
            )
            return {m.story_id: m.priority for m in result.scalars().all()}

    return load


@pytest.fixture
def fetch_tasks(session_factory):
    async def load(task_ids: List[UUID]) -> List[Task]:
        async with session_factory() as session:
            result = await session.execute(select(Task).where(Task.id.in_(task_ids)))
            return list(result.scalars().all())

    return load


@pytest.fixture
def fetch_sprint(session_factory):
    async def load(sprint_id: UUID):
        async with session_factory() as session:
            return await session.get(Sprint, sprint_id)

    return load
