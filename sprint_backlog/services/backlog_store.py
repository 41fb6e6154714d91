from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence
from uuid import UUID
import logging

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.errors import InvalidRequestError, TransientStoreFailure
from ..models.backlog import Story, Task
from ..models.project import Epic, Feature, Project
from ..models.sprint import Sprint, SprintStory
from ..models.worklog import Worklog


class BacklogStore:
    """
    Persistence adapter for projects, stories, tasks, sprints and memberships.

    Reads always go to the database rather than to relationship collections
    cached on loaded instances, so projections built in the same session as
    a mutation see the mutation. Writes are staged on the session and made
    durable by ``transaction()``.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[BacklogStore]:
        """Commit everything staged inside the block, or nothing."""
        try:
            yield self
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise InvalidRequestError(f"Conflicting backlog change: {e.orig}") from e
        except (OperationalError, InterfaceError) as e:
            await self.db.rollback()
            raise TransientStoreFailure(f"Backlog store unavailable: {e.orig}") from e
        except Exception:
            await self.db.rollback()
            raise

    async def flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise InvalidRequestError(f"Conflicting backlog change: {e.orig}") from e
        except (OperationalError, InterfaceError) as e:
            raise TransientStoreFailure(f"Backlog store unavailable: {e.orig}") from e

    # Queries

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        return await self._first(select(Project).where(Project.id == project_id))

    async def get_sprint(self, sprint_id: UUID) -> Optional[Sprint]:
        return await self._first(select(Sprint).where(Sprint.id == sprint_id))

    async def find_sprints_by_project(self, project_id: UUID) -> List[Sprint]:
        stmt = (
            select(Sprint)
            .where(Sprint.project_id == project_id)
            .order_by(Sprint.start_date.asc().nulls_last(), Sprint.name)
        )
        return await self._all(stmt)

    async def find_memberships_by_sprint(self, sprint_id: UUID) -> List[SprintStory]:
        stmt = (
            select(SprintStory)
            .where(SprintStory.sprint_id == sprint_id)
            .order_by(SprintStory.priority, SprintStory.created_at)
        )
        return await self._all(stmt)

    async def find_memberships_by_sprints(self, sprint_ids: Sequence[UUID]) -> List[SprintStory]:
        """Memberships of several sprints with story, feature and epic loaded."""
        if not sprint_ids:
            return []
        stmt = (
            select(SprintStory)
            .options(
                selectinload(SprintStory.story)
                .selectinload(Story.feature)
                .selectinload(Feature.epic)
            )
            .where(SprintStory.sprint_id.in_(list(sprint_ids)))
            .order_by(SprintStory.priority, SprintStory.created_at)
        )
        return await self._all(stmt)

    async def find_memberships_by_story_ids(self, story_ids: Sequence[UUID]) -> List[SprintStory]:
        if not story_ids:
            return []
        stmt = (
            select(SprintStory)
            .options(selectinload(SprintStory.sprint))
            .where(SprintStory.story_id.in_(list(story_ids)))
        )
        return await self._all(stmt)

    async def find_stories_by_ids(self, story_ids: Sequence[UUID]) -> List[Story]:
        if not story_ids:
            return []
        stmt = (
            select(Story)
            .options(selectinload(Story.feature).selectinload(Feature.epic))
            .where(Story.id.in_(list(story_ids)))
        )
        return await self._all(stmt)

    async def find_stories_by_project(self, project_id: UUID) -> List[Story]:
        stmt = (
            select(Story)
            .join(Feature, Story.feature_id == Feature.id)
            .join(Epic, Feature.epic_id == Epic.id)
            .options(selectinload(Story.feature).selectinload(Feature.epic))
            .where(Epic.project_id == project_id)
        )
        return await self._all(stmt)

    async def find_epics_by_project(self, project_id: UUID) -> List[Epic]:
        stmt = (
            select(Epic)
            .where(Epic.project_id == project_id)
            .order_by(Epic.priority.asc().nulls_last(), Epic.title)
        )
        return await self._all(stmt)

    async def find_features_by_epic_ids(self, epic_ids: Sequence[UUID]) -> List[Feature]:
        if not epic_ids:
            return []
        stmt = (
            select(Feature)
            .where(Feature.epic_id.in_(list(epic_ids)))
            .order_by(Feature.priority.asc().nulls_last(), Feature.title)
        )
        return await self._all(stmt)

    async def find_tasks_by_story_ids(self, story_ids: Sequence[UUID]) -> List[Task]:
        if not story_ids:
            return []
        stmt = select(Task).where(Task.story_id.in_(list(story_ids)))
        return await self._all(stmt)

    async def find_tasks_by_sprint(self, sprint_id: UUID) -> List[Task]:
        return await self._all(select(Task).where(Task.sprint_id == sprint_id))

    async def find_tasks_by_project(self, project_id: UUID) -> List[Task]:
        """Tasks reachable through the story hierarchy or through a project sprint."""
        stmt = (
            select(Task)
            .outerjoin(Story, Task.story_id == Story.id)
            .outerjoin(Feature, Story.feature_id == Feature.id)
            .outerjoin(Epic, Feature.epic_id == Epic.id)
            .outerjoin(Sprint, Task.sprint_id == Sprint.id)
            .where(or_(Epic.project_id == project_id, Sprint.project_id == project_id))
        )
        return await self._all(stmt)

    async def find_worklogs_by_project(self, project_id: UUID, limit: Optional[int] = None) -> List[Worklog]:
        """Worklogs on project tasks, newest first, with task and user loaded."""
        stmt = (
            select(Worklog)
            .join(Task, Worklog.task_id == Task.id)
            .outerjoin(Story, Task.story_id == Story.id)
            .outerjoin(Feature, Story.feature_id == Feature.id)
            .outerjoin(Epic, Feature.epic_id == Epic.id)
            .outerjoin(Sprint, Task.sprint_id == Sprint.id)
            .options(selectinload(Worklog.task), selectinload(Worklog.user))
            .where(or_(Epic.project_id == project_id, Sprint.project_id == project_id))
            .order_by(Worklog.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._all(stmt)

    # Mutations

    def add_sprint(self, sprint: Sprint) -> Sprint:
        self.db.add(sprint)
        return sprint

    async def delete_sprint(self, sprint: Sprint) -> None:
        await self.db.delete(sprint)

    def insert_membership(self, sprint_id: UUID, story_id: UUID, priority: int) -> SprintStory:
        membership = SprintStory(sprint_id=sprint_id, story_id=story_id, priority=priority)
        self.db.add(membership)
        return membership

    async def delete_membership(self, membership: SprintStory) -> None:
        await self.db.delete(membership)

    def update_task_sprint_assignment(self, tasks: Sequence[Task], sprint_id: Optional[UUID]) -> None:
        """Tie tasks to a sprint, or release them when ``sprint_id`` is None."""
        for task in tasks:
            task.sprint_id = sprint_id
            task.is_in_sprint_backlog = sprint_id is not None

    # Helpers

    async def _execute(self, stmt: Any) -> Any:
        try:
            return await self.db.execute(stmt)
        except (OperationalError, InterfaceError) as e:
            self._logger.error("Backlog store query failed: %s", str(e))
            raise TransientStoreFailure(f"Backlog store unavailable: {e.orig}") from e

    async def _all(self, stmt: Any) -> List[Any]:
        result = await self._execute(stmt)
        return list(result.scalars().all())

    async def _first(self, stmt: Any) -> Optional[Any]:
        result = await self._execute(stmt)
        return result.scalars().first()
