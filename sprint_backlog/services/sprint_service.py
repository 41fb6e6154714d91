from __future__ import annotations

from typing import (
    Dict,
    List,
    Optional,
    Sequence,
)
from datetime import date
from uuid import UUID, uuid4
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import (
    InvalidRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from ..models.backlog import Story
from ..models.sprint import Sprint, SprintStatus, SprintStory
from .backlog_store import BacklogStore
from .projection_service import BacklogProjectionService, SprintView

# Type aliases
ProjectId = UUID
SprintId = UUID
StoryId = UUID

VALID_TRANSITIONS: Dict[SprintStatus, List[SprintStatus]] = {
    SprintStatus.PLANNED: [SprintStatus.ACTIVE],
    SprintStatus.ACTIVE: [SprintStatus.COMPLETED, SprintStatus.PLANNED],
    SprintStatus.COMPLETED: [],
}


def assign_dense_priorities(memberships: Sequence[SprintStory]) -> None:
    """Number memberships 1..N in the given order."""
    for position, membership in enumerate(memberships, start=1):
        membership.priority = position


class SprintService:
    """
    Owns sprint membership: which stories a sprint holds and in what order.

    Every operation runs in one store transaction and leaves each touched
    sprint with priorities exactly 1..N.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.store = BacklogStore(db)
        self.projections = BacklogProjectionService(db)
        self._logger = logging.getLogger(__name__)

    async def create_sprint(
        self,
        project_id: ProjectId,
        name: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        story_ids: Optional[Sequence[StoryId]] = None
    ) -> SprintView:
        """Create a planned sprint, optionally holding ``story_ids`` in that order."""

        self._logger.info("Creating sprint '%s' for project %s", name, project_id)

        clean_name = self._validate_name(name)
        self._validate_sprint_dates(start_date, end_date)
        story_ids = list(story_ids or [])
        sprint_id = uuid4()

        try:
            async with self.store.transaction():
                if await self.store.get_project(project_id) is None:
                    raise NotFoundError("Project", project_id)

                stories = await self._resolve_stories(project_id, story_ids)

                self.store.add_sprint(
                    Sprint(
                        id=sprint_id,
                        project_id=project_id,
                        name=clean_name,
                        start_date=start_date,
                        end_date=end_date,
                        status=SprintStatus.PLANNED.value
                    )
                )
                await self.store.flush()
                await self._attach_stories(sprint_id, stories)
        except Exception as e:
            self._logger.error("Failed to create sprint: %s", str(e))
            raise

        self._logger.info("Created sprint %s with %d stories", sprint_id, len(story_ids))
        return await self.projections.get_sprint(sprint_id)

    async def delete_sprint(self, sprint_id: SprintId) -> None:
        """Remove a sprint, its memberships, and release its tasks."""

        try:
            async with self.store.transaction():
                sprint = await self.store.get_sprint(sprint_id)
                if sprint is None:
                    raise NotFoundError("Sprint", sprint_id)

                memberships = await self.store.find_memberships_by_sprint(sprint_id)
                for membership in memberships:
                    await self.store.delete_membership(membership)

                tasks = await self.store.find_tasks_by_sprint(sprint_id)
                self.store.update_task_sprint_assignment(tasks, None)
                await self.store.flush()

                await self.store.delete_sprint(sprint)
        except Exception as e:
            self._logger.error("Failed to delete sprint %s: %s", sprint_id, str(e))
            raise

        self._logger.info(
            "Deleted sprint %s (%d memberships, %d tasks released)",
            sprint_id, len(memberships), len(tasks)
        )

    async def replace_stories(self, sprint_id: SprintId, story_ids: Sequence[StoryId]) -> None:
        """Make ``story_ids`` the complete, ordered membership of the sprint."""

        story_ids = list(story_ids)

        try:
            async with self.store.transaction():
                sprint = await self.store.get_sprint(sprint_id)
                if sprint is None:
                    raise NotFoundError("Sprint", sprint_id)

                stories = await self._resolve_stories(sprint.project_id, story_ids)

                for membership in await self.store.find_memberships_by_sprint(sprint_id):
                    await self.store.delete_membership(membership)

                released = await self.store.find_tasks_by_sprint(sprint_id)
                self.store.update_task_sprint_assignment(released, None)
                await self.store.flush()

                await self._attach_stories(sprint_id, stories)
        except Exception as e:
            self._logger.error("Failed to replace stories of sprint %s: %s", sprint_id, str(e))
            raise

        self._logger.info("Sprint %s now holds %d stories", sprint_id, len(story_ids))

    async def reorder(self, sprint_id: SprintId, ordered_story_ids: Sequence[StoryId]) -> None:
        """
        Renumber a sprint's memberships to follow ``ordered_story_ids``.

        Ids that are not members are skipped. Members missing from the
        request keep their relative order after the listed ones. Membership
        itself never changes.
        """

        skipped: List[StoryId] = []

        try:
            async with self.store.transaction():
                if await self.store.get_sprint(sprint_id) is None:
                    raise NotFoundError("Sprint", sprint_id)

                memberships = await self.store.find_memberships_by_sprint(sprint_id)
                by_story = {membership.story_id: membership for membership in memberships}

                ordered: List[SprintStory] = []
                placed = set()
                for story_id in ordered_story_ids:
                    membership = by_story.get(story_id)
                    if membership is None:
                        skipped.append(story_id)
                        continue
                    if story_id in placed:
                        continue
                    ordered.append(membership)
                    placed.add(story_id)

                ordered.extend(m for m in memberships if m.story_id not in placed)
                assign_dense_priorities(ordered)
        except Exception as e:
            self._logger.error("Failed to reorder sprint %s: %s", sprint_id, str(e))
            raise

        if skipped:
            self._logger.warning(
                "Reorder of sprint %s ignored %d non-member stories: %s",
                sprint_id, len(skipped), ", ".join(str(s) for s in skipped)
            )
        self._logger.info("Reordered sprint %s", sprint_id)

    async def update_sprint_status(self, sprint_id: SprintId, status: SprintStatus) -> SprintView:
        """Move a sprint along planned -> active -> completed."""

        status = SprintStatus(status)

        try:
            async with self.store.transaction():
                sprint = await self.store.get_sprint(sprint_id)
                if sprint is None:
                    raise NotFoundError("Sprint", sprint_id)

                current = SprintStatus(sprint.status)
                if status != current:
                    if status not in VALID_TRANSITIONS.get(current, []):
                        raise InvalidStatusTransitionError(current.value, status.value)
                    sprint.status = status.value
        except Exception as e:
            self._logger.error("Failed to update status of sprint %s: %s", sprint_id, str(e))
            raise

        self._logger.info("Updated sprint %s status to %s", sprint_id, status.value)
        return await self.projections.get_sprint(sprint_id)

    # Private methods

    def _validate_name(self, name: Optional[str]) -> str:
        clean = (name or "").strip()
        if not clean:
            raise InvalidRequestError("Sprint name is required.")
        return clean

    def _validate_sprint_dates(self, start_date: Optional[date], end_date: Optional[date]) -> None:
        if start_date is not None and end_date is not None and end_date <= start_date:
            raise InvalidRequestError("End date must be after start date")

    async def _resolve_stories(self, project_id: ProjectId, story_ids: Sequence[StoryId]) -> List[Story]:
        """Load stories in request order, rejecting duplicates, unknown and foreign ids."""

        seen = set()
        duplicates = []
        for story_id in story_ids:
            if story_id in seen:
                duplicates.append(story_id)
            seen.add(story_id)
        if duplicates:
            raise InvalidRequestError(
                "Duplicate story ids: " + ", ".join(str(s) for s in duplicates)
            )

        by_id = {story.id: story for story in await self.store.find_stories_by_ids(story_ids)}

        for story_id in story_ids:
            story = by_id.get(story_id)
            if story is None:
                raise NotFoundError("Story", story_id)
            if story.feature is None or story.feature.epic is None or story.feature.epic.project_id != project_id:
                raise InvalidRequestError(f"Story {story_id} does not belong to project {project_id}")

        return [by_id[story_id] for story_id in story_ids]

    async def _attach_stories(self, sprint_id: SprintId, stories: Sequence[Story]) -> None:
        """
        Add memberships 1..N for ``stories`` and tie their tasks to the sprint.

        A story already in another sprint is moved; that sprint is renumbered.
        """

        story_ids = [story.id for story in stories]

        vacated = set()
        for membership in await self.store.find_memberships_by_story_ids(story_ids):
            vacated.add(membership.sprint_id)
            await self.store.delete_membership(membership)
        await self.store.flush()

        for other_sprint_id in vacated - {sprint_id}:
            assign_dense_priorities(await self.store.find_memberships_by_sprint(other_sprint_id))
            self._logger.info("Moved stories out of sprint %s into sprint %s", other_sprint_id, sprint_id)

        for position, story_id in enumerate(story_ids, start=1):
            self.store.insert_membership(sprint_id, story_id, position)

        tasks = await self.store.find_tasks_by_story_ids(story_ids)
        self.store.update_task_sprint_assignment(tasks, sprint_id)
        await self.store.flush()


__all__ = [
    "SprintService",
    "VALID_TRANSITIONS",
    "assign_dense_priorities",
]
