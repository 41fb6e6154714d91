from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence
from uuid import UUID
import asyncio
import logging

from ..config import settings
from ..services.projection_service import BacklogStoryView, SprintStoryView, SprintView
from .api_client import SprintApiClient, SprintApiError
from .timer import DebounceTimer

logger = logging.getLogger(__name__)


class ReorderState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PENDING_PERSIST = "pending_persist"


class Notifier(Protocol):
    """Non-blocking user notifications."""

    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class LoggingNotifier:
    """Notifier that writes to the log; used when no UI is attached."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def success(self, message: str) -> None:
        self._logger.info(message)

    def error(self, message: str) -> None:
        self._logger.warning(message)


class SprintReorderController:
    """
    Local, optimistic ordering of one sprint's stories.

    Hovering a dragged story over another position moves it there and
    renumbers every local priority immediately. Persistence is debounced:
    each change restarts the timer, and when it fires the current order is
    sent with ``reorder_sprint_stories``. One request per sprint is in flight
    at a time. Failures are reported through the notifier and the local order
    is kept; the next full reload brings back the server's order.
    """

    def __init__(
        self,
        sprint_id: UUID,
        stories: Sequence[SprintStoryView],
        api: SprintApiClient,
        debounce_ms: Optional[int] = None,
        notifier: Optional[Notifier] = None
    ) -> None:
        self.sprint_id = sprint_id
        self.api = api
        self.notifier = notifier or LoggingNotifier()
        self.debounce_seconds = (
            debounce_ms if debounce_ms is not None else settings.reorder_debounce_ms
        ) / 1000
        self.state = ReorderState.IDLE

        self._stories: List[SprintStoryView] = [
            story.model_copy() for story in sorted(stories, key=lambda s: s.priority)
        ]
        self._renumber()
        self._drag_index: Optional[int] = None
        self._timer = DebounceTimer()
        self._persist_lock = asyncio.Lock()
        self._queued = 0
        self.last_error: Optional[str] = None

    @property
    def stories(self) -> List[SprintStoryView]:
        return list(self._stories)

    @property
    def story_ids(self) -> List[UUID]:
        return [story.id for story in self._stories]

    @property
    def drag_index(self) -> Optional[int]:
        return self._drag_index

    @property
    def has_pending_changes(self) -> bool:
        return self._timer.pending or self._timer.running or self._queued > 0

    def begin_drag(self, story_id: UUID) -> int:
        """Start dragging ``story_id``; returns its current index."""
        index = self._index_of(story_id)
        if index is None:
            raise ValueError(f"Story {story_id} is not in sprint {self.sprint_id}")

        self._drag_index = index
        self.state = ReorderState.DRAGGING
        return index

    def hover(self, target_index: int) -> bool:
        """
        Move the dragged story to ``target_index``.

        Returns False when nothing moved, e.g. repeated hovers over the
        same slot.
        """
        if self.state != ReorderState.DRAGGING or self._drag_index is None:
            return False

        target_index = max(0, min(target_index, len(self._stories) - 1))
        if target_index == self._drag_index:
            return False

        story = self._stories.pop(self._drag_index)
        self._stories.insert(target_index, story)
        self._drag_index = target_index
        self._renumber()
        self._schedule_persist()
        return True

    def drop(self) -> ReorderState:
        """End the drag. Any move made during it is waiting on the timer."""
        self._drag_index = None
        self.state = ReorderState.PENDING_PERSIST if self.has_pending_changes else ReorderState.IDLE
        return self.state

    def move_story(self, story_id: UUID, target_index: int) -> bool:
        """Drag-and-drop in one call."""
        self.begin_drag(story_id)
        moved = self.hover(target_index)
        self.drop()
        return moved

    async def flush(self) -> None:
        """Send a waiting order now instead of at the end of the debounce window."""
        if self._timer.pending:
            self._timer.cancel()
            self._queued += 1
            await self._persist(self.story_ids)
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for requests already started by the timer to finish."""
        await self._timer.drain()

    def close(self) -> None:
        """Forget any order that has not been sent yet."""
        self._timer.cancel()
        self._drag_index = None
        self.state = ReorderState.IDLE

    # Private methods

    def _index_of(self, story_id: UUID) -> Optional[int]:
        for index, story in enumerate(self._stories):
            if story.id == story_id:
                return index
        return None

    def _renumber(self) -> None:
        for position, story in enumerate(self._stories, start=1):
            story.priority = position

    def _schedule_persist(self) -> None:
        self._timer.schedule(self.debounce_seconds, self._on_timer)

    def _on_timer(self):
        # Snapshot at fire time; later edits go out with the next timer.
        # Counted here, before the task gets its first step.
        self._queued += 1
        return self._persist(self.story_ids)

    async def _persist(self, ordered_ids: List[UUID]) -> None:
        # Caller has already counted this request in _queued
        try:
            async with self._persist_lock:
                await self.api.reorder_sprint_stories(self.sprint_id, ordered_ids)
                self.last_error = None
                logger.debug("Persisted order of sprint %s (%d stories)", self.sprint_id, len(ordered_ids))
        except SprintApiError as e:
            self.last_error = str(e)
            logger.warning("Failed to persist order of sprint %s: %s", self.sprint_id, str(e))
            self.notifier.error("Failed to persist new story order")
        finally:
            self._queued -= 1
            # The running timer task may be this one, so only waits and queued sends count
            if self.state == ReorderState.PENDING_PERSIST and not (self._timer.pending or self._queued > 0):
                self.state = ReorderState.IDLE


class PrioritizationBoard:
    """
    Sprint prioritization view for one project.

    Holds the project's sprints, one reorder controller per sprint, and the
    backlog-story list. Membership changes go through the API and are
    followed by a full reload, since in-sprint flags must come from the
    server.
    """

    def __init__(
        self,
        api: SprintApiClient,
        project_id: UUID,
        debounce_ms: Optional[int] = None,
        notifier: Optional[Notifier] = None
    ) -> None:
        self.api = api
        self.project_id = project_id
        self.debounce_ms = debounce_ms
        self.notifier = notifier or LoggingNotifier()

        self.sprints: List[SprintView] = []
        self.backlog_stories: List[BacklogStoryView] = []
        self.controllers: Dict[UUID, SprintReorderController] = {}

    async def load(self) -> None:
        """
        Fetch sprints and backlog stories concurrently and rebuild the controllers.

        Orders still waiting on a debounce timer are sent first, so a refresh
        neither drops them nor reloads the stale server order.
        """
        await self.flush()
        sprints, backlog_stories = await asyncio.gather(
            self.api.get_sprints(self.project_id),
            self.api.get_backlog_stories(self.project_id)
        )

        for controller in self.controllers.values():
            controller.close()

        self.sprints = sprints
        self.backlog_stories = backlog_stories
        self.controllers = {
            sprint.id: SprintReorderController(
                sprint.id,
                sprint.stories,
                self.api,
                debounce_ms=self.debounce_ms,
                notifier=self.notifier
            )
            for sprint in sprints
        }
        logger.info(
            "Loaded %d sprints and %d backlog stories for project %s",
            len(sprints), len(backlog_stories), self.project_id
        )

    def controller(self, sprint_id: UUID) -> SprintReorderController:
        try:
            return self.controllers[sprint_id]
        except KeyError:
            raise KeyError(f"Sprint {sprint_id} is not on this board") from None

    def sprint(self, sprint_id: UUID) -> SprintView:
        for sprint in self.sprints:
            if sprint.id == sprint_id:
                return sprint
        raise KeyError(f"Sprint {sprint_id} is not on this board")

    @property
    def free_backlog_stories(self) -> List[BacklogStoryView]:
        """Stories not in any sprint."""
        return [story for story in self.backlog_stories if not story.is_in_sprint]

    def sprint_points(self, sprint_id: UUID) -> int:
        return sum(story.story_points or 0 for story in self.controller(sprint_id).stories)

    def sprint_cost(self, sprint_id: UUID) -> Decimal:
        return sum((story.total_cost for story in self.controller(sprint_id).stories), Decimal("0"))

    async def flush(self) -> None:
        await asyncio.gather(*(controller.flush() for controller in self.controllers.values()))

    async def close(self) -> None:
        await self.flush()
        for controller in self.controllers.values():
            controller.close()

    # Membership flows

    async def create_sprint(
        self,
        name: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        story_ids: Optional[Sequence[UUID]] = None
    ) -> Optional[SprintView]:
        if not (name or "").strip():
            self.notifier.error("Please enter a sprint name.")
            return None

        await self.flush()
        try:
            created = await self.api.create_sprint(
                self.project_id, name.strip(), start_date, end_date, story_ids
            )
        except SprintApiError as e:
            self.notifier.error(str(e) or "Failed to create sprint")
            raise

        await self.load()
        self.notifier.success(f'Sprint "{created.name}" created!')
        return created

    async def delete_sprint(self, sprint_id: UUID) -> None:
        name = self.sprint(sprint_id).name
        await self.flush()
        try:
            await self.api.delete_sprint(sprint_id)
        except SprintApiError as e:
            self.notifier.error(str(e) or "Failed to delete sprint")
            raise

        await self.load()
        self.notifier.success(f'Sprint "{name}" deleted.')

    async def replace_sprint_stories(self, sprint_id: UUID, story_ids: Sequence[UUID]) -> None:
        await self.flush()
        try:
            await self.api.update_sprint_stories(sprint_id, story_ids)
        except SprintApiError as e:
            self.notifier.error(str(e) or "Failed to update sprint stories")
            raise

        await self.load()
        self.notifier.success("Sprint stories updated!")

    async def remove_story(self, sprint_id: UUID, story_id: UUID) -> None:
        remaining = [sid for sid in self.controller(sprint_id).story_ids if sid != story_id]
        await self.replace_sprint_stories(sprint_id, remaining)

    async def add_story(self, sprint_id: UUID, story_id: UUID) -> None:
        story_ids = self.controller(sprint_id).story_ids
        if story_id not in story_ids:
            story_ids.append(story_id)
        await self.replace_sprint_stories(sprint_id, story_ids)


__all__ = [
    "LoggingNotifier",
    "Notifier",
    "PrioritizationBoard",
    "ReorderState",
    "SprintReorderController",
]
