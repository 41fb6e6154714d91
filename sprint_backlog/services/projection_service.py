from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID
import logging

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..core.errors import NotFoundError
from ..models.backlog import Story, Task
from ..models.sprint import Sprint, SprintStory
from ..models.worklog import Worklog
from .backlog_store import BacklogStore
from .rollup import (
    StoryStatus,
    derive_story_status,
    is_task_done,
    sum_decimals,
    task_total_cost,
    total_cost,
)

# Type aliases
ProjectId = UUID
SprintId = UUID

CURRENT_WEEK_LABEL = "Current"


# Pydantic models
class SprintStoryView(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    epic_title: Optional[str] = None
    feature_title: Optional[str] = None
    story_points: Optional[int] = None
    estimated_dev_hours: Optional[Decimal] = None
    estimated_test_hours: Optional[Decimal] = None
    story_status: StoryStatus
    total_cost: Decimal
    priority: int


class SprintView(BaseModel):
    id: SprintId
    project_id: ProjectId
    name: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: str
    stories: List[SprintStoryView] = Field(default_factory=list)
    total_cost: Decimal = Decimal("0")
    total_dev_hours: Decimal = Decimal("0")
    total_test_hours: Decimal = Decimal("0")


class BacklogStoryView(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    epic_title: Optional[str] = None
    feature_title: Optional[str] = None
    story_points: Optional[int] = None
    estimated_dev_hours: Optional[Decimal] = None
    estimated_test_hours: Optional[Decimal] = None
    status: StoryStatus
    total_cost: Decimal
    is_in_sprint: bool
    current_sprint_id: Optional[SprintId] = None
    current_sprint_name: Optional[str] = None


class BacklogTaskView(BaseModel):
    id: UUID
    title: str
    status: Optional[str] = None
    dev_hours: Optional[Decimal] = None
    test_hours: Optional[Decimal] = None
    cost_dev: Optional[Decimal] = None
    cost_test: Optional[Decimal] = None
    total_cost: Decimal


class BacklogTreeStoryView(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    acceptance_criteria: List[str] = Field(default_factory=list)
    story_points: Optional[int] = None
    estimated_dev_hours: Optional[Decimal] = None
    estimated_test_hours: Optional[Decimal] = None
    status: StoryStatus
    total_cost: Decimal
    tasks: List[BacklogTaskView] = Field(default_factory=list)


class BacklogFeatureView(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    priority: Optional[int] = None
    stories: List[BacklogTreeStoryView] = Field(default_factory=list)


class BacklogEpicView(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    priority: Optional[int] = None
    estimated_points: Optional[int] = None
    features: List[BacklogFeatureView] = Field(default_factory=list)


class ProjectBacklogView(BaseModel):
    id: ProjectId
    name: str
    epics: List[BacklogEpicView] = Field(default_factory=list)


class BurnupPoint(BaseModel):
    week: str
    planned: int
    actual: int


class ActivityEntry(BaseModel):
    user_name: str
    action: str
    created_at: str


class ProjectDashboard(BaseModel):
    total_stories: int
    total_dev_hours: Decimal
    total_qa_hours: Decimal
    total_cost: Decimal
    burnup_data: List[BurnupPoint] = Field(default_factory=list)
    recent_activity: List[ActivityEntry] = Field(default_factory=list)


class BacklogProjectionService:
    """
    Read-only views of a project's backlog and sprints.

    Every figure is recomputed from the current task rows through the
    rollup module; nothing derived is persisted.
    """

    def __init__(self, db: AsyncSession, activity_limit: Optional[int] = None) -> None:
        self.db = db
        self.store = BacklogStore(db)
        self.activity_limit = (
            settings.dashboard_activity_limit if activity_limit is None else activity_limit
        )
        self._logger = logging.getLogger(__name__)

    async def get_sprints(self, project_id: ProjectId) -> List[SprintView]:
        """Sprints by start date then name, each with stories in priority order."""

        sprints = await self.store.find_sprints_by_project(project_id)
        return await self._build_sprint_views(sprints)

    async def get_sprint(self, sprint_id: SprintId) -> SprintView:
        sprint = await self.store.get_sprint(sprint_id)
        if sprint is None:
            raise NotFoundError("Sprint", sprint_id)

        views = await self._build_sprint_views([sprint])
        return views[0]

    async def get_backlog_stories(self, project_id: ProjectId) -> List[BacklogStoryView]:
        """Every project story with derived status/cost and its sprint membership."""

        stories = await self.store.find_stories_by_project(project_id)
        story_ids = [story.id for story in stories]
        tasks_by_story = group_tasks_by_story(await self.store.find_tasks_by_story_ids(story_ids))

        membership_by_story: Dict[UUID, SprintStory] = {}
        for membership in await self.store.find_memberships_by_story_ids(story_ids):
            membership_by_story.setdefault(membership.story_id, membership)

        rows: List[BacklogStoryView] = []
        for story in stories:
            tasks = tasks_by_story.get(story.id, [])
            membership = membership_by_story.get(story.id)
            feature = story.feature
            epic = feature.epic if feature is not None else None

            rows.append(
                BacklogStoryView(
                    id=story.id,
                    title=story.title,
                    description=story.description,
                    epic_title=epic.title if epic is not None else None,
                    feature_title=feature.title if feature is not None else None,
                    story_points=story.story_points,
                    estimated_dev_hours=story.estimated_dev_hours,
                    estimated_test_hours=story.estimated_test_hours,
                    status=derive_story_status(tasks, story.story_points),
                    total_cost=total_cost(tasks),
                    is_in_sprint=membership is not None,
                    current_sprint_id=membership.sprint_id if membership is not None else None,
                    current_sprint_name=membership.sprint.name if membership is not None else None,
                )
            )

        rows.sort(key=lambda row: (row.epic_title or "", row.feature_title or "", row.title))
        return rows

    async def get_project_backlog(self, project_id: ProjectId) -> ProjectBacklogView:
        """Project -> epics -> features -> stories -> tasks."""

        project = await self.store.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)

        epics = await self.store.find_epics_by_project(project_id)
        features = await self.store.find_features_by_epic_ids([epic.id for epic in epics])
        stories = await self.store.find_stories_by_project(project_id)
        tasks_by_story = group_tasks_by_story(
            await self.store.find_tasks_by_story_ids([story.id for story in stories])
        )

        features_by_epic: Dict[UUID, List] = defaultdict(list)
        for feature in features:
            features_by_epic[feature.epic_id].append(feature)

        stories_by_feature: Dict[UUID, List[Story]] = defaultdict(list)
        for story in stories:
            stories_by_feature[story.feature_id].append(story)

        epic_views = []
        for epic in epics:
            feature_views = []
            for feature in features_by_epic[epic.id]:
                feature_stories = sorted(
                    stories_by_feature[feature.id],
                    key=lambda story: as_utc(story.created_at),
                    reverse=True,
                )
                feature_views.append(
                    BacklogFeatureView(
                        id=feature.id,
                        title=feature.title,
                        description=feature.description,
                        priority=feature.priority,
                        stories=[
                            self._tree_story_view(story, tasks_by_story.get(story.id, []))
                            for story in feature_stories
                        ],
                    )
                )
            epic_views.append(
                BacklogEpicView(
                    id=epic.id,
                    title=epic.title,
                    description=epic.description,
                    priority=epic.priority,
                    estimated_points=epic.estimated_points,
                    features=feature_views,
                )
            )

        return ProjectBacklogView(id=project.id, name=project.name, epics=epic_views)

    async def get_dashboard(self, project_id: ProjectId) -> ProjectDashboard:
        """Project totals, weekly burnup of completed tasks and recent worklogs."""

        project = await self.store.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)

        stories = await self.store.find_stories_by_project(project_id)
        tasks_by_story = group_tasks_by_story(
            await self.store.find_tasks_by_story_ids([story.id for story in stories])
        )
        project_tasks = await self.store.find_tasks_by_project(project_id)
        worklogs = await self.store.find_worklogs_by_project(project_id, limit=self.activity_limit)

        completed_at = [
            task.updated_at or task.created_at
            for task in project_tasks
            if is_task_done(task)
        ]

        return ProjectDashboard(
            total_stories=len(stories),
            total_dev_hours=sum_decimals(story.estimated_dev_hours for story in stories),
            total_qa_hours=sum_decimals(story.estimated_test_hours for story in stories),
            total_cost=sum_decimals(
                total_cost(tasks_by_story.get(story.id, [])) for story in stories
            ),
            burnup_data=build_burnup_series(completed_at, len(project_tasks)),
            recent_activity=[activity_entry(worklog) for worklog in worklogs],
        )

    # Private methods

    async def _build_sprint_views(self, sprints: Sequence[Sprint]) -> List[SprintView]:
        memberships = await self.store.find_memberships_by_sprints([sprint.id for sprint in sprints])
        tasks_by_story = group_tasks_by_story(
            await self.store.find_tasks_by_story_ids(list({m.story_id for m in memberships}))
        )

        memberships_by_sprint: Dict[UUID, List[SprintStory]] = defaultdict(list)
        for membership in memberships:
            memberships_by_sprint[membership.sprint_id].append(membership)

        views: List[SprintView] = []
        for sprint in sprints:
            rows = [
                self._sprint_story_view(membership, tasks_by_story.get(membership.story_id, []))
                for membership in sorted(memberships_by_sprint[sprint.id], key=lambda m: m.priority)
            ]
            views.append(
                SprintView(
                    id=sprint.id,
                    project_id=sprint.project_id,
                    name=sprint.name,
                    start_date=sprint.start_date,
                    end_date=sprint.end_date,
                    status=sprint.status,
                    stories=rows,
                    total_cost=sum_decimals(row.total_cost for row in rows),
                    total_dev_hours=sum_decimals(row.estimated_dev_hours for row in rows),
                    total_test_hours=sum_decimals(row.estimated_test_hours for row in rows),
                )
            )

        return views

    def _sprint_story_view(self, membership: SprintStory, tasks: Sequence[Task]) -> SprintStoryView:
        story = membership.story
        feature = story.feature
        epic = feature.epic if feature is not None else None

        return SprintStoryView(
            id=story.id,
            title=story.title,
            description=story.description,
            epic_title=epic.title if epic is not None else None,
            feature_title=feature.title if feature is not None else None,
            story_points=story.story_points,
            estimated_dev_hours=story.estimated_dev_hours,
            estimated_test_hours=story.estimated_test_hours,
            story_status=derive_story_status(tasks, story.story_points),
            total_cost=total_cost(tasks),
            priority=membership.priority,
        )

    def _tree_story_view(self, story: Story, tasks: Sequence[Task]) -> BacklogTreeStoryView:
        ordered_tasks = sorted(tasks, key=lambda task: (task.status or "", task.title))

        return BacklogTreeStoryView(
            id=story.id,
            title=story.title,
            description=story.description,
            acceptance_criteria=list(story.acceptance_criteria or []),
            story_points=story.story_points,
            estimated_dev_hours=story.estimated_dev_hours,
            estimated_test_hours=story.estimated_test_hours,
            status=derive_story_status(tasks, story.story_points),
            total_cost=total_cost(tasks),
            tasks=[
                BacklogTaskView(
                    id=task.id,
                    title=task.title,
                    status=task.status,
                    dev_hours=task.dev_hours,
                    test_hours=task.test_hours,
                    cost_dev=task.cost_dev,
                    cost_test=task.cost_test,
                    total_cost=task_total_cost(task),
                )
                for task in ordered_tasks
            ],
        )


def group_tasks_by_story(tasks: Sequence[Task]) -> Dict[UUID, List[Task]]:
    grouped: Dict[UUID, List[Task]] = defaultdict(list)
    for task in tasks:
        if task.story_id is not None:
            grouped[task.story_id].append(task)
    return grouped


def as_utc(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def week_start(moment: datetime) -> date:
    day = as_utc(moment).date()
    return day - timedelta(days=day.weekday())


def week_label(start: date) -> str:
    return f"{start:%b} {start.day}"


def build_burnup_series(
    completed_at: Sequence[Optional[datetime]],
    total_tasks: int
) -> List[BurnupPoint]:
    """
    One point per Monday-based week holding completions, in order.

    ``completed_at`` holds the last-updated (or created) timestamp of each
    completed task. ``actual`` accumulates across weeks; ``planned`` is the
    total task count.
    """
    if total_tasks == 0:
        return []

    per_week: Dict[date, int] = defaultdict(int)
    for moment in completed_at:
        if moment is not None:
            per_week[week_start(moment)] += 1

    if not per_week:
        return [BurnupPoint(week=CURRENT_WEEK_LABEL, planned=total_tasks, actual=0)]

    series: List[BurnupPoint] = []
    cumulative = 0
    for start in sorted(per_week):
        cumulative += per_week[start]
        series.append(BurnupPoint(week=week_label(start), planned=total_tasks, actual=cumulative))

    return series


def format_hours(hours: Optional[Decimal]) -> str:
    if hours is None:
        return "0"
    value = Decimal(str(hours))
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return format(value.normalize(), "f")


def activity_entry(worklog: Worklog) -> ActivityEntry:
    user_name = worklog.user.label if worklog.user is not None else "Someone"
    action = f"Logged {format_hours(worklog.hours)}h"
    if worklog.task is not None:
        action += f" on {worklog.task.title}"

    return ActivityEntry(
        user_name=user_name,
        action=action,
        created_at=as_utc(worklog.created_at).isoformat(),
    )


__all__ = [
    "BacklogProjectionService",
    "SprintStoryView",
    "SprintView",
    "BacklogStoryView",
    "BacklogTaskView",
    "BacklogTreeStoryView",
    "BacklogFeatureView",
    "BacklogEpicView",
    "ProjectBacklogView",
    "BurnupPoint",
    "ActivityEntry",
    "ProjectDashboard",
    "build_burnup_series",
    "group_tasks_by_story",
]
