from datetime import date
from uuid import uuid4

import pytest

from sprint_backlog.core.errors import (
    InvalidRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from sprint_backlog.models.sprint import SprintStatus
from sprint_backlog.services.projection_service import BacklogProjectionService
from sprint_backlog.services.sprint_service import SprintService


def assert_dense(priorities):
    assert sorted(priorities.values()) == list(range(1, len(priorities) + 1))


class TestCreateSprint:
    async def test_stories_numbered_in_request_order(self, db, seeded, memberships):
        a, b, c = (seeded.stories[k] for k in "ABC")

        sprint = await SprintService(db).create_sprint(
            seeded.project_id, "Sprint 1", story_ids=[a, b, c]
        )

        assert sprint.name == "Sprint 1"
        assert sprint.status == SprintStatus.PLANNED.value
        assert [row.id for row in sprint.stories] == [a, b, c]
        assert await memberships(sprint.id) == {a: 1, b: 2, c: 3}

    async def test_tasks_join_the_sprint(self, db, seeded, fetch_tasks):
        sprint = await SprintService(db).create_sprint(
            seeded.project_id, "Sprint 1", story_ids=[seeded.stories["A"]]
        )

        tasks = await fetch_tasks(seeded.tasks["A"])
        assert {task.sprint_id for task in tasks} == {sprint.id}
        assert all(task.is_in_sprint_backlog for task in tasks)

    async def test_without_stories(self, db, seeded, memberships):
        sprint = await SprintService(db).create_sprint(
            seeded.project_id, "  Empty  ", start_date=date(2025, 3, 3), end_date=date(2025, 3, 17)
        )

        assert sprint.name == "Empty"
        assert sprint.stories == []
        assert await memberships(sprint.id) == {}

    @pytest.mark.parametrize("name", ["", "   ", None])
    async def test_name_required(self, db, seeded, name):
        with pytest.raises(InvalidRequestError, match="Sprint name is required"):
            await SprintService(db).create_sprint(seeded.project_id, name)

    @pytest.mark.parametrize("end", [date(2025, 3, 3), date(2025, 3, 1)])
    async def test_end_must_follow_start(self, db, seeded, end):
        with pytest.raises(InvalidRequestError, match="End date must be after start date"):
            await SprintService(db).create_sprint(
                seeded.project_id, "Sprint 1", start_date=date(2025, 3, 3), end_date=end
            )

    async def test_unknown_project(self, db, seeded):
        with pytest.raises(NotFoundError):
            await SprintService(db).create_sprint(uuid4(), "Sprint 1")

    async def test_unknown_story(self, db, seeded):
        with pytest.raises(NotFoundError):
            await SprintService(db).create_sprint(seeded.project_id, "Sprint 1", story_ids=[uuid4()])

        assert await BacklogProjectionService(db).get_sprints(seeded.project_id) == []

    async def test_duplicate_story_ids(self, db, seeded):
        a = seeded.stories["A"]
        with pytest.raises(InvalidRequestError, match="Duplicate"):
            await SprintService(db).create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, a])

    async def test_story_from_another_project(self, db, seeded):
        with pytest.raises(InvalidRequestError, match="does not belong"):
            await SprintService(db).create_sprint(
                seeded.project_id, "Sprint 1", story_ids=[seeded.foreign_story_id]
            )

    async def test_story_moves_out_of_its_previous_sprint(self, db, seeded, memberships):
        a, b, c = (seeded.stories[k] for k in "ABC")
        service = SprintService(db)
        first = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b, c])

        second = await service.create_sprint(seeded.project_id, "Sprint 2", story_ids=[a])

        assert await memberships(second.id) == {a: 1}
        assert await memberships(first.id) == {b: 1, c: 2}


class TestReorder:
    async def test_scenario(self, db, seeded, memberships):
        a, b, c = (seeded.stories[k] for k in "ABC")
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b, c])

        await service.reorder(sprint.id, [c, a, b])

        assert await memberships(sprint.id) == {c: 1, a: 2, b: 3}

    async def test_reorder_is_idempotent(self, db, seeded, memberships):
        a, b, c = (seeded.stories[k] for k in "ABC")
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b, c])

        await service.reorder(sprint.id, [b, c, a])
        once = await memberships(sprint.id)
        await service.reorder(sprint.id, [b, c, a])

        assert await memberships(sprint.id) == once

    async def test_non_members_are_ignored(self, db, seeded, memberships):
        a, b, c, d = (seeded.stories[k] for k in "ABCD")
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b, c])

        await service.reorder(sprint.id, [d, c, uuid4(), b, a])

        assert await memberships(sprint.id) == {c: 1, b: 2, a: 3}

    async def test_unlisted_members_keep_their_order_at_the_end(self, db, seeded, memberships):
        a, b, c, d = (seeded.stories[k] for k in "ABCD")
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b, c, d])

        await service.reorder(sprint.id, [d, b])

        priorities = await memberships(sprint.id)
        assert priorities == {d: 1, b: 2, a: 3, c: 4}
        assert_dense(priorities)

    async def test_repeated_ids_use_first_position(self, db, seeded, memberships):
        a, b, c = (seeded.stories[k] for k in "ABC")
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b, c])

        await service.reorder(sprint.id, [b, a, b, c])

        assert await memberships(sprint.id) == {b: 1, a: 2, c: 3}

    async def test_missing_sprint(self, db, seeded):
        with pytest.raises(NotFoundError):
            await SprintService(db).reorder(uuid4(), [seeded.stories["A"]])


class TestReplaceStories:
    async def test_scenario(self, db, seeded, memberships):
        a, b, c = (seeded.stories[k] for k in "ABC")
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b, c])
        await service.reorder(sprint.id, [c, a, b])

        await service.replace_stories(sprint.id, [c, a])

        assert await memberships(sprint.id) == {c: 1, a: 2}
        backlog = {
            row.id: row for row in await BacklogProjectionService(db).get_backlog_stories(seeded.project_id)
        }
        assert backlog[b].is_in_sprint is False
        assert backlog[b].current_sprint_id is None
        assert backlog[c].is_in_sprint is True
        assert backlog[c].current_sprint_name == "Sprint 1"

    async def test_removed_story_releases_its_tasks(self, db, seeded, fetch_tasks):
        a, b = seeded.stories["A"], seeded.stories["B"]
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b])

        await service.replace_stories(sprint.id, [a])

        released = await fetch_tasks(seeded.tasks["B"])
        assert all(task.sprint_id is None for task in released)
        assert not any(task.is_in_sprint_backlog for task in released)
        kept = await fetch_tasks(seeded.tasks["A"])
        assert {task.sprint_id for task in kept} == {sprint.id}

    async def test_replace_with_nothing(self, db, seeded, memberships):
        service = SprintService(db)
        sprint = await service.create_sprint(
            seeded.project_id, "Sprint 1", story_ids=[seeded.stories["A"]]
        )

        await service.replace_stories(sprint.id, [])

        assert await memberships(sprint.id) == {}

    async def test_invalid_replacement_changes_nothing(self, db, seeded, memberships):
        a, b = seeded.stories["A"], seeded.stories["B"]
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b])

        with pytest.raises(NotFoundError):
            await service.replace_stories(sprint.id, [b, uuid4()])

        assert await memberships(sprint.id) == {a: 1, b: 2}

    async def test_missing_sprint(self, db, seeded):
        with pytest.raises(NotFoundError):
            await SprintService(db).replace_stories(uuid4(), [])


class TestDeleteSprint:
    async def test_memberships_removed_and_tasks_released(
        self, db, seeded, memberships, fetch_tasks, fetch_sprint
    ):
        a, b = seeded.stories["A"], seeded.stories["B"]
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[a, b])

        await service.delete_sprint(sprint.id)

        assert await fetch_sprint(sprint.id) is None
        assert await memberships(sprint.id) == {}
        tasks = await fetch_tasks(seeded.tasks["A"] + seeded.tasks["B"])
        assert all(task.sprint_id is None for task in tasks)
        assert not any(task.is_in_sprint_backlog for task in tasks)

        backlog = await BacklogProjectionService(db).get_backlog_stories(seeded.project_id)
        assert not any(row.is_in_sprint for row in backlog)

    async def test_missing_sprint(self, db, seeded):
        with pytest.raises(NotFoundError):
            await SprintService(db).delete_sprint(uuid4())


class TestSprintStatus:
    async def test_lifecycle(self, db, seeded):
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1")

        active = await service.update_sprint_status(sprint.id, SprintStatus.ACTIVE)
        assert active.status == "active"

        completed = await service.update_sprint_status(sprint.id, SprintStatus.COMPLETED)
        assert completed.status == "completed"

    async def test_same_status_is_a_no_op(self, db, seeded):
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1")

        view = await service.update_sprint_status(sprint.id, SprintStatus.PLANNED)

        assert view.status == "planned"

    async def test_cannot_skip_to_completed(self, db, seeded):
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1")

        with pytest.raises(InvalidStatusTransitionError):
            await service.update_sprint_status(sprint.id, SprintStatus.COMPLETED)

    async def test_completed_is_final(self, db, seeded):
        service = SprintService(db)
        sprint = await service.create_sprint(seeded.project_id, "Sprint 1")
        await service.update_sprint_status(sprint.id, SprintStatus.ACTIVE)
        await service.update_sprint_status(sprint.id, SprintStatus.COMPLETED)

        with pytest.raises(InvalidStatusTransitionError):
            await service.update_sprint_status(sprint.id, SprintStatus.ACTIVE)

    async def test_missing_sprint(self, db, seeded):
        with pytest.raises(NotFoundError):
            await SprintService(db).update_sprint_status(uuid4(), SprintStatus.ACTIVE)


async def test_dense_after_every_operation(db, seeded, memberships):
    a, b, c, d, e = (seeded.stories[k] for k in "ABCDE")
    service = SprintService(db)

    sprint = await service.create_sprint(seeded.project_id, "Sprint 1", story_ids=[e, d, c, b, a])
    assert_dense(await memberships(sprint.id))

    await service.reorder(sprint.id, [a, e])
    assert_dense(await memberships(sprint.id))

    await service.replace_stories(sprint.id, [d, a, b])
    assert_dense(await memberships(sprint.id))

    other = await service.create_sprint(seeded.project_id, "Sprint 2", story_ids=[a])
    assert_dense(await memberships(sprint.id))
    assert_dense(await memberships(other.id))


async def test_sprint_row_to_dict(db, seeded, fetch_sprint):
    view = await SprintService(db).create_sprint(seeded.project_id, "Sprint 1", start_date=date(2025, 3, 3))

    row = (await fetch_sprint(view.id)).to_dict()

    assert row["id"] == view.id
    assert row["name"] == "Sprint 1"
    assert row["start_date"] == date(2025, 3, 3)
    assert row["status"] == "planned"
    assert row["project_id"] == seeded.project_id
