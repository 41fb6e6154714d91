from decimal import Decimal
from types import SimpleNamespace

import pytest

from sprint_backlog.services.rollup import (
    StoryStatus,
    TaskProgress,
    classify_task_status,
    derive_story_status,
    normalize_status,
    sum_decimals,
    task_total_cost,
    total_cost,
)


def make_task(status=None, cost_dev=None, cost_test=None, total_cost=None):
    return SimpleNamespace(status=status, cost_dev=cost_dev, cost_test=cost_test, total_cost=total_cost)


class TestStatusClassification:
    @pytest.mark.parametrize("raw", ["done", "Done", "DONE", " done ", "completed", "Completed"])
    def test_done_variants(self, raw):
        assert classify_task_status(raw) is TaskProgress.DONE

    @pytest.mark.parametrize("raw", ["in_progress", "In Progress", "in-progress", "IN_PROGRESS"])
    def test_in_progress_variants(self, raw):
        assert classify_task_status(raw) is TaskProgress.IN_PROGRESS

    @pytest.mark.parametrize("raw", [None, "", "todo", "blocked", "review"])
    def test_everything_else(self, raw):
        assert classify_task_status(raw) is TaskProgress.OTHER

    def test_normalize_folds_separators(self):
        assert normalize_status("In - Progress") == "in_progress"
        assert normalize_status(None) == ""


class TestDeriveStoryStatus:
    def test_no_tasks_with_points_is_planned(self):
        assert derive_story_status([], 5) is StoryStatus.PLANNED

    @pytest.mark.parametrize("points", [0, None])
    def test_no_tasks_without_points_is_todo(self, points):
        assert derive_story_status([], points) is StoryStatus.TODO

    def test_all_done(self):
        tasks = [make_task("done"), make_task("Done")]
        assert derive_story_status(tasks) is StoryStatus.DONE

    def test_done_and_in_progress(self):
        tasks = [make_task("done"), make_task("in_progress")]
        assert derive_story_status(tasks) is StoryStatus.IN_PROGRESS

    def test_done_and_todo_is_todo(self):
        tasks = [make_task("done"), make_task("todo")]
        assert derive_story_status(tasks) is StoryStatus.TODO

    def test_points_ignored_once_tasks_exist(self):
        assert derive_story_status([make_task("todo")], 8) is StoryStatus.TODO

    def test_derivation_is_repeatable(self):
        tasks = [make_task("in-progress"), make_task("todo")]
        assert derive_story_status(tasks) == derive_story_status(list(reversed(tasks)))


class TestCosts:
    def test_explicit_total_wins(self):
        task = make_task(cost_dev=Decimal("10"), cost_test=Decimal("5"), total_cost=Decimal("99"))
        assert task_total_cost(task) == Decimal("99")

    def test_components_with_nulls_count_as_zero(self):
        assert task_total_cost(make_task(cost_dev=Decimal("10"))) == Decimal("10")
        assert task_total_cost(make_task()) == Decimal("0")

    def test_total_cost_ignores_order(self):
        tasks = [
            make_task(cost_dev=Decimal("1.25"), cost_test=Decimal("2")),
            make_task(total_cost=Decimal("7.5")),
            make_task(cost_test=Decimal("0.25")),
        ]
        assert total_cost(tasks) == Decimal("11.00")
        assert total_cost(reversed(tasks)) == total_cost(tasks)

    def test_total_cost_of_nothing(self):
        assert total_cost([]) == Decimal("0")

    def test_sum_decimals_accepts_none_and_numbers(self):
        assert sum_decimals([Decimal("1.5"), None, 2]) == Decimal("3.5")
