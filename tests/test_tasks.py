"""
Tests for the task lifecycle: status transitions, rescheduling, overdue
listing and cleanup of completed tasks.
"""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, OTHER_USER_ID, USER_ID
from ideaflow.models import TaskRow
from ideaflow.tasks import (
    apply_task_changes,
    cleanup_completed_tasks,
    delete_task,
    find_overdue_tasks,
    list_tasks,
    update_task,
)


async def add_task(gateway, **fields):
    fields.setdefault("user_id", USER_ID)
    fields.setdefault("title", "Buy cake ingredients")
    task = TaskRow(**fields)
    await gateway.insert("tasks", [task.model_dump()])
    return task


class TestApplyTaskChanges:
    def test_completing_sets_completed_at(self):
        values = apply_task_changes({"status": "pending"}, {"status": "completed"}, NOW)
        assert values["completed_at"] == NOW
        assert values["updated_at"] == NOW

    def test_reverting_clears_completed_at(self):
        values = apply_task_changes({"status": "completed", "completed_at": NOW}, {"status": "pending"}, NOW)
        assert values["completed_at"] is None

    def test_completing_twice_keeps_original_timestamp(self):
        values = apply_task_changes({"status": "completed"}, {"status": "completed"}, NOW)
        assert "completed_at" not in values

    def test_setting_due_date_resolves_input_request(self):
        due = datetime(2026, 10, 25, tzinfo=timezone.utc)
        values = apply_task_changes(
            {"needs_user_input": True, "timeline_question": "When?", "due_date": None},
            {"due_date": due},
            NOW,
        )
        assert values["needs_user_input"] is False
        assert values["timeline_question"] is None
        assert values["notification_sent"] is False

    def test_non_editable_fields_are_dropped(self):
        values = apply_task_changes({}, {"user_id": OTHER_USER_ID, "title": "New"}, NOW)
        assert "user_id" not in values
        assert values["title"] == "New"


class TestTaskUpdates:
    @pytest.mark.asyncio
    async def test_complete_and_revert(self, gateway):
        task = await add_task(gateway)

        completed = await update_task(gateway, USER_ID, task.id, {"status": "completed"}, now=NOW)
        assert completed.status == "completed"
        assert completed.completed_at == NOW

        reverted = await update_task(gateway, USER_ID, task.id, {"status": "in_progress"}, now=NOW)
        assert reverted.status == "in_progress"
        assert reverted.completed_at is None

    @pytest.mark.asyncio
    async def test_other_users_task_is_not_found(self, gateway):
        task = await add_task(gateway, user_id=OTHER_USER_ID)

        assert await update_task(gateway, USER_ID, task.id, {"status": "completed"}) is None
        assert gateway.tables["tasks"][0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_list_and_delete(self, gateway):
        await add_task(gateway, title="One")
        done = await add_task(gateway, title="Two", status="completed", completed_at=NOW)
        await add_task(gateway, title="Theirs", user_id=OTHER_USER_ID)

        assert {t.title for t in await list_tasks(gateway, USER_ID)} == {"One", "Two"}
        assert [t.title for t in await list_tasks(gateway, USER_ID, "completed")] == ["Two"]

        assert await delete_task(gateway, USER_ID, done.id) is True
        assert await delete_task(gateway, USER_ID, done.id) is False


class TestOverdue:
    @pytest.mark.asyncio
    async def test_overdue_tasks_ordered_by_due_date(self, gateway):
        await add_task(gateway, title="Yesterday", due_date=NOW - timedelta(days=1))
        await add_task(gateway, title="Last week", due_date=NOW - timedelta(days=7))
        await add_task(gateway, title="Later today", due_date=NOW + timedelta(hours=2))
        await add_task(gateway, title="Next week", due_date=NOW + timedelta(days=7))
        await add_task(gateway, title="Undated")
        await add_task(gateway, title="Done", due_date=NOW - timedelta(days=2), status="completed", completed_at=NOW)

        overdue = await find_overdue_tasks(gateway, USER_ID, now=NOW)

        assert [t.title for t in overdue] == ["Last week", "Yesterday", "Later today"]


class TestCleanup:
    @pytest.mark.asyncio
    async def test_retention_window(self, gateway):
        await add_task(gateway, title="Old", status="completed", completed_at=NOW - timedelta(hours=25))
        await add_task(gateway, title="Recent", status="completed", completed_at=NOW - timedelta(hours=1))
        await add_task(gateway, title="Pending", due_date=NOW - timedelta(days=2))

        eligible = await cleanup_completed_tasks(gateway, now=NOW, dry_run=True)

        assert [t["title"] for t in eligible] == ["Old"]

    @pytest.mark.asyncio
    async def test_cleanup_deletes_only_old_completed_tasks(self, gateway):
        await add_task(gateway, title="Old", status="completed", completed_at=NOW - timedelta(hours=25))
        await add_task(gateway, title="Recent", status="completed", completed_at=NOW - timedelta(hours=1))
        await add_task(gateway, title="Pending", created_at=NOW - timedelta(days=30))

        deleted = await cleanup_completed_tasks(gateway, now=NOW)

        assert [t["title"] for t in deleted] == ["Old"]
        assert {row["title"] for row in gateway.tables["tasks"]} == {"Recent", "Pending"}

    @pytest.mark.asyncio
    async def test_dry_run_deletes_nothing(self, gateway):
        await add_task(gateway, title="Old", status="completed", completed_at=NOW - timedelta(hours=48))

        eligible = await cleanup_completed_tasks(gateway, now=NOW, dry_run=True)

        assert [t["title"] for t in eligible] == ["Old"]
        assert len(gateway.tables["tasks"]) == 1
