"""
Task lifecycle: updates that keep the stored invariants, overdue listing and
cleanup of completed tasks.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ideaflow import config
from ideaflow.dates import start_of_tomorrow
from ideaflow.gateway import Gateway, eq, lt, not_null
from ideaflow.models import TaskRow, utc_now

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {'title', 'description', 'status', 'priority', 'estimated_duration', 'due_date'}


def apply_task_changes(current: Dict[str, Any], changes: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """
    Compute the column values to write for an update.

    Keeps completed_at in step with status, and clears the "needs a date"
    state once a due date is set.
    """
    values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}

    new_status = values.get('status')
    current_status = current.get('status')
    if new_status == 'completed' and current_status != 'completed':
        values['completed_at'] = now
    elif new_status is not None and new_status != 'completed':
        values['completed_at'] = None

    if values.get('due_date') is not None:
        values['needs_user_input'] = False
        values['timeline_question'] = None
        if values['due_date'] != current.get('due_date'):
            # Rescheduled task gets a fresh due notification
            values['notification_sent'] = False

    values['updated_at'] = now
    return values


async def list_tasks(gateway: Gateway, user_id: str, status: Optional[str] = None) -> List[TaskRow]:
    where = [eq('user_id', user_id)]
    if status:
        where.append(eq('status', status))
    rows = await gateway.select('tasks', where, order_by='created_at', descending=True)
    return [TaskRow.model_validate(row) for row in rows]


async def get_task(gateway: Gateway, user_id: str, task_id: str) -> Optional[TaskRow]:
    rows = await gateway.select('tasks', [eq('id', task_id), eq('user_id', user_id)])
    return TaskRow.model_validate(rows[0]) if rows else None


async def update_task(
    gateway: Gateway,
    user_id: str,
    task_id: str,
    changes: Dict[str, Any],
    now: Optional[datetime] = None
) -> Optional[TaskRow]:
    """Apply changes to one of the user's tasks. Returns None when the task does not exist."""
    now = now or utc_now()
    current = await get_task(gateway, user_id, task_id)
    if current is None:
        return None

    values = apply_task_changes(current.model_dump(), changes, now)
    logger.info(f"Updating task {task_id} with fields: {sorted(values.keys())}")
    rows = await gateway.update('tasks', values, [eq('id', task_id), eq('user_id', user_id)])
    return TaskRow.model_validate(rows[0]) if rows else None


async def delete_task(gateway: Gateway, user_id: str, task_id: str) -> bool:
    rows = await gateway.delete('tasks', [eq('id', task_id), eq('user_id', user_id)])
    logger.info(f"Delete task {task_id} for user {user_id}: {len(rows)} row(s)")
    return bool(rows)


async def find_overdue_tasks(gateway: Gateway, user_id: str, now: Optional[datetime] = None) -> List[TaskRow]:
    """Pending tasks due before the start of tomorrow, oldest deadline first."""
    now = now or utc_now()
    rows = await gateway.select(
        'tasks',
        [
            eq('user_id', user_id),
            eq('status', 'pending'),
            not_null('due_date'),
            lt('due_date', start_of_tomorrow(now)),
        ],
        order_by='due_date',
    )
    return [TaskRow.model_validate(row) for row in rows]


def cleanup_cutoff(now: datetime) -> datetime:
    return now - timedelta(hours=config.COMPLETED_TASK_RETENTION_HOURS)


async def cleanup_completed_tasks(
    gateway: Gateway,
    now: Optional[datetime] = None,
    dry_run: bool = False
) -> List[Dict[str, Any]]:
    """
    Delete completed tasks whose completed_at is older than the retention window.

    Returns {id, title, completed_at} for every task deleted (or that would be, with dry_run).
    """
    now = now or utc_now()
    cutoff = cleanup_cutoff(now)
    logger.info(f"Starting cleanup of completed tasks completed before {cutoff.isoformat()}...")

    where = [eq('status', 'completed'), not_null('completed_at'), lt('completed_at', cutoff)]
    if dry_run:
        rows = await gateway.select('tasks', where)
    else:
        rows = await gateway.delete('tasks', where)

    deleted = [
        {"id": row["id"], "title": row["title"], "completed_at": row["completed_at"]}
        for row in rows
    ]
    for task in deleted:
        logger.info(f"{'Would delete' if dry_run else 'Deleted'} task: {task['title']} (completed at: {task['completed_at']})")
    logger.info(f"✅ Cleanup finished: {len(deleted)} completed tasks {'eligible' if dry_run else 'deleted'}")
    return deleted
