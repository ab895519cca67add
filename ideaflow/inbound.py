"""
Inbound webhook: turn a forwarded email or chat message into a task.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ideaflow.errors import PersistenceError
from ideaflow.gateway import Gateway, eq
from ideaflow.models import MakeTaskPayload, TaskRow, utc_now

logger = logging.getLogger(__name__)


class UnknownUser(Exception):
    pass


def parse_suggested_date(value: Optional[str]) -> Optional[datetime]:
    """Lenient ISO parse; unparseable values are logged and dropped."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Invalid date format: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def receive_message_task(
    gateway: Gateway,
    payload: MakeTaskPayload,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    now = now or utc_now()
    profiles = await gateway.select('profiles', [eq('email', payload.user_email)], limit=1)
    if not profiles:
        logger.error(f"User not found: {payload.user_email}")
        raise UnknownUser(payload.user_email)
    user_id = profiles[0]['id']

    task = TaskRow(
        user_id=user_id,
        title=payload.title,
        description=payload.description or payload.message_content,
        priority=payload.priority or 'medium',
        due_date=parse_suggested_date(payload.suggested_date),
        source_data={
            'source': payload.source,
            'original_message': payload.message_content,
            'ai_analysis': payload.ai_analysis,
            'created_by': 'make_automation',
        },
        created_at=now,
        updated_at=now,
    )
    stored = await gateway.insert('tasks', [task.model_dump()])
    logger.info(f"Task created successfully: {task.id}")

    message = {
        'user_id': user_id,
        'content': payload.message_content,
        'source': payload.source,
        'ai_reply': payload.ai_analysis,
        'is_flagged': True,
        'created_at': now,
    }
    try:
        await gateway.insert('messages', [message])
    except PersistenceError as e:
        # The task is already saved; the message copy is for reference only
        logger.warning(f"Failed to store original message: {e}")

    return {
        'success': True,
        'task_id': stored[0]['id'],
        'message': 'Task created successfully',
        'user_id': user_id,
    }
