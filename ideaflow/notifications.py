"""
Due-task push notifications.

Finds pending tasks due within the next hour that have not been notified,
sends one notification per push subscription of their owner and marks the
tasks as notified.
"""
import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import requests

from ideaflow import config
from ideaflow.errors import PersistenceError
from ideaflow.gateway import Gateway, eq, gte, is_in, lte
from ideaflow.models import utc_now
from ideaflow.preferences import notifications_enabled

logger = logging.getLogger(__name__)

# send(endpoint, title, body, task_ids) -> True when delivered
SendFn = Callable[[str, str, str, List[str]], bool]


def send_fcm_notification(endpoint: str, title: str, body: str, task_ids: List[str]) -> bool:
    """Post one notification to FCM. Raises requests.RequestException on transport errors."""
    if not config.FCM_SERVER_KEY:
        logger.warning("FCM_SERVER_KEY not configured, cannot send push notification")
        return False

    response = requests.post(
        config.FCM_SEND_URL,
        headers={
            'Content-Type': 'application/json',
            'Authorization': f"key={config.FCM_SERVER_KEY}",
        },
        json={
            'to': endpoint,
            'notification': {
                'title': title,
                'body': body,
                'icon': '/favicon.ico',
                'badge': '/favicon.ico',
                'tag': 'task-due',
                'requireInteraction': True,
                'data': {'url': '/', 'tasks': task_ids, 'type': 'task_due'},
            },
        },
        timeout=10,
    )
    if not response.ok:
        logger.error(f"Failed to send notification: {response.status_code} {response.text[:200]}")
    return response.ok


def build_notification(tasks: List[Dict[str, Any]]):
    """Title and body for a user's batch of due tasks."""
    if len(tasks) == 1:
        return f"Task due now: {tasks[0]['title']}", f"Your task \"{tasks[0]['title']}\" is due now!"
    return f"{len(tasks)} tasks due now", f"You have {len(tasks)} tasks that are due now"


async def check_due_tasks(
    gateway: Gateway,
    now: Optional[datetime] = None,
    send: SendFn = send_fcm_notification
) -> Dict[str, Any]:
    now = now or utc_now()
    due_tasks = await gateway.select(
        'tasks',
        [
            eq('status', 'pending'),
            eq('notification_sent', False),
            gte('due_date', now),
            lte('due_date', now + timedelta(hours=1)),
        ],
    )
    logger.info(f"Found {len(due_tasks)} due tasks")
    if not due_tasks:
        return {"message": "No due tasks found", "results": [], "tasksProcessed": 0}

    tasks_by_user = defaultdict(list)
    for task in due_tasks:
        tasks_by_user[task['user_id']].append(task)

    results = []
    for user_id, user_tasks in tasks_by_user.items():
        try:
            if not await notifications_enabled(gateway, user_id):
                logger.info(f"Notifications disabled for user {user_id}, skipping")
                continue
            subscriptions = await gateway.select('push_subscriptions', [eq('user_id', user_id)])
        except PersistenceError as e:
            logger.error(f"Error fetching subscriptions for user {user_id}: {e}")
            continue

        if not subscriptions:
            logger.info(f"No subscriptions found for user {user_id}")
            continue

        title, body = build_notification(user_tasks)
        task_ids = [t['id'] for t in user_tasks]
        for subscription in subscriptions:
            endpoint = subscription['endpoint']
            try:
                # Blocking HTTP call, run in a worker thread
                sent = await asyncio.to_thread(send, endpoint, title, body, task_ids)
            except requests.RequestException as e:
                logger.error(f"Error sending notification to {endpoint}: {e}")
                results.append({"userId": user_id, "endpoint": endpoint, "status": "failed", "error": str(e)})
                continue
            results.append({"userId": user_id, "endpoint": endpoint, "status": "sent" if sent else "failed"})

        try:
            await gateway.update('tasks', {'notification_sent': True}, [is_in('id', task_ids)])
        except PersistenceError as e:
            logger.error(f"Error marking tasks as notified for user {user_id}: {e}")
            continue
        logger.info(f"Marked {len(task_ids)} tasks as notified for user {user_id}")

    return {"message": "Notifications processed", "results": results, "tasksProcessed": len(due_tasks)}
