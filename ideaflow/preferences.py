import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ideaflow.gateway import Gateway, eq
from ideaflow.models import UserPreferences, utc_now

logger = logging.getLogger(__name__)


async def get_preferences(gateway: Gateway, user_id: str) -> UserPreferences:
    """Return the user's preferences, creating the default record on first access."""
    rows = await gateway.select('user_preferences', [eq('user_id', user_id)])
    if rows:
        return UserPreferences.model_validate(rows[0])

    prefs = UserPreferences(user_id=user_id)
    stored = await gateway.insert('user_preferences', [prefs.model_dump()])
    logger.info(f"Created default preferences for user {user_id}")
    return UserPreferences.model_validate(stored[0])


async def update_preferences(
    gateway: Gateway,
    user_id: str,
    changes: Dict[str, Any],
    now: Optional[datetime] = None
) -> UserPreferences:
    current = await get_preferences(gateway, user_id)
    if not changes:
        return current

    values = dict(changes)
    values['updated_at'] = now or utc_now()
    rows = await gateway.update('user_preferences', values, [eq('user_id', user_id)])
    logger.info(f"Updated preferences for user {user_id}: {sorted(changes.keys())}")
    return UserPreferences.model_validate(rows[0]) if rows else current


async def notifications_enabled(gateway: Gateway, user_id: str) -> bool:
    """Read-only check; users without a record get the default (enabled)."""
    rows = await gateway.select('user_preferences', [eq('user_id', user_id)])
    if not rows:
        return True
    return bool(rows[0].get('notifications_enabled', True))
