"""
Process-local store for decompositions awaiting a date answer.

Entries expire after PENDING_TTL_MINUTES. The store is per process: with
several workers the client either needs sticky routing or falls back to
re-sending the idea text in Phase 2.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from ideaflow import config
from ideaflow.errors import InvalidRequest
from ideaflow.models import AIResponse, PendingDecomposition, utc_now

logger = logging.getLogger(__name__)


class PendingStore:
    def __init__(self, ttl: Optional[timedelta] = None):
        self.ttl = ttl or timedelta(minutes=config.PENDING_TTL_MINUTES)
        self._entries: Dict[str, PendingDecomposition] = {}

    def __len__(self):
        return len(self._entries)

    def put(self, user_id: str, idea: str, ai_response: AIResponse,
            now: Optional[datetime] = None) -> PendingDecomposition:
        now = now or utc_now()
        self.purge_expired(now)
        pending = PendingDecomposition(user_id=user_id, idea=idea, ai_response=ai_response, created_at=now)
        self._entries[pending.id] = pending
        logger.info(f"Stored pending decomposition {pending.id} for user {user_id} ({len(ai_response.tasks)} draft tasks)")
        return pending

    def get(self, pending_id: str, user_id: str, now: Optional[datetime] = None) -> PendingDecomposition:
        now = now or utc_now()
        pending = self._entries.get(pending_id)
        if pending is None:
            raise InvalidRequest("Unknown or expired pendingId")
        if now - pending.created_at > self.ttl:
            del self._entries[pending_id]
            raise InvalidRequest("Unknown or expired pendingId")
        if pending.user_id != user_id:
            # Indistinguishable from a missing entry
            raise InvalidRequest("Unknown or expired pendingId")
        return pending

    def discard(self, pending_id: str):
        self._entries.pop(pending_id, None)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        expired = [key for key, p in self._entries.items() if now - p.created_at > self.ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"Purged {len(expired)} expired pending decompositions")
        return len(expired)


pending_store = PendingStore()
