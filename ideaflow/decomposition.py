"""
Idea decomposition protocol.

Phase 1 (decompose_idea) asks the LLM to break an idea into 1-4 tasks. If
any task has ambiguous timing, nothing is written and a PendingDecomposition
is returned so the client can ask the user when. Phase 2 (resolve_dates)
sends the user's answer back to the LLM and persists the dated tasks. The
Idea row is written only by the phase that finalizes the tasks, in the same
transaction as its Task rows.
"""
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from ideaflow.dates import due_date_to_timestamp
from ideaflow.errors import DecodeError, InvalidRequest
from ideaflow.gateway import Gateway
from ideaflow.models import (
    AIResponse,
    IdeaRow,
    PendingDecomposition,
    TaskRow,
    utc_now,
)
from ideaflow.pending import PendingStore
from ideaflow.prompts import (
    build_date_confirmation_prompt,
    build_date_confirmation_user_prompt,
    build_decomposition_prompt,
    build_decomposition_user_prompt,
)

logger = logging.getLogger(__name__)

# generate(system_prompt, user_prompt) -> raw model text
GenerateFn = Callable[[str, str], Awaitable[str]]


class DecompositionResult(BaseModel):
    ai_response: AIResponse
    idea: Optional[IdeaRow] = None
    tasks: List[TaskRow] = Field(default_factory=list)
    pending: Optional[PendingDecomposition] = None

    @property
    def needs_date_confirmation(self) -> bool:
        return self.pending is not None

    def to_payload(self) -> Dict[str, Any]:
        """Response body for the process-idea endpoint."""
        ai_response = self.ai_response.model_dump(mode="json")
        if self.pending is not None:
            return {
                "success": True,
                "needsDateConfirmation": True,
                "aiResponse": ai_response,
                "pendingTasks": ai_response["tasks"],
                "pendingId": self.pending.id,
            }
        return {
            "success": True,
            "aiResponse": ai_response,
            "idea": self.idea.model_dump(mode="json") if self.idea else None,
            "tasks": [task.model_dump(mode="json") for task in self.tasks],
            "needsDateConfirmation": False,
        }


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` markers the model sometimes wraps its JSON in."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_ai_response(raw_text: str) -> AIResponse:
    """
    Decode and validate raw model output.

    Raises:
        DecodeError: If the text is not JSON or does not match the AIResponse shape
    """
    cleaned = strip_code_fences(raw_text or "")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("=" * 80)
        logger.error("JSON PARSING FAILED - Raw model output:")
        logger.error(raw_text)
        logger.error("=" * 80)
        raise DecodeError(f"Failed to parse AI response: {e.msg} at position {e.pos}") from e

    if not isinstance(parsed, dict):
        raise DecodeError(f"AI response is not a JSON object: {type(parsed).__name__}")

    try:
        return AIResponse.model_validate(parsed)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        logger.error(f"AI response failed schema validation: {problems}")
        logger.error(f"Raw model output: {raw_text}")
        raise DecodeError(f"AI response failed schema validation: {problems}") from e


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"Missing {field_name}")
    return value.strip()


def build_task_rows(ai_response: AIResponse, user_id: str, idea_id: Optional[str],
                    now: datetime) -> List[TaskRow]:
    rows = []
    for task in ai_response.tasks:
        rows.append(TaskRow(
            user_id=user_id,
            idea_id=idea_id,
            title=task.title,
            description=task.description,
            status="pending",
            priority=task.priority,
            estimated_duration=task.estimated_duration,
            due_date=due_date_to_timestamp(task.suggested_due_date),
            needs_user_input=False,
            timeline_question=None,
            notification_sent=False,
            created_at=now,
            updated_at=now,
        ))
    return rows


async def persist_idea_and_tasks(
    gateway: Gateway,
    idea: str,
    user_id: str,
    ai_response: AIResponse,
    now: Optional[datetime] = None
) -> Tuple[IdeaRow, List[TaskRow]]:
    """Write one Idea row and its Task rows in a single transaction."""
    now = now or utc_now()
    idea_row = IdeaRow(
        user_id=user_id,
        content=idea,
        ai_response=ai_response.model_dump(mode="json"),
        created_at=now,
    )
    task_rows = build_task_rows(ai_response, user_id, idea_row.id, now)

    async with gateway.transaction() as tx:
        stored_idea = await tx.insert("ideas", [idea_row.model_dump()])
        stored_tasks = await tx.insert("tasks", [row.model_dump() for row in task_rows])

    logger.info(f"✅ Saved idea {idea_row.id} with {len(stored_tasks)} tasks for user {user_id}")
    return (
        IdeaRow.model_validate(stored_idea[0]),
        [TaskRow.model_validate(row) for row in stored_tasks],
    )


async def decompose_idea(
    idea: Optional[str],
    user_id: Optional[str],
    *,
    gateway: Gateway,
    generate: GenerateFn,
    pending_store: PendingStore,
    now: Optional[datetime] = None
) -> DecompositionResult:
    """
    Phase 1: decompose an idea into tasks.

    Returns the persisted idea and tasks when every task is dated (or needs
    no date), otherwise a pending result holding the draft tasks.
    """
    idea = _require_text(idea, "idea")
    user_id = _require_text(user_id, "userId")
    now = now or utc_now()

    logger.info(f"🔄 Decomposing idea for user {user_id}: '{idea[:100]}'")
    raw = await generate(build_decomposition_prompt(now.date()), build_decomposition_user_prompt(idea))
    ai_response = parse_ai_response(raw)
    logger.info(f"AI returned {len(ai_response.tasks)} tasks")

    if any(task.needs_user_input for task in ai_response.tasks):
        pending = pending_store.put(user_id, idea, ai_response, now=now)
        logger.info(f"⏸ Tasks need a date answer; pending decomposition {pending.id}, nothing saved")
        return DecompositionResult(ai_response=ai_response, pending=pending)

    idea_row, task_rows = await persist_idea_and_tasks(gateway, idea, user_id, ai_response, now=now)
    return DecompositionResult(ai_response=ai_response, idea=idea_row, tasks=task_rows)


async def resolve_dates(
    idea: Optional[str],
    user_id: Optional[str],
    date_confirmation: Optional[str],
    *,
    gateway: Gateway,
    generate: GenerateFn,
    pending_store: PendingStore,
    pending_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> DecompositionResult:
    """
    Phase 2: resolve task dates from the user's natural-language answer.

    With a pending_id the idea text and drafts come from the pending store;
    otherwise the caller re-sends the idea text. Tasks the model leaves
    unresolved are surfaced again as a new pending result instead of being
    saved.
    """
    user_id = _require_text(user_id, "userId")
    date_confirmation = _require_text(date_confirmation, "dateConfirmation")
    now = now or utc_now()

    pending = None
    if pending_id:
        pending = pending_store.get(pending_id, user_id, now=now)
        idea = pending.idea
    idea = _require_text(idea, "idea")

    logger.info(f"🔄 Resolving dates for user {user_id} with answer '{date_confirmation}'")
    raw = await generate(
        build_date_confirmation_prompt(now.date()),
        build_date_confirmation_user_prompt(
            idea, date_confirmation, pending.ai_response.tasks if pending else None
        ),
    )
    ai_response = parse_ai_response(raw)
    if pending is not None:
        drafted = [task.title for task in pending.ai_response.tasks]
        resolved = [task.title for task in ai_response.tasks]
        if drafted != resolved:
            logger.warning(f"⚠️  Date confirmation changed the task set: drafted {drafted}, got {resolved}")

    unresolved = [task for task in ai_response.tasks if not task.is_resolved]
    if unresolved:
        logger.warning(
            f"⚠️  {len(unresolved)} tasks still unresolved after date confirmation: "
            f"{[task.title for task in unresolved]}"
        )
        if pending_id:
            pending_store.discard(pending_id)
        new_pending = pending_store.put(user_id, idea, ai_response, now=now)
        return DecompositionResult(ai_response=ai_response, pending=new_pending)

    idea_row, task_rows = await persist_idea_and_tasks(gateway, idea, user_id, ai_response, now=now)
    if pending_id:
        pending_store.discard(pending_id)
    return DecompositionResult(ai_response=ai_response, idea=idea_row, tasks=task_rows)


async def process_idea(
    idea: Optional[str],
    user_id: Optional[str],
    date_confirmation: Optional[str] = None,
    pending_id: Optional[str] = None,
    *,
    gateway: Gateway,
    generate: GenerateFn,
    pending_store: PendingStore,
    now: Optional[datetime] = None
) -> DecompositionResult:
    """Route a request to Phase 1 or Phase 2 depending on whether a date answer is present."""
    if date_confirmation is not None or pending_id:
        return await resolve_dates(
            idea, user_id, date_confirmation,
            gateway=gateway, generate=generate, pending_store=pending_store,
            pending_id=pending_id, now=now,
        )
    return await decompose_idea(
        idea, user_id,
        gateway=gateway, generate=generate, pending_store=pending_store, now=now,
    )
