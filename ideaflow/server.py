from fastapi import FastAPI, APIRouter, HTTPException, Query, Depends, Request, Header
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.middleware.cors import CORSMiddleware
import base64
import binascii
import hmac
import json
import logging
import time
from typing import List, Optional

import jwt
from pydantic import ValidationError

from ideaflow import config
from ideaflow.database import get_db_pool, close_db_pool
from ideaflow.decomposition import process_idea
from ideaflow.errors import IdeaFlowError, InvalidRequest
from ideaflow.gateway import Gateway, PostgresGateway
from ideaflow.inbound import UnknownUser, receive_message_task
from ideaflow.llm.openai_audio import transcribe_audio
from ideaflow.llm.openai_client import generate_text
from ideaflow.models import (
    MakeTaskPayload,
    PreferencesUpdate,
    ProcessIdeaRequest,
    TaskRow,
    TaskUpdate,
    UserPreferences,
    VoiceToTextRequest,
)
from ideaflow.notifications import check_due_tasks
from ideaflow.pending import pending_store
from ideaflow import preferences as prefs_service
from ideaflow import tasks as task_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Docs only outside production
if config.ENV == 'production':
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
else:
    app = FastAPI(docs_url="/api/docs", redoc_url="/api/redoc", openapi_url="/api/openapi.json")

cors_origins, allow_creds = config.parse_cors_origins(config.CORS_ORIGINS)

# CORS middleware must be added before routes are defined
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_creds,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "content-type", "accept", "origin", "x-requested-with", "x-service-key"],
    max_age=600,  # Cache preflight for 10 minutes
)

# Request logging middleware (dev only)
if config.ENV != 'production':
    @app.middleware("http")
    async def log_requests(request, call_next):
        """Log all requests in development mode"""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} → {response.status_code} "
            f"({process_time:.3f}s)"
        )
        return response

api_router = APIRouter(prefix="/api")

# HTTP Bearer for JWT
security = HTTPBearer(auto_error=False)


@app.exception_handler(IdeaFlowError)
async def ideaflow_error_handler(request: Request, exc: IdeaFlowError):
    logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


# ============ DEPENDENCIES ============
async def get_gateway() -> Gateway:
    pool = await get_db_pool()
    return PostgresGateway(pool=pool)


def get_generate():
    return generate_text


def get_pending_store():
    return pending_store


def decode_jwt_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_jwt_token(credentials.credentials)
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return {"id": payload["sub"], "email": payload.get("email")}


async def require_service_key(x_service_key: Optional[str] = Header(None)):
    if not config.SERVICE_KEY:
        logger.error("SERVICE_KEY not configured, rejecting service request")
        raise HTTPException(status_code=403, detail="Service access not configured")
    if not x_service_key or not hmac.compare_digest(x_service_key, config.SERVICE_KEY):
        raise HTTPException(status_code=403, detail="Invalid service key")


# ============ LIFECYCLE ============
@app.on_event("startup")
async def startup():
    config.validate_required_env_vars()


@app.on_event("shutdown")
async def shutdown_db_client():
    await close_db_pool()


# Routes
@api_router.get("/")
async def root():
    return {"message": "IdeaFlow API"}


@api_router.get("/health")
async def health():
    return {"status": "healthy"}


# ============ IDEA PROCESSING ============
@api_router.post("/process-idea")
async def process_idea_endpoint(
    req: Request,
    user: dict = Depends(get_current_user),
    gateway: Gateway = Depends(get_gateway),
    generate=Depends(get_generate),
    store=Depends(get_pending_store),
):
    """
    Phase 1: {idea, userId}. Phase 2: {userId, dateConfirmation, pendingId} or
    {idea, userId, dateConfirmation}.
    """
    try:
        try:
            body = await req.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidRequest("Request body must be JSON")
        if not isinstance(body, dict):
            raise InvalidRequest("Request body must be a JSON object")
        try:
            request_data = ProcessIdeaRequest.model_validate(body)
        except ValidationError as e:
            raise InvalidRequest(f"Invalid request: {e.errors()[0]['msg']}")

        if request_data.userId and request_data.userId != user["id"]:
            raise InvalidRequest("userId does not match the authenticated user")

        result = await process_idea(
            request_data.idea,
            request_data.userId,
            request_data.dateConfirmation,
            request_data.pendingId,
            gateway=gateway,
            generate=generate,
            pending_store=store,
        )
        return result.to_payload()
    except IdeaFlowError as e:
        logger.error(f"Error processing idea: {type(e).__name__}: {e.message}")
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})
    except Exception as e:
        logger.error(f"Unexpected error processing idea: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


@api_router.post("/voice-to-text")
async def voice_to_text(request: VoiceToTextRequest, user: dict = Depends(get_current_user)):
    if not request.audio:
        raise InvalidRequest("No audio data provided")
    try:
        audio = base64.b64decode(request.audio, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequest("Audio must be base64 encoded")

    text = await transcribe_audio(audio, filename=request.filename or "recording.webm")
    return {"success": True, "text": text}


# ============ TASKS ============
@api_router.get("/tasks", response_model=List[TaskRow])
async def get_tasks(
    status: Optional[str] = Query(None, pattern="^(pending|in_progress|completed)$"),
    user: dict = Depends(get_current_user),
    gateway: Gateway = Depends(get_gateway),
):
    return await task_service.list_tasks(gateway, user["id"], status)


@api_router.get("/tasks/overdue", response_model=List[TaskRow])
async def get_overdue_tasks(user: dict = Depends(get_current_user), gateway: Gateway = Depends(get_gateway)):
    return await task_service.find_overdue_tasks(gateway, user["id"])


@api_router.patch("/tasks/{task_id}", response_model=TaskRow)
async def update_task(
    task_id: str,
    task_update: TaskUpdate,
    user: dict = Depends(get_current_user),
    gateway: Gateway = Depends(get_gateway),
):
    update_data = {
        k: v for k, v in task_update.model_dump(exclude_unset=True).items()
        if v is not None or k in ("due_date", "description")
    }
    if not update_data:
        raise HTTPException(status_code=400, detail="No update data provided")

    task = await task_service.update_task(gateway, user["id"], task_id, update_data)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@api_router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, user: dict = Depends(get_current_user), gateway: Gateway = Depends(get_gateway)):
    if not await task_service.delete_task(gateway, user["id"], task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"message": "Task deleted"}


# ============ SCHEDULED JOBS ============
@api_router.post("/tasks/cleanup-completed", dependencies=[Depends(require_service_key)])
async def cleanup_completed(dry_run: bool = Query(False), gateway: Gateway = Depends(get_gateway)):
    deleted = await task_service.cleanup_completed_tasks(gateway, dry_run=dry_run)
    return {
        "message": "Cleanup completed successfully",
        "deletedCount": len(deleted),
        "deletedTasks": [{"id": t["id"], "title": t["title"]} for t in deleted],
        "dryRun": dry_run,
    }


@api_router.post("/tasks/check-due", dependencies=[Depends(require_service_key)])
async def check_due(gateway: Gateway = Depends(get_gateway)):
    return await check_due_tasks(gateway)


# ============ INBOUND MESSAGES ============
@api_router.post("/make/tasks", dependencies=[Depends(require_service_key)])
async def receive_make_task(payload: MakeTaskPayload, gateway: Gateway = Depends(get_gateway)):
    logger.info(f"Received task from {payload.source} for {payload.user_email}")
    try:
        return await receive_message_task(gateway, payload)
    except UnknownUser:
        raise HTTPException(status_code=404, detail="User not found. Make sure the user is registered in the app.")


# ============ USER PREFERENCES ============
@api_router.get("/user/preferences", response_model=UserPreferences)
async def get_user_preferences(user: dict = Depends(get_current_user), gateway: Gateway = Depends(get_gateway)):
    """Get the user's preferences, creating defaults if they don't exist."""
    return await prefs_service.get_preferences(gateway, user["id"])


@api_router.post("/user/preferences", response_model=UserPreferences)
async def update_user_preferences(
    update: PreferencesUpdate,
    user: dict = Depends(get_current_user),
    gateway: Gateway = Depends(get_gateway),
):
    return await prefs_service.update_preferences(gateway, user["id"], update.model_dump(exclude_none=True))


app.include_router(api_router)
