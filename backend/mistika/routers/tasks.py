"""Task status endpoint for ARQ background jobs."""
import json
import logging

from fastapi import APIRouter, Depends, Path, Request

from .. import models, schemas
from ..dependencies import current_user_dep
from ..errors import ServiceUnavailableError

router = APIRouter(prefix="/v1/tasks", tags=["tasks"])
logger = logging.getLogger("mistika.tasks")


@router.get("/{task_id}", response_model=schemas.TaskStatusResponse)
async def get_task_status(
    request: Request,
    task_id: str = Path(min_length=1, max_length=128),
    user: models.User = Depends(current_user_dep),
):
    """Poll the status of a background interpretation task."""
    pool = getattr(request.app.state, "arq_pool", None)
    if pool is None:
        raise ServiceUnavailableError("Task queue unavailable")

    task_key = f"arq_task:{task_id}"
    try:
        raw = await pool.get(task_key)
    except Exception as exc:
        logger.warning("Redis read failed for task_key=%s: %s", task_key, exc)
        raise ServiceUnavailableError("Task queue unavailable")

    if raw is None:
        return schemas.TaskStatusResponse(status="pending")

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return schemas.TaskStatusResponse(status="failed", error="Invalid task payload")

    return schemas.TaskStatusResponse(
        status=payload.get("status", "pending"),
        result=payload.get("result"),
        error=payload.get("error"),
    )
