"""
Push Tasks Router — task CRUD plus explicit execution. Admin only.

Status is never edited directly: create sets `draft`, and only
POST /push-tasks/{id}/execute moves it.
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from opsconsole.auth import require_admin
from opsconsole.database import get_db
from opsconsole.models import PushTask, PushTaskStatus, PushTemplate, User
from opsconsole.services.push_task_service import PushExecutionError, execute_task
from opsconsole.utils import ApiModel, ok, safe_error_detail, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/push-tasks", tags=["Push"], dependencies=[Depends(require_admin)])


# ── Schemas ────────────────────────────────────────────────────────────

class TaskRequest(ApiModel):
    name: str | None = None
    description: str | None = None
    push_template_id: int | None = None


class TaskResponse(ApiModel):
    id: int
    name: str
    description: str | None = None
    push_template_id: int | None = None
    push_template_name: str | None = None
    push_config_id: int | None = None
    push_config_name: str | None = None
    push_audience_id: int | None = None
    push_audience_name: str | None = None
    created_by: str | None = None
    creator_name: str | None = None
    status: str
    schedule_time: datetime | None = None
    total_tokens: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


def task_response(t: PushTask) -> TaskResponse:
    return TaskResponse(
        id=t.id,
        name=t.name,
        description=t.description,
        push_template_id=t.push_template_id,
        push_template_name=t.push_template.name if t.push_template else None,
        push_config_id=t.push_config_id,
        push_config_name=t.push_config.name if t.push_config else None,
        push_audience_id=t.push_audience_id,
        push_audience_name=t.push_audience.name if t.push_audience else None,
        created_by=str(t.created_by) if t.created_by else None,
        creator_name=t.creator.username if t.creator else None,
        status=t.status,
        schedule_time=t.schedule_time,
        total_tokens=t.total_tokens or 0,
        success_count=t.success_count or 0,
        failure_count=t.failure_count or 0,
        last_error=t.last_error,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


async def _load_task(db: AsyncSession, task_id: int) -> PushTask | None:
    result = await db.execute(
        select(PushTask).where(PushTask.id == task_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_template_or_400(db: AsyncSession, template_id: int) -> PushTemplate:
    template = await db.get(PushTemplate, template_id)
    if not template:
        raise HTTPException(status_code=400, detail="Push template does not exist or was deleted")
    return template


# ── Endpoints ───────────────────────────────────────────────────────────

@router.get("")
async def list_tasks(
    status: str | None = Query(None),
    search: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    query = select(PushTask)
    if status:
        query = query.where(PushTask.status == status)
    if search:
        query = query.where(PushTask.name.contains(search))
    result = await db.execute(query.order_by(PushTask.created_at.desc()))
    return ok([task_response(t) for t in result.scalars().all()])


@router.get("/{task_id}")
async def get_task(task_id: int, db: AsyncSession = Depends(get_db)):
    task = await _load_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Push task not found")
    return ok(task_response(task))


@router.post("", status_code=201)
async def create_task(
    payload: TaskRequest,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Task name is required")
    if not payload.push_template_id:
        raise HTTPException(status_code=400, detail="Push template is required")

    template = await _get_template_or_400(db, payload.push_template_id)
    task = PushTask(
        name=name,
        description=(payload.description or "").strip() or None,
        push_template_id=template.id,
        push_config_id=template.push_config_id,
        push_audience_id=template.push_audience_id,
        created_by=user.id,
        status=PushTaskStatus.DRAFT.value,
        schedule_time=utcnow(),
    )
    db.add(task)
    await db.flush()

    task = await _load_task(db, task.id)
    logger.info(f"Push task {task.id} '{task.name}' created by {user.username}")
    return ok(task_response(task), message="Push task created")


@router.put("/{task_id}")
async def update_task(task_id: int, payload: TaskRequest, db: AsyncSession = Depends(get_db)):
    task = await _load_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Push task not found")

    if payload.name is not None and payload.name.strip():
        task.name = payload.name.strip()
    if payload.description is not None:
        task.description = payload.description.strip() or None
    if payload.push_template_id:
        template = await _get_template_or_400(db, payload.push_template_id)
        task.push_template_id = template.id
        task.push_config_id = template.push_config_id
        task.push_audience_id = template.push_audience_id

    await db.flush()
    task = await _load_task(db, task_id)
    return ok(task_response(task), message="Push task updated")


@router.delete("/{task_id}")
async def delete_task(task_id: int, db: AsyncSession = Depends(get_db)):
    task = await db.get(PushTask, task_id)
    if task:
        await db.delete(task)
        await db.flush()
    return ok(message="Push task deleted")


@router.post("/{task_id}/execute")
async def execute(
    task_id: int,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Run the task now. Outcome is persisted before any error response,
    so a refused or failed run is visible on the task afterwards.
    """
    task = await _load_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Push task not found")
    logger.info(f"Push task {task_id} execution requested by {user.username}")

    try:
        task = await execute_task(db, task)
    except PushExecutionError as e:
        await db.commit()
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        await db.rollback()
        task = await _load_task(db, task_id)
        task.status = PushTaskStatus.FAILED.value
        task.last_error = str(e) or e.__class__.__name__
        await db.commit()
        raise HTTPException(status_code=500, detail=safe_error_detail(e, "Push task execution failed"))

    await db.commit()
    task = await _load_task(db, task_id)
    message = (
        "Push task executed"
        if task.status == PushTaskStatus.COMPLETED.value
        else "Push task finished with failed tokens"
    )
    return ok(task_response(task), message=message)
