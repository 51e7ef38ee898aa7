"""
Push Task Service — executes a push task against its audience.

Task status only changes here:
  draft/scheduled/processing --execute--> processing --> completed | failed

Completed and failed tasks are terminal. Every early exit after the task
enters `processing` records `failed` with the reason in last_error.
"""

import logging
import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from opsconsole.models import PushConfig, PushTask, PushTaskStatus, PushTemplate, PushToken, push_audience_tokens
from opsconsole.services import fcm_service

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {PushTaskStatus.COMPLETED.value, PushTaskStatus.FAILED.value}

# How many FCM errors are kept on the task
MAX_STORED_ERRORS = 5


class PushExecutionError(Exception):
    """Execution refused or aborted. The task row already reflects the outcome."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def audience_tokens(db: AsyncSession, audience_id: int | None) -> list[str]:
    """Active, non-blank tokens of an audience, de-duplicated in first-seen order."""
    if not audience_id:
        return []
    result = await db.execute(
        select(PushToken.token)
        .join(push_audience_tokens, push_audience_tokens.c.token_id == PushToken.id)
        .where(push_audience_tokens.c.audience_id == audience_id, PushToken.status == "active")
        .order_by(PushToken.id)
    )
    return list(dict.fromkeys(t.strip() for t in result.scalars().all() if t and t.strip()))


async def _fail(db: AsyncSession, task: PushTask, message: str, status_code: int = 400, **counts):
    task.status = PushTaskStatus.FAILED.value
    task.last_error = message
    for field, value in counts.items():
        setattr(task, field, value)
    await db.flush()
    logger.warning(f"Push task {task.id} failed: {message}")
    raise PushExecutionError(message, status_code)


async def execute_task(db: AsyncSession, task: PushTask, http: httpx.AsyncClient | None = None) -> PushTask:
    """
    Send the task's template to its audience and record the outcome.
    Raises PushExecutionError for refused or failed runs.
    """
    if task.status in TERMINAL_STATUSES:
        raise PushExecutionError(f"Push task is already {task.status} and cannot be executed again")

    task.status = PushTaskStatus.PROCESSING.value
    task.last_error = None
    await db.flush()
    logger.info(
        f"Executing push task {task.id} (template={task.push_template_id}, "
        f"config={task.push_config_id}, audience={task.push_audience_id})"
    )

    template = await db.get(PushTemplate, task.push_template_id) if task.push_template_id else None
    if not template:
        await _fail(db, task, "Push template not found")

    config = await db.get(PushConfig, task.push_config_id) if task.push_config_id else None
    if not config:
        await _fail(db, task, "Push config is missing")

    if not config.server_key and not config.service_account:
        await _fail(db, task, "Push config has no server key or service account")

    tokens = await audience_tokens(db, task.push_audience_id)
    logger.info(f"Push task {task.id}: {len(tokens)} active tokens in audience {task.push_audience_id}")
    if not tokens:
        await _fail(
            db, task, "Target audience has no usable push tokens",
            total_tokens=0, success_count=0, failure_count=0,
        )

    result = await fcm_service.send_notification(config, tokens, template, http=http)

    task.status = PushTaskStatus.FAILED.value if result["failure"] > 0 else PushTaskStatus.COMPLETED.value
    task.total_tokens = len(tokens)
    task.success_count = result["success"]
    task.failure_count = result["failure"]
    task.last_error = "; ".join(result["errors"][-MAX_STORED_ERRORS:]) or None
    await db.flush()

    logger.info(
        f"Push task {task.id} finished: status={task.status} total={len(tokens)} "
        f"success={result['success']} failure={result['failure']}"
    )
    return task
