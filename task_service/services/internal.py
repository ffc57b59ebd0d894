"""
Trusted task operations for internal processes.

Nothing here is scoped to a user. The notification worker uses it to record
status transitions; HTTP routers must not import this module.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import StaleStatusError, TaskNotFoundError
from ..models.task import Task, TaskStatus

logger = logging.getLogger(__name__)


def update_status(
    db: Session,
    task_id: str,
    status: TaskStatus,
    expected_status: Optional[TaskStatus] = None,
) -> Task:
    """
    Set the status of any task by id, regardless of owner.

    With ``expected_status`` the write is a single conditional UPDATE that
    only matches while the task still has that status; a task that has moved
    on raises StaleStatusError and is left untouched.
    """
    new_status = TaskStatus(status).value
    now = datetime.now(timezone.utc)

    query = db.query(Task).filter(Task.id == task_id)
    if expected_status is not None:
        query = query.filter(Task.status == TaskStatus(expected_status).value)

    if new_status == TaskStatus.COMPLETED.value:
        completed_at = func.coalesce(Task.completed_at, now)
    else:
        completed_at = None

    try:
        affected = query.update(
            {Task.status: new_status, Task.completed_at: completed_at, Task.updated_at: now},
            synchronize_session=False,
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if not affected:
        if db.query(Task.id).filter(Task.id == task_id).first() is None:
            raise TaskNotFoundError(task_id)
        raise StaleStatusError(task_id, TaskStatus(expected_status).value)

    logger.info(f"Task {task_id} status set to {new_status} by internal process")
    return db.query(Task).filter(Task.id == task_id).one()
