"""
Task query service.

Every operation here acts on behalf of an end user and is scoped to that
user's tasks inside the SQL statement itself, so a task id belonging to
someone else behaves exactly like an id that does not exist.

Status notifications are published after the change is committed and on a
best-effort basis: if the queue is unavailable the change is kept, the
failure is logged, and the notification is lost.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import asc, case, desc, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import QueueFailure, TaskNotFoundError
from ..core.rabbitmq import STATUS_UPDATE_JOB
from ..models.task import Task, TaskPriority, TaskStatus
from ..schemas.task import (
    SortField, SortOrder, TaskCreate, TaskFilters, TaskPage, TaskResponse,
    TaskStats, TaskUpdate,
)

logger = logging.getLogger(__name__)

PRIORITY_RANK = {
    TaskPriority.LOW.value: 1,
    TaskPriority.MEDIUM.value: 2,
    TaskPriority.HIGH.value: 3,
}

BATCH_COMPLETE = "complete"
BATCH_DELETE = "delete"


class TaskQueue(Protocol):
    def enqueue(self, job_name: str, payload: Dict[str, Any]) -> None: ...


def convert_datetime_to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert datetime to UTC timezone-aware datetime"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        # Naive datetime, assume UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _sort_expression(sort_by: SortField):
    if sort_by == SortField.PRIORITY:
        return case(PRIORITY_RANK, value=Task.priority, else_=0)
    return {
        SortField.CREATED_AT: Task.created_at,
        SortField.DUE_DATE: Task.due_date,
        SortField.STATUS: Task.status,
    }[sort_by]


class TaskService:
    """User-scoped task operations over an injected session and queue"""

    def __init__(self, db: Session, queue: TaskQueue):
        self.db = db
        self.queue = queue

    def list_tasks(self, user_id: int, filters: Optional[TaskFilters] = None) -> TaskPage:
        filters = filters or TaskFilters()

        query = self.db.query(Task).filter(Task.user_id == user_id)

        if filters.status:
            query = query.filter(Task.status == filters.status.value)

        if filters.priority:
            query = query.filter(Task.priority == filters.priority.value)

        if filters.due_date_from:
            query = query.filter(Task.due_date >= convert_datetime_to_utc(filters.due_date_from))

        if filters.due_date_to:
            query = query.filter(Task.due_date <= convert_datetime_to_utc(filters.due_date_to))

        if filters.search:
            pattern = _like_pattern(filters.search)
            query = query.filter(
                or_(
                    Task.title.ilike(pattern, escape="\\"),
                    Task.description.ilike(pattern, escape="\\"),
                )
            )

        total = query.count()

        direction = asc if filters.sort_order == SortOrder.ASC else desc
        # id breaks ties so pages never overlap or skip rows
        query = query.order_by(direction(_sort_expression(filters.sort_by)), Task.id.asc())

        rows = query.offset((filters.page - 1) * filters.limit).limit(filters.limit).all()

        return TaskPage(
            data=[TaskResponse.model_validate(task) for task in rows],
            total=total,
            page=filters.page,
            limit=filters.limit,
            total_pages=max(1, math.ceil(total / filters.limit)),
        )

    def get_task(self, task_id: str, user_id: int) -> Task:
        task = self.db.query(Task).filter(
            Task.id == task_id, Task.user_id == user_id
        ).first()

        if not task:
            raise TaskNotFoundError(task_id)

        return task

    def create_task(self, user_id: int, data: TaskCreate) -> Task:
        task = Task(
            title=data.title,
            description=data.description,
            priority=data.priority.value,
            due_date=convert_datetime_to_utc(data.due_date),
            user_id=user_id,
        )
        task.set_status(data.status.value)

        self.db.add(task)
        self._commit()
        self.db.refresh(task)
        logger.info(f"Created task {task.id} for user {user_id}")

        self._notify_status(task)
        return task

    def update_task(self, task_id: str, user_id: int, patch: TaskUpdate) -> Task:
        task = self.get_task(task_id, user_id)
        original_status = task.status

        for field, value in patch.model_dump(exclude_unset=True).items():
            if field == "status":
                task.set_status(value.value)
                continue
            if field == "priority":
                value = value.value
            elif field == "due_date":
                value = convert_datetime_to_utc(value)
            setattr(task, field, value)

        self._commit()
        self.db.refresh(task)
        logger.info(f"Updated task {task.id} for user {user_id}")

        if task.status != original_status:
            self._notify_status(task)
        return task

    def remove_task(self, task_id: str, user_id: int) -> None:
        task = self.get_task(task_id, user_id)
        self.db.delete(task)
        self._commit()
        logger.info(f"Deleted task {task_id} for user {user_id}")

    def batch_process(self, user_id: int, task_ids: List[str], action: str) -> Dict[str, int]:
        """
        Complete or delete several of the user's tasks in one statement.

        Ids that do not exist or belong to someone else are ignored. Unknown
        actions and empty id lists do nothing. Bulk completions publish no
        status notifications.
        """
        if not isinstance(task_ids, list) or not task_ids:
            return {"affected": 0}

        query = self.db.query(Task).filter(Task.user_id == user_id, Task.id.in_(task_ids))

        if action == BATCH_DELETE:
            affected = query.delete(synchronize_session=False)
        elif action == BATCH_COMPLETE:
            now = datetime.now(timezone.utc)
            affected = query.update(
                {
                    Task.status: TaskStatus.COMPLETED.value,
                    Task.completed_at: func.coalesce(Task.completed_at, now),
                    Task.updated_at: now,
                },
                synchronize_session=False,
            )
        else:
            logger.info(f"Ignoring unknown batch action {action!r}")
            return {"affected": 0}

        self._commit()
        logger.info(f"Batch {action} affected {affected} tasks for user {user_id}")
        return {"affected": affected}

    def get_stats(self, user_id: int) -> TaskStats:
        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        row = self.db.query(
            func.count(Task.id).label("total"),
            count_where(Task.status == TaskStatus.COMPLETED.value).label("completed"),
            count_where(Task.status == TaskStatus.IN_PROGRESS.value).label("in_progress"),
            count_where(Task.status == TaskStatus.PENDING.value).label("pending"),
            count_where(Task.priority == TaskPriority.HIGH.value).label("high_priority"),
        ).filter(Task.user_id == user_id).one()

        return TaskStats(
            total=int(row.total or 0),
            completed=int(row.completed or 0),
            in_progress=int(row.in_progress or 0),
            pending=int(row.pending or 0),
            high_priority=int(row.high_priority or 0),
        )

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _notify_status(self, task: Task):
        try:
            self.queue.enqueue(STATUS_UPDATE_JOB, {"task_id": task.id, "status": task.status})
        except QueueFailure as e:
            logger.warning(f"Status notification for task {task.id} was not published: {e}")
