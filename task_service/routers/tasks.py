from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..core.auth import get_current_user, CurrentUser
from ..core.database import get_db
from ..core.rabbitmq import get_task_queue
from ..models.task import TaskPriority, TaskStatus
from ..schemas.task import (
    BatchRequest, BatchResult, SortField, SortOrder, TaskCreate, TaskFilters,
    TaskPage, TaskResponse, TaskStats, TaskUpdate,
)
from ..services.tasks import TaskService

router = APIRouter()


def get_task_service(
    db: Session = Depends(get_db),
    queue=Depends(get_task_queue),
) -> TaskService:
    return TaskService(db, queue)


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Create a new task for the authenticated user"""
    task = service.create_task(current_user.user_id, task_data)
    return TaskResponse.model_validate(task)


@router.get("/", response_model=TaskPage)
def get_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[TaskPriority] = Query(None, description="Filter by priority"),
    search: Optional[str] = Query(None, min_length=1, max_length=100, description="Search in title and description"),
    due_date_from: Optional[datetime] = Query(None, description="Due date lower bound (inclusive)"),
    due_date_to: Optional[datetime] = Query(None, description="Due date upper bound (inclusive)"),
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: int = Query(10, ge=1, le=100, description="Number of tasks per page"),
    sort_by: SortField = Query(SortField.CREATED_AT, description="Field to sort by"),
    sort_order: SortOrder = Query(SortOrder.DESC, description="Sort order"),
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get tasks for the authenticated user with filtering and pagination"""
    filters = TaskFilters(
        status=status_filter,
        priority=priority,
        search=search,
        due_date_from=due_date_from,
        due_date_to=due_date_to,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return service.list_tasks(current_user.user_id, filters)


@router.get("/stats", response_model=TaskStats)
def get_stats(
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get task counts for the authenticated user"""
    return service.get_stats(current_user.user_id)


@router.post("/batch", response_model=BatchResult)
def batch_process(
    request: BatchRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Complete or delete several tasks at once"""
    return service.batch_process(current_user.user_id, request.task_ids, request.action)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get a specific task by ID"""
    return TaskResponse.model_validate(service.get_task(task_id, current_user.user_id))


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    task_update: TaskUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Update the fields present in the request body"""
    task = service.update_task(task_id, current_user.user_id, task_update)
    return TaskResponse.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Delete a task"""
    service.remove_task(task_id, current_user.user_id)
