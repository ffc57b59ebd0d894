"""
Pydantic schemas for Task Service.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.task import TaskStatus, TaskPriority


class SortField(str, Enum):
    """Columns a task listing can be ordered by"""
    CREATED_AT = "created_at"
    DUE_DATE = "due_date"
    PRIORITY = "priority"
    STATUS = "status"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TaskBase(BaseModel):
    """Base task schema"""
    title: str = Field(..., min_length=1, max_length=200, description="Task title")
    description: Optional[str] = Field(None, max_length=1000, description="Task description")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    due_date: Optional[datetime] = Field(None, description="Task due date")


class TaskCreate(TaskBase):
    """Schema for creating a task"""
    status: TaskStatus = Field(TaskStatus.PENDING, description="Initial task status")


class TaskUpdate(BaseModel):
    """
    Schema for updating a task.

    Only fields present in the request body are applied. Sending null for
    description or due_date clears it; title, status and priority cannot be
    cleared.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=200, description="Task title")
    description: Optional[str] = Field(None, max_length=1000, description="Task description")
    status: Optional[TaskStatus] = Field(None, description="Task status")
    priority: Optional[TaskPriority] = Field(None, description="Task priority")
    due_date: Optional[datetime] = Field(None, description="Task due date")

    @field_validator("title", "status", "priority")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("field cannot be null")
        return value


class TaskResponse(TaskBase):
    """Schema for task response"""
    id: str = Field(..., description="Task ID")
    status: TaskStatus = Field(..., description="Task status")
    user_id: int = Field(..., description="User ID who owns the task")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Task update timestamp")
    completed_at: Optional[datetime] = Field(None, description="Task completion timestamp")

    model_config = ConfigDict(from_attributes=True)


class TaskFilters(BaseModel):
    """Filter, sort and pagination options for listing tasks"""
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    search: Optional[str] = Field(None, min_length=1, max_length=100)
    due_date_from: Optional[datetime] = None
    due_date_to: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC


class TaskPage(BaseModel):
    """Schema for a page of tasks"""
    data: List[TaskResponse] = Field(..., description="Tasks on this page")
    total: int = Field(..., description="Number of tasks matching the filters")
    page: int = Field(..., description="Current page (1-based)")
    limit: int = Field(..., description="Page size")
    total_pages: int = Field(..., description="Number of pages, at least 1")


class TaskStats(BaseModel):
    """Schema for task summary statistics"""
    total: int = Field(..., description="Total number of tasks")
    completed: int = Field(..., description="Number of completed tasks")
    in_progress: int = Field(..., description="Number of in-progress tasks")
    pending: int = Field(..., description="Number of pending tasks")
    high_priority: int = Field(..., description="Number of high priority tasks")


class BatchRequest(BaseModel):
    """Schema for a batch operation over several tasks"""
    task_ids: List[str] = Field(default_factory=list, description="IDs of the tasks to process")
    action: str = Field(..., description="'complete' or 'delete'")


class BatchResult(BaseModel):
    affected: int
