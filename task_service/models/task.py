from datetime import datetime, timezone
import enum
import uuid
from sqlalchemy import Column, Integer, String, Text, DateTime
from ..core.database import Base


class TaskStatus(str, enum.Enum):
    """Task status enumeration"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, enum.Enum):
    """Task priority enumeration"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_task_id() -> str:
    return str(uuid.uuid4())


class Task(Base):
    """Task model for database"""
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=_new_task_id)
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)

    # Task status and priority as strings
    status = Column(
        String(20),
        default=TaskStatus.PENDING.value,
        nullable=False,
        index=True
    )
    priority = Column(
        String(20),
        default=TaskPriority.MEDIUM.value,
        nullable=False,
        index=True
    )

    # Owner, supplied by the Auth Service
    user_id = Column(Integer, nullable=False, index=True)

    created_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        onupdate=_utcnow,
        nullable=True
    )
    due_date = Column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )
    completed_at = Column(
        DateTime(timezone=True),
        nullable=True
    )

    def set_status(self, status: str):
        """Change status, keeping completed_at in step with it"""
        self.status = status
        if status == TaskStatus.COMPLETED.value:
            if not self.completed_at:
                self.completed_at = _utcnow()
        else:
            self.completed_at = None

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}', status='{self.status}')>"
