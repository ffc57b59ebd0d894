"""
Exceptions raised by the task service layer.
"""


class TaskServiceError(Exception):
    """Base class for task service errors."""


class TaskNotFoundError(TaskServiceError):
    """Raised when a task lookup matches no row visible to the caller."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task with ID {task_id} not found")


class StaleStatusError(TaskServiceError):
    """Raised when a conditional status update finds the task in another status."""

    def __init__(self, task_id: str, expected_status: str):
        self.task_id = task_id
        self.expected_status = expected_status
        super().__init__(f"Task {task_id} is no longer {expected_status}")


class QueueFailure(TaskServiceError):
    """Raised by the queue publisher when a job could not be enqueued."""
