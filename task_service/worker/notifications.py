"""
Notification handlers for task jobs.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from sqlalchemy.orm import Session

from ..core.exceptions import StaleStatusError, TaskNotFoundError
from ..models.task import TaskStatus
from ..services.internal import update_status

logger = logging.getLogger(__name__)


class InvalidJobError(ValueError):
    """Raised for a job payload that can never be processed."""


class NotificationManager:
    """Writes task notifications to the notification log and keeps recent ones in memory"""

    def __init__(self, log_file_path: str, max_records: int = 100):
        self.log_file_path = log_file_path
        self.max_records = max_records
        self.processed_notifications: List[Dict[str, Any]] = []
        self.ensure_log_directory()

    def ensure_log_directory(self):
        """Create log directory if it doesn't exist"""
        log_dir = os.path.dirname(self.log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    def send_log_notification(self, event_type: str, data: Dict[str, Any]):
        """Append a notification to the log file"""
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'event_type': event_type,
            'data': data
        }

        logger.info(f"NOTIFICATION: {event_type} - task {data.get('task_id')} is {data.get('status')}")

        with open(self.log_file_path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(log_entry) + '\n')

        # Keep only the most recent notifications in memory
        if len(self.processed_notifications) >= self.max_records:
            self.processed_notifications.pop(0)
        self.processed_notifications.append(log_entry)


class StatusUpdateHandler:
    """
    Handles ``task-status-update`` jobs.

    Each job is written to the notification log, then its status is confirmed
    through the internal, owner-agnostic update path. A job that is older
    than the task's current status leaves the task alone.
    """

    def __init__(self, session_factory: Callable[[], Session], notifications: NotificationManager):
        self.session_factory = session_factory
        self.notifications = notifications

    def __call__(self, message: Dict[str, Any]):
        data = message.get('data') or {}
        task_id = data.get('task_id')
        if not task_id:
            raise InvalidJobError("status update job without task_id")
        try:
            status = TaskStatus(data.get('status'))
        except ValueError as e:
            raise InvalidJobError(f"status update job with invalid status: {data.get('status')!r}") from e

        self.notifications.send_log_notification(
            message.get('event_type', 'unknown'),
            {'task_id': task_id, 'status': status.value}
        )

        db = self.session_factory()
        try:
            update_status(db, task_id, status, expected_status=status)
        except TaskNotFoundError:
            # deleted after the job was queued; nothing left to update
            logger.warning(f"Task {task_id} no longer exists, dropping status update")
        except StaleStatusError:
            # the task changed after the job was queued (batch or later update)
            logger.info(f"Task {task_id} is no longer {status.value}, skipping stale status update")
        finally:
            db.close()
