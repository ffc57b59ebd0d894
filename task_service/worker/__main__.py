"""
Notification worker entry point: ``python -m task_service.worker``.
"""
import logging
import sys

from ..core.config import get_settings
from ..core.database import SessionLocal
from ..core.rabbitmq import STATUS_UPDATE_JOB
from .consumer import RabbitMQConsumer
from .notifications import NotificationManager, StatusUpdateHandler

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> int:
    logger.info("Notification worker starting...")
    notifications = NotificationManager(settings.notification_log_path)

    consumer = RabbitMQConsumer(settings)
    consumer.add_message_handler(STATUS_UPDATE_JOB, StatusUpdateHandler(SessionLocal, notifications))

    try:
        if not consumer.start_consuming():
            return 1
    finally:
        consumer.close()

    logger.info("Notification worker stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
