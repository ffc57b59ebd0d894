import json
import logging
import threading
import time
from typing import Dict, Any, Optional
import pika
import pika.exceptions
from fastapi import BackgroundTasks

from .config import get_settings
from .exceptions import QueueFailure

logger = logging.getLogger(__name__)
settings = get_settings()

STATUS_UPDATE_JOB = "task-status-update"


class RabbitMQPublisher:
    """RabbitMQ publisher for task jobs"""

    def __init__(
        self,
        host: str = settings.rabbitmq_host,
        port: int = settings.rabbitmq_port,
        user: str = settings.rabbitmq_user,
        password: str = settings.rabbitmq_password,
        virtual_host: str = settings.rabbitmq_vhost,
        exchange: str = settings.rabbitmq_exchange,
        routing_key: str = settings.rabbitmq_routing_key,
        reconnect_interval: float = settings.rabbitmq_retry_delay,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.virtual_host = virtual_host
        self.exchange = exchange
        self.routing_key = routing_key
        self.reconnect_interval = reconnect_interval
        self.connection = None
        self.channel = None
        self._last_connect_attempt: Optional[float] = None
        # BlockingConnection is not thread safe; publishes share it
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and not self.connection.is_closed

    def _reconnect_due(self) -> bool:
        if self._last_connect_attempt is None:
            return True
        return time.monotonic() - self._last_connect_attempt >= self.reconnect_interval

    def connect(self, max_retries: int = 1, retry_delay: int = 0) -> bool:
        """Establish connection to RabbitMQ with retries"""
        for attempt in range(max_retries):
            self._last_connect_attempt = time.monotonic()
            try:
                credentials = pika.PlainCredentials(self.user, self.password)
                parameters = pika.ConnectionParameters(
                    host=self.host,
                    port=self.port,
                    virtual_host=self.virtual_host,
                    credentials=credentials,
                    heartbeat=600,
                    blocked_connection_timeout=300,
                )

                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()

                # Declare exchange
                self.channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type='topic',
                    durable=True
                )

                logger.info(f"Connected to RabbitMQ at {self.host}:{self.port}")
                return True

            except pika.exceptions.AMQPConnectionError as e:
                logger.warning(f"RabbitMQ connection attempt {attempt + 1}/{max_retries} failed: {e}")
                if attempt < max_retries - 1:
                    time.sleep(retry_delay)
                else:
                    logger.error("Failed to connect to RabbitMQ after all retries")
                    return False
            except Exception as e:
                logger.error(f"Unexpected error connecting to RabbitMQ: {e}")
                return False

        return False

    def enqueue(self, job_name: str, payload: Dict[str, Any]) -> None:
        """
        Publish a job to the task exchange.

        A lost connection is retried at most once per ``reconnect_interval``;
        in between, publishes fail immediately instead of waiting on the broker.

        Raises:
            QueueFailure: if there is no connection or the publish fails
        """
        with self._lock:
            if not self.is_connected:
                if not self._reconnect_due():
                    raise QueueFailure(f"Cannot publish {job_name} - RabbitMQ is down, reconnect pending")
                self._last_connect_attempt = time.monotonic()
                if not self.connect():
                    raise QueueFailure(f"Cannot publish {job_name} - no RabbitMQ connection")

            message = {
                'event_type': job_name,
                'data': payload
            }

            try:
                self.channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=self.routing_key,
                    body=json.dumps(message),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # Persistent
                        content_type='application/json'
                    )
                )
            except pika.exceptions.AMQPError as e:
                raise QueueFailure(f"Error publishing {job_name}: {e}") from e

        logger.info(f"Published {job_name} job to RabbitMQ")

    def publish_quietly(self, job_name: str, payload: Dict[str, Any]) -> None:
        """Publish a job, logging instead of raising when it cannot be sent"""
        try:
            self.enqueue(job_name, payload)
        except QueueFailure as e:
            logger.warning(f"{job_name} job for {payload} was not published: {e}")

    def close(self):
        """Close connection"""
        with self._lock:
            try:
                if self.is_connected:
                    self.connection.close()
                    logger.info("RabbitMQ connection closed")
            except pika.exceptions.AMQPError as e:
                logger.error(f"Error closing connection: {e}")


class DeferredQueue:
    """
    Queue handle for request handlers.

    Jobs are handed to FastAPI background tasks and published after the
    response has been sent.
    """

    def __init__(self, publisher: RabbitMQPublisher, background_tasks: BackgroundTasks):
        self.publisher = publisher
        self.background_tasks = background_tasks

    def enqueue(self, job_name: str, payload: Dict[str, Any]) -> None:
        self.background_tasks.add_task(self.publisher.publish_quietly, job_name, payload)


# Global publisher instance
rabbitmq_publisher = RabbitMQPublisher()


def get_task_queue(background_tasks: BackgroundTasks) -> DeferredQueue:
    """Queue dependency for FastAPI"""
    return DeferredQueue(rabbitmq_publisher, background_tasks)
