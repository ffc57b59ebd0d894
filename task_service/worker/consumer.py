"""
RabbitMQ client for consuming task jobs.
"""
import json
import logging
from typing import Any, Callable, Dict
import pika
import pika.exceptions

from ..core.config import Settings
from .notifications import InvalidJobError

logger = logging.getLogger(__name__)


class RabbitMQConsumer:
    """RabbitMQ consumer for task jobs"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.connection = None
        self.channel = None
        self.consuming = False
        self.message_handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {}

    def connect(self) -> bool:
        """Establish connection to RabbitMQ"""
        try:
            credentials = pika.PlainCredentials(
                self.settings.rabbitmq_user,
                self.settings.rabbitmq_password
            )

            parameters = pika.ConnectionParameters(
                host=self.settings.rabbitmq_host,
                port=self.settings.rabbitmq_port,
                virtual_host=self.settings.rabbitmq_vhost,
                credentials=credentials,
                heartbeat=600,
                blocked_connection_timeout=300,
            )

            self.connection = pika.BlockingConnection(parameters)
            self.channel = self.connection.channel()
            self.setup_queue()

            logger.info(f"Connected to RabbitMQ at {self.settings.rabbitmq_host}:{self.settings.rabbitmq_port}")
            return True

        except pika.exceptions.AMQPConnectionError as e:
            logger.error(f"RabbitMQ connection error: {e}")
            return False

    def setup_queue(self):
        """Setup exchange, queue, and bindings"""
        self.channel.exchange_declare(
            exchange=self.settings.rabbitmq_exchange,
            exchange_type='topic',
            durable=True
        )
        self.channel.queue_declare(
            queue=self.settings.rabbitmq_queue,
            durable=True
        )
        self.channel.queue_bind(
            exchange=self.settings.rabbitmq_exchange,
            queue=self.settings.rabbitmq_queue,
            routing_key=self.settings.rabbitmq_routing_key
        )
        logger.info(f"Queue setup completed: {self.settings.rabbitmq_queue}")

    def add_message_handler(self, event_type: str, handler: Callable[[Dict[str, Any]], None]):
        """Add message handler for specific event type"""
        self.message_handlers[event_type] = handler
        logger.info(f"Added handler for event type: {event_type}")

    def process_message(self, channel, method, properties, body):
        """Process incoming message from RabbitMQ"""
        try:
            message = json.loads(body.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Error parsing message JSON: {e}")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return

        event_type = message.get('event_type', 'unknown')
        logger.info(f"Received message: {event_type}")

        handler = self.message_handlers.get(event_type)
        if not handler:
            logger.warning(f"No handler found for event type: {event_type}")
            channel.basic_ack(delivery_tag=method.delivery_tag)
            return

        try:
            handler(message)
        except InvalidJobError as e:
            logger.error(f"Dropping invalid {event_type} message: {e}")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return
        except Exception as e:
            logger.error(f"Error processing {event_type} message, requeueing: {e}")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            return

        channel.basic_ack(delivery_tag=method.delivery_tag)
        logger.info(f"Successfully processed {event_type} event")

    def start_consuming(self) -> bool:
        """Start consuming messages; blocks until stopped"""
        if not self.connection or self.connection.is_closed:
            if not self.connect():
                logger.error("Cannot start consuming - no connection")
                return False

        self.channel.basic_qos(prefetch_count=1)
        self.channel.basic_consume(
            queue=self.settings.rabbitmq_queue,
            on_message_callback=self.process_message
        )

        self.consuming = True
        logger.info("Started consuming messages from RabbitMQ")
        try:
            self.channel.start_consuming()
        except KeyboardInterrupt:
            logger.info("Stopping consumer...")
            self.stop_consuming()
        return True

    def stop_consuming(self):
        """Stop consuming messages"""
        if self.consuming and self.channel:
            self.channel.stop_consuming()
            self.consuming = False
            logger.info("Stopped consuming messages")

    def close(self):
        """Close connection"""
        if self.consuming:
            self.stop_consuming()

        if self.connection and not self.connection.is_closed:
            self.connection.close()
            logger.info("RabbitMQ connection closed")
