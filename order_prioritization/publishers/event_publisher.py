"""
RabbitMQ Event Publisher
"""
import logging
import pika
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from order_prioritization.config import settings
from order_prioritization.schemas.order import OrderEvent

logger = logging.getLogger(__name__)

ORDER_CREATED_KEY = "order.created"
ORDER_STATUS_CHANGED_KEY = "order.status.changed"
ORDER_PRIORITY_CHANGED_KEY = "order.priority.changed"


class EventPublisher:
    """Publisher for sending order events to RabbitMQ"""

    def __init__(self):
        self.rabbitmq_url = settings.RABBITMQ_URL
        self.exchange = settings.RABBITMQ_EXCHANGE
        self.enabled = settings.EVENTS_ENABLED

    def publish_order_created(self, order_data: Dict) -> bool:
        """Publish OrderCreated event"""
        return self._publish("OrderCreated", ORDER_CREATED_KEY, order_data)

    def publish_order_status_changed(self, order_data: Dict) -> bool:
        """Publish OrderStatusChanged event"""
        return self._publish("OrderStatusChanged", ORDER_STATUS_CHANGED_KEY, order_data)

    def publish_order_priority_changed(self, order_data: Dict) -> bool:
        """Publish OrderPriorityChanged event"""
        return self._publish("OrderPriorityChanged", ORDER_PRIORITY_CHANGED_KEY, order_data)

    def build_event(self, event_type: str, data: Dict) -> OrderEvent:
        return OrderEvent(
            event_type=event_type,
            event_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            source=settings.SERVICE_NAME,
            data=data,
        )

    def _publish(self, event_type: str, routing_key: str, data: Dict) -> bool:
        """
        Publish an event to the orders exchange

        Args:
            event_type: Event name
            routing_key: Topic routing key
            data: JSON-serializable event payload

        Returns:
            True if published successfully, False otherwise
        """
        if not self.enabled:
            return False

        event = self.build_event(event_type, data)
        try:
            connection = pika.BlockingConnection(
                pika.URLParameters(self.rabbitmq_url)
            )
            try:
                channel = connection.channel()

                channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type='topic',
                    durable=True
                )

                # Enable publisher confirms
                channel.confirm_delivery()

                channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=routing_key,
                    body=event.model_dump_json(),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # Persistent message
                        content_type='application/json',
                        correlation_id=event.event_id
                    ),
                    mandatory=False
                )
            finally:
                connection.close()

            logger.info("Event published: %s (ID: %s)", event_type, event.event_id)
            return True

        except pika.exceptions.AMQPError as e:
            logger.warning("Error publishing %s event: %s", event_type, e)
            return False


def order_event_data(order, **extra) -> Dict:
    """Event payload for an order snapshot"""
    data = {
        'order_id': order.id,
        'order_number': order.order_number,
        'customer_email': order.customer_email,
        'status': order.status,
        'total_amount': order.total_amount,
        'shipping_method': order.shipping_method,
        'priority_level': order.priority_level,
        'priority_score': order.priority_score,
        'priority_tags': list(order.priority_tags),
        'updated_at': order.updated_at.isoformat(),
    }
    data.update(extra)
    return data


def publish_safely(publisher: Optional[EventPublisher], method: str, data: Dict) -> bool:
    """Publish through ``publisher``; errors are logged and dropped"""
    if publisher is None:
        return False
    try:
        return bool(getattr(publisher, method)(data))
    except Exception as e:
        logger.warning("Failed to publish %s for order %s: %s", method, data.get('order_id'), e)
        return False
