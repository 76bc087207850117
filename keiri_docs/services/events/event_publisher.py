"""
Azure Service Bus event publishing for document workflow events.

Lets downstream systems react without polling the store:
- bookkeeping imports can pick up newly approved mail documents
- the accountant can be told that a monthly folder is ready
"""

import json
from datetime import datetime, UTC
from typing import Optional
from dataclasses import dataclass, asdict, field

from loguru import logger

from ...core.config import settings


@dataclass
class MailItemsApprovedEvent:
    """Published after a mail approval batch, even when some items were skipped"""

    owner_id: str
    requested: int
    approved: int
    document_ids: list[str] = field(default_factory=list)
    event_type: str = "MailItemsApproved"
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass
class AccountantExportEvent:
    """Published after a monthly accountant folder has been built"""

    owner_id: str
    target_month: str
    total_count: int
    total_amount: float
    folder_path: Optional[str] = None
    csv_path: Optional[str] = None
    event_type: str = "AccountantExportCompleted"
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class EventPublisher:
    """
    Publishes events to an Azure Service Bus queue or topic.

    Usage:
        from azure.servicebus import ServiceBusClient
        client = ServiceBusClient.from_connection_string(conn_str)
        sender = client.get_queue_sender(queue_name="document-events")
        publisher = EventPublisher(service_bus_sender=sender)

        # Disabled mode (no Service Bus configured)
        publisher = EventPublisher(service_bus_sender=None)
    """

    def __init__(self, service_bus_sender: Optional[object] = None, entity_name: str = "document-events"):
        self.service_bus_sender = service_bus_sender
        self.entity_name = entity_name

    def publish(self, event: MailItemsApprovedEvent | AccountantExportEvent) -> bool:
        """
        Send one event.

        Returns:
            True when sent, False in disabled mode or on failure. A failure
            is logged and never propagates to the caller.
        """
        if self.service_bus_sender is None:
            return False

        from azure.servicebus import ServiceBusMessage

        try:
            message = ServiceBusMessage(event.to_json(), content_type="application/json")
            self.service_bus_sender.send_messages(message)
        except Exception as e:
            logger.error(f"Failed to publish {event.event_type} to {self.entity_name}: {e}")
            return False

        logger.debug("Event published", event_type=event.event_type, entity=self.entity_name)
        return True


_default_publisher: EventPublisher | None = None


def get_event_publisher() -> EventPublisher:
    """
    Shared publisher, connected when SERVICEBUS_CONNECTION_STRING is set.

    Returns:
        EventPublisher instance (disabled if Service Bus is not configured)
    """
    global _default_publisher
    if _default_publisher is None:
        sender = None
        if settings.servicebus_connection_string:
            from azure.servicebus import ServiceBusClient

            client = ServiceBusClient.from_connection_string(settings.servicebus_connection_string)
            sender = client.get_queue_sender(queue_name=settings.servicebus_entity_name)
        _default_publisher = EventPublisher(sender, settings.servicebus_entity_name)
    return _default_publisher
