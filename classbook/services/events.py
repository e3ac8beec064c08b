"""Domain events emitted after successful appointment mutations.

Delivery is best effort: subscribers run after the write has committed and a
failing subscriber is logged, never propagated to the mutation's caller.
"""

import logging
from datetime import datetime
from typing import Callable, Literal, Union

from pydantic import BaseModel

from classbook.models.appointment import AppointmentStatus

logger = logging.getLogger(__name__)


class AppointmentCreated(BaseModel):
    kind: Literal['appointment_created'] = 'appointment_created'
    appointment_id: str
    actor_id: str
    occurred_at: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING


class AppointmentStatusChanged(BaseModel):
    kind: Literal['appointment_status_changed'] = 'appointment_status_changed'
    appointment_id: str
    actor_id: str
    occurred_at: datetime
    from_status: AppointmentStatus
    to_status: AppointmentStatus


class AppointmentRemoved(BaseModel):
    kind: Literal['appointment_removed'] = 'appointment_removed'
    appointment_id: str
    actor_id: str
    occurred_at: datetime
    last_status: AppointmentStatus


DomainEvent = Union[AppointmentCreated, AppointmentStatusChanged, AppointmentRemoved]
Subscriber = Callable[[DomainEvent], None]


def audit_log_subscriber(event: DomainEvent) -> None:
    logger.info('%s %s', event.kind, event.model_dump_json())


class EventPublisher:
    def __init__(self, subscribers: list[Subscriber] | None = None):
        self._subscribers: list[Subscriber] = list(subscribers or [])

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, event: DomainEvent) -> None:
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception:
                logger.exception('Event subscriber %r failed for %s', subscriber, event.kind)


class RecordingPublisher(EventPublisher):
    """Keeps every published event in ``events``; handy for tooling and tests."""

    def __init__(self, subscribers: list[Subscriber] | None = None):
        super().__init__(subscribers)
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)
        super().publish(event)


def default_publisher() -> EventPublisher:
    return EventPublisher([audit_log_subscriber])
