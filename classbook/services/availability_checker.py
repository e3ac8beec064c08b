"""Decides whether a proposed instant falls inside an owner's declared availability.

Slots are unioned: the instant is available when any recurring or dated slot
contains it. Time ranges are half-open, ``[start_time, end_time)``, and are read
in the owner's local sense of day and time; callers convert timezones first.
"""

import logging
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from classbook.core.errors import ValidationError
from classbook.models.availability import WEEKDAYS
from classbook.schemas import AvailabilitySlotRecord
from classbook.services.availability_store import AvailabilityStore

logger = logging.getLogger(__name__)


class EmptyAvailabilityPolicy(str, Enum):
    UNCONSTRAINED = 'unconstrained'
    REQUIRE_SLOTS = 'require_slots'


class AvailabilityDecision(BaseModel):
    available: bool
    reason: str
    matched_slot_ids: list[str] = []


def weekday_name(instant: datetime) -> str:
    return WEEKDAYS[instant.weekday()]


def slot_contains_time(slot: AvailabilitySlotRecord, instant: datetime) -> bool:
    return slot.start_time <= instant.time() < slot.end_time


def slot_matches(slot: AvailabilitySlotRecord, instant: datetime) -> bool:
    if slot.is_recurring:
        if slot.day_of_week != weekday_name(instant):
            return False
    elif slot.slot_date != instant.date():
        return False

    return slot_contains_time(slot, instant)


def evaluate_slots(
    slots: list[AvailabilitySlotRecord],
    instant: datetime,
    policy: EmptyAvailabilityPolicy = EmptyAvailabilityPolicy.UNCONSTRAINED,
) -> AvailabilityDecision:
    if not slots:
        if policy == EmptyAvailabilityPolicy.REQUIRE_SLOTS:
            return AvailabilityDecision(available=False, reason='no_slots_declared')
        return AvailabilityDecision(available=True, reason='unconstrained')

    recurring = [slot for slot in slots if slot.is_recurring]
    dated = [slot for slot in slots if not slot.is_recurring]

    matched = [slot.id for slot in dated if slot_matches(slot, instant)]
    matched.extend(slot.id for slot in recurring if slot_matches(slot, instant))

    if matched:
        return AvailabilityDecision(available=True, reason='matched', matched_slot_ids=matched)
    return AvailabilityDecision(available=False, reason='outside_availability')


class AvailabilityChecker:
    def __init__(
        self,
        store: AvailabilityStore,
        policy: EmptyAvailabilityPolicy = EmptyAvailabilityPolicy.UNCONSTRAINED,
    ):
        self._store = store
        self.policy = policy

    def check(self, owner_id: str, instant: datetime) -> AvailabilityDecision:
        decision = evaluate_slots(self._store.get_slots(owner_id), instant, self.policy)
        logger.debug('Availability for owner %s at %s: %s', owner_id, instant.isoformat(), decision.reason)
        return decision

    def is_slot_available(self, owner_id: str, instant: datetime) -> bool:
        return self.check(owner_id, instant).available

    def require_available(self, owner_id: str, instant: datetime) -> AvailabilityDecision:
        decision = self.check(owner_id, instant)
        if decision.available:
            return decision

        if decision.reason == 'no_slots_declared':
            raise ValidationError(
                'This teacher has not declared any availability yet.',
                detail_code='no_slots_declared',
            )
        raise ValidationError(
            'The requested time is outside the teacher\'s availability.',
            detail_code='outside_availability',
        )
