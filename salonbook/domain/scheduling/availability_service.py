"""Availability service - Slot grid generation for a provider/date/duration

Slot grids are advisory: every write path re-validates against committed state.
Computation is read-only, so identical inputs over unchanged bookings give an
identical grid.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...errors import ValidationError
from ...models import Provider
from .conflicts import Interval, overlaps
from .enums import BlockedReason
from .repository import SchedulingRepository
from .time_calculator import (
    format_time,
    local_datetime,
    local_now,
    minutes_to_time,
    time_to_minutes,
    utc_now,
)
from .working_schedule import ResolvedSchedule, WorkingScheduleResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSlot:
    start: time
    end: time
    available: bool
    blocked_reason: Optional[BlockedReason] = None

    def to_dict(self) -> dict:
        return {
            "start": format_time(self.start),
            "end": format_time(self.end),
            "available": self.available,
            "blockedReason": self.blocked_reason.value if self.blocked_reason else None,
        }


@dataclass(frozen=True)
class AvailabilityResult:
    is_working_day: bool
    slots: tuple[TimeSlot, ...]

    def to_dict(self) -> dict:
        return {
            "isWorkingDay": self.is_working_day,
            "slots": [slot.to_dict() for slot in self.slots],
        }


class AvailabilityCalculator:
    """Builds the candidate grid and marks each slot against breaks, bookings and the clock"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.repo = SchedulingRepository()
        self.resolver = WorkingScheduleResolver(db)

    def compute_slots(
        self,
        provider_id: int,
        day: date,
        service_duration_minutes: int,
        granularity_minutes: int,
    ) -> list[TimeSlot]:
        """Ordered slots for the date; empty when the provider does not work that day"""
        self._validate(service_duration_minutes, granularity_minutes)
        provider = self.resolver.get_provider(provider_id)
        schedule = self.resolver.resolve_for_provider(provider, day)
        if not schedule.is_open:
            return []
        return self._build_grid(provider, day, schedule, service_duration_minutes, granularity_minutes)

    def get_available_slots(
        self, provider_id: int, day: date, service_duration_minutes: int
    ) -> AvailabilityResult:
        """Slots on the provider's own granularity, plus whether the date is a working day"""
        self._validate(service_duration_minutes, 1)
        provider = self.resolver.get_provider(provider_id)

        if self._beyond_booking_horizon(provider, day):
            logger.debug(f"Provider {provider_id}: {day} is beyond the booking horizon")
            return AvailabilityResult(is_working_day=False, slots=())

        schedule = self.resolver.resolve_for_provider(provider, day)
        if not schedule.is_open:
            return AvailabilityResult(is_working_day=False, slots=())

        slots = self._build_grid(
            provider, day, schedule, service_duration_minutes, provider.slot_minutes
        )
        return AvailabilityResult(is_working_day=True, slots=tuple(slots))

    def _build_grid(
        self,
        provider: Provider,
        day: date,
        schedule: ResolvedSchedule,
        duration: int,
        granularity: int,
    ) -> list[TimeSlot]:
        open_minutes = time_to_minutes(schedule.open)
        close_minutes = time_to_minutes(schedule.close)

        earliest_start = self.clock() + timedelta(hours=provider.min_booking_notice_hours or 0)
        breaks = [Interval.from_times(b.start, b.end) for b in schedule.breaks]
        booked = [
            Interval.of(a) for a in self.repo.get_booked_appointments(self.db, provider.id, day)
        ]

        slots = []
        start = open_minutes
        # Slots that would run past closing are omitted, not marked unavailable
        while start + duration <= close_minutes:
            candidate = Interval(start, start + duration)
            slot_start = minutes_to_time(candidate.start)
            slot_end = minutes_to_time(candidate.end)

            reason = None
            if local_datetime(day, slot_start, schedule.timezone) < earliest_start:
                reason = BlockedReason.PAST
            elif any(overlaps(candidate, b) for b in breaks):
                reason = BlockedReason.BREAK
            elif any(overlaps(candidate, a) for a in booked):
                reason = BlockedReason.BOOKED

            slots.append(TimeSlot(slot_start, slot_end, reason is None, reason))
            start += granularity

        return slots

    def _beyond_booking_horizon(self, provider: Provider, day: date) -> bool:
        if provider.max_booking_days_ahead is None:
            return False
        today = local_now(self.clock(), provider.timezone).date()
        return (day - today).days > provider.max_booking_days_ahead

    @staticmethod
    def _validate(duration: int, granularity: int) -> None:
        if duration is None or duration <= 0:
            raise ValidationError("Service duration must be a positive number of minutes")
        if granularity is None or granularity <= 0:
            raise ValidationError("Slot granularity must be a positive number of minutes")
