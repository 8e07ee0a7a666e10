"""Conflict detection on half-open [start, end) intervals of one provider/date"""

from dataclasses import dataclass
from datetime import date, time
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...models import Appointment
from .repository import SchedulingRepository
from .time_calculator import format_time, minutes_to_time, time_to_minutes


@dataclass(frozen=True)
class Interval:
    """Minutes since midnight, end exclusive"""

    start: int
    end: int

    @classmethod
    def from_times(cls, start: time, end: time) -> "Interval":
        return cls(time_to_minutes(start), time_to_minutes(end))

    @classmethod
    def of(cls, appointment: Appointment) -> "Interval":
        return cls.from_times(appointment.start_time, appointment.end_time)

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end


def overlaps(a: Interval, b: Interval) -> bool:
    """True when the intervals share at least one minute. Empty intervals overlap nothing."""
    if a.is_empty or b.is_empty:
        return False
    return a.start < b.end and b.start < a.end


def overlap_minutes(a: Interval, b: Interval) -> int:
    if not overlaps(a, b):
        return 0
    return min(a.end, b.end) - max(a.start, b.start)


@dataclass(frozen=True)
class NoConflict:
    extended_end: int

    @property
    def extended_end_time(self) -> time:
        return minutes_to_time(self.extended_end)

    def to_dict(self) -> dict:
        return {"outcome": "no_conflict", "extendedEnd": format_time(self.extended_end_time)}


@dataclass(frozen=True)
class Conflict:
    following_id: int
    following_start: time
    following_client_name: Optional[str]
    extended_end: int
    overlap_minutes: int

    def to_dict(self) -> dict:
        hours, minutes = divmod(self.extended_end, 60)
        return {
            "outcome": "conflict",
            "following": {
                "id": self.following_id,
                "startTime": format_time(self.following_start),
                "clientName": self.following_client_name,
            },
            "extendedEnd": f"{hours:02d}:{minutes:02d}",
            "overlapMinutes": self.overlap_minutes,
        }


ConflictOutcome = Union[NoConflict, Conflict]


def evaluate_extension(
    current: Interval, additional_minutes: int, following: Optional[Appointment]
) -> ConflictOutcome:
    """Decide whether current.end can move forward by additional_minutes"""
    extended_end = current.end + additional_minutes
    if following is None:
        return NoConflict(extended_end)

    following_interval = Interval.of(following)
    if extended_end <= following_interval.start:
        return NoConflict(extended_end)

    return Conflict(
        following_id=following.id,
        following_start=following.start_time,
        following_client_name=following.client_name,
        extended_end=extended_end,
        overlap_minutes=overlap_minutes(Interval(current.end, extended_end), following_interval),
    )


class ConflictDetector:
    """Looks up neighbouring bookings and applies the extension policy"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def find_conflicts(
        self, provider_id: int, day: date, start: time, end: time, exclude_id: Optional[int] = None
    ) -> list[Appointment]:
        """Booked appointments intersecting [start, end), read from committed state"""
        return self.repo.find_overlapping(self.db, provider_id, day, start, end, exclude_id=exclude_id)

    def following_appointment(self, appointment: Appointment) -> Optional[Appointment]:
        return self.repo.get_following_appointment(
            self.db,
            appointment.provider_id,
            appointment.date,
            appointment.end_time,
            exclude_id=appointment.id,
        )

    def check_extension(self, appointment: Appointment, additional_minutes: int) -> ConflictOutcome:
        """
        Compare the extended end against the next booked appointment of the day.
        Never picks a resolution: a Conflict always goes back to the caller.
        """
        return evaluate_extension(
            Interval.of(appointment), additional_minutes, self.following_appointment(appointment)
        )
