"""Working schedule resolution: date-specific overrides layered over the weekly schedule"""

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models import Provider
from .repository import SchedulingRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakWindow:
    start: time
    end: time


@dataclass(frozen=True)
class ResolvedSchedule:
    """Effective open/close window of a provider on one calendar date"""

    is_open: bool
    open: Optional[time]
    close: Optional[time]
    timezone: str
    source: str  # "special", "weekly" or "none"
    label: Optional[str] = None
    breaks: tuple[BreakWindow, ...] = field(default_factory=tuple)

    @classmethod
    def closed(cls, timezone: str, source: str, label: Optional[str] = None) -> "ResolvedSchedule":
        return cls(is_open=False, open=None, close=None, timezone=timezone, source=source, label=label)


class WorkingScheduleResolver:
    """Resolves the window a provider works on a date, in the provider's timezone"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def get_provider(self, provider_id: int) -> Provider:
        provider = self.repo.get_provider(self.db, provider_id)
        if not provider:
            raise NotFoundError(f"Provider {provider_id} not found")
        return provider

    def resolve(self, provider_id: int, day: date) -> ResolvedSchedule:
        return self.resolve_for_provider(self.get_provider(provider_id), day)

    def resolve_for_provider(self, provider: Provider, day: date) -> ResolvedSchedule:
        """
        SpecialHours for the exact date win outright, including forcing a normally
        open weekday closed. Otherwise the WorkingHours row for date.weekday() applies.
        """
        special = self.repo.get_special_hours(self.db, provider.id, day)
        if special is not None:
            if not self._valid_window(special.is_open, special.open_time, special.close_time):
                return ResolvedSchedule.closed(provider.timezone, "special", special.label)
            breaks = self.repo.get_date_breaks(self.db, provider.id, day)
            return ResolvedSchedule(
                is_open=True,
                open=special.open_time,
                close=special.close_time,
                timezone=provider.timezone,
                source="special",
                label=special.label,
                breaks=tuple(BreakWindow(b.start_time, b.end_time) for b in breaks),
            )

        weekday = day.weekday()
        hours = self.repo.get_working_hours(self.db, provider.id, weekday)
        if hours is None:
            return ResolvedSchedule.closed(provider.timezone, "none")
        if not self._valid_window(hours.is_open, hours.open_time, hours.close_time):
            return ResolvedSchedule.closed(provider.timezone, "weekly")

        breaks = self.repo.get_weekday_breaks(self.db, provider.id, weekday) + self.repo.get_date_breaks(
            self.db, provider.id, day
        )
        return ResolvedSchedule(
            is_open=True,
            open=hours.open_time,
            close=hours.close_time,
            timezone=provider.timezone,
            source="weekly",
            breaks=tuple(
                sorted((BreakWindow(b.start_time, b.end_time) for b in breaks), key=lambda b: b.start)
            ),
        )

    @staticmethod
    def _valid_window(is_open: bool, open_time: Optional[time], close_time: Optional[time]) -> bool:
        if not is_open:
            return False
        if open_time is None or close_time is None or open_time >= close_time:
            logger.warning(f"⚠️ Ignoring malformed open window {open_time}-{close_time}")
            return False
        return True
