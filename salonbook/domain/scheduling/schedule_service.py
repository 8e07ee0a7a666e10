"""Schedule service - Provider weekly hours and date-specific overrides"""

import logging
from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import AuthorizationError, NotFoundError, ValidationError
from ...models import SpecialHours, WorkingHours
from .notifications import AppointmentNotifier
from .repository import SchedulingRepository
from .working_schedule import WorkingScheduleResolver

logger = logging.getLogger(__name__)


def _check_window(is_open: bool, open_time: Optional[time], close_time: Optional[time], where: str):
    if not is_open:
        return
    if open_time is None or close_time is None:
        raise ValidationError(f"{where}: open and close times are required when open")
    if open_time >= close_time:
        raise ValidationError(f"{where}: open time must be before close time")


class ScheduleService:
    """Service layer for working schedule management"""

    def __init__(self, db: Session, notifier: Optional[AppointmentNotifier] = None):
        self.db = db
        self.repo = SchedulingRepository()
        self.resolver = WorkingScheduleResolver(db)
        self.notifier = notifier or AppointmentNotifier()

    def replace_working_hours(
        self, provider_id: int, rows: list[dict], actor_provider_id: Optional[int] = None
    ) -> list[WorkingHours]:
        """
        Replace the whole weekly schedule. Each row carries weekday (0=Monday),
        is_open, open_time and close_time; weekdays that are missing become closed.
        """
        self._authorize(provider_id, actor_provider_id)
        self.resolver.get_provider(provider_id)

        weekdays = [row["weekday"] for row in rows]
        if len(set(weekdays)) != len(weekdays):
            raise ValidationError("Each weekday may appear only once")
        for row in rows:
            if not 0 <= row["weekday"] <= 6:
                raise ValidationError(f"Invalid weekday {row['weekday']}, expected 0-6")
            _check_window(row["is_open"], row.get("open_time"), row.get("close_time"), f"Weekday {row['weekday']}")

        try:
            created = self.repo.replace_working_hours(self.db, provider_id, rows)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to replace working hours for provider {provider_id}: {e}")
            raise

        logger.info(f"✅ Working hours replaced for provider {provider_id} ({len(created)} days)")
        self._invalidate(provider_id)
        return sorted(created, key=lambda h: h.weekday)

    def upsert_special_hours(
        self,
        provider_id: int,
        day: date,
        is_open: bool,
        open_time: Optional[time] = None,
        close_time: Optional[time] = None,
        label: Optional[str] = None,
        actor_provider_id: Optional[int] = None,
    ) -> SpecialHours:
        """Set the override for one date; a closed override removes the day from booking"""
        self._authorize(provider_id, actor_provider_id)
        self.resolver.get_provider(provider_id)
        _check_window(is_open, open_time, close_time, day.isoformat())

        try:
            special = self.repo.upsert_special_hours(
                self.db,
                provider_id,
                day,
                is_open=is_open,
                open_time=open_time if is_open else None,
                close_time=close_time if is_open else None,
                label=label,
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to save special hours for provider {provider_id} on {day}: {e}")
            raise

        self.db.refresh(special)
        logger.info(f"✅ Special hours set for provider {provider_id} on {day} (open={is_open})")
        self._invalidate(provider_id, day)
        return special

    def delete_special_hours(
        self, provider_id: int, day: date, actor_provider_id: Optional[int] = None
    ) -> None:
        self._authorize(provider_id, actor_provider_id)
        special = self.repo.get_special_hours(self.db, provider_id, day)
        if special is None:
            raise NotFoundError(f"No special hours for provider {provider_id} on {day}")

        try:
            self.repo.delete_special_hours(self.db, special)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to delete special hours for provider {provider_id} on {day}: {e}")
            raise

        logger.info(f"🗑️ Special hours removed for provider {provider_id} on {day}")
        self._invalidate(provider_id, day)

    @staticmethod
    def _authorize(provider_id: int, actor_provider_id: Optional[int]) -> None:
        if actor_provider_id is not None and actor_provider_id != provider_id:
            raise AuthorizationError("You cannot change the schedule of another provider")

    def _invalidate(self, provider_id: int, day: Optional[date] = None) -> None:
        try:
            self.notifier.invalidate(provider_id, day)
        except Exception as e:
            logger.error(f"❌ Availability cache invalidation failed for provider {provider_id}: {e}")
