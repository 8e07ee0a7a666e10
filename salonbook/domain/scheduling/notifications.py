"""Post-commit collaborator for appointment mutations

Invoked only after a successful commit. Failures here are logged and never undo or
fail the mutation that triggered them.
"""

import logging
from datetime import date
from typing import Optional

from ...cache import cache, invalidate_availability

logger = logging.getLogger(__name__)


class AppointmentNotifier:
    """Drops cached availability and announces appointment events"""

    def notify(self, appointment_id: int, event_kind: str) -> None:
        logger.info(f"📣 Appointment {appointment_id}: {event_kind}")

    def invalidate(self, provider_id: int, day: Optional[date] = None) -> int:
        """Forget cached slot grids for one date, or every date when day is None"""
        if day is None:
            return cache.delete_pattern(f"availability:{provider_id}:*")
        return invalidate_availability(provider_id, day.isoformat())
