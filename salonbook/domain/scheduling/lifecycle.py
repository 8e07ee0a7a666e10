"""
Appointment lifecycle

Persisted statuses: pending -> confirmed -> completed | no_show | cancelled,
pending -> cancelled (decline). completed, cancelled and no_show are terminal.

The derived substate of a confirmed appointment (upcoming / active / past_confirmed)
is computed from the clock on every read and never stored.
"""

from datetime import datetime
from typing import Optional

from ...errors import StaleStateError
from .enums import AppointmentAction, AppointmentStatus, DerivedState
from .time_calculator import local_datetime

# action -> (statuses it may be applied from, resulting status)
TRANSITIONS: dict[AppointmentAction, tuple[frozenset, AppointmentStatus]] = {
    AppointmentAction.CONFIRM: (frozenset({AppointmentStatus.PENDING}), AppointmentStatus.CONFIRMED),
    AppointmentAction.DECLINE: (frozenset({AppointmentStatus.PENDING}), AppointmentStatus.CANCELLED),
    AppointmentAction.COMPLETE: (frozenset({AppointmentStatus.CONFIRMED}), AppointmentStatus.COMPLETED),
    AppointmentAction.NO_SHOW: (frozenset({AppointmentStatus.CONFIRMED}), AppointmentStatus.NO_SHOW),
    AppointmentAction.CANCEL: (frozenset({AppointmentStatus.CONFIRMED}), AppointmentStatus.CANCELLED),
    AppointmentAction.RESCHEDULE: (frozenset({AppointmentStatus.CONFIRMED}), AppointmentStatus.CONFIRMED),
    AppointmentAction.START: (frozenset({AppointmentStatus.CONFIRMED}), AppointmentStatus.CONFIRMED),
}

TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

# Statuses whose service list may still change
MODIFIABLE_STATUSES = frozenset(AppointmentStatus) - TERMINAL_STATUSES


def initial_status(auto_confirm: bool) -> AppointmentStatus:
    return AppointmentStatus.CONFIRMED if auto_confirm else AppointmentStatus.PENDING


def next_status(current: AppointmentStatus, action: AppointmentAction) -> AppointmentStatus:
    """Apply the transition table, raising StaleStateError for anything it does not list"""
    current = AppointmentStatus(current)
    allowed_from, target = TRANSITIONS[AppointmentAction(action)]
    if current not in allowed_from:
        raise StaleStateError(
            f"Cannot {AppointmentAction(action).value.replace('_', ' ')} an appointment "
            f"that is {current.value.replace('_', ' ')}",
            details={"status": current.value, "action": AppointmentAction(action).value},
        )
    return target


def allowed_actions(status: AppointmentStatus) -> list[AppointmentAction]:
    status = AppointmentStatus(status)
    return [action for action, (allowed_from, _) in TRANSITIONS.items() if status in allowed_from]


def derive_substate(appointment, now: datetime) -> Optional[DerivedState]:
    """
    Substate of a confirmed appointment at instant `now` (timezone-aware).
    Returns None for every other status.
    """
    if AppointmentStatus(appointment.status) != AppointmentStatus.CONFIRMED:
        return None

    starts_at = local_datetime(appointment.date, appointment.start_time, appointment.timezone)
    ends_at = local_datetime(appointment.date, appointment.end_time, appointment.timezone)

    if now < starts_at:
        return DerivedState.UPCOMING
    if now < ends_at:
        return DerivedState.ACTIVE
    return DerivedState.PAST_CONFIRMED
