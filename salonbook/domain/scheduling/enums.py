"""Closed value sets of the scheduling domain"""

from enum import Enum


class AppointmentStatus(str, Enum):
    """Persisted appointment status"""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class DerivedState(str, Enum):
    """Read-time substate of a confirmed appointment, never persisted"""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    PAST_CONFIRMED = "past_confirmed"


class AppointmentAction(str, Enum):
    CONFIRM = "confirm"
    DECLINE = "decline"
    START = "start"
    COMPLETE = "complete"
    NO_SHOW = "no_show"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"


class ExtensionResolution(str, Enum):
    """How an added service was fitted into the appointment interval"""

    EXTENDED = "extended"
    WITHOUT_EXTENDING = "without_extending"
    ALLOW_OVERLAP = "allow_overlap"


class BlockedReason(str, Enum):
    PAST = "past"
    BREAK = "break"
    BOOKED = "booked"
