from datetime import date, datetime, time, timezone
from types import SimpleNamespace

import pytest

from salonbook.domain.scheduling.enums import AppointmentAction, AppointmentStatus, DerivedState
from salonbook.domain.scheduling.lifecycle import (
    MODIFIABLE_STATUSES,
    TERMINAL_STATUSES,
    allowed_actions,
    derive_substate,
    initial_status,
    next_status,
)
from salonbook.errors import StaleStateError

DAY = date(2030, 1, 7)


def appointment(status=AppointmentStatus.CONFIRMED, tz="UTC"):
    return SimpleNamespace(
        status=status, date=DAY, start_time=time(14, 0), end_time=time(15, 0), timezone=tz
    )


def utc(hour, minute=0):
    return datetime(DAY.year, DAY.month, DAY.day, hour, minute, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "current,action,expected",
    [
        (AppointmentStatus.PENDING, AppointmentAction.CONFIRM, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.PENDING, AppointmentAction.DECLINE, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CONFIRMED, AppointmentAction.COMPLETE, AppointmentStatus.COMPLETED),
        (AppointmentStatus.CONFIRMED, AppointmentAction.NO_SHOW, AppointmentStatus.NO_SHOW),
        (AppointmentStatus.CONFIRMED, AppointmentAction.CANCEL, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CONFIRMED, AppointmentAction.RESCHEDULE, AppointmentStatus.CONFIRMED),
    ],
)
def test_allowed_transitions(current, action, expected):
    assert next_status(current, action) == expected


@pytest.mark.parametrize(
    "current,action",
    [
        (AppointmentStatus.PENDING, AppointmentAction.COMPLETE),
        (AppointmentStatus.PENDING, AppointmentAction.RESCHEDULE),
        (AppointmentStatus.CONFIRMED, AppointmentAction.CONFIRM),
        (AppointmentStatus.COMPLETED, AppointmentAction.CANCEL),
        (AppointmentStatus.CANCELLED, AppointmentAction.CONFIRM),
        (AppointmentStatus.NO_SHOW, AppointmentAction.COMPLETE),
    ],
)
def test_everything_else_is_stale(current, action):
    with pytest.raises(StaleStateError) as exc_info:
        next_status(current, action)
    assert exc_info.value.details == {"status": current.value, "action": action.value}


def test_raw_strings_are_accepted():
    assert next_status("pending", "confirm") == AppointmentStatus.CONFIRMED


def test_terminal_statuses_have_no_actions():
    for status in TERMINAL_STATUSES:
        assert allowed_actions(status) == []
    assert set(allowed_actions(AppointmentStatus.PENDING)) == {
        AppointmentAction.CONFIRM,
        AppointmentAction.DECLINE,
    }


def test_initial_status_follows_auto_confirm():
    assert initial_status(True) == AppointmentStatus.CONFIRMED
    assert initial_status(False) == AppointmentStatus.PENDING


@pytest.mark.parametrize(
    "now,expected",
    [
        (utc(13, 59), DerivedState.UPCOMING),
        (utc(14, 0), DerivedState.ACTIVE),
        (utc(14, 30), DerivedState.ACTIVE),
        (utc(15, 0), DerivedState.PAST_CONFIRMED),
        (utc(15, 30), DerivedState.PAST_CONFIRMED),
    ],
)
def test_derived_substate_of_confirmed(now, expected):
    assert derive_substate(appointment(), now) == expected


def test_derived_substate_uses_appointment_timezone():
    # 14:00 in Kyiv is 12:00 UTC in winter
    kyiv = appointment(tz="Europe/Kyiv")
    assert derive_substate(kyiv, utc(12, 30)) == DerivedState.ACTIVE
    assert derive_substate(kyiv, utc(13, 30)) == DerivedState.PAST_CONFIRMED


@pytest.mark.parametrize(
    "status",
    [
        AppointmentStatus.PENDING,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    ],
)
def test_no_substate_outside_confirmed(status):
    assert derive_substate(appointment(status=status), utc(14, 30)) is None


def test_only_live_statuses_are_modifiable():
    assert MODIFIABLE_STATUSES == {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
    assert not MODIFIABLE_STATUSES & TERMINAL_STATUSES
