from datetime import time, timedelta

import pytest
from conftest import MONDAY, TUESDAY, at

from salonbook.domain.scheduling.availability_service import AvailabilityCalculator
from salonbook.domain.scheduling.enums import AppointmentAction, BlockedReason
from salonbook.domain.scheduling.repository import SchedulingRepository
from salonbook.errors import NotFoundError, ValidationError
from salonbook.models import Provider, WorkingBreak


@pytest.fixture
def calculator(db, clock):
    return AvailabilityCalculator(db, clock=clock)


def starts(slots, available=True):
    return [s.start for s in slots if s.available is available]


def test_booked_interval_is_not_offered(calculator, book_at, seed):
    book_at("10:00")

    slots = calculator.compute_slots(seed.provider_id, MONDAY, 30, 30)

    assert len(slots) == 18
    free = starts(slots)
    assert time(9, 0) in free and time(9, 30) in free
    assert time(11, 0) in free and time(11, 30) in free
    assert time(10, 0) not in free and time(10, 30) not in free
    booked = {s.start: s.blocked_reason for s in slots if not s.available}
    assert booked == {time(10, 0): BlockedReason.BOOKED, time(10, 30): BlockedReason.BOOKED}


def test_special_closed_day_reports_not_working(calculator, db, seed):
    SchedulingRepository.upsert_special_hours(db, seed.provider_id, MONDAY, is_open=False)
    db.commit()

    result = calculator.get_available_slots(seed.provider_id, MONDAY, 30)

    assert result.is_working_day is False
    assert result.slots == ()
    assert result.to_dict() == {"isWorkingDay": False, "slots": []}


def test_closed_weekday_gives_no_slots(calculator, seed):
    assert calculator.compute_slots(seed.provider_id, TUESDAY, 30, 30) == []


def test_last_slot_must_fit_before_close(calculator, seed):
    slots = calculator.compute_slots(seed.provider_id, MONDAY, 60, 45)

    assert slots[-1].start == time(16, 30)
    assert slots[-1].end == time(17, 30)
    assert len(slots) == 11


def test_duration_longer_than_window(calculator, seed):
    assert calculator.compute_slots(seed.provider_id, MONDAY, 600, 30) == []


def test_no_bookings_means_everything_available(calculator, seed):
    slots = calculator.compute_slots(seed.provider_id, MONDAY, 30, 30)
    assert all(s.available for s in slots)
    assert slots[0].to_dict() == {
        "start": "09:00",
        "end": "09:30",
        "available": True,
        "blockedReason": None,
    }


def test_same_day_slots_before_now_are_past(calculator, clock, seed):
    clock.now = at(MONDAY, "10:15")

    slots = calculator.compute_slots(seed.provider_id, MONDAY, 30, 30)

    past = [s.start for s in slots if s.blocked_reason == BlockedReason.PAST]
    assert past == [time(9, 0), time(9, 30), time(10, 0)]
    assert slots[3].start == time(10, 30) and slots[3].available


def test_breaks_block_overlapping_slots(calculator, db, seed):
    db.add(
        WorkingBreak(provider_id=seed.provider_id, weekday=0, start_time=time(13, 0), end_time=time(14, 0))
    )
    db.commit()

    slots = {s.start: s for s in calculator.compute_slots(seed.provider_id, MONDAY, 60, 30)}

    assert slots[time(12, 30)].blocked_reason == BlockedReason.BREAK
    assert slots[time(13, 30)].blocked_reason == BlockedReason.BREAK
    assert slots[time(12, 0)].available
    assert slots[time(14, 0)].available


def test_past_takes_precedence_over_booked(calculator, book_at, clock, seed):
    book_at("09:00")
    clock.now = at(MONDAY, "12:00")

    slots = calculator.compute_slots(seed.provider_id, MONDAY, 30, 30)

    assert slots[0].blocked_reason == BlockedReason.PAST


def test_cancelled_appointment_frees_its_slot(calculator, book_at, booking, seed):
    appointment = book_at("10:00")
    booking.transition(appointment.id, AppointmentAction.CANCEL)

    free = starts(calculator.compute_slots(seed.provider_id, MONDAY, 30, 30))

    assert time(10, 0) in free and time(10, 30) in free


def test_minimum_notice_hides_near_slots(calculator, db, clock, seed):
    db.get(Provider, seed.provider_id).min_booking_notice_hours = 2
    db.commit()
    clock.now = at(MONDAY, "08:00")

    slots = calculator.get_available_slots(seed.provider_id, MONDAY, 30).slots

    assert [s.start for s in slots if s.blocked_reason == BlockedReason.PAST] == [time(9, 0), time(9, 30)]
    assert slots[2].available


def test_dates_beyond_booking_horizon_are_not_working(calculator, db, seed):
    db.get(Provider, seed.provider_id).max_booking_days_ahead = 3
    db.commit()

    assert calculator.get_available_slots(seed.provider_id, MONDAY, 30).is_working_day
    assert not calculator.get_available_slots(seed.provider_id, MONDAY + timedelta(days=7), 30).is_working_day


def test_provider_granularity_is_used(calculator, db, seed):
    db.get(Provider, seed.provider_id).slot_minutes = 60
    db.commit()

    slots = calculator.get_available_slots(seed.provider_id, MONDAY, 30).slots

    assert [s.start for s in slots[:3]] == [time(9, 0), time(10, 0), time(11, 0)]


def test_repeated_calls_are_identical(calculator, book_at, seed):
    book_at("14:00")

    first = calculator.get_available_slots(seed.provider_id, MONDAY, 45)
    second = calculator.get_available_slots(seed.provider_id, MONDAY, 45)

    assert first == second


@pytest.mark.parametrize("duration,granularity", [(0, 30), (30, 0), (-15, 30)])
def test_invalid_durations(calculator, seed, duration, granularity):
    with pytest.raises(ValidationError):
        calculator.compute_slots(seed.provider_id, MONDAY, duration, granularity)


def test_unknown_provider(calculator):
    with pytest.raises(NotFoundError):
        calculator.get_available_slots(4242, MONDAY, 30)
