from datetime import time

import pytest
from conftest import MONDAY, TUESDAY

from salonbook.domain.scheduling.schedule_service import ScheduleService
from salonbook.domain.scheduling.working_schedule import WorkingScheduleResolver
from salonbook.errors import AuthorizationError, NotFoundError, ValidationError


@pytest.fixture
def schedules(db, notifier):
    return ScheduleService(db, notifier=notifier)


def test_replace_working_hours(schedules, db, seed, notifier):
    created = schedules.replace_working_hours(
        seed.provider_id,
        [
            {"weekday": 1, "is_open": True, "open_time": time(10, 0), "close_time": time(19, 0)},
            {"weekday": 0, "is_open": False, "open_time": None, "close_time": None},
        ],
    )

    assert [h.weekday for h in created] == [0, 1]
    resolver = WorkingScheduleResolver(db)
    assert not resolver.resolve(seed.provider_id, MONDAY).is_open
    tuesday = resolver.resolve(seed.provider_id, TUESDAY)
    assert (tuesday.open, tuesday.close) == (time(10, 0), time(19, 0))
    notifier.invalidate.assert_called_once_with(seed.provider_id, None)


def test_replace_working_hours_rejects_duplicate_weekdays(schedules, seed):
    with pytest.raises(ValidationError):
        schedules.replace_working_hours(
            seed.provider_id,
            [{"weekday": 0, "is_open": False}, {"weekday": 0, "is_open": False}],
        )


@pytest.mark.parametrize(
    "row",
    [
        {"weekday": 7, "is_open": False},
        {"weekday": 2, "is_open": True, "open_time": time(18, 0), "close_time": time(9, 0)},
        {"weekday": 2, "is_open": True, "open_time": time(9, 0)},
    ],
)
def test_replace_working_hours_rejects_bad_rows(schedules, seed, row):
    with pytest.raises(ValidationError):
        schedules.replace_working_hours(seed.provider_id, [row])


def test_special_hours_upsert_and_delete(schedules, db, seed, notifier):
    schedules.upsert_special_hours(seed.provider_id, MONDAY, is_open=False, label="Holiday")
    special = schedules.upsert_special_hours(
        seed.provider_id, MONDAY, is_open=True, open_time=time(12, 0), close_time=time(16, 0)
    )

    assert special.is_open and special.label is None
    assert WorkingScheduleResolver(db).resolve(seed.provider_id, MONDAY).open == time(12, 0)

    schedules.delete_special_hours(seed.provider_id, MONDAY)

    assert WorkingScheduleResolver(db).resolve(seed.provider_id, MONDAY).source == "weekly"
    notifier.invalidate.assert_called_with(seed.provider_id, MONDAY)
    assert notifier.invalidate.call_count == 3


def test_closed_special_hours_drop_times(schedules, seed):
    special = schedules.upsert_special_hours(
        seed.provider_id, MONDAY, is_open=False, open_time=time(9, 0), close_time=time(10, 0)
    )
    assert special.open_time is None and special.close_time is None


def test_delete_missing_special_hours(schedules, seed):
    with pytest.raises(NotFoundError):
        schedules.delete_special_hours(seed.provider_id, MONDAY)


def test_schedule_of_another_provider(schedules, seed):
    with pytest.raises(AuthorizationError):
        schedules.upsert_special_hours(
            seed.provider_id, MONDAY, is_open=False, actor_provider_id=seed.other_provider_id
        )


def test_unknown_provider(schedules):
    with pytest.raises(NotFoundError):
        schedules.replace_working_hours(777, [])
