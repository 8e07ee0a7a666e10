import threading
from datetime import time

from conftest import MONDAY, SUNDAY_NOON, FixedClock

from salonbook.domain.scheduling.booking_service import BookingService, ClientInfo
from salonbook.domain.scheduling.repository import SchedulingRepository
from salonbook.errors import ConcurrencyError, ConflictError


def test_two_clients_racing_for_the_same_slot(session_factory, seed):
    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def attempt(name):
        db = session_factory()
        service = BookingService(db, clock=FixedClock(SUNDAY_NOON))
        try:
            barrier.wait(timeout=10)
            appointment = service.book(
                seed.provider_id, [seed.cut], MONDAY, time(10, 0), ClientInfo(name=name)
            )
            outcome = ("booked", appointment.id)
        except (ConflictError, ConcurrencyError) as e:
            outcome = ("rejected", type(e).__name__)
        finally:
            db.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(name,)) for name in ("Anna", "Iryna")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(kind for kind, _ in results) == ["booked", "rejected"]

    db = session_factory()
    try:
        assert len(SchedulingRepository.get_booked_appointments(db, seed.provider_id, MONDAY)) == 1
    finally:
        db.close()


def test_overlapping_but_different_starts_also_serialize(session_factory, seed):
    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(start, name):
        db = session_factory()
        service = BookingService(db, clock=FixedClock(SUNDAY_NOON))
        try:
            barrier.wait(timeout=10)
            service.book(seed.provider_id, [seed.cut], MONDAY, start, ClientInfo(name=name))
            outcomes.append("booked")
        except (ConflictError, ConcurrencyError):
            outcomes.append("rejected")
        finally:
            db.close()

    threads = [
        threading.Thread(target=attempt, args=(time(10, 0), "Anna")),
        threading.Thread(target=attempt, args=(time(10, 30), "Iryna")),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ["booked", "rejected"]
