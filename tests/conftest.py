import os
import tempfile
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

# Must be set before salonbook.config is imported
os.environ["CACHE_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'salonbook-app.db')}"

from sqlalchemy.orm import sessionmaker  # noqa: E402

from salonbook.database import Base, build_engine  # noqa: E402
from salonbook.domain.scheduling.booking_service import BookingService, ClientInfo  # noqa: E402
from salonbook.domain.scheduling.notifications import AppointmentNotifier  # noqa: E402
from salonbook.domain.scheduling.time_calculator import parse_time  # noqa: E402
from salonbook.models import Provider, Service, WorkingHours  # noqa: E402

_BASE = date(2030, 1, 10)
MONDAY = _BASE - timedelta(days=_BASE.weekday())
TUESDAY = MONDAY + timedelta(days=1)

# Sunday noon before MONDAY, so nothing on MONDAY is in the past
SUNDAY_NOON = datetime.combine(MONDAY - timedelta(days=1), time(12, 0), tzinfo=timezone.utc)


def at(day: date, hhmm: str) -> datetime:
    return datetime.combine(day, parse_time(hhmm), tzinfo=timezone.utc)


class FixedClock:
    """Callable clock whose instant the test moves by assigning .now"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def seed(session_factory):
    """Provider in UTC on a 30-minute grid, open Mondays 09:00-18:00, plus a second provider"""
    db = session_factory()
    provider = Provider(name="Olena Beauty", timezone="UTC", slot_minutes=30, auto_confirm=True)
    other = Provider(name="Studio Two", timezone="UTC", slot_minutes=30, auto_confirm=True)
    db.add_all([provider, other])
    db.flush()

    db.add(
        WorkingHours(
            provider_id=provider.id,
            weekday=0,
            is_open=True,
            open_time=time(9, 0),
            close_time=time(18, 0),
        )
    )
    db.add(WorkingHours(provider_id=provider.id, weekday=1, is_open=False))

    cut = Service(provider_id=provider.id, name="Haircut", duration_minutes=60, price_cents=50000)
    style = Service(provider_id=provider.id, name="Styling", duration_minutes=30, price_cents=30000)
    color = Service(provider_id=provider.id, name="Coloring", duration_minutes=90, price_cents=120000)
    trim = Service(provider_id=provider.id, name="Fringe trim", duration_minutes=15, price_cents=15000)
    foreign = Service(provider_id=other.id, name="Manicure", duration_minutes=45, price_cents=40000)
    db.add_all([cut, style, color, trim, foreign])
    db.commit()

    ids = SimpleNamespace(
        provider_id=provider.id,
        other_provider_id=other.id,
        cut=cut.id,
        style=style.id,
        color=color.id,
        trim=trim.id,
        foreign=foreign.id,
    )
    db.close()
    return ids


@pytest.fixture
def db(session_factory, seed):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(SUNDAY_NOON)


@pytest.fixture
def notifier():
    return Mock(spec=AppointmentNotifier)


@pytest.fixture
def booking(db, notifier, clock):
    return BookingService(db, notifier=notifier, clock=clock)


@pytest.fixture
def book_at(booking, seed):
    """Book services for a client at HH:MM on MONDAY unless told otherwise"""

    def _book(start, service_ids=None, day=MONDAY, name="Anna"):
        return booking.book(
            seed.provider_id,
            service_ids or [seed.cut],
            day,
            parse_time(start),
            ClientInfo(name=name, phone="+380671234567"),
        )

    return _book
