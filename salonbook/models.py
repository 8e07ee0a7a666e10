from sqlalchemy import (
    DDL,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .config import DEFAULT_CURRENCY, DEFAULT_SLOT_MINUTES, DEFAULT_TIMEZONE
from .database import Base
from .domain.scheduling.enums import AppointmentStatus, ExtensionResolution


def _enum_column(enum_cls):
    """Store enum values (not member names) in a portable VARCHAR column"""
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default=DEFAULT_TIMEZONE)  # IANA name
    slot_minutes = Column(Integer, nullable=False, default=DEFAULT_SLOT_MINUTES)
    auto_confirm = Column(Boolean, nullable=False, default=False)
    min_booking_notice_hours = Column(Integer, nullable=False, default=0)
    max_booking_days_ahead = Column(Integer, nullable=True)  # None = no limit
    created_at = Column(DateTime, server_default=func.now())

    working_hours = relationship(
        "WorkingHours", back_populates="provider", order_by="WorkingHours.weekday"
    )
    special_hours = relationship("SpecialHours", back_populates="provider")
    services = relationship("Service", back_populates="provider")

    __table_args__ = (CheckConstraint("slot_minutes > 0", name="ck_providers_slot_minutes"),)


class WorkingHours(Base):
    __tablename__ = "working_hours"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    weekday = Column(Integer, nullable=False)  # 0=Monday ... 6=Sunday
    is_open = Column(Boolean, nullable=False, default=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)

    provider = relationship("Provider", back_populates="working_hours")

    __table_args__ = (
        UniqueConstraint("provider_id", "weekday", name="uq_working_hours_provider_weekday"),
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_working_hours_weekday"),
    )


class SpecialHours(Base):
    """Date-specific override that fully replaces the weekly row for that date"""

    __tablename__ = "special_hours"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    date = Column(Date, nullable=False)
    is_open = Column(Boolean, nullable=False, default=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)
    label = Column(String(255), nullable=True)  # e.g. "Public holiday"

    provider = relationship("Provider", back_populates="special_hours")

    __table_args__ = (
        UniqueConstraint("provider_id", "date", name="uq_special_hours_provider_date"),
    )


class WorkingBreak(Base):
    """Break inside the working window, recurring on a weekday or pinned to a date"""

    __tablename__ = "working_breaks"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    weekday = Column(Integer, nullable=True)
    date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(weekday IS NULL) <> (date IS NULL)", name="ck_working_breaks_weekday_or_date"
        ),
        CheckConstraint("start_time < end_time", name="ck_working_breaks_interval"),
    )


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)

    provider = relationship("Provider", back_populates="services")

    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_services_duration"),)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False)  # Snapshot of provider timezone
    status = Column(_enum_column(AppointmentStatus), nullable=False)

    # Snapshot: client data at booking time
    client_id = Column(String(255), nullable=True)
    client_name = Column(String(255), nullable=False)
    client_phone = Column(String(32), nullable=True)
    client_email = Column(String(255), nullable=True)
    client_notes = Column(Text, nullable=True)
    # Private to the provider, never shown to the client
    provider_notes = Column(Text, nullable=True)

    total_price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)
    # Set when the provider explicitly accepted a double-booking on service addition
    overlap_allowed = Column(Boolean, nullable=False, default=False)

    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    services = relationship(
        "AppointmentService",
        back_populates="appointment",
        order_by="AppointmentService.position",
        cascade="all, delete-orphan",
    )
    status_history = relationship(
        "AppointmentStatusHistory",
        back_populates="appointment",
        order_by="AppointmentStatusHistory.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appointments_interval"),
        Index("ix_appointments_provider_date_start", "provider_id", "date", "start_time"),
    )


class AppointmentService(Base):
    """Service line of an appointment, frozen at the moment it was added"""

    __tablename__ = "appointment_services"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True)
    service_name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    position = Column(Integer, nullable=False)
    resolution = Column(
        _enum_column(ExtensionResolution), nullable=False, default=ExtensionResolution.EXTENDED
    )
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="services")


class AppointmentStatusHistory(Base):
    __tablename__ = "appointment_status_history"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    old_status = Column(String(20), nullable=True)  # None for the creation entry
    new_status = Column(String(20), nullable=False)
    action = Column(String(20), nullable=False)
    reason = Column(String(500), nullable=True)
    changed_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="status_history")


# PostgreSQL guard: no two live appointments of a provider may share any instant.
# Rows flagged overlap_allowed are the provider's explicit double-booking overrides.
event.listen(
    Base.metadata,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        "ALTER TABLE appointments ADD CONSTRAINT ex_appointments_no_overlap "
        "EXCLUDE USING gist (provider_id WITH =, "
        "tsrange(date + start_time, date + end_time, '[)') WITH &&) "
        "WHERE (status <> 'cancelled' AND NOT overlap_allowed)"
    ).execute_if(dialect="postgresql"),
)
