"""Scheduling repository - Database operations for schedules and appointments

Methods flush but never commit; the calling service owns the transaction so that an
appointment and its service lines are written atomically.
"""

from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import (
    Appointment,
    AppointmentService,
    AppointmentStatusHistory,
    Provider,
    Service,
    SpecialHours,
    WorkingBreak,
    WorkingHours,
)
from .enums import AppointmentStatus


class SchedulingRepository:
    """Repository for scheduling database operations"""

    # Providers and schedules
    @staticmethod
    def get_provider(db: Session, provider_id: int, for_update: bool = False) -> Optional[Provider]:
        """Get a provider; for_update locks the row to serialize booking writers"""
        query = db.query(Provider).filter(Provider.id == provider_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_working_hours(db: Session, provider_id: int, weekday: int) -> Optional[WorkingHours]:
        return (
            db.query(WorkingHours)
            .filter(WorkingHours.provider_id == provider_id, WorkingHours.weekday == weekday)
            .first()
        )

    @staticmethod
    def get_special_hours(db: Session, provider_id: int, day: date) -> Optional[SpecialHours]:
        return (
            db.query(SpecialHours)
            .filter(SpecialHours.provider_id == provider_id, SpecialHours.date == day)
            .first()
        )

    @staticmethod
    def get_weekday_breaks(db: Session, provider_id: int, weekday: int) -> list[WorkingBreak]:
        return (
            db.query(WorkingBreak)
            .filter(WorkingBreak.provider_id == provider_id, WorkingBreak.weekday == weekday)
            .order_by(WorkingBreak.start_time.asc())
            .all()
        )

    @staticmethod
    def get_date_breaks(db: Session, provider_id: int, day: date) -> list[WorkingBreak]:
        return (
            db.query(WorkingBreak)
            .filter(WorkingBreak.provider_id == provider_id, WorkingBreak.date == day)
            .order_by(WorkingBreak.start_time.asc())
            .all()
        )

    @staticmethod
    def replace_working_hours(db: Session, provider_id: int, rows: list[dict]) -> list[WorkingHours]:
        """Replace the weekly schedule with one row per weekday"""
        db.query(WorkingHours).filter(WorkingHours.provider_id == provider_id).delete(
            synchronize_session=False
        )
        created = [WorkingHours(provider_id=provider_id, **row) for row in rows]
        db.add_all(created)
        db.flush()
        return created

    @staticmethod
    def upsert_special_hours(db: Session, provider_id: int, day: date, **values) -> SpecialHours:
        special = SchedulingRepository.get_special_hours(db, provider_id, day)
        if special is None:
            special = SpecialHours(provider_id=provider_id, date=day)
            db.add(special)
        for key, value in values.items():
            setattr(special, key, value)
        db.flush()
        return special

    @staticmethod
    def delete_special_hours(db: Session, special: SpecialHours) -> None:
        db.delete(special)
        db.flush()

    # Services
    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_provider_services(db: Session, provider_id: int, service_ids: list[int]) -> list[Service]:
        """Get the provider's services among the given ids"""
        return (
            db.query(Service)
            .filter(Service.provider_id == provider_id, Service.id.in_(service_ids))
            .all()
        )

    # Appointments
    @staticmethod
    def get_appointment(
        db: Session, appointment_id: int, for_update: bool = False
    ) -> Optional[Appointment]:
        query = (
            db.query(Appointment)
            .options(selectinload(Appointment.services))
            .filter(Appointment.id == appointment_id)
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_booked_appointments(
        db: Session, provider_id: int, day: date, exclude_id: Optional[int] = None
    ) -> list[Appointment]:
        """Non-cancelled appointments for a provider on a date, ordered by start time"""
        query = db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.date == day,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    @staticmethod
    def get_appointments_for_day(db: Session, provider_id: int, day: date) -> list[Appointment]:
        """All appointments for a provider on a date, including cancelled ones"""
        return (
            db.query(Appointment)
            .options(selectinload(Appointment.services))
            .filter(Appointment.provider_id == provider_id, Appointment.date == day)
            .order_by(Appointment.start_time.asc(), Appointment.id.asc())
            .all()
        )

    @staticmethod
    def find_overlapping(
        db: Session,
        provider_id: int,
        day: date,
        start: time,
        end: time,
        exclude_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments whose [start, end) intersects the given interval"""
        query = db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.date == day,
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time.asc()).all()

    @staticmethod
    def get_following_appointment(
        db: Session, provider_id: int, day: date, not_before: time, exclude_id: int
    ) -> Optional[Appointment]:
        """The booked appointment with the smallest start_time >= not_before"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.provider_id == provider_id,
                Appointment.date == day,
                Appointment.id != exclude_id,
                Appointment.status != AppointmentStatus.CANCELLED,
                Appointment.start_time >= not_before,
            )
            .order_by(Appointment.start_time.asc(), Appointment.id.asc())
            .first()
        )

    @staticmethod
    def add_appointment(db: Session, appointment: Appointment) -> Appointment:
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def add_appointment_service(db: Session, line: AppointmentService) -> AppointmentService:
        db.add(line)
        db.flush()
        return line

    @staticmethod
    def add_status_history(
        db: Session,
        appointment: Appointment,
        old_status: Optional[str],
        new_status: str,
        action: str,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> AppointmentStatusHistory:
        entry = AppointmentStatusHistory(
            appointment_id=appointment.id,
            old_status=old_status,
            new_status=new_status,
            action=action,
            reason=reason,
            changed_by=changed_by,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def get_status_history(db: Session, appointment_id: int) -> list[AppointmentStatusHistory]:
        return (
            db.query(AppointmentStatusHistory)
            .filter(AppointmentStatusHistory.appointment_id == appointment_id)
            .order_by(AppointmentStatusHistory.id.asc())
            .all()
        )
