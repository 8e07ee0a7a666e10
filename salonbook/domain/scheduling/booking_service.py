"""Booking service - Use cases that create and mutate appointments

This is the only write path for appointment intervals. Each use case locks the
provider row, re-validates against committed state and commits in one
transaction, so at most one live appointment can hold any provider interval.
Slot grids shown to clients are advisory and are never trusted here.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ...errors import (
    AuthorizationError,
    BookingError,
    ClosedDayError,
    ConcurrencyError,
    ConflictError,
    ExtensionConflictError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from ...models import Appointment, AppointmentService, Provider
from ...shared.validators import sanitize_string
from .conflicts import Conflict, ConflictDetector, ConflictOutcome, Interval, overlaps
from .enums import AppointmentAction, AppointmentStatus, DerivedState, ExtensionResolution
from .lifecycle import MODIFIABLE_STATUSES, derive_substate, initial_status, next_status
from .notifications import AppointmentNotifier
from .repository import SchedulingRepository
from .time_calculator import (
    format_time,
    local_datetime,
    local_now,
    minutes_to_time,
    time_to_minutes,
    utc_now,
)
from .working_schedule import WorkingScheduleResolver

logger = logging.getLogger(__name__)

PROVIDER_NOTES_MAX_LENGTH = 2000


@dataclass
class ClientInfo:
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    client_id: Optional[str] = None
    notes: Optional[str] = None


class BookingService:
    """Orchestrates booking, service changes, status transitions and rescheduling"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[AppointmentNotifier] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.notifier = notifier or AppointmentNotifier()
        self.clock = clock
        self.repo = SchedulingRepository()
        self.resolver = WorkingScheduleResolver(db)
        self.detector = ConflictDetector(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def list_appointments(self, provider_id: int, day: date) -> list[Appointment]:
        self.resolver.get_provider(provider_id)
        return self.repo.get_appointments_for_day(self.db, provider_id, day)

    def derived_state(self, appointment: Appointment) -> Optional[DerivedState]:
        """Computed from the clock on every call"""
        return derive_substate(appointment, self.clock())

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def book(
        self,
        provider_id: int,
        service_ids: list[int],
        day: date,
        start_time: time,
        client: ClientInfo,
    ) -> Appointment:
        """Create an appointment after re-checking the interval against committed bookings"""
        if not service_ids:
            raise ValidationError("At least one service must be selected")
        if not client.name or not client.name.strip():
            raise ValidationError("Client name is required")

        with self._write_transaction(f"Booking for provider {provider_id}"):
            provider = self._lock_provider(provider_id)

            services_by_id = {
                s.id: s for s in self.repo.get_provider_services(self.db, provider_id, list(set(service_ids)))
            }
            missing = [sid for sid in service_ids if sid not in services_by_id]
            if missing:
                raise ValidationError(
                    "Some selected services are not available for this provider",
                    details={"serviceIds": missing},
                )
            services = [services_by_id[sid] for sid in service_ids]
            currencies = {s.currency for s in services}
            if len(currencies) > 1:
                raise ValidationError("Selected services must be priced in the same currency")

            total_minutes = sum(s.duration_minutes for s in services)
            end_time = minutes_to_time(time_to_minutes(start_time) + total_minutes)

            self._validate_interval(provider, day, start_time, end_time)

            status = initial_status(provider.auto_confirm)
            appointment = self.repo.add_appointment(
                self.db,
                Appointment(
                    provider_id=provider.id,
                    date=day,
                    start_time=start_time,
                    end_time=end_time,
                    timezone=provider.timezone,
                    status=status,
                    client_id=client.client_id,
                    client_name=client.name.strip(),
                    client_phone=client.phone,
                    client_email=client.email,
                    client_notes=client.notes,
                    total_price_cents=sum(s.price_cents for s in services),
                    currency=services[0].currency,
                    overlap_allowed=False,
                ),
            )
            for position, service in enumerate(services):
                self.repo.add_appointment_service(
                    self.db,
                    AppointmentService(
                        appointment_id=appointment.id,
                        service_id=service.id,
                        service_name=service.name,
                        duration_minutes=service.duration_minutes,
                        price_cents=service.price_cents,
                        currency=service.currency,
                        position=position,
                        resolution=ExtensionResolution.EXTENDED,
                    ),
                )
            self.repo.add_status_history(
                self.db, appointment, None, status.value, "book", changed_by=client.client_id
            )

        self.db.refresh(appointment)
        logger.info(
            f"✅ Appointment {appointment.id} booked for provider {provider_id} on {day} "
            f"{format_time(start_time)}-{format_time(end_time)} ({status.value})"
        )
        self._after_commit(appointment, "created", day)
        return appointment

    # ------------------------------------------------------------------
    # Service list changes
    # ------------------------------------------------------------------

    def preview_extension(
        self, appointment_id: int, service_id: int, actor_provider_id: Optional[int] = None
    ) -> ConflictOutcome:
        """What adding the service would do, without changing anything"""
        appointment = self.get_appointment(appointment_id)
        self.authorize(appointment.provider_id, actor_provider_id)
        self._ensure_modifiable(appointment)
        service = self._get_provider_service(appointment.provider_id, service_id)
        return self.detector.check_extension(appointment, service.duration_minutes)

    def add_service(
        self,
        appointment_id: int,
        service_id: int,
        resolution: Optional[ExtensionResolution] = None,
        actor_provider_id: Optional[int] = None,
    ) -> Appointment:
        """
        Append a service. Without a conflict the interval always grows by the service
        duration. On conflict nothing changes unless the caller chose a resolution:
        WITHOUT_EXTENDING keeps the interval, ALLOW_OVERLAP extends it anyway and
        records the double-booking as an explicit override.
        """
        if resolution is not None:
            try:
                resolution = ExtensionResolution(resolution)
            except ValueError as e:
                raise ValidationError(f"Unknown resolution '{resolution}'") from e
            if resolution == ExtensionResolution.EXTENDED:
                resolution = None

        with self._write_transaction(f"Adding service to appointment {appointment_id}"):
            appointment = self._lock_appointment(appointment_id)
            self.authorize(appointment.provider_id, actor_provider_id)
            self._ensure_modifiable(appointment)
            service = self._get_provider_service(appointment.provider_id, service_id)
            if service.currency != appointment.currency:
                raise ValidationError(
                    f"'{service.name}' is priced in {service.currency}, the appointment in {appointment.currency}"
                )

            outcome = self.detector.check_extension(appointment, service.duration_minutes)
            if isinstance(outcome, Conflict):
                if resolution is None:
                    raise ExtensionConflictError(
                        f"Adding '{service.name}' would overlap the next appointment at "
                        f"{format_time(outcome.following_start)} by {outcome.overlap_minutes} min",
                        outcome,
                    )
                applied = resolution
            else:
                applied = ExtensionResolution.EXTENDED

            if applied in (ExtensionResolution.EXTENDED, ExtensionResolution.ALLOW_OVERLAP):
                appointment.end_time = minutes_to_time(outcome.extended_end)
            if applied == ExtensionResolution.ALLOW_OVERLAP:
                appointment.overlap_allowed = True
                logger.warning(
                    f"⚠️ Appointment {appointment.id} extended over appointment "
                    f"{outcome.following_id} by explicit provider override"
                )

            next_position = max((line.position for line in appointment.services), default=-1) + 1
            self.repo.add_appointment_service(
                self.db,
                AppointmentService(
                    appointment_id=appointment.id,
                    service_id=service.id,
                    service_name=service.name,
                    duration_minutes=service.duration_minutes,
                    price_cents=service.price_cents,
                    currency=service.currency,
                    position=next_position,
                    resolution=applied,
                ),
            )
            appointment.total_price_cents = (appointment.total_price_cents or 0) + service.price_cents

        self.db.refresh(appointment)
        logger.info(
            f"✅ Service {service_id} added to appointment {appointment.id} ({applied.value}), "
            f"now ends {format_time(appointment.end_time)}"
        )
        self._after_commit(appointment, "service_added", appointment.date)
        return appointment

    def remove_service(
        self,
        appointment_id: int,
        appointment_service_id: int,
        actor_provider_id: Optional[int] = None,
    ) -> Appointment:
        """Drop a service line; the interval only shrinks if that line had extended it"""
        with self._write_transaction(f"Removing service from appointment {appointment_id}"):
            appointment = self._lock_appointment(appointment_id)
            self.authorize(appointment.provider_id, actor_provider_id)
            self._ensure_modifiable(appointment)

            line = next((s for s in appointment.services if s.id == appointment_service_id), None)
            if line is None:
                raise NotFoundError(
                    f"Service line {appointment_service_id} not found on appointment {appointment_id}"
                )
            if len(appointment.services) <= 1:
                raise ValidationError("An appointment must keep at least one service")

            if line.resolution != ExtensionResolution.WITHOUT_EXTENDING:
                new_end = time_to_minutes(appointment.end_time) - line.duration_minutes
                if new_end <= time_to_minutes(appointment.start_time):
                    raise ValidationError(
                        "Removing this service would leave the appointment without any time"
                    )
                appointment.end_time = minutes_to_time(new_end)

            appointment.total_price_cents = max(
                0, (appointment.total_price_cents or 0) - line.price_cents
            )
            appointment.services.remove(line)
            self.db.flush()

            if appointment.overlap_allowed:
                still_overriding = any(
                    s.resolution == ExtensionResolution.ALLOW_OVERLAP for s in appointment.services
                )
                if not still_overriding and not self.detector.find_conflicts(
                    appointment.provider_id,
                    appointment.date,
                    appointment.start_time,
                    appointment.end_time,
                    exclude_id=appointment.id,
                ):
                    appointment.overlap_allowed = False

        self.db.refresh(appointment)
        logger.info(f"✅ Service line {appointment_service_id} removed from appointment {appointment.id}")
        self._after_commit(appointment, "service_removed", appointment.date)
        return appointment

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        appointment_id: int,
        action: AppointmentAction,
        reason: Optional[str] = None,
        actor_provider_id: Optional[int] = None,
        changed_by: Optional[str] = None,
    ) -> Appointment:
        """Apply one manual action from the lifecycle table"""
        try:
            action = AppointmentAction(action)
        except ValueError as e:
            raise ValidationError(f"Unknown action '{action}'") from e

        if action == AppointmentAction.START:
            return self.start_early(appointment_id, actor_provider_id, changed_by)

        with self._write_transaction(f"Transition {action.value} on appointment {appointment_id}"):
            appointment = self.repo.get_appointment(self.db, appointment_id, for_update=True)
            if not appointment:
                raise NotFoundError(f"Appointment {appointment_id} not found")
            self.authorize(appointment.provider_id, actor_provider_id)

            old_status = AppointmentStatus(appointment.status)
            new_status = next_status(old_status, action)
            if action == AppointmentAction.RESCHEDULE:
                raise ValidationError("Reschedule needs a new date and start time")
            appointment.status = new_status
            if new_status == AppointmentStatus.CANCELLED:
                appointment.cancelled_at = self.clock().astimezone(timezone.utc).replace(tzinfo=None)

            self.repo.add_status_history(
                self.db,
                appointment,
                old_status.value,
                new_status.value,
                action.value,
                reason=reason,
                changed_by=changed_by,
            )

        self.db.refresh(appointment)
        logger.info(
            f"✅ Appointment {appointment.id} transitioned: {old_status.value} → {new_status.value}"
        )
        self._after_commit(appointment, action.value, appointment.date)
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        new_date: date,
        new_start_time: time,
        actor_provider_id: Optional[int] = None,
        changed_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Move a confirmed appointment, keeping its duration and re-running the booking checks"""
        with self._write_transaction(f"Rescheduling appointment {appointment_id}"):
            appointment = self._lock_appointment(appointment_id)
            self.authorize(appointment.provider_id, actor_provider_id)
            status = next_status(appointment.status, AppointmentAction.RESCHEDULE)

            old_date = appointment.date
            old_start = appointment.start_time
            duration = Interval.of(appointment)
            new_end = minutes_to_time(
                time_to_minutes(new_start_time) + (duration.end - duration.start)
            )

            provider = self.repo.get_provider(self.db, appointment.provider_id)
            self._validate_interval(
                provider, new_date, new_start_time, new_end, exclude_id=appointment.id
            )

            appointment.date = new_date
            appointment.start_time = new_start_time
            appointment.end_time = new_end
            # The new interval was validated clean, so any earlier override no longer applies
            appointment.overlap_allowed = False

            self.repo.add_status_history(
                self.db,
                appointment,
                status.value,
                status.value,
                AppointmentAction.RESCHEDULE.value,
                reason=reason or f"moved from {old_date.isoformat()} {format_time(old_start)}",
                changed_by=changed_by,
            )

        self.db.refresh(appointment)
        logger.info(
            f"✅ Appointment {appointment.id} rescheduled to {new_date} "
            f"{format_time(new_start_time)}-{format_time(new_end)}"
        )
        self._after_commit(appointment, "rescheduled", old_date, new_date)
        return appointment

    def start_early(
        self,
        appointment_id: int,
        actor_provider_id: Optional[int] = None,
        changed_by: Optional[str] = None,
    ) -> Appointment:
        """Begin a confirmed appointment now, keeping its duration"""
        with self._write_transaction(f"Starting appointment {appointment_id} early"):
            appointment = self._lock_appointment(appointment_id)
            self.authorize(appointment.provider_id, actor_provider_id)
            status = next_status(appointment.status, AppointmentAction.START)

            now = local_now(self.clock(), appointment.timezone)
            if now.date() != appointment.date:
                raise ValidationError("An appointment can only be started on its own date")
            if now >= local_datetime(appointment.date, appointment.start_time, appointment.timezone):
                raise ValidationError("Appointment has already started")

            duration = Interval.of(appointment)
            new_start = now.time().replace(second=0, microsecond=0)
            new_end = minutes_to_time(time_to_minutes(new_start) + (duration.end - duration.start))

            conflicts = self.detector.find_conflicts(
                appointment.provider_id,
                appointment.date,
                new_start,
                new_end,
                exclude_id=appointment.id,
            )
            if conflicts:
                raise ConflictError(
                    "Starting now would overlap another appointment",
                    details={"appointmentIds": [a.id for a in conflicts]},
                )

            appointment.start_time = new_start
            appointment.end_time = new_end
            self.repo.add_status_history(
                self.db,
                appointment,
                status.value,
                status.value,
                AppointmentAction.START.value,
                changed_by=changed_by,
            )

        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} started early at {format_time(new_start)}")
        self._after_commit(appointment, AppointmentAction.START.value, appointment.date)
        return appointment

    # ------------------------------------------------------------------
    # Provider notes
    # ------------------------------------------------------------------

    def update_provider_notes(
        self, appointment_id: int, notes: Optional[str], actor_provider_id: Optional[int] = None
    ) -> Appointment:
        """Replace the provider's private notes. Allowed in every status, never moves the interval."""
        if notes is not None and len(notes) > PROVIDER_NOTES_MAX_LENGTH:
            raise ValidationError(f"Notes are limited to {PROVIDER_NOTES_MAX_LENGTH} characters")

        with self._write_transaction(f"Updating notes on appointment {appointment_id}"):
            appointment = self.get_appointment(appointment_id)
            self.authorize(appointment.provider_id, actor_provider_id)
            appointment.provider_notes = sanitize_string(notes, max_length=PROVIDER_NOTES_MAX_LENGTH)

        self.db.refresh(appointment)
        logger.info(f"📝 Provider notes updated on appointment {appointment.id}")
        return appointment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _write_transaction(self, operation: str):
        """Commit on success; map lost races on commit to ConcurrencyError"""
        try:
            yield
            self.db.commit()
        except BookingError as e:
            self.db.rollback()
            logger.warning(f"⚠️ {operation} rejected: {e.kind} - {e.message}")
            raise
        except (IntegrityError, OperationalError) as e:
            self.db.rollback()
            logger.warning(f"⚠️ {operation} lost a concurrent write: {e}")
            raise ConcurrencyError(
                "This time was just taken by another booking. Please refresh availability and try again."
            ) from e
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ {operation} failed: {e}")
            raise

    def _lock_provider(self, provider_id: int) -> Provider:
        provider = self.repo.get_provider(self.db, provider_id, for_update=True)
        if not provider:
            raise NotFoundError(f"Provider {provider_id} not found")
        return provider

    def _lock_appointment(self, appointment_id: int) -> Appointment:
        """Lock the owning provider first, then re-read the appointment under that lock"""
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        self._lock_provider(appointment.provider_id)
        self.db.refresh(appointment, with_for_update=True)
        return appointment

    @staticmethod
    def authorize(provider_id: int, actor_provider_id: Optional[int]) -> None:
        if actor_provider_id is not None and actor_provider_id != provider_id:
            raise AuthorizationError("You cannot manage appointments of another provider")

    @staticmethod
    def _ensure_modifiable(appointment: Appointment) -> None:
        status = AppointmentStatus(appointment.status)
        if status not in MODIFIABLE_STATUSES:
            raise StaleStateError(
                f"Services cannot be changed on a {status.value.replace('_', ' ')} appointment",
                details={"status": status.value},
            )

    def _get_provider_service(self, provider_id: int, service_id: int):
        service = self.repo.get_service(self.db, service_id)
        if not service or service.provider_id != provider_id:
            raise NotFoundError(f"Service {service_id} not found")
        return service

    def _validate_interval(
        self,
        provider: Provider,
        day: date,
        start: time,
        end: time,
        exclude_id: Optional[int] = None,
    ) -> None:
        """The checks every interval write must pass, against the latest committed state"""
        if start.second or start.microsecond:
            raise ValidationError(
                "Start time must be a whole minute", details={"startTime": start.isoformat()}
            )

        schedule = self.resolver.resolve_for_provider(provider, day)
        if not schedule.is_open:
            raise ClosedDayError(
                f"{day.strftime('%A, %B %d, %Y')} is not a working day",
                details={"date": day.isoformat(), "label": schedule.label},
            )

        if start < schedule.open or end > schedule.close:
            raise ValidationError(
                f"The selected time is outside working hours "
                f"({format_time(schedule.open)}-{format_time(schedule.close)})"
            )

        requested = Interval.from_times(start, end)
        for brk in schedule.breaks:
            if overlaps(requested, Interval.from_times(brk.start, brk.end)):
                raise ValidationError(
                    f"The selected time overlaps a break ({format_time(brk.start)}-{format_time(brk.end)})"
                )

        now = self.clock()
        earliest = now + timedelta(hours=provider.min_booking_notice_hours or 0)
        if local_datetime(day, start, provider.timezone) < earliest:
            if provider.min_booking_notice_hours:
                raise ValidationError(
                    f"Bookings need at least {provider.min_booking_notice_hours} hours notice"
                )
            raise ValidationError("The selected time is in the past")

        if provider.max_booking_days_ahead is not None:
            today = local_now(now, provider.timezone).date()
            if (day - today).days > provider.max_booking_days_ahead:
                raise ValidationError(
                    f"Bookings open at most {provider.max_booking_days_ahead} days ahead"
                )

        conflicts = self.detector.find_conflicts(provider.id, day, start, end, exclude_id=exclude_id)
        if conflicts:
            raise ConflictError(
                "This time slot is no longer available",
                details={"appointmentIds": [a.id for a in conflicts]},
            )

    def _after_commit(self, appointment: Appointment, event_kind: str, *days: date) -> None:
        try:
            for day in set(days):
                self.notifier.invalidate(appointment.provider_id, day)
            self.notifier.notify(appointment.id, event_kind)
        except Exception as e:
            logger.error(f"❌ Post-commit notification failed for appointment {appointment.id}: {e}")
