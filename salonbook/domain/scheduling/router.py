"""Scheduling router - FastAPI endpoints for availability, bookings and schedules"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.orm import Session

from ...cache import build_availability_key, cache
from ...config import AVAILABILITY_CACHE_TTL
from ...database import get_db
from ...errors import AuthorizationError
from ...models import Appointment
from .availability_service import AvailabilityCalculator
from .booking_service import BookingService, ClientInfo
from .lifecycle import allowed_actions
from .schedule_service import ScheduleService
from .schemas import (
    AddServiceRequest,
    AppointmentCreate,
    AppointmentResponse,
    AppointmentServiceResponse,
    AvailabilityResponse,
    ExtensionCheckResponse,
    ProviderNotesUpdate,
    RescheduleRequest,
    SpecialHoursResponse,
    SpecialHoursUpdate,
    TransitionRequest,
    WorkingHoursResponse,
    WorkingHoursUpdate,
)
from .time_calculator import format_time

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scheduling"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


def get_availability_calculator(db: Session = Depends(get_db)) -> AvailabilityCalculator:
    return AvailabilityCalculator(db)


def get_acting_provider(x_provider_id: Optional[int] = Header(None)) -> int:
    """Provider on whose behalf a management request is made; required on every management route"""
    if x_provider_id is None:
        raise AuthorizationError("X-Provider-Id header is required to manage a schedule")
    return x_provider_id


def to_appointment_response(appointment: Appointment, service: BookingService) -> AppointmentResponse:
    derived = service.derived_state(appointment)
    return AppointmentResponse(
        id=appointment.id,
        providerId=appointment.provider_id,
        date=appointment.date,
        startTime=format_time(appointment.start_time),
        endTime=format_time(appointment.end_time),
        timezone=appointment.timezone,
        status=appointment.status.value,
        derivedState=derived.value if derived else None,
        allowedActions=[a.value for a in allowed_actions(appointment.status)],
        clientId=appointment.client_id,
        clientName=appointment.client_name,
        clientPhone=appointment.client_phone,
        clientEmail=appointment.client_email,
        clientNotes=appointment.client_notes,
        providerNotes=appointment.provider_notes,
        totalPriceCents=appointment.total_price_cents,
        currency=appointment.currency,
        overlapAllowed=appointment.overlap_allowed,
        services=[
            AppointmentServiceResponse(
                id=line.id,
                serviceId=line.service_id,
                serviceName=line.service_name,
                durationMinutes=line.duration_minutes,
                priceCents=line.price_cents,
                currency=line.currency,
                position=line.position,
                resolution=line.resolution.value,
            )
            for line in appointment.services
        ],
        cancelledAt=appointment.cancelled_at,
        createdAt=appointment.created_at,
    )


# ============================================================================
# PROVIDER SCHEDULE & AVAILABILITY
# ============================================================================


@router.get("/providers/{provider_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    provider_id: int,
    day: date = Query(..., alias="date"),
    duration_minutes: int = Query(..., alias="durationMinutes", gt=0),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
):
    """Slot grid for a date. Advisory only: booking re-validates every slot."""
    cache_key = build_availability_key(provider_id, day.isoformat(), duration_minutes)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    result = calculator.get_available_slots(provider_id, day, duration_minutes).to_dict()
    cache.set(cache_key, result, ttl=AVAILABILITY_CACHE_TTL)
    return result


@router.get("/providers/{provider_id}/appointments", response_model=list[AppointmentResponse])
async def list_appointments(
    provider_id: int,
    day: date = Query(..., alias="date"),
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    """All appointments of a provider on a date, cancelled ones included"""
    service.authorize(provider_id, actor)
    return [to_appointment_response(a, service) for a in service.list_appointments(provider_id, day)]


@router.put("/providers/{provider_id}/working-hours", response_model=list[WorkingHoursResponse])
async def replace_working_hours(
    provider_id: int,
    data: WorkingHoursUpdate,
    actor: int = Depends(get_acting_provider),
    service: ScheduleService = Depends(get_schedule_service),
):
    rows = [
        {
            "weekday": d.weekday,
            "is_open": d.isOpen,
            "open_time": d.openTime if d.isOpen else None,
            "close_time": d.closeTime if d.isOpen else None,
        }
        for d in data.days
    ]
    created = service.replace_working_hours(provider_id, rows, actor_provider_id=actor)
    return [
        WorkingHoursResponse(
            weekday=h.weekday,
            isOpen=h.is_open,
            openTime=format_time(h.open_time) if h.open_time else None,
            closeTime=format_time(h.close_time) if h.close_time else None,
        )
        for h in created
    ]


@router.put("/providers/{provider_id}/special-hours/{day}", response_model=SpecialHoursResponse)
async def upsert_special_hours(
    provider_id: int,
    day: date,
    data: SpecialHoursUpdate,
    actor: int = Depends(get_acting_provider),
    service: ScheduleService = Depends(get_schedule_service),
):
    special = service.upsert_special_hours(
        provider_id,
        day,
        is_open=data.isOpen,
        open_time=data.openTime,
        close_time=data.closeTime,
        label=data.label,
        actor_provider_id=actor,
    )
    return SpecialHoursResponse(
        date=special.date,
        isOpen=special.is_open,
        openTime=format_time(special.open_time) if special.open_time else None,
        closeTime=format_time(special.close_time) if special.close_time else None,
        label=special.label,
    )


@router.delete("/providers/{provider_id}/special-hours/{day}", status_code=204)
async def delete_special_hours(
    provider_id: int,
    day: date,
    actor: int = Depends(get_acting_provider),
    service: ScheduleService = Depends(get_schedule_service),
):
    service.delete_special_hours(provider_id, day, actor_provider_id=actor)
    return Response(status_code=204)


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Book an appointment; the slot is re-checked against committed bookings"""
    logger.info(f"📥 Booking request for provider {data.providerId} on {data.date} {data.startTime}")
    appointment = service.book(
        data.providerId,
        data.serviceIds,
        data.date,
        data.startTime,
        ClientInfo(
            name=data.client.name,
            phone=data.client.phone,
            email=data.client.email,
            client_id=data.client.clientId,
            notes=data.client.notes,
        ),
    )
    return to_appointment_response(appointment, service)


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.get_appointment(appointment_id)
    service.authorize(appointment.provider_id, actor)
    return to_appointment_response(appointment, service)


@router.get("/appointments/{appointment_id}/extension-check", response_model=ExtensionCheckResponse)
async def check_extension(
    appointment_id: int,
    service_id: int = Query(..., alias="serviceId"),
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    """Preview whether adding a service runs into the next appointment"""
    outcome = service.preview_extension(appointment_id, service_id, actor_provider_id=actor)
    return outcome.to_dict()


@router.post("/appointments/{appointment_id}/services", response_model=AppointmentResponse)
async def add_service(
    appointment_id: int,
    data: AddServiceRequest,
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.add_service(
        appointment_id, data.serviceId, resolution=data.resolution, actor_provider_id=actor
    )
    return to_appointment_response(appointment, service)


@router.delete(
    "/appointments/{appointment_id}/services/{appointment_service_id}",
    response_model=AppointmentResponse,
)
async def remove_service(
    appointment_id: int,
    appointment_service_id: int,
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.remove_service(
        appointment_id, appointment_service_id, actor_provider_id=actor
    )
    return to_appointment_response(appointment, service)


@router.post("/appointments/{appointment_id}/transition", response_model=AppointmentResponse)
async def transition_appointment(
    appointment_id: int,
    data: TransitionRequest,
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.transition(
        appointment_id,
        data.action,
        reason=data.reason,
        actor_provider_id=actor,
        changed_by=str(actor),
    )
    return to_appointment_response(appointment, service)


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.reschedule(
        appointment_id,
        data.date,
        data.startTime,
        actor_provider_id=actor,
        changed_by=str(actor),
        reason=data.reason,
    )
    return to_appointment_response(appointment, service)


@router.put("/appointments/{appointment_id}/notes", response_model=AppointmentResponse)
async def update_provider_notes(
    appointment_id: int,
    data: ProviderNotesUpdate,
    actor: int = Depends(get_acting_provider),
    service: BookingService = Depends(get_booking_service),
):
    """Provider's private notes; an empty string clears them"""
    appointment = service.update_provider_notes(appointment_id, data.notes, actor_provider_id=actor)
    return to_appointment_response(appointment, service)
