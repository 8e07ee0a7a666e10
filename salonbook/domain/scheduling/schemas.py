"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import normalize_phone, sanitize_string, validate_email
from .enums import AppointmentAction, ExtensionResolution


class SlotResponse(BaseModel):
    start: str
    end: str
    available: bool
    blockedReason: Optional[str] = None


class AvailabilityResponse(BaseModel):
    isWorkingDay: bool
    slots: list[SlotResponse]


class ClientPayload(BaseModel):
    """Client details snapshotted onto the appointment"""

    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    clientId: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return normalize_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        if v:
            return validate_email(v)
        return v

    @field_validator("name", "notes")
    @classmethod
    def strip_text(cls, v):
        return sanitize_string(v, max_length=2000)


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment"""

    providerId: int
    serviceIds: list[int] = Field(..., min_length=1)
    date: date
    startTime: time
    client: ClientPayload


class AddServiceRequest(BaseModel):
    serviceId: int
    resolution: Optional[ExtensionResolution] = None


class TransitionRequest(BaseModel):
    action: AppointmentAction
    reason: Optional[str] = Field(None, max_length=500)


class RescheduleRequest(BaseModel):
    date: date
    startTime: time
    reason: Optional[str] = Field(None, max_length=500)


class ProviderNotesUpdate(BaseModel):
    notes: str = Field(..., max_length=2000)


class AppointmentServiceResponse(BaseModel):
    id: int
    serviceId: Optional[int] = None
    serviceName: str
    durationMinutes: int
    priceCents: int
    currency: str
    position: int
    resolution: str

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    providerId: int
    date: date
    startTime: str
    endTime: str
    timezone: str
    status: str
    derivedState: Optional[str] = None
    allowedActions: list[str] = []
    clientId: Optional[str] = None
    clientName: str
    clientPhone: Optional[str] = None
    clientEmail: Optional[str] = None
    clientNotes: Optional[str] = None
    providerNotes: Optional[str] = None
    totalPriceCents: int
    currency: str
    overlapAllowed: bool
    services: list[AppointmentServiceResponse] = []
    cancelledAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExtensionCheckResponse(BaseModel):
    outcome: str
    extendedEnd: str
    following: Optional[dict] = None
    overlapMinutes: Optional[int] = None


class WorkingHoursDay(BaseModel):
    weekday: int = Field(..., ge=0, le=6)
    isOpen: bool
    openTime: Optional[time] = None
    closeTime: Optional[time] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.isOpen and (self.openTime is None or self.closeTime is None):
            raise ValueError("openTime and closeTime are required for an open day")
        return self


class WorkingHoursUpdate(BaseModel):
    days: list[WorkingHoursDay] = Field(..., max_length=7)


class WorkingHoursResponse(BaseModel):
    weekday: int
    isOpen: bool
    openTime: Optional[str] = None
    closeTime: Optional[str] = None


class SpecialHoursUpdate(BaseModel):
    isOpen: bool
    openTime: Optional[time] = None
    closeTime: Optional[time] = None
    label: Optional[str] = Field(None, max_length=255)


class SpecialHoursResponse(BaseModel):
    date: date
    isOpen: bool
    openTime: Optional[str] = None
    closeTime: Optional[str] = None
    label: Optional[str] = None
