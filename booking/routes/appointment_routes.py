from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from booking.auth.dependencies import get_current_user
from booking.models.user import User
from booking.routes.dependencies import get_scheduling_service, scheduling_errors
from booking.scheduling.lifecycle import MeetingType
from booking.scheduling.profile import REMINDER_CHOICES
from booking.scheduling.service import AppointmentDetails, SchedulingService

router = APIRouter(tags=['appointments'])

MAX_TITLE_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 600
MAX_FEEDBACK_LENGTH = 600
MEETING_TYPES = {meeting_type.value.lower(): meeting_type.value for meeting_type in MeetingType}


def _normalize_moment(value: datetime | None) -> datetime | None:
    # Wall-clock time as sent; zone conversion happens before the request reaches us.
    if value is None:
        return None
    return value.replace(tzinfo=None, second=0, microsecond=0)


def _normalize_text(value: str | None, limit: int, label: str) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if len(normalized) > limit:
        raise ValueError(f'{label} must be {limit} characters or fewer.')
    return normalized


def _normalize_meeting_type(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = MEETING_TYPES.get(value.strip().lower())
    if normalized is None:
        raise ValueError(f'Meeting type must be one of: {", ".join(MEETING_TYPES.values())}.')
    return normalized


class CreateAppointmentRequest(BaseModel):
    recipient_id: int
    start: datetime
    end: datetime
    title: str | None = None
    description: str | None = None
    meeting_type: str | None = None
    location: str | None = None
    reminder_minutes: int | None = None

    @field_validator('start', 'end')
    @classmethod
    def validate_moment(cls, value: datetime) -> datetime:
        return _normalize_moment(value)

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_TITLE_LENGTH, 'Title') or None

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_DESCRIPTION_LENGTH, 'Description')

    @field_validator('meeting_type')
    @classmethod
    def validate_meeting_type(cls, value: str | None) -> str | None:
        return _normalize_meeting_type(value)

    @field_validator('reminder_minutes')
    @classmethod
    def validate_reminder_minutes(cls, value: int | None) -> int | None:
        if value is not None and value not in REMINDER_CHOICES:
            raise ValueError('Invalid reminder time.')
        return value


class UpdateAppointmentRequest(BaseModel):
    status: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    title: str | None = None
    description: str | None = None
    meeting_type: str | None = None
    location: str | None = None
    declined_reason: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower()

    @field_validator('start', 'end')
    @classmethod
    def validate_moment(cls, value: datetime | None) -> datetime | None:
        return _normalize_moment(value)

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_TITLE_LENGTH, 'Title') or None

    @field_validator('description', 'declined_reason')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_DESCRIPTION_LENGTH, 'Text')

    @field_validator('meeting_type')
    @classmethod
    def validate_meeting_type(cls, value: str | None) -> str | None:
        return _normalize_meeting_type(value)


class RatingRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    feedback: str | None = None

    @field_validator('feedback')
    @classmethod
    def validate_feedback(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_FEEDBACK_LENGTH, 'Feedback')


class RatingResponse(BaseModel):
    user_id: int
    rating: int
    feedback: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    creator_id: int
    recipient_id: int
    start_time: datetime
    end_time: datetime
    status: str
    title: str
    description: str | None = None
    meeting_type: str
    location: str | None = None
    declined_reason: str | None = None
    cancelled_reason: str | None = None
    attended_by: list[int] = []
    ratings: list[RatingResponse] = []
    availability_snapshot: dict | None = None
    reminder_minutes: int | None = None

    class Config:
        from_attributes = True


class CancelAppointmentResponse(BaseModel):
    message: str
    appointment: AppointmentResponse


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


@router.get('/availability/{user_id}/slots', response_model=list[SlotResponse])
def list_available_slots(
    user_id: int,
    slot_date: date = Query(..., alias='date'),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        slots = service.get_available_slots(user_id, slot_date)
    return [SlotResponse(start=slot.start, end=slot.end) for slot in slots]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    details = AppointmentDetails(
        title=data.title or 'Appointment',
        description=data.description or '',
        meeting_type=data.meeting_type or MeetingType.VIDEO_CALL.value,
        location=data.location or '',
        reminder_minutes=data.reminder_minutes,
    )
    with scheduling_errors(service.db):
        appointment = service.create_appointment(current_user.id, data.recipient_id, data.start, data.end, details)
        return AppointmentResponse.model_validate(appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        appointments = service.list_appointments(current_user.id)
        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        appointment = service.get_appointment(appointment_id, current_user.id)
        return AppointmentResponse.model_validate(appointment)


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        appointment = service.update_appointment(
            appointment_id,
            current_user.id,
            data.model_dump(exclude_unset=True),
        )
        return AppointmentResponse.model_validate(appointment)


@router.delete('/{appointment_id}', response_model=CancelAppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    reason: str | None = Query(default=None, max_length=MAX_DESCRIPTION_LENGTH),
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        appointment = service.cancel_appointment(appointment_id, current_user.id, reason)
        return CancelAppointmentResponse(
            message='Appointment cancelled.',
            appointment=AppointmentResponse.model_validate(appointment),
        )


@router.post('/{appointment_id}/attendance', response_model=AppointmentResponse)
def record_attendance(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        appointment = service.record_attendance(appointment_id, current_user.id)
        return AppointmentResponse.model_validate(appointment)


@router.post('/{appointment_id}/ratings', response_model=AppointmentResponse)
def rate_appointment(
    appointment_id: int,
    data: RatingRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        appointment = service.rate_appointment(appointment_id, current_user.id, data.rating, data.feedback or '')
        return AppointmentResponse.model_validate(appointment)
