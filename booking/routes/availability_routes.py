from datetime import time

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator

from booking.auth.dependencies import get_current_user
from booking.models.user import User
from booking.routes.dependencies import get_scheduling_service, scheduling_errors
from booking.scheduling.profile import (
    AvailabilityProfile,
    AvailabilityStatus,
    describe_cancel_notice,
    describe_lead_time,
)
from booking.scheduling.service import SchedulingService

router = APIRouter(tags=['availability'])


class BreakWindowModel(BaseModel):
    start: time
    end: time


class UpdateAvailabilityRequest(BaseModel):
    working_days: list[int] | None = None
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = None
    buffer_minutes: int | None = None
    max_per_day: int | None = None
    break_windows: list[BreakWindowModel] | None = None
    min_lead_time_hours: float | None = None
    cancel_notice_hours: float | None = None
    min_duration_minutes: int | None = None
    max_duration_minutes: int | None = None
    default_reminder_minutes: int | None = None

    @field_validator('working_days')
    @classmethod
    def validate_working_days(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return None

        if any(day < 0 or day > 6 for day in value):
            raise ValueError('Working days must be between 0 (Sunday) and 6 (Saturday).')

        return sorted(set(value))


class UpdateAvailabilityStatusRequest(BaseModel):
    status: AvailabilityStatus


class AvailabilityResponse(BaseModel):
    user_id: int
    working_days: list[int]
    start_time: str
    end_time: str
    slot_duration_minutes: int
    buffer_minutes: int
    max_per_day: int
    break_windows: list[dict[str, str]]
    min_lead_time_hours: float
    cancel_notice_hours: float
    min_duration_minutes: int
    max_duration_minutes: int
    default_reminder_minutes: int
    status: str
    lead_time_message: str
    cancel_notice_message: str


def build_availability_response(user_id: int, profile: AvailabilityProfile) -> AvailabilityResponse:
    return AvailabilityResponse(
        user_id=user_id,
        lead_time_message=describe_lead_time(profile.min_lead_time_hours),
        cancel_notice_message=describe_cancel_notice(profile.cancel_notice_hours),
        **profile.to_dict(),
    )


@router.get('/{user_id}', response_model=AvailabilityResponse)
def get_availability(
    user_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        profile = service.get_profile(user_id)
    return build_availability_response(user_id, profile)


@router.put('/me', response_model=AvailabilityResponse)
def update_my_availability(
    data: UpdateAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    changes = data.model_dump(exclude_unset=True)
    with scheduling_errors(service.db):
        profile = service.update_profile(current_user.id, changes)
    return build_availability_response(current_user.id, profile)


@router.put('/me/status', response_model=AvailabilityResponse)
def update_my_availability_status(
    data: UpdateAvailabilityStatusRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    with scheduling_errors(service.db):
        profile = service.set_availability_status(current_user.id, data.status.value)
    return build_availability_response(current_user.id, profile)
