from datetime import datetime

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from booking.routes.appointment_routes import CreateAppointmentRequest, UpdateAppointmentRequest

BOB_PROFILE = {
    'working_days': [1, 2, 3, 4, 5],
    'start_time': '09:00',
    'end_time': '17:00',
    'slot_duration_minutes': 30,
    'buffer_minutes': 15,
    'max_per_day': 2,
    'break_windows': [{'start': '12:00', 'end': '13:00'}],
}


@pytest.fixture
def bob_profile(client, auth_as):
    response = client.put('/availability/me', json=BOB_PROFILE, headers=auth_as('bob'))
    assert response.status_code == 200
    return response.json()


def _book(client, auth_as, recipient_id: int, start: str, end: str, creator: str = 'alice', **fields):
    payload = {'recipient_id': recipient_id, 'start': start, 'end': end, **fields}
    return client.post('/appointments', json=payload, headers=auth_as(creator))


def test_create_appointment_request_normalizes_fields() -> None:
    request = CreateAppointmentRequest(
        recipient_id=2,
        start='2026-01-05T10:00:45+02:00',
        end='2026-01-05T10:30:00Z',
        title='   ',
        meeting_type=' phone CALL ',
    )

    assert request.start == datetime(2026, 1, 5, 10, 0)
    assert request.end == datetime(2026, 1, 5, 10, 30)
    assert request.title is None
    assert request.meeting_type == 'Phone Call'


@pytest.mark.parametrize(
    'overrides',
    [
        {'meeting_type': 'Carrier pigeon'},
        {'reminder_minutes': 45},
        {'title': 'x' * 121},
    ],
)
def test_create_appointment_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(
            recipient_id=2,
            start=datetime(2026, 1, 5, 10, 0),
            end=datetime(2026, 1, 5, 10, 30),
            **overrides,
        )


def test_update_appointment_request_lowercases_status() -> None:
    assert UpdateAppointmentRequest(status=' Confirmed ').status == 'confirmed'


def test_create_appointment_returns_created(client, auth_as, users, bob_profile) -> None:
    response = _book(
        client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00',
        title='Advising', meeting_type='in person',
    )

    assert response.status_code == 201
    body = response.json()
    assert body['creator_id'] == users.alice
    assert body['recipient_id'] == users.bob
    assert body['status'] == 'pending'
    assert body['meeting_type'] == 'In Person'
    assert body['start_time'] == '2026-01-05T10:00:00'
    assert body['availability_snapshot']['max_per_day'] == 2


def test_create_appointment_requires_token(client, users) -> None:
    response = client.post(
        '/appointments',
        json={'recipient_id': users.bob, 'start': '2026-01-05T10:00:00', 'end': '2026-01-05T10:30:00'},
    )

    assert response.status_code in (401, 403)


def test_create_appointment_rejects_bad_token(client, users) -> None:
    response = client.post(
        '/appointments',
        json={'recipient_id': users.bob, 'start': '2026-01-05T10:00:00', 'end': '2026-01-05T10:30:00'},
        headers={'Authorization': 'Bearer not-a-token'},
    )

    assert response.status_code == 401


@pytest.mark.parametrize(
    ('start', 'end', 'reason'),
    [
        ('2026-01-10T10:00:00', '2026-01-10T10:30:00', 'DayNotAvailable'),
        ('2026-01-05T12:00:00', '2026-01-05T12:30:00', 'InBreakWindow'),
        ('2026-01-05T10:00:00', '2026-01-05T10:05:00', 'TooShort'),
    ],
)
def test_create_appointment_reports_slot_violation(
    client, auth_as, users, bob_profile, start: str, end: str, reason: str
) -> None:
    response = _book(client, auth_as, users.bob, start, end)

    assert response.status_code == 400
    assert response.json()['detail']['reason'] == reason


def test_create_appointment_reports_double_booking(client, auth_as, users, bob_profile) -> None:
    first = _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00', creator='carol')

    response = _book(client, auth_as, users.bob, '2026-01-05T10:15:00', '2026-01-05T10:45:00')

    assert response.status_code == 409
    detail = response.json()['detail']
    assert detail['reason'] == 'DoubleBooking'
    assert detail['appointment_id'] == first.json()['id']
    assert detail['start'] == '2026-01-05T10:00:00'


def test_create_appointment_reports_capacity(client, auth_as, users, bob_profile) -> None:
    _book(client, auth_as, users.bob, '2026-01-05T09:00:00', '2026-01-05T09:30:00', creator='carol')
    _book(client, auth_as, users.bob, '2026-01-05T14:00:00', '2026-01-05T14:30:00', creator='dave')

    response = _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00')

    assert response.status_code == 409
    assert response.json()['detail'] == {
        'reason': 'CapacityExceeded',
        'message': 'The recipient already has 2 of 2 appointments that day.',
        'party': 'recipient',
        'current': 2,
        'max': 2,
    }


def test_create_appointment_unknown_recipient(client, auth_as, users) -> None:
    response = _book(client, auth_as, 999, '2026-01-05T10:00:00', '2026-01-05T10:30:00')

    assert response.status_code == 404
    assert response.json()['detail']['reason'] == 'UserNotFound'


def test_create_appointment_with_invalid_meeting_type(client, auth_as, users) -> None:
    response = _book(
        client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00', meeting_type='Smoke signal'
    )

    assert response.status_code == 422


def test_database_failure_maps_to_service_unavailable(client, auth_as, users, service, monkeypatch) -> None:
    def broken(*args, **kwargs):
        raise SQLAlchemyError('connection lost')

    monkeypatch.setattr(service, 'create_appointment', broken)

    response = _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00')

    assert response.status_code == 503
    assert response.json()['detail'] == 'Database unavailable. Verify DATABASE_URL and database credentials.'


def test_recipient_confirms_through_patch(client, auth_as, users, bob_profile) -> None:
    created = _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00').json()

    invalid = client.patch(f'/appointments/{created["id"]}', json={'status': 'completed'}, headers=auth_as('bob'))
    confirmed = client.patch(f'/appointments/{created["id"]}', json={'status': 'Confirmed'}, headers=auth_as('bob'))

    assert invalid.status_code == 400
    assert invalid.json()['detail']['reason'] == 'InvalidTransition'
    assert invalid.json()['detail']['allowed'] == ['cancelled', 'confirmed', 'declined']
    assert confirmed.status_code == 200
    assert confirmed.json()['status'] == 'confirmed'


def test_outsider_cannot_patch_or_read(client, auth_as, users, bob_profile) -> None:
    created = _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00').json()

    patched = client.patch(f'/appointments/{created["id"]}', json={'status': 'confirmed'}, headers=auth_as('carol'))
    fetched = client.get(f'/appointments/{created["id"]}', headers=auth_as('carol'))

    assert patched.status_code == 403
    assert patched.json()['detail']['reason'] == 'NotAParticipant'
    assert fetched.status_code == 403


def test_get_missing_appointment(client, auth_as, users) -> None:
    response = client.get('/appointments/999', headers=auth_as('alice'))

    assert response.status_code == 404
    assert response.json()['detail']['reason'] == 'AppointmentNotFound'


def test_only_creator_can_cancel(client, auth_as, users, bob_profile) -> None:
    created = _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00').json()

    by_recipient = client.delete(f'/appointments/{created["id"]}', headers=auth_as('bob'))
    by_creator = client.delete(
        f'/appointments/{created["id"]}', params={'reason': 'Exam moved'}, headers=auth_as('alice')
    )
    again = client.delete(f'/appointments/{created["id"]}', headers=auth_as('alice'))

    assert by_recipient.status_code == 403
    assert by_recipient.json()['detail']['reason'] == 'NotCreator'
    assert by_creator.status_code == 200
    assert by_creator.json()['message'] == 'Appointment cancelled.'
    assert by_creator.json()['appointment']['status'] == 'cancelled'
    assert by_creator.json()['appointment']['cancelled_reason'] == 'Exam moved'
    assert again.status_code == 400


def test_cancel_without_enough_notice(client, auth_as, users, clock) -> None:
    client.put('/availability/me', json={'cancel_notice_hours': 24}, headers=auth_as('bob'))
    clock.now = datetime(2026, 1, 5, 6, 0)
    created = _book(client, auth_as, users.bob, '2026-01-05T16:00:00', '2026-01-05T16:30:00').json()

    response = client.delete(f'/appointments/{created["id"]}', headers=auth_as('alice'))

    assert response.status_code == 400
    detail = response.json()['detail']
    assert detail['reason'] == 'InsufficientCancelNotice'
    assert detail['required_minutes'] == 1440
    assert detail['actual_minutes'] == 600


def test_list_appointments_for_current_user(client, auth_as, users, bob_profile) -> None:
    _book(client, auth_as, users.bob, '2026-01-05T14:00:00', '2026-01-05T14:30:00')
    _book(client, auth_as, users.alice, '2026-01-05T09:00:00', '2026-01-05T09:30:00', creator='bob')
    _book(client, auth_as, users.dave, '2026-01-05T11:00:00', '2026-01-05T11:30:00', creator='carol')

    response = client.get('/appointments', headers=auth_as('alice'))

    assert response.status_code == 200
    assert [item['start_time'] for item in response.json()] == ['2026-01-05T09:00:00', '2026-01-05T14:00:00']


def test_available_slots_skip_buffer_after_booking(client, auth_as, users, bob_profile) -> None:
    _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00', creator='carol')

    response = client.get(f'/appointments/availability/{users.bob}/slots', params={'date': '2026-01-05'})

    assert response.status_code == 200
    starts = [slot['start'] for slot in response.json()]
    assert '2026-01-05T09:30:00' in starts
    assert '2026-01-05T10:30:00' not in starts
    assert '2026-01-05T11:00:00' in starts
    assert '2026-01-05T12:00:00' not in starts


def test_attendance_and_rating_after_completion(client, auth_as, users, clock, bob_profile) -> None:
    created = _book(client, auth_as, users.bob, '2026-01-05T10:00:00', '2026-01-05T10:30:00').json()
    path = f'/appointments/{created["id"]}'

    too_early = client.post(f'{path}/ratings', json={'rating': 5}, headers=auth_as('alice'))
    attended = client.post(f'{path}/attendance', headers=auth_as('alice'))
    clock.now = datetime(2026, 1, 5, 11, 0)
    out_of_range = client.post(f'{path}/ratings', json={'rating': 0}, headers=auth_as('alice'))
    rated = client.post(f'{path}/ratings', json={'rating': 4, 'feedback': ' Helpful '}, headers=auth_as('alice'))

    assert too_early.status_code == 400
    assert too_early.json()['detail']['reason'] == 'RatingNotAllowed'
    assert attended.json()['attended_by'] == [users.alice]
    assert out_of_range.status_code == 422
    assert rated.status_code == 200
    assert rated.json()['status'] == 'completed'
    assert [(entry['user_id'], entry['rating'], entry['feedback']) for entry in rated.json()['ratings']] == [
        (users.alice, 4, 'Helpful')
    ]
