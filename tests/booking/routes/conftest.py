import pytest
from fastapi.testclient import TestClient

from booking.auth.jwt_handler import create_access_token
from booking.database import get_db
from booking.main import app
from booking.routes.dependencies import get_scheduling_service


@pytest.fixture
def client(db, service):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduling_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_as(users):
    def _headers(name: str) -> dict[str, str]:
        token = create_access_token(f'{name}@example.edu')
        return {'Authorization': f'Bearer {token}'}

    return _headers
