"""
Pytest Configuration and Fixtures

Shared fixtures for the OncoTrack API tests. Every test gets a fresh
in-memory database and a Flask test client.
"""
import pytest
from unittest.mock import MagicMock

from oncotrack_pkg import create_app, db

PASSWORD = "correct-horse-battery"


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register_and_login(client, email, role='patient', full_name=None):
    """Registers a user and returns (user_dict, auth_headers)."""
    response = client.post('/api/auth/register', json={
        "email": email,
        "password": PASSWORD,
        "full_name": full_name or email.split('@')[0].title(),
        "role": role,
    })
    assert response.status_code == 201, response.get_json()

    response = client.post('/api/auth/login', json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.get_json()
    body = response.get_json()
    return body["user"], {"Authorization": f"Bearer {body['access_token']}"}


@pytest.fixture
def patient(client):
    return register_and_login(client, "ana@example.org", role='patient')


@pytest.fixture
def other_patient(client):
    return register_and_login(client, "bruno@example.org", role='patient')


@pytest.fixture
def doctor(client):
    return register_and_login(client, "dra.carla@example.org", role='doctor')


@pytest.fixture
def linked_doctor(client, patient, doctor):
    """A doctor the patient has granted access to."""
    _, patient_headers = patient
    doctor_user, _ = doctor
    response = client.post('/api/access/doctors', json={"doctor_id": doctor_user["id"]}, headers=patient_headers)
    assert response.status_code == 201
    return doctor


def partner_response(status_code=200, payload=None, text=None):
    """Stand-in for a requests.Response returned by the partner API."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text if text is not None else str(payload)
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response
