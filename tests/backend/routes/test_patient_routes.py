from datetime import datetime

import pytest

from backend.models.patient import Patient
from backend.models.user import Role, User
from backend.services.patient_profiles import ensure_patient_profile
from conftest import auth_headers, make_appointment, make_doctor, make_patient, make_record, make_user


def _patient_body(**fields) -> dict:
    body = {
        'name': 'John Roe',
        'email': 'john@example.com',
        'contact': '+15550123',
        'dateOfBirth': '1979-03-02',
        'gender': 'Male',
        'address': '44 Oak Avenue',
        'bloodGroup': 'B-',
    }
    body.update(fields)
    return body


def test_list_patients_is_staff_only(client, patient_user) -> None:
    response = client.get('/api/patients', headers=auth_headers(patient_user))

    assert response.status_code == 403


def test_list_patients_searches_name_and_email(client, db, doctor_user) -> None:
    make_patient(db, name='Jane Doe', email='jane@example.com')
    make_patient(db, name='John Roe', email='john@example.com', blood_group='B-')

    by_name = client.get('/api/patients', params={'search': 'roe'}, headers=auth_headers(doctor_user)).json()
    by_group = client.get('/api/patients', params={'bloodGroup': 'A+'}, headers=auth_headers(doctor_user)).json()

    assert [patient['name'] for patient in by_name['patients']] == ['John Roe']
    assert [patient['name'] for patient in by_group['patients']] == ['Jane Doe']


def test_create_patient(client, admin) -> None:
    response = client.post('/api/patients', json=_patient_body(), headers=auth_headers(admin))

    assert response.status_code == 201
    body = response.json()
    assert body['bloodGroup'] == 'B-'
    assert body['profileComplete'] is True
    assert body['age'] >= 45


def test_create_patient_rejects_duplicate_email(client, db, admin) -> None:
    make_patient(db, email='john@example.com')

    response = client.post('/api/patients', json=_patient_body(), headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json() == {'message': 'Patient with this email already exists'}


@pytest.mark.parametrize(
    ('field', 'value'),
    [('contact', 'abc'), ('gender', 'Unknown'), ('bloodGroup', 'C+'), ('name', '  ')],
)
def test_create_patient_validates_fields(client, admin, field: str, value: str) -> None:
    response = client.post('/api/patients', json=_patient_body(**{field: value}), headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()['errors'][0]['field'] == field


def test_patient_can_view_own_profile_only(client, db, patient_user) -> None:
    own = make_patient(db, user_id=patient_user.id)
    other = make_patient(db, name='John Roe', email='john@example.com')
    headers = auth_headers(patient_user)

    assert client.get(f'/api/patients/{own.id}', headers=headers).status_code == 200
    forbidden = client.get(f'/api/patients/{other.id}', headers=headers)
    assert forbidden.status_code == 403
    assert forbidden.json() == {'message': 'Not authorized to view this patient'}


def test_update_completes_provisioned_profile_and_syncs_user(client, db, admin, patient_user) -> None:
    patient = ensure_patient_profile(db, patient_user)
    assert patient.profile_complete is False

    response = client.put(
        f'/api/patients/{patient.id}',
        json={'email': 'jane.doe@example.com', 'contact': '5550177', 'address': '9 Pine Road'},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert response.json()['profileComplete'] is True
    db.expire_all()
    assert db.get(User, patient_user.id).email == 'jane.doe@example.com'


def test_delete_patient_requires_admin(client, db, doctor_user) -> None:
    patient = make_patient(db)

    response = client.delete(f'/api/patients/{patient.id}', headers=auth_headers(doctor_user))

    assert response.status_code == 403
    db.expire_all()
    assert db.get(Patient, patient.id) is not None


def test_patient_appointments_and_records_are_owner_only(client, db, patient_user) -> None:
    own = make_patient(db, user_id=patient_user.id)
    other = make_patient(db, name='John Roe', email='john@example.com')
    doctor = make_doctor(db)
    make_appointment(db, own, doctor, datetime(2024, 1, 10, 9, 0))
    make_record(db, own, doctor)
    headers = auth_headers(patient_user)

    appointments = client.get(f'/api/patients/{own.id}/appointments', headers=headers)
    records = client.get(f'/api/patients/{own.id}/medical-records', headers=headers)
    forbidden = client.get(f'/api/patients/{other.id}/appointments', headers=headers)

    assert len(appointments.json()) == 1
    assert appointments.json()[0]['doctor']['name'] == 'Dr. House'
    assert len(records.json()) == 1
    assert forbidden.status_code == 403


def test_staff_can_list_any_patient_appointments(client, db) -> None:
    admin = make_user(db, Role.ADMIN, username='admin')
    patient = make_patient(db)
    make_appointment(db, patient, make_doctor(db), datetime(2024, 1, 10, 9, 0))

    response = client.get(f'/api/patients/{patient.id}/appointments', headers=auth_headers(admin))

    assert len(response.json()) == 1
