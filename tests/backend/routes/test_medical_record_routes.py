import pytest

from backend.models.medical_record import MedicalRecord
from backend.models.user import Role
from backend.routes.medical_record_routes import is_record_owner
from conftest import auth_headers, make_doctor, make_patient, make_record, make_user


@pytest.fixture
def records(db):
    jane = make_patient(db, name='Jane Doe', email='jane@example.com')
    john = make_patient(db, name='John Roe', email='john@example.com')
    house = make_doctor(db, name='Dr. House', email='house@example.com')
    wilson = make_doctor(db, name='Dr. Wilson', email='wilson@example.com')
    return {
        'jane': jane,
        'john': john,
        'house': house,
        'wilson': wilson,
        'jane_flu': make_record(db, jane, house, diagnosis='Seasonal flu', notes='Rest and fluids'),
        'john_sprain': make_record(db, john, wilson, diagnosis='Ankle sprain'),
    }


def test_list_medical_records_for_patient_is_scoped(client, patient_user, records) -> None:
    response = client.get('/api/medical-records', headers=auth_headers(patient_user))

    assert response.status_code == 200
    body = response.json()
    assert [item['id'] for item in body['medicalRecords']] == [records['jane_flu'].id]
    assert body['medicalRecords'][0]['patient']['name'] == 'Jane Doe'
    assert body['pagination'] == {'current': 1, 'pages': 1, 'total': 1}


def test_list_medical_records_for_unknown_patient_is_empty(client, db, records) -> None:
    stranger = make_user(db, Role.PATIENT, username='stranger', email='stranger@example.com')

    body = client.get('/api/medical-records', headers=auth_headers(stranger)).json()

    assert body == {'medicalRecords': [], 'pagination': {'current': 1, 'pages': 0, 'total': 0}}


def test_list_medical_records_doctor_filter_cannot_widen_scope(client, doctor_user, records) -> None:
    response = client.get(
        '/api/medical-records',
        params={'doctor': records['wilson'].id},
        headers=auth_headers(doctor_user),
    )

    assert response.json()['medicalRecords'] == []


def test_list_medical_records_search_matches_diagnosis_and_notes(client, admin, records) -> None:
    headers = auth_headers(admin)

    by_diagnosis = client.get('/api/medical-records', params={'search': 'sprain'}, headers=headers).json()
    by_notes = client.get('/api/medical-records', params={'search': 'fluids'}, headers=headers).json()

    assert [item['id'] for item in by_diagnosis['medicalRecords']] == [records['john_sprain'].id]
    assert [item['id'] for item in by_notes['medicalRecords']] == [records['jane_flu'].id]


def test_get_medical_record_returns_403_for_non_owner(client, patient_user, records) -> None:
    response = client.get(f"/api/medical-records/{records['john_sprain'].id}", headers=auth_headers(patient_user))

    assert response.status_code == 403
    assert response.json() == {'message': 'Not authorized to view this medical record'}


def test_get_medical_record_returns_404_when_missing(client, admin) -> None:
    response = client.get('/api/medical-records/999', headers=auth_headers(admin))

    assert response.status_code == 404
    assert response.json() == {'message': 'Medical record not found'}


def test_get_medical_record_for_owning_doctor(client, doctor_user, records) -> None:
    response = client.get(f"/api/medical-records/{records['jane_flu'].id}", headers=auth_headers(doctor_user))

    assert response.status_code == 200
    assert response.json()['diagnosis'] == 'Seasonal flu'


def test_create_medical_record_maps_treatment_to_plan(client, doctor_user, records) -> None:
    response = client.post(
        '/api/medical-records',
        json={
            'patientId': records['john'].id,
            'doctorId': records['house'].id,
            'diagnosis': 'Migraine',
            'treatment': 'Dark room, hydration',
            'symptoms': ['headache', 'photophobia'],
            'prescription': [
                {'medication': 'Ibuprofen', 'dosage': '400mg', 'frequency': 'twice daily', 'duration': '5 days'},
            ],
            'severity': 'moderate',
        },
        headers=auth_headers(doctor_user),
    )

    assert response.status_code == 201
    body = response.json()
    assert body['treatmentPlan'] == 'Dark room, hydration'
    assert body['symptoms'] == ['headache', 'photophobia']
    assert body['prescription'][0]['medication'] == 'Ibuprofen'
    assert body['severity'] == 'moderate'
    assert body['doctor']['specialization'] == 'Diagnostics'


@pytest.mark.parametrize(
    ('field', 'message'),
    [('patientId', 'Patient not found'), ('doctorId', 'Doctor not found')],
)
def test_create_medical_record_rejects_unknown_references(client, admin, records, field: str, message: str) -> None:
    body = {
        'patientId': records['jane'].id,
        'doctorId': records['house'].id,
        'diagnosis': 'Migraine',
        'treatment': 'Rest',
    }
    body[field] = 999

    response = client.post('/api/medical-records', json=body, headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json() == {'message': message}


def test_create_medical_record_is_forbidden_for_patients(client, patient_user, records) -> None:
    response = client.post(
        '/api/medical-records',
        json={'patientId': records['jane'].id, 'doctorId': records['house'].id, 'diagnosis': 'x', 'treatment': 'y'},
        headers=auth_headers(patient_user),
    )

    assert response.status_code == 403


def test_update_medical_record_by_any_doctor(client, doctor_user, records) -> None:
    response = client.put(
        f"/api/medical-records/{records['john_sprain'].id}",
        json={'treatment': 'Ice and elevation', 'severity': 'mild'},
        headers=auth_headers(doctor_user),
    )

    assert response.status_code == 200
    assert response.json()['treatmentPlan'] == 'Ice and elevation'


def test_delete_medical_record_by_non_owner_doctor_is_forbidden(client, db, doctor_user, records) -> None:
    response = client.delete(f"/api/medical-records/{records['john_sprain'].id}", headers=auth_headers(doctor_user))

    assert response.status_code == 403
    assert response.json() == {'message': 'Not authorized to delete this medical record'}
    db.expire_all()
    assert db.get(MedicalRecord, records['john_sprain'].id) is not None


def test_delete_medical_record_by_owner_doctor(client, db, doctor_user, records) -> None:
    response = client.delete(f"/api/medical-records/{records['jane_flu'].id}", headers=auth_headers(doctor_user))

    assert response.status_code == 200
    assert response.json() == {'message': 'Medical record deleted successfully'}


def test_delete_medical_record_by_admin(client, admin, records) -> None:
    response = client.delete(f"/api/medical-records/{records['john_sprain'].id}", headers=auth_headers(admin))

    assert response.status_code == 200


def test_is_record_owner_matches_linked_user(db, records) -> None:
    # The account email differs from the doctor's, so only the user link identifies ownership.
    user = make_user(db, Role.DOCTOR, username='wilson', email='jw@example.com')
    records['wilson'].user_id = user.id
    db.commit()

    assert is_record_owner(db, records['john_sprain'], user)
    assert not is_record_owner(db, records['jane_flu'], user)


def test_records_for_patient_and_doctor(client, admin, records) -> None:
    headers = auth_headers(admin)

    for_patient = client.get(f"/api/medical-records/patient/{records['jane'].id}", headers=headers).json()
    for_doctor = client.get(f"/api/medical-records/doctor/{records['wilson'].id}", headers=headers).json()

    assert [item['id'] for item in for_patient] == [records['jane_flu'].id]
    assert [item['id'] for item in for_doctor] == [records['john_sprain'].id]
