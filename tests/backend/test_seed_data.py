from datetime import time

from backend.auth.passwords import verify_password
from backend.models.appointment import Appointment
from backend.models.doctor import Doctor
from backend.models.medical_record import MedicalRecord
from backend.models.patient import Patient
from backend.models.user import User
from backend.seed_data import seed
from conftest import make_patient


def test_seed_creates_linked_demo_data(db) -> None:
    seed(db)

    users = {user.email: user for user in db.query(User).all()}
    patient = db.query(Patient).one()
    doctor = db.query(Doctor).one()

    assert set(users) == {'admin@hospital.com', 'doctor1@hospital.com', 'patient1@hospital.com'}
    assert verify_password('doctor123', users['doctor1@hospital.com'].hashed_password)
    assert patient.user_id == users['patient1@hospital.com'].id
    assert doctor.user_id == users['doctor1@hospital.com'].id
    assert doctor.is_available_at('monday', time(10, 0))
    assert db.query(Appointment).count() == 2
    assert db.query(MedicalRecord).one().diagnosis == 'Hypertension'


def test_seed_is_idempotent(db) -> None:
    seed(db)
    seed(db)

    assert db.query(User).count() == 3
    assert db.query(Patient).count() == 1
    assert db.query(Doctor).count() == 1
    assert db.query(Appointment).count() == 2
    assert db.query(MedicalRecord).count() == 1


def test_seed_keeps_existing_patient_profile(db) -> None:
    existing = make_patient(db, name='Existing Patient', email='patient1@hospital.com')

    seed(db)

    assert db.query(Patient).one().id == existing.id
