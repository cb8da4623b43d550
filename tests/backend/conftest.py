import os
from datetime import date, datetime

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')

from fastapi.testclient import TestClient  # noqa: E402

from backend.auth.jwt_handler import create_access_token  # noqa: E402
from backend.auth.passwords import hash_password  # noqa: E402
from backend.database import Database  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from backend.models.doctor import Doctor  # noqa: E402
from backend.models.medical_record import MedicalRecord  # noqa: E402
from backend.models.patient import Patient  # noqa: E402
from backend.models.user import Role, User  # noqa: E402

DEFAULT_PASSWORD = 'secret123'


@pytest.fixture
def database():
    database = Database('sqlite://')
    database.connect()
    try:
        yield database
    finally:
        database.disconnect()


@pytest.fixture
def db(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(database):
    previous = app.state.database
    app.state.database = database
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.state.database = previous


def make_user(db, role: Role = Role.PATIENT, username: str = 'user', email: str | None = None, **fields) -> User:
    user = User(
        username=username,
        email=email or f'{username}@example.com',
        hashed_password=hash_password(fields.pop('password', DEFAULT_PASSWORD)),
        role=role,
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_patient(db, name: str = 'Jane Doe', email: str = 'jane@example.com', **fields) -> Patient:
    values = {
        'contact': '5550100',
        'date_of_birth': date(1985, 6, 15),
        'gender': 'Female',
        'address': '12 Elm Street',
        'blood_group': 'A+',
    }
    values.update(fields)
    patient = Patient(name=name, email=email, **values)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


def make_doctor(db, name: str = 'Dr. House', email: str = 'house@example.com', **fields) -> Doctor:
    values = {
        'specialization': 'Diagnostics',
        'contact': '5550199',
        'license_number': f'LIC-{email}',
        'experience': 12,
        'education': [{'degree': 'MD', 'institution': 'Hopkins', 'year': 2001}],
        'consultation_fee': 150.0,
        'address': '1 Hospital Way',
    }
    values.update(fields)
    doctor = Doctor(name=name, email=email, **values)
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


def make_appointment(
    db,
    patient: Patient,
    doctor: Doctor,
    date_time: datetime,
    duration: int = 30,
    status: AppointmentStatus = AppointmentStatus.BOOKED,
    **fields,
) -> Appointment:
    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        date_time=date_time,
        duration=duration,
        status=status,
        reason=fields.pop('reason', 'Checkup'),
        **fields,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def make_record(db, patient: Patient, doctor: Doctor, diagnosis: str = 'Seasonal flu', **fields) -> MedicalRecord:
    record = MedicalRecord(patient_id=patient.id, doctor_id=doctor.id, diagnosis=diagnosis, **fields)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def auth_headers(user: User) -> dict:
    return {'Authorization': f'Bearer {create_access_token(str(user.id))}'}


@pytest.fixture
def admin(db) -> User:
    return make_user(db, Role.ADMIN, username='admin')


@pytest.fixture
def doctor_user(db) -> User:
    return make_user(db, Role.DOCTOR, username='house', email='house@example.com')


@pytest.fixture
def patient_user(db) -> User:
    return make_user(db, Role.PATIENT, username='jane', email='jane@example.com')
