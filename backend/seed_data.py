"""Seed the database with demo accounts, profiles, appointments and a record.

Usage:
    python -m backend.seed_data

Safe to run repeatedly; rows that already exist are left alone.
"""
import logging
from datetime import date, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.auth.passwords import hash_password
from backend.core import config
from backend.database import create_database
from backend.models.appointment import Appointment, AppointmentType
from backend.models.doctor import Doctor
from backend.models.medical_record import MedicalRecord
from backend.models.patient import Patient
from backend.models.user import Role, User, utcnow

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {'username': 'admin', 'email': 'admin@hospital.com', 'password': 'admin123', 'role': Role.ADMIN},
    {'username': 'doctor1', 'email': 'doctor1@hospital.com', 'password': 'doctor123', 'role': Role.DOCTOR},
    {'username': 'patient1', 'email': 'patient1@hospital.com', 'password': 'patient123', 'role': Role.PATIENT},
]

WEEKDAY_SCHEDULE = [
    {'day': day, 'from': '09:00', 'to': '17:00', 'isAvailable': True}
    for day in ('monday', 'tuesday', 'wednesday', 'thursday', 'friday')
]


def create_users(db: Session) -> None:
    for account in DEMO_USERS:
        if db.query(User).filter(User.email == account['email']).first() is not None:
            logger.info('User %s already exists', account['email'])
            continue
        db.add(User(
            username=account['username'],
            email=account['email'],
            hashed_password=hash_password(account['password']),
            role=account['role'],
        ))
        logger.info('Created user %s (%s)', account['email'], account['role'].value)
    db.commit()


def create_patients(db: Session) -> None:
    for user in db.query(User).filter(User.role == Role.PATIENT).all():
        existing = db.query(Patient).filter(or_(Patient.user_id == user.id, Patient.email == user.email)).first()
        if existing is not None:
            continue
        db.add(Patient(
            user_id=user.id,
            name=user.username,
            email=user.email,
            contact='+918837384122',
            date_of_birth=date(1990, 1, 1),
            gender='Other',
            address='123 Main Street, City, Anakapalle 12345',
            blood_group='O+',
            emergency_contact='+999999229399',
            medical_history='No significant medical history',
        ))
        logger.info('Created patient profile for %s', user.email)
    db.commit()


def create_doctors(db: Session) -> None:
    for user in db.query(User).filter(User.role == Role.DOCTOR).all():
        existing = db.query(Doctor).filter(or_(Doctor.user_id == user.id, Doctor.email == user.email)).first()
        if existing is not None:
            continue
        db.add(Doctor(
            user_id=user.id,
            name=f'Dr. {user.username}',
            email=user.email,
            contact='+15550000002',
            specialization='General Medicine',
            license_number=f'MD{user.id:06d}',
            experience=5,
            education=[{'degree': 'MD', 'institution': 'Medical School'}],
            address='456 Hospital Drive, City, State 12345',
            consultation_fee=8000,
            schedule=WEEKDAY_SCHEDULE,
        ))
        logger.info('Created doctor profile for %s', user.email)
    db.commit()


def _demo_pair(db: Session) -> tuple[Patient | None, Doctor | None]:
    patient = db.query(Patient).filter(Patient.email == 'patient1@hospital.com').first()
    doctor = db.query(Doctor).filter(Doctor.email == 'doctor1@hospital.com').first()
    return patient, doctor


def create_sample_appointments(db: Session) -> None:
    patient, doctor = _demo_pair(db)
    if patient is None or doctor is None:
        logger.warning('Skipping sample appointments: demo patient or doctor missing')
        return
    if db.query(Appointment).count() > 0:
        return

    tomorrow = (utcnow() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)
    db.add_all([
        Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            date_time=tomorrow,
            duration=30,
            type=AppointmentType.CONSULTATION,
            reason='Regular checkup',
            notes='Patient requested routine examination',
            amount=8000,
        ),
        Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            date_time=tomorrow + timedelta(days=6),
            duration=45,
            type=AppointmentType.FOLLOW_UP,
            reason='Follow-up appointment',
            notes='Follow-up from previous consultation',
            amount=8000,
        ),
    ])
    db.commit()
    logger.info('Created 2 sample appointments')


def create_sample_medical_records(db: Session) -> None:
    patient, doctor = _demo_pair(db)
    if patient is None or doctor is None:
        logger.warning('Skipping sample medical records: demo patient or doctor missing')
        return
    if db.query(MedicalRecord).count() > 0:
        return

    db.add(MedicalRecord(
        patient_id=patient.id,
        doctor_id=doctor.id,
        diagnosis='Hypertension',
        symptoms=['High blood pressure', 'Headaches', 'Dizziness'],
        treatment_plan='Lifestyle modifications and medication',
        notes='Stage 1 hypertension. Recommend dietary changes and regular monitoring.',
        vital_signs={
            'bloodPressure': {'systolic': 140, 'diastolic': 90},
            'heartRate': 75,
            'temperature': 98.6,
            'weight': 70,
            'height': 170,
        },
        severity='moderate',
        allergies=['Penicillin'],
        current_medications=['Lisinopril 10mg'],
        family_history='Father had heart disease',
        social_history={'smoking': False, 'alcohol': False, 'occupation': 'Office worker', 'lifestyle': 'Sedentary'},
        follow_up_date=utcnow() + timedelta(days=30),
    ))
    db.commit()
    logger.info('Created 1 sample medical record')


def seed(db: Session) -> None:
    create_users(db)
    create_patients(db)
    create_doctors(db)
    create_sample_appointments(db)
    create_sample_medical_records(db)


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    database = create_database()
    database.connect()
    db = database.session()
    try:
        seed(db)
    finally:
        db.close()
        database.disconnect()


if __name__ == "__main__":
    main()
