"""Keep login accounts consistent with the patient/doctor profiles they own."""

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.auth.passwords import hash_password
from backend.models.appointment import Appointment
from backend.models.doctor import Doctor
from backend.models.medical_record import MedicalRecord
from backend.models.patient import Patient
from backend.models.user import User

logger = logging.getLogger(__name__)


def username_from_name(name: str) -> str:
    return '_'.join(name.lower().split())[:30]


def sync_linked_user(
    db: Session,
    profile: Patient | Doctor,
    changes: dict,
    original_email: str,
    original_name: str,
) -> User | None:
    """Push email/username/password edits made on a profile to its user.

    Does not commit; the caller owns the transaction.
    """
    if profile.user_id is None:
        return None
    user = db.get(User, profile.user_id)
    if user is None:
        return None

    new_email = changes.get('email')
    if new_email and new_email != original_email:
        user.email = new_email

    new_name = changes.get('name')
    if new_name and new_name != original_name and user.username == original_email.split('@')[0]:
        # Only rename accounts still carrying the auto-generated username.
        user.username = username_from_name(new_name)

    if changes.get('username'):
        user.username = changes['username']
    if changes.get('password'):
        user.hashed_password = hash_password(changes['password'])

    user.is_active = True
    logger.info('Synced user %s from %s profile %s', user.id, type(profile).__name__.lower(), profile.id)
    return user


def linked_profiles(db: Session, user: User) -> tuple[Patient | None, Doctor | None]:
    patient = db.query(Patient).filter(Patient.user_id == user.id).first()
    doctor = db.query(Doctor).filter(Doctor.user_id == user.id).first()
    return patient, doctor


def count_associated_data(db: Session, patient: Patient | None, doctor: Doctor | None) -> tuple[int, int]:
    conditions_appointments = []
    conditions_records = []
    if patient is not None:
        conditions_appointments.append(Appointment.patient_id == patient.id)
        conditions_records.append(MedicalRecord.patient_id == patient.id)
    if doctor is not None:
        conditions_appointments.append(Appointment.doctor_id == doctor.id)
        conditions_records.append(MedicalRecord.doctor_id == doctor.id)
    if not conditions_appointments:
        return 0, 0

    appointments = db.query(Appointment).filter(or_(*conditions_appointments)).count()
    records = db.query(MedicalRecord).filter(or_(*conditions_records)).count()
    return appointments, records
