"""Find or provision the Patient profile behind a patient-role account."""

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.errors import ProfileProvisioningError
from backend.models.patient import Patient
from backend.models.user import User

logger = logging.getLogger(__name__)

# Placeholder demographics for profiles created at first booking. Such
# profiles carry profile_complete=False until someone edits them.
PLACEHOLDER_CONTACT = '9999922222'
PLACEHOLDER_DATE_OF_BIRTH = date(1990, 1, 1)
PLACEHOLDER_GENDER = 'Other'
PLACEHOLDER_ADDRESS = 'Address not provided'
PLACEHOLDER_BLOOD_GROUP = 'O+'


def _display_name(user: User) -> str:
    if user.username:
        return user.username
    local_part = (user.email or '').split('@')[0]
    return local_part or 'Patient'


def _link(db: Session, patient: Patient, user: User) -> Patient:
    if patient.user_id is not None and patient.user_id != user.id:
        raise ProfileProvisioningError(f'Patient {patient.id} with email {patient.email} belongs to another account')
    patient.user_id = user.id
    db.commit()
    db.refresh(patient)
    logger.info('Linked legacy patient %s to user %s', patient.id, user.id)
    return patient


def ensure_patient_profile(db: Session, user: User) -> Patient:
    email = (user.email or '').lower()

    patient = db.query(Patient).filter(Patient.user_id == user.id).first()
    if patient is not None:
        return patient

    # Legacy profiles created before accounts existed are claimed by email.
    patient = db.query(Patient).filter(Patient.email == email).first()
    if patient is not None:
        return _link(db, patient, user)

    patient = Patient(
        user_id=user.id,
        name=_display_name(user),
        email=email,
        contact=PLACEHOLDER_CONTACT,
        date_of_birth=PLACEHOLDER_DATE_OF_BIRTH,
        gender=PLACEHOLDER_GENDER,
        address=PLACEHOLDER_ADDRESS,
        blood_group=PLACEHOLDER_BLOOD_GROUP,
        is_active=True,
        profile_complete=False,
    )
    db.add(patient)
    try:
        db.commit()
    except IntegrityError as exc:
        # Another request created the profile between our lookup and insert.
        db.rollback()
        existing = db.query(Patient).filter(Patient.email == email).first()
        if existing is None:
            existing = db.query(Patient).filter(Patient.user_id == user.id).first()
        if existing is None:
            raise ProfileProvisioningError('Duplicate patient record but none found on re-query') from exc
        if existing.user_id == user.id:
            return existing
        return _link(db, existing, user)

    db.refresh(patient)
    logger.info('Provisioned incomplete patient profile %s for user %s', patient.id, user.id)
    return patient
