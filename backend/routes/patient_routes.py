import logging
from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_roles
from backend.core import config
from backend.core.schemas import (
    CamelModel,
    Email,
    MessageResponse,
    Pagination,
    Password,
    Phone,
    Username,
    bounded_text,
    build_pagination,
)
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.models.medical_record import MedicalRecord
from backend.models.patient import Patient
from backend.models.user import Role, User
from backend.services.accounts import sync_linked_user
from backend.routes.appointment_routes import AppointmentResponse
from backend.routes.medical_record_routes import MedicalRecordResponse
from backend.services.visibility import resolve_scope

logger = logging.getLogger(__name__)

router = APIRouter(tags=['patients'])

staff_only = require_roles(Role.ADMIN, Role.DOCTOR)

Gender = Literal['Male', 'Female', 'Other']
BloodGroup = Literal['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']
Name = bounded_text(100, required=True)
Address = bounded_text(500, required=True)
EmergencyContact = bounded_text(20)
MedicalHistory = bounded_text(1000)


class PatientResponse(CamelModel):
    id: int
    user_id: int | None = None
    name: str
    email: str
    contact: str
    date_of_birth: date
    age: int | None = None
    gender: str
    address: str
    blood_group: str
    emergency_contact: str | None = None
    medical_history: str | None = None
    is_active: bool
    profile_complete: bool
    created_at: datetime
    updated_at: datetime


class CreatePatientRequest(CamelModel):
    user_id: int | None = None
    name: Name
    email: Email
    contact: Phone
    date_of_birth: date
    gender: Gender
    address: Address
    blood_group: BloodGroup
    emergency_contact: EmergencyContact | None = None
    medical_history: MedicalHistory | None = None
    is_active: bool = True


class UpdatePatientRequest(CamelModel):
    name: Name | None = None
    email: Email | None = None
    contact: Phone | None = None
    date_of_birth: date | None = None
    gender: Gender | None = None
    address: Address | None = None
    blood_group: BloodGroup | None = None
    emergency_contact: EmergencyContact | None = None
    medical_history: MedicalHistory | None = None
    is_active: bool | None = None
    # Account fields, forwarded to the linked user.
    username: Username | None = None
    password: Password | None = None


class PatientListResponse(CamelModel):
    patients: list[PatientResponse]
    pagination: Pagination


ACCOUNT_FIELDS = ('username', 'password')


def get_patient_or_404(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if patient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Patient not found')
    return patient


def ensure_can_access_patient(db: Session, current_user: User, patient_id: int, detail: str) -> None:
    scope = resolve_scope(db, current_user)
    if scope.role is Role.PATIENT and scope.patient_id != patient_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


@router.get('', response_model=PatientListResponse)
def list_patients(
    search: str | None = Query(default=None),
    gender: Gender | None = Query(default=None),
    blood_group: BloodGroup | None = Query(default=None, alias='bloodGroup'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db),
):
    query = db.query(Patient)
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(
            Patient.name.ilike(pattern),
            Patient.email.ilike(pattern),
            Patient.contact.ilike(pattern),
        ))
    if gender:
        query = query.filter(Patient.gender == gender)
    if blood_group:
        query = query.filter(Patient.blood_group == blood_group)

    total = query.count()
    patients = query.order_by(Patient.created_at.desc(), Patient.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return PatientListResponse(
        patients=[PatientResponse.model_validate(patient) for patient in patients],
        pagination=build_pagination(page, limit, total),
    )


@router.get('/{patient_id}', response_model=PatientResponse)
def get_patient(patient_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    patient = get_patient_or_404(db, patient_id)
    ensure_can_access_patient(db, current_user, patient.id, 'Not authorized to view this patient')
    return PatientResponse.model_validate(patient)


@router.post('', response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(data: CreatePatientRequest, current_user: User = Depends(staff_only), db: Session = Depends(get_db)):
    patient = Patient(**data.model_dump(), profile_complete=True)
    db.add(patient)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Patient with this email already exists',
        ) from exc

    db.refresh(patient)
    logger.info('Patient %s created by user %s', patient.id, current_user.id)
    return PatientResponse.model_validate(patient)


@router.put('/{patient_id}', response_model=PatientResponse)
def update_patient(
    patient_id: int,
    data: UpdatePatientRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db),
):
    patient = get_patient_or_404(db, patient_id)
    original_email = patient.email
    original_name = patient.name

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        if field not in ACCOUNT_FIELDS:
            setattr(patient, field, value)
    # An edited placeholder profile now carries real demographics.
    patient.profile_complete = True

    sync_linked_user(db, patient, changes, original_email, original_name)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Patient with this email already exists',
        ) from exc

    db.refresh(patient)
    return PatientResponse.model_validate(patient)


@router.delete('/{patient_id}', response_model=MessageResponse)
def delete_patient(
    patient_id: int,
    current_user: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    patient = get_patient_or_404(db, patient_id)
    db.delete(patient)
    db.commit()
    logger.info('Patient %s deleted by admin %s', patient_id, current_user.id)
    return MessageResponse(message='Patient deleted successfully')


@router.get('/{patient_id}/appointments', response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_access_patient(db, current_user, patient_id, 'Not authorized to view these appointments')
    appointments = db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
    ).order_by(Appointment.date_time.desc()).all()
    return [AppointmentResponse.model_validate(appointment) for appointment in appointments]


@router.get('/{patient_id}/medical-records', response_model=list[MedicalRecordResponse])
def list_patient_medical_records(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_access_patient(db, current_user, patient_id, 'Not authorized to view these medical records')
    records = db.query(MedicalRecord).filter(
        MedicalRecord.patient_id == patient_id,
    ).order_by(MedicalRecord.visit_date.desc()).all()
    return [MedicalRecordResponse.model_validate(record) for record in records]
