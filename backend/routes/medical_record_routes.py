import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_roles
from backend.core import config
from backend.core.schemas import (
    CamelModel,
    MessageResponse,
    Pagination,
    UtcDateTime,
    bounded_text,
    build_pagination,
    to_naive_utc,
)
from backend.database import get_db
from backend.models.doctor import Doctor
from backend.models.medical_record import MedicalRecord
from backend.models.patient import Patient
from backend.models.user import Role, User
from backend.routes.appointment_routes import DoctorSummary, PatientSummary
from backend.services.visibility import ensure_can_view, find_doctor_for_user, resolve_scope, scope_query

logger = logging.getLogger(__name__)

router = APIRouter(tags=['medical-records'])

staff_only = require_roles(Role.ADMIN, Role.DOCTOR)

Severity = Literal['mild', 'moderate', 'severe', 'critical']
Diagnosis = bounded_text(1000, required=True)
Treatment = bounded_text(1000, required=True)
RecordNotes = bounded_text(2000)
FamilyHistory = bounded_text(500)
Symptom = bounded_text(200)


class Prescription(CamelModel):
    medication: bounded_text(200, required=True)
    dosage: str
    frequency: str
    duration: str
    instructions: str | None = None


class MedicalRecordResponse(CamelModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_id: int | None = None
    patient: PatientSummary | None = None
    doctor: DoctorSummary | None = None
    diagnosis: str
    symptoms: list[str]
    prescription: list[dict]
    vital_signs: dict
    notes: str | None = None
    treatment_plan: str | None = None
    follow_up_date: datetime | None = None
    visit_date: datetime
    lab_results: list[dict]
    allergies: list[str]
    current_medications: list[str]
    family_history: str | None = None
    social_history: dict
    severity: str
    is_confidential: bool
    created_at: datetime
    updated_at: datetime


class CreateMedicalRecordRequest(CamelModel):
    patient_id: int
    doctor_id: int
    appointment_id: int | None = None
    diagnosis: Diagnosis
    treatment: Treatment
    symptoms: list[Symptom] = Field(default_factory=list)
    prescription: list[Prescription] = Field(default_factory=list)
    vital_signs: dict = Field(default_factory=dict)
    notes: RecordNotes | None = None
    follow_up_date: UtcDateTime | None = None
    visit_date: UtcDateTime | None = None
    lab_results: list[dict] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    current_medications: list[str] = Field(default_factory=list)
    family_history: FamilyHistory | None = None
    social_history: dict = Field(default_factory=dict)
    severity: Severity = 'mild'
    is_confidential: bool = False


class UpdateMedicalRecordRequest(CamelModel):
    diagnosis: Diagnosis | None = None
    treatment: Treatment | None = None
    symptoms: list[Symptom] | None = None
    prescription: list[Prescription] | None = None
    vital_signs: dict | None = None
    notes: RecordNotes | None = None
    follow_up_date: UtcDateTime | None = None
    visit_date: UtcDateTime | None = None
    lab_results: list[dict] | None = None
    allergies: list[str] | None = None
    current_medications: list[str] | None = None
    family_history: FamilyHistory | None = None
    social_history: dict | None = None
    severity: Severity | None = None
    is_confidential: bool | None = None


class MedicalRecordListResponse(CamelModel):
    medical_records: list[MedicalRecordResponse]
    pagination: Pagination


def get_record_or_404(db: Session, record_id: int) -> MedicalRecord:
    record = db.get(MedicalRecord, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Medical record not found')
    return record


def is_record_owner(db: Session, record: MedicalRecord, user: User) -> bool:
    """A doctor owns a record by doctor id, by the doctor's email, or through the doctor's linked user."""
    doctor = find_doctor_for_user(db, user)
    if doctor is not None and doctor.id == record.doctor_id:
        return True
    record_doctor = record.doctor
    if record_doctor is None:
        return False
    if record_doctor.email and record_doctor.email.lower() == (user.email or '').lower():
        return True
    return record_doctor.user_id is not None and record_doctor.user_id == user.id


def _record_columns(changes: dict) -> dict:
    # The API calls the treatment plan "treatment".
    if 'treatment' in changes:
        changes['treatment_plan'] = changes.pop('treatment')
    return changes


@router.get('', response_model=MedicalRecordListResponse)
def list_medical_records(
    search: str | None = Query(default=None),
    patient: int | None = Query(default=None),
    doctor: int | None = Query(default=None),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = scope_query(db.query(MedicalRecord), MedicalRecord, resolve_scope(db, current_user))

    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(MedicalRecord.diagnosis.ilike(pattern), MedicalRecord.notes.ilike(pattern)))
    if patient is not None:
        query = query.filter(MedicalRecord.patient_id == patient)
    if doctor is not None:
        query = query.filter(MedicalRecord.doctor_id == doctor)
    if start_date is not None:
        query = query.filter(MedicalRecord.created_at >= to_naive_utc(start_date))
    if end_date is not None:
        query = query.filter(MedicalRecord.created_at <= to_naive_utc(end_date))

    total = query.count()
    records = query.order_by(MedicalRecord.created_at.desc(), MedicalRecord.id.desc()).offset(
        (page - 1) * limit
    ).limit(limit).all()

    return MedicalRecordListResponse(
        medical_records=[MedicalRecordResponse.model_validate(record) for record in records],
        pagination=build_pagination(page, limit, total),
    )


@router.get('/patient/{patient_id}', response_model=list[MedicalRecordResponse])
def records_for_patient(patient_id: int, current_user: User = Depends(staff_only), db: Session = Depends(get_db)):
    records = db.query(MedicalRecord).filter(
        MedicalRecord.patient_id == patient_id,
    ).order_by(MedicalRecord.visit_date.desc()).all()
    return [MedicalRecordResponse.model_validate(record) for record in records]


@router.get('/doctor/{doctor_id}', response_model=list[MedicalRecordResponse])
def records_for_doctor(doctor_id: int, current_user: User = Depends(staff_only), db: Session = Depends(get_db)):
    records = db.query(MedicalRecord).filter(
        MedicalRecord.doctor_id == doctor_id,
    ).order_by(MedicalRecord.visit_date.desc()).all()
    return [MedicalRecordResponse.model_validate(record) for record in records]


@router.get('/{record_id}', response_model=MedicalRecordResponse)
def get_medical_record(record_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    record = get_record_or_404(db, record_id)
    ensure_can_view(
        resolve_scope(db, current_user),
        record.patient_id,
        record.doctor_id,
        'Not authorized to view this medical record',
    )
    return MedicalRecordResponse.model_validate(record)


@router.post('', response_model=MedicalRecordResponse, status_code=status.HTTP_201_CREATED)
def create_medical_record(
    data: CreateMedicalRecordRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db),
):
    if db.get(Patient, data.patient_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Patient not found')
    if db.get(Doctor, data.doctor_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Doctor not found')

    values = _record_columns(data.model_dump(exclude_none=True))
    record = MedicalRecord(**values)
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info('Medical record %s created for patient %s by user %s', record.id, record.patient_id, current_user.id)

    return MedicalRecordResponse.model_validate(record)


@router.put('/{record_id}', response_model=MedicalRecordResponse)
def update_medical_record(
    record_id: int,
    data: UpdateMedicalRecordRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db),
):
    record = get_record_or_404(db, record_id)

    for field, value in _record_columns(data.model_dump(exclude_unset=True, exclude_none=True)).items():
        setattr(record, field, value)

    db.commit()
    db.refresh(record)
    return MedicalRecordResponse.model_validate(record)


@router.delete('/{record_id}', response_model=MessageResponse)
def delete_medical_record(
    record_id: int,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db),
):
    record = get_record_or_404(db, record_id)

    if Role(current_user.role) is Role.DOCTOR and not is_record_owner(db, record, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Not authorized to delete this medical record',
        )

    db.delete(record)
    db.commit()
    return MessageResponse(message='Medical record deleted successfully')
