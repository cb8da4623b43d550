import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
from sqlalchemy import or_
from sqlalchemy.orm import Query as OrmQuery, Session

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
from backend.models.appointment import (
    DEFAULT_DURATION_MINUTES,
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    Appointment,
    AppointmentStatus,
    AppointmentType,
    CancelledBy,
    PaymentStatus,
)
from backend.models.doctor import Doctor
from backend.models.patient import Patient
from backend.models.user import Role, User, utcnow
from backend.services.patient_profiles import ensure_patient_profile
from backend.services.scheduling import ensure_no_conflict, lock_doctor
from backend.services.visibility import Scope, ensure_can_view, resolve_scope, scope_query

logger = logging.getLogger(__name__)

router = APIRouter(tags=['appointments'])

staff_only = require_roles(Role.ADMIN, Role.DOCTOR)

UPCOMING_LIMIT = 10

Reason = bounded_text(500, required=True)
Notes = bounded_text(1000)
CancellationReason = bounded_text(500)


class PatientSummary(CamelModel):
    id: int
    name: str
    contact: str
    email: str


class DoctorSummary(CamelModel):
    id: int
    name: str
    specialization: str
    contact: str


class AppointmentResponse(CamelModel):
    id: int
    patient_id: int
    doctor_id: int
    patient: PatientSummary | None = None
    doctor: DoctorSummary | None = None
    date_time: datetime
    duration: int
    end_time: datetime
    status: AppointmentStatus
    type: AppointmentType
    reason: str
    notes: str | None = None
    reminder_sent: bool
    reminder_sent_at: datetime | None = None
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = None
    payment_status: PaymentStatus
    amount: float | None = None
    created_at: datetime
    updated_at: datetime


class CreateAppointmentRequest(CamelModel):
    # Required for admins and doctors; patients always book for themselves.
    patient: int | None = None
    doctor: int
    date_time: UtcDateTime
    duration: int = Field(default=DEFAULT_DURATION_MINUTES, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    type: AppointmentType = AppointmentType.CONSULTATION
    reason: Reason
    notes: Notes | None = None
    amount: float | None = Field(default=None, ge=0)
    status: AppointmentStatus = AppointmentStatus.BOOKED


class UpdateAppointmentRequest(CamelModel):
    patient: int | None = None
    doctor: int | None = None
    date_time: UtcDateTime | None = None
    duration: int | None = Field(default=None, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    type: AppointmentType | None = None
    reason: Reason | None = None
    notes: Notes | None = None
    amount: float | None = Field(default=None, ge=0)
    status: AppointmentStatus | None = None
    payment_status: PaymentStatus | None = None
    cancelled_by: CancelledBy | None = None
    cancellation_reason: CancellationReason | None = None


class UpdateStatusRequest(CamelModel):
    status: AppointmentStatus
    notes: Notes | None = None
    cancelled_by: CancelledBy | None = None
    cancellation_reason: CancellationReason | None = None


class AppointmentListResponse(CamelModel):
    appointments: list[AppointmentResponse]
    pagination: Pagination


class AppointmentStatsResponse(CamelModel):
    total_patients: int
    total_doctors: int
    total_appointments: int
    today_appointments: int
    upcoming_appointments: int
    completed_appointments: int


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Appointment not found')
    return appointment


def get_doctor_for_booking(db: Session, doctor_id: int) -> Doctor:
    doctor = lock_doctor(db, doctor_id)
    if doctor is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Doctor not found')
    return doctor


def get_patient_for_booking(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if patient is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Patient not found')
    return patient


def scoped_appointments(db: Session, scope: Scope) -> OrmQuery:
    return scope_query(db.query(Appointment), Appointment, scope)


def directory_counts(db: Session, scope: Scope) -> tuple[int, int]:
    """Patient and doctor totals as the caller's role is allowed to see them."""
    if scope.role is Role.ADMIN:
        return db.query(Patient).count(), db.query(Doctor).count()
    if scope.role is Role.DOCTOR:
        if scope.doctor_id is None:
            return 0, 0
        return db.query(Patient).count(), 1
    if scope.role is Role.PATIENT:
        return (1 if scope.patient_id is not None else 0), db.query(Doctor).count()
    raise ValueError(f'Unhandled role: {scope.role!r}')


@router.get('', response_model=AppointmentListResponse)
def list_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    doctor_id: int | None = Query(default=None, alias='doctorId'),
    patient_id: int | None = Query(default=None, alias='patientId'),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = scoped_appointments(db, resolve_scope(db, current_user))

    # Explicit filters narrow the scoped query; they can never widen it.
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(Appointment.reason.ilike(pattern), Appointment.notes.ilike(pattern)))
    if status_filter is not None:
        query = query.filter(Appointment.status == status_filter)
    if start_date is not None:
        query = query.filter(Appointment.date_time >= to_naive_utc(start_date))
    if end_date is not None:
        query = query.filter(Appointment.date_time <= to_naive_utc(end_date))
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)

    total = query.count()
    appointments = query.order_by(Appointment.date_time.desc(), Appointment.id.desc()).offset(
        (page - 1) * limit
    ).limit(limit).all()

    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
        pagination=build_pagination(page, limit, total),
    )


@router.get('/stats', response_model=AppointmentStatsResponse)
def appointment_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    scope = resolve_scope(db, current_user)
    now = utcnow()
    start_of_day, end_of_day = day_bounds(now)
    total_patients, total_doctors = directory_counts(db, scope)

    appointments = scoped_appointments(db, scope)
    today = appointments.filter(Appointment.date_time >= start_of_day, Appointment.date_time < end_of_day)

    return AppointmentStatsResponse(
        total_patients=total_patients,
        total_doctors=total_doctors,
        total_appointments=appointments.count(),
        today_appointments=today.filter(Appointment.status != AppointmentStatus.CANCELLED).count(),
        upcoming_appointments=appointments.filter(
            Appointment.date_time >= now,
            Appointment.status.not_in((AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED)),
        ).count(),
        completed_appointments=today.filter(Appointment.status == AppointmentStatus.COMPLETED).count(),
    )


@router.get('/upcoming', response_model=list[AppointmentResponse])
def upcoming_appointments(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    appointments = scoped_appointments(db, resolve_scope(db, current_user)).filter(
        Appointment.date_time >= utcnow(),
        Appointment.status.not_in((AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED)),
    ).order_by(Appointment.date_time.asc()).limit(UPCOMING_LIMIT).all()
    return [AppointmentResponse.model_validate(appointment) for appointment in appointments]


@router.get('/today', response_model=list[AppointmentResponse])
def today_appointments(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    start_of_day, end_of_day = day_bounds(utcnow())
    appointments = scoped_appointments(db, resolve_scope(db, current_user)).filter(
        Appointment.date_time >= start_of_day,
        Appointment.date_time < end_of_day,
    ).order_by(Appointment.date_time.asc()).all()
    return [AppointmentResponse.model_validate(appointment) for appointment in appointments]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    appointment = get_appointment_or_404(db, appointment_id)
    ensure_can_view(
        resolve_scope(db, current_user),
        appointment.patient_id,
        appointment.doctor_id,
        'Not authorized to view this appointment',
    )
    return AppointmentResponse.model_validate(appointment)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    role = Role(current_user.role)
    if role is Role.PATIENT:
        patient = ensure_patient_profile(db, current_user)
    elif role in (Role.ADMIN, Role.DOCTOR):
        if data.patient is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Patient ID is required')
        patient = get_patient_for_booking(db, data.patient)
    else:
        raise ValueError(f'Unhandled role: {role!r}')

    doctor = get_doctor_for_booking(db, data.doctor)
    ensure_no_conflict(db, doctor.id, data.date_time, data.duration)

    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        **data.model_dump(exclude={'patient', 'doctor'}),
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    logger.info(
        'Booked appointment %s for patient %s with doctor %s at %s',
        appointment.id, patient.id, doctor.id, appointment.date_time.isoformat(),
    )

    return AppointmentResponse.model_validate(appointment)


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db),
):
    appointment = get_appointment_or_404(db, appointment_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    if 'patient' in changes:
        appointment.patient_id = get_patient_for_booking(db, changes.pop('patient')).id

    # Only a new time or a new doctor re-runs the overlap check.
    doctor_id = changes.pop('doctor', appointment.doctor_id)
    reschedule = doctor_id != appointment.doctor_id or (
        'date_time' in changes and changes['date_time'] != appointment.date_time
    )
    if reschedule:
        appointment.doctor_id = get_doctor_for_booking(db, doctor_id).id

    for field, value in changes.items():
        setattr(appointment, field, value)

    if reschedule:
        ensure_no_conflict(
            db,
            appointment.doctor_id,
            appointment.date_time,
            appointment.duration,
            exclude_appointment_id=appointment.id,
        )

    db.commit()
    db.refresh(appointment)
    return AppointmentResponse.model_validate(appointment)


@router.put('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db),
):
    appointment = get_appointment_or_404(db, appointment_id)
    previous = appointment.status

    appointment.status = data.status
    if data.notes:
        appointment.notes = data.notes
    if data.cancelled_by is not None:
        appointment.cancelled_by = data.cancelled_by
    if data.cancellation_reason:
        appointment.cancellation_reason = data.cancellation_reason

    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s status %s -> %s by user %s', appointment.id, previous.value, data.status.value, current_user.id)

    return AppointmentResponse.model_validate(appointment)


@router.delete('/{appointment_id}', response_model=MessageResponse)
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    appointment = get_appointment_or_404(db, appointment_id)

    scope = resolve_scope(db, current_user)
    if scope.role is Role.PATIENT and (scope.patient_id is None or scope.patient_id != appointment.patient_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Not authorized to delete this appointment')

    db.delete(appointment)
    db.commit()
    return MessageResponse(message='Appointment deleted successfully')
