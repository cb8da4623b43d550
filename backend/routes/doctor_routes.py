import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
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
from backend.models.doctor import Doctor, parse_clock
from backend.models.user import Role, User
from backend.routes.appointment_routes import AppointmentResponse
from backend.services.accounts import sync_linked_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=['doctors'])

admin_only = require_roles(Role.ADMIN)
staff_only = require_roles(Role.ADMIN, Role.DOCTOR)

CLOCK_PATTERN = r'^([01]?[0-9]|2[0-3]):[0-5][0-9]$'
DUPLICATE_DOCTOR_MESSAGE = 'Doctor with this email or license number already exists'

Weekday = Literal['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
Name = bounded_text(100, required=True)
Specialization = bounded_text(100, required=True)
LicenseNumber = bounded_text(50, required=True)
Address = bounded_text(500, required=True)
Education = list | dict | str


class ScheduleEntry(CamelModel):
    day: Weekday
    from_: str = Field(alias='from', pattern=CLOCK_PATTERN)
    to: str = Field(pattern=CLOCK_PATTERN)
    is_available: bool = True


class DoctorResponse(CamelModel):
    id: int
    user_id: int | None = None
    name: str
    specialization: str
    contact: str
    email: str
    license_number: str
    experience: int | None = None
    education: Education
    schedule: list[ScheduleEntry]
    consultation_fee: float | None = None
    address: str
    is_available: bool
    rating: float
    total_ratings: int
    created_at: datetime
    updated_at: datetime


class CreateDoctorRequest(CamelModel):
    user_id: int | None = None
    name: Name
    specialization: Specialization
    contact: Phone
    email: Email
    license_number: LicenseNumber
    experience: int = Field(ge=0, le=50)
    education: Education
    schedule: list[ScheduleEntry] = Field(default_factory=list)
    consultation_fee: float = Field(ge=0)
    address: Address
    is_available: bool = True


class UpdateDoctorRequest(CamelModel):
    name: Name | None = None
    specialization: Specialization | None = None
    contact: Phone | None = None
    email: Email | None = None
    license_number: LicenseNumber | None = None
    experience: int | None = Field(default=None, ge=0, le=50)
    education: Education | None = None
    schedule: list[ScheduleEntry] | None = None
    consultation_fee: float | None = Field(default=None, ge=0)
    address: Address | None = None
    is_available: bool | None = None
    # Account fields, forwarded to the linked user.
    username: Username | None = None
    password: Password | None = None


class DoctorListResponse(CamelModel):
    doctors: list[DoctorResponse]
    pagination: Pagination


class AvailabilityResponse(CamelModel):
    doctor_id: int
    day: Weekday
    time: str
    available: bool


ACCOUNT_FIELDS = ('username', 'password')


def get_doctor_or_404(db: Session, doctor_id: int) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if doctor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')
    return doctor


def ensure_unique_doctor(db: Session, email: str | None, license_number: str | None, exclude_id: int | None = None):
    conditions = []
    if email:
        conditions.append(Doctor.email == email)
    if license_number:
        conditions.append(Doctor.license_number == license_number)
    if not conditions:
        return

    query = db.query(Doctor).filter(or_(*conditions))
    if exclude_id is not None:
        query = query.filter(Doctor.id != exclude_id)
    if query.first() is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_DOCTOR_MESSAGE)


def _schedule_json(entries: list[ScheduleEntry]) -> list[dict]:
    return [entry.model_dump(by_alias=True) for entry in entries]


@router.get('', response_model=DoctorListResponse)
def list_doctors(
    search: str | None = Query(default=None),
    specialization: str | None = Query(default=None),
    min_experience: int | None = Query(default=None, alias='minExperience', ge=0),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Doctor)
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(
            Doctor.name.ilike(pattern),
            Doctor.specialization.ilike(pattern),
            Doctor.email.ilike(pattern),
        ))
    if specialization:
        query = query.filter(Doctor.specialization == specialization)
    if min_experience is not None:
        query = query.filter(Doctor.experience >= min_experience)

    total = query.count()
    doctors = query.order_by(Doctor.created_at.desc(), Doctor.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return DoctorListResponse(
        doctors=[DoctorResponse.model_validate(doctor) for doctor in doctors],
        pagination=build_pagination(page, limit, total),
    )


@router.get('/specializations', response_model=list[str])
def list_specializations(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = db.query(Doctor.specialization).distinct().order_by(Doctor.specialization).all()
    return [specialization for (specialization,) in rows]


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return DoctorResponse.model_validate(get_doctor_or_404(db, doctor_id))


@router.post('', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(data: CreateDoctorRequest, current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    ensure_unique_doctor(db, data.email, data.license_number)

    values = data.model_dump(exclude={'schedule'})
    doctor = Doctor(**values, schedule=_schedule_json(data.schedule))
    db.add(doctor)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_DOCTOR_MESSAGE) from exc

    db.refresh(doctor)
    logger.info('Doctor %s created by admin %s', doctor.id, current_user.id)
    return DoctorResponse.model_validate(doctor)


@router.put('/{doctor_id}', response_model=DoctorResponse)
def update_doctor(
    doctor_id: int,
    data: UpdateDoctorRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    doctor = get_doctor_or_404(db, doctor_id)
    ensure_unique_doctor(db, data.email, data.license_number, exclude_id=doctor.id)
    original_email = doctor.email
    original_name = doctor.name

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if data.schedule is not None:
        changes['schedule'] = _schedule_json(data.schedule)
    for field, value in changes.items():
        if field not in ACCOUNT_FIELDS:
            setattr(doctor, field, value)

    sync_linked_user(db, doctor, changes, original_email, original_name)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_DOCTOR_MESSAGE) from exc

    db.refresh(doctor)
    return DoctorResponse.model_validate(doctor)


@router.delete('/{doctor_id}', response_model=MessageResponse)
def delete_doctor(doctor_id: int, current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    doctor = get_doctor_or_404(db, doctor_id)
    db.delete(doctor)
    db.commit()
    return MessageResponse(message='Doctor deleted successfully')


@router.get('/{doctor_id}/appointments', response_model=list[AppointmentResponse])
def list_doctor_appointments(doctor_id: int, current_user: User = Depends(staff_only), db: Session = Depends(get_db)):
    get_doctor_or_404(db, doctor_id)
    appointments = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
    ).order_by(Appointment.date_time.desc()).all()
    return [AppointmentResponse.model_validate(appointment) for appointment in appointments]


@router.get('/{doctor_id}/availability', response_model=AvailabilityResponse)
def doctor_availability(
    doctor_id: int,
    day: Weekday = Query(),
    time: str = Query(pattern=CLOCK_PATTERN),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Schedule lookup for display. Booking does not consult the weekly schedule."""
    doctor = get_doctor_or_404(db, doctor_id)
    return AvailabilityResponse(
        doctor_id=doctor.id,
        day=day,
        time=time,
        available=doctor.is_available and doctor.is_available_at(day, parse_clock(time)),
    )
