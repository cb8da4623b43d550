"""Appointment model definitions."""

import enum
from datetime import datetime, timedelta

from sqlalchemy import Boolean, Column, DateTime, Enum, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.user import enum_values, utcnow

DEFAULT_DURATION_MINUTES = 30
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 120


class AppointmentStatus(str, enum.Enum):
    BOOKED = 'booked'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in-progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no-show'


# Statuses that free the doctor's slot.
INACTIVE_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW)


class AppointmentType(str, enum.Enum):
    CONSULTATION = 'consultation'
    FOLLOW_UP = 'follow-up'
    EMERGENCY = 'emergency'
    ROUTINE_CHECKUP = 'routine-checkup'


class CancelledBy(str, enum.Enum):
    PATIENT = 'patient'
    DOCTOR = 'doctor'
    ADMIN = 'admin'


class PaymentStatus(str, enum.Enum):
    PENDING = 'pending'
    PAID = 'paid'
    REFUNDED = 'refunded'


def _enum_column(enum_class: type[enum.Enum]) -> Enum:
    return Enum(enum_class, native_enum=False, values_callable=enum_values, length=24)


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_doctor_start', 'doctor_id', 'date_time'),
        Index('idx_appointments_patient_start', 'patient_id', 'date_time'),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    date_time = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, nullable=False, default=DEFAULT_DURATION_MINUTES)
    status = Column(_enum_column(AppointmentStatus), nullable=False, default=AppointmentStatus.BOOKED, index=True)
    type = Column(_enum_column(AppointmentType), nullable=False, default=AppointmentType.CONSULTATION)
    reason = Column(String(500), nullable=False)
    notes = Column(String(1000))
    reminder_sent = Column(Boolean, nullable=False, default=False)
    reminder_sent_at = Column(DateTime)
    cancelled_by = Column(_enum_column(CancelledBy))
    cancellation_reason = Column(String(500))
    payment_status = Column(_enum_column(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    amount = Column(Float)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    patient = relationship("Patient")
    doctor = relationship("Doctor")

    @property
    def end_time(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration or DEFAULT_DURATION_MINUTES)

    def is_past(self, now: datetime | None = None) -> bool:
        return self.date_time < (now or utcnow())

    def is_today(self, now: datetime | None = None) -> bool:
        return self.date_time.date() == (now or utcnow()).date()
