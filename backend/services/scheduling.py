"""Doctor double-booking detection.

Intervals are half-open: ``[start, start + duration)``. Two appointments that
merely touch (one ends at 10:30, the next starts at 10:30) do not conflict.
Cancelled and no-show appointments never block a slot.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from backend.core.errors import AppointmentConflictError
from backend.models.appointment import INACTIVE_STATUSES, Appointment
from backend.models.doctor import Doctor

logger = logging.getLogger(__name__)


def appointment_end(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and end > other_start


def find_conflicting_appointment(
    db: Session,
    doctor_id: int,
    candidate_start: datetime,
    candidate_end: datetime,
    exclude_appointment_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status.not_in(INACTIVE_STATUSES),
        # An existing appointment starting at or after the candidate end can never overlap.
        Appointment.date_time < candidate_end,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    for existing in query.all():
        if intervals_overlap(candidate_start, candidate_end, existing.date_time, existing.end_time):
            return existing
    return None


def check_conflict(
    db: Session,
    doctor_id: int,
    candidate_start: datetime,
    candidate_end: datetime,
    exclude_appointment_id: int | None = None,
) -> bool:
    return find_conflicting_appointment(
        db, doctor_id, candidate_start, candidate_end, exclude_appointment_id
    ) is not None


def ensure_no_conflict(
    db: Session,
    doctor_id: int,
    candidate_start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> None:
    candidate_end = appointment_end(candidate_start, duration_minutes)
    conflicting = find_conflicting_appointment(
        db, doctor_id, candidate_start, candidate_end, exclude_appointment_id
    )
    if conflicting is not None:
        logger.info(
            'Rejected booking for doctor %s at %s (%s min): overlaps appointment %s',
            doctor_id, candidate_start.isoformat(), duration_minutes, conflicting.id,
        )
        raise AppointmentConflictError(doctor_id, conflicting.id)


def lock_doctor(db: Session, doctor_id: int) -> Doctor | None:
    """Load the doctor row with ``FOR UPDATE`` so bookings for one doctor serialize.

    Backends without row locks (SQLite) ignore the clause, which leaves the
    check-then-insert race in place there.
    """
    return db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()
