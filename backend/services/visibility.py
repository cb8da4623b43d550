"""Role-based narrowing of appointment and medical-record queries."""

from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from backend.models.doctor import Doctor
from backend.models.patient import Patient
from backend.models.user import Role, User


@dataclass(frozen=True)
class Scope:
    """What a caller may see. Admins are unrestricted; everyone else is pinned
    to a single patient or doctor id, or sees nothing at all."""

    role: Role
    patient_id: int | None = None
    doctor_id: int | None = None

    @property
    def unrestricted(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and self.patient_id is None and self.doctor_id is None


def _unknown_role(role: Role):
    raise ValueError(f'Unhandled role: {role!r}')


def find_patient_for_user(db: Session, user: User) -> Patient | None:
    patient = db.query(Patient).filter(Patient.user_id == user.id).first()
    if patient is None and user.email:
        # Legacy records predate the user link.
        patient = db.query(Patient).filter(Patient.email == user.email.lower()).first()
    return patient


def find_doctor_for_user(db: Session, user: User) -> Doctor | None:
    doctor = db.query(Doctor).filter(Doctor.user_id == user.id).first()
    if doctor is None and user.email:
        doctor = db.query(Doctor).filter(Doctor.email == user.email.lower()).first()
    return doctor


def resolve_scope(db: Session, user: User) -> Scope:
    role = Role(user.role)
    if role is Role.ADMIN:
        return Scope(role=role)
    if role is Role.DOCTOR:
        doctor = find_doctor_for_user(db, user)
        return Scope(role=role, doctor_id=doctor.id if doctor else None)
    if role is Role.PATIENT:
        patient = find_patient_for_user(db, user)
        return Scope(role=role, patient_id=patient.id if patient else None)
    return _unknown_role(role)


def scope_query(query: Query, model, scope: Scope) -> Query:
    """Constrain ``query`` over ``model`` (anything with patient_id/doctor_id columns)."""
    if scope.unrestricted:
        return query
    if scope.is_empty:
        return query.filter(false())
    if scope.role is Role.DOCTOR:
        return query.filter(model.doctor_id == scope.doctor_id)
    if scope.role is Role.PATIENT:
        return query.filter(model.patient_id == scope.patient_id)
    return _unknown_role(scope.role)


def can_view(scope: Scope, patient_id: int, doctor_id: int) -> bool:
    if scope.unrestricted:
        return True
    if scope.role is Role.DOCTOR:
        return scope.doctor_id is not None and scope.doctor_id == doctor_id
    if scope.role is Role.PATIENT:
        return scope.patient_id is not None and scope.patient_id == patient_id
    return _unknown_role(scope.role)


def ensure_can_view(scope: Scope, patient_id: int, doctor_id: int, detail: str) -> None:
    # 403 rather than 404: the record exists, the caller just may not see it.
    if not can_view(scope, patient_id, doctor_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
