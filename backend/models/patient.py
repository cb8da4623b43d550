"""Patient model definitions."""

from datetime import date

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.user import utcnow

GENDERS = ('Male', 'Female', 'Other')
BLOOD_GROUPS = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')


class Patient(Base):
    """Represents a patient, optionally linked to a login account."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=True)
    name = Column(String(100), nullable=False, index=True)
    email = Column(String, unique=True, nullable=False)
    contact = Column(String(16), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(8), nullable=False)
    address = Column(String(500), nullable=False)
    blood_group = Column(String(3), nullable=False)
    emergency_contact = Column(String(20))
    medical_history = Column(String(1000))
    is_active = Column(Boolean, nullable=False, default=True)
    # False for profiles provisioned with placeholder demographics at first booking.
    profile_complete = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User")

    @property
    def age(self) -> int | None:
        if self.date_of_birth is None:
            return None
        today = date.today()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))
