"""Doctor model definitions."""

from datetime import time

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.user import utcnow

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


def parse_clock(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


class Doctor(Base):
    """Represents a doctor and their weekly schedule template.

    The schedule is a list of ``{"day", "from", "to", "isAvailable"}`` entries
    and is shown to users only; booking never consults it.
    """
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    name = Column(String(100), nullable=False)
    specialization = Column(String(100), nullable=False, index=True)
    contact = Column(String(16), nullable=False)
    email = Column(String, nullable=False)
    license_number = Column(String, unique=True, nullable=False)
    experience = Column(Integer)
    education = Column(JSON, nullable=False)
    schedule = Column(JSON, nullable=False, default=list)
    consultation_fee = Column(Float)
    address = Column(String(500), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    rating = Column(Float, nullable=False, default=0)
    total_ratings = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User")

    def is_available_at(self, day: str, at: time) -> bool:
        for entry in self.schedule or []:
            if entry.get('day', '').lower() != day.lower() or not entry.get('isAvailable', True):
                continue
            return parse_clock(entry['from']) <= at <= parse_clock(entry['to'])
        return False
