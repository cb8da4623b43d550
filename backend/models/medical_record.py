"""Medical record model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.user import utcnow

SEVERITIES = ('mild', 'moderate', 'severe', 'critical')


class MedicalRecord(Base):
    """Represents one visit's clinical notes for a patient."""
    __tablename__ = "medical_records"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True)
    diagnosis = Column(String(1000), nullable=False)
    symptoms = Column(JSON, nullable=False, default=list)
    prescription = Column(JSON, nullable=False, default=list)
    vital_signs = Column(JSON, nullable=False, default=dict)
    notes = Column(String(2000))
    treatment_plan = Column(String(1000))
    follow_up_date = Column(DateTime)
    visit_date = Column(DateTime, nullable=False, default=utcnow)
    lab_results = Column(JSON, nullable=False, default=list)
    allergies = Column(JSON, nullable=False, default=list)
    current_medications = Column(JSON, nullable=False, default=list)
    family_history = Column(String(500))
    social_history = Column(JSON, nullable=False, default=dict)
    severity = Column(String(16), nullable=False, default='mild')
    is_confidential = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    patient = relationship("Patient")
    doctor = relationship("Doctor")
