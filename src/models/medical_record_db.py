from extensions import db
from src.models.base import generate_uuid, utcnow

CONSULTATION_TYPES = ("general", "specialist", "emergency", "followup", "preventive", "other")


class MedicalRecord(db.Model):
    __tablename__ = "medical_records"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False)
    appointment_id = db.Column(db.String(36), db.ForeignKey("appointments.id", ondelete="SET NULL"))
    date = db.Column(db.Date, nullable=False)
    type = db.Column(db.String(20), nullable=False, default="general")
    reason = db.Column(db.String(255), nullable=False)
    symptoms = db.Column(db.Text)
    diagnosis = db.Column(db.Text, nullable=False)
    treatment = db.Column(db.Text)
    notes = db.Column(db.Text)
    attachments = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    patient = db.relationship(
        "Patient",
        backref=db.backref("medical_records", lazy=True, cascade="all, delete-orphan"),
    )
    doctor = db.relationship("Profile", foreign_keys=[doctor_id])
    prescriptions = db.relationship(
        "Prescription",
        back_populates="medical_record",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self):
        return f"<MedicalRecord {self.id} {self.date}>"


class Prescription(db.Model):
    __tablename__ = "prescriptions"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    medical_record_id = db.Column(
        db.String(36), db.ForeignKey("medical_records.id", ondelete="CASCADE"), nullable=False
    )
    medication = db.Column(db.String(255), nullable=False)
    dosage = db.Column(db.String(120), nullable=False)
    frequency = db.Column(db.String(120), nullable=False)
    duration = db.Column(db.String(120), nullable=False)
    instructions = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    medical_record = db.relationship("MedicalRecord", back_populates="prescriptions")
