from extensions import db
from src.models.base import generate_uuid, utcnow

APPOINTMENT_STATUSES = ("scheduled", "confirmed", "completed", "cancelled", "no-show")


class Appointment(db.Model):
    __tablename__ = "appointments"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False)
    date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    time = db.Column(db.String(5), nullable=False)   # HH:MM
    duration = db.Column(db.Integer, nullable=False, default=30)  # minutes
    reason = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="scheduled")
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id"))

    patient = db.relationship(
        "Patient",
        backref=db.backref("appointments", lazy=True, cascade="all, delete-orphan"),
    )
    doctor = db.relationship("Profile", foreign_keys=[doctor_id])

    def __repr__(self):
        return f"<Appointment {self.id} {self.date} {self.time}>"
