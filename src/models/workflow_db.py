from extensions import db
from src.models.base import generate_uuid, utcnow

# Reception -> cashier -> nurse -> doctor, in order
WORKFLOW_STATUSES = (
    "payment-pending",
    "payment-completed",
    "vitals-pending",
    "doctor-assignment",
    "consultation-ready",
    "in-progress",
    "completed",
)

WORKFLOW_STATUS_LABELS = {
    "payment-pending": "Paiement en attente",
    "payment-completed": "Paiement effectué",
    "vitals-pending": "Constantes à prendre",
    "doctor-assignment": "Attribution médecin",
    "consultation-ready": "Prêt pour consultation",
    "in-progress": "Consultation en cours",
    "completed": "Consultation terminée",
}


class ConsultationWorkflow(db.Model):
    __tablename__ = "consultation_workflows"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    invoice_id = db.Column(db.String(20), db.ForeignKey("invoices.id", ondelete="SET NULL"))
    vital_signs_id = db.Column(db.String(36), db.ForeignKey("vital_signs.id", ondelete="SET NULL"))
    doctor_id = db.Column(db.String(36), db.ForeignKey("profiles.id"))
    consultation_type = db.Column(db.String(20), nullable=False, default="general")
    status = db.Column(db.String(20), nullable=False, default="payment-pending")
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id"))

    patient = db.relationship(
        "Patient",
        backref=db.backref("workflows", lazy=True, cascade="all, delete-orphan"),
    )
    invoice = db.relationship("Invoice", backref=db.backref("workflows", lazy=True))
    vital_signs = db.relationship("VitalSigns", backref=db.backref("workflows", lazy=True))
    doctor = db.relationship("Profile", foreign_keys=[doctor_id])

    @property
    def status_label(self) -> str:
        return WORKFLOW_STATUS_LABELS.get(self.status, self.status)


class VitalSigns(db.Model):
    __tablename__ = "vital_signs"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    temperature = db.Column(db.Float)  # °C
    blood_pressure_systolic = db.Column(db.Integer)
    blood_pressure_diastolic = db.Column(db.Integer)
    heart_rate = db.Column(db.Integer)
    weight = db.Column(db.Float)  # kg
    height = db.Column(db.Float)  # cm
    oxygen_saturation = db.Column(db.Integer)
    respiratory_rate = db.Column(db.Integer)
    notes = db.Column(db.Text)
    recorded_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    recorded_by = db.Column(db.String(36), db.ForeignKey("profiles.id"))
    created_at = db.Column(db.DateTime, default=utcnow)

    patient = db.relationship(
        "Patient",
        backref=db.backref("vital_signs", lazy=True, cascade="all, delete-orphan"),
    )
    recorder = db.relationship("Profile")
