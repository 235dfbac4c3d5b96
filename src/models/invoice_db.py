from extensions import db
from src.models.base import generate_uuid, utcnow

INVOICE_STATUSES = ("pending", "paid", "overdue")
PAYMENT_METHODS = ("cash", "card", "mobile-money", "bank-transfer", "check")
INVOICE_TYPES = ("ordinary", "general-consultation", "gynecological-consultation")


class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.String(20), primary_key=True)  # INV-YYYY-MMNNN
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    appointment_id = db.Column(db.String(36), db.ForeignKey("appointments.id", ondelete="SET NULL"))
    date = db.Column(db.Date, nullable=False)
    subtotal = db.Column(db.Float, nullable=False, default=0)
    tax = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Float, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="pending")
    payment_method = db.Column(db.String(20))
    paid_at = db.Column(db.DateTime)
    invoice_type = db.Column(db.String(40), nullable=False, default="ordinary")
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id"))

    patient = db.relationship(
        "Patient",
        backref=db.backref("invoices", lazy=True, cascade="all, delete-orphan"),
    )
    appointment = db.relationship("Appointment")
    items = db.relationship("InvoiceItem", backref="invoice", cascade="all, delete-orphan", lazy=True)
    payments = db.relationship("Payment", backref="invoice", cascade="all, delete-orphan", lazy=True)

    @property
    def amount_paid(self) -> float:
        return sum(p.amount for p in self.payments)


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    invoice_id = db.Column(db.String(20), db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)
    medicine_id = db.Column(db.String(36), db.ForeignKey("medicines.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=utcnow)


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    invoice_id = db.Column(db.String(20), db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(20), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    reference = db.Column(db.String(120))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id"))
