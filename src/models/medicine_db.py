from extensions import db
from src.models.base import generate_uuid, utcnow

MEDICINE_CATEGORIES = ("medication", "medical-supply", "equipment", "consumable", "diagnostic")


class Medicine(db.Model):
    __tablename__ = "medicines"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(30), nullable=False, default="medication")
    manufacturer = db.Column(db.String(255), nullable=False, default="")
    batch_number = db.Column(db.String(120), nullable=False, default="")
    expiry_date = db.Column(db.Date, nullable=False)
    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    unit_price = db.Column(db.Float, nullable=False, default=0)
    location = db.Column(db.String(120), nullable=False, default="")
    unit = db.Column(db.String(40), nullable=False, default="")
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id"))

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock


class StockMovement(db.Model):
    __tablename__ = "stock_movements"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    medicine_id = db.Column(db.String(36), db.ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False)
    type = db.Column(db.String(3), nullable=False)  # in | out
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(120))
    date = db.Column(db.Date, nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id"))
    created_at = db.Column(db.DateTime, default=utcnow)

    medicine = db.relationship(
        "Medicine",
        backref=db.backref("stock_movements", lazy=True, cascade="all, delete-orphan"),
    )
    user = db.relationship("Profile")
