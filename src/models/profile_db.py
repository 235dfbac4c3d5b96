from extensions import db
from src.models.base import utcnow

ROLES = ("admin", "doctor", "secretary")


class Profile(db.Model):
    """Staff member. The primary key is the auth provider's user id."""
    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="secretary")
    speciality = db.Column(db.String(120))
    phone = db.Column(db.String(20), nullable=False, default="")
    department = db.Column(db.String(120))
    hire_date = db.Column(db.Date)
    salary = db.Column(db.Float)
    work_schedule = db.Column(db.String(255))
    emergency_contact = db.Column(db.String(120))
    address = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Profile {self.email} ({self.role})>"
