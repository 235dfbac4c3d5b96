"""
Form payloads validated before they reach the services.

Routes build these from ``request.form``; services accept the resulting
``model_dump()`` dicts so they stay usable from scripts and tests.
"""
import re
import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

Role = Literal["admin", "doctor", "secretary"]


def _clean_phone(v: str) -> str:
    # Keep digits, allow a leading +
    clean = re.sub(r"[^\d]", "", v or "")
    if (v or "").strip().startswith("+"):
        clean = "+" + clean

    digits_only = clean.lstrip("+")
    if not (8 <= len(digits_only) <= 15):
        raise ValueError("Phone number must contain 8–15 digits.")
    return clean


class LoginForm(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if not re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", v):
            raise ValueError("Invalid email address.")
        return v


class SignUpForm(LoginForm):
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    role: Role = "secretary"
    phone: str
    speciality: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _clean_phone(v)


class PatientForm(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    date_of_birth: dt.date
    gender: Literal["M", "F"]
    phone: str
    email: Optional[str] = None
    address: str = ""
    emergency_contact: str = ""
    blood_type: Optional[str] = None
    allergies: List[str] = Field(default_factory=list)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v):
        return v.strip().title()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _clean_phone(v)

    @field_validator("date_of_birth")
    @classmethod
    def validate_birth_date(cls, v):
        if v > dt.date.today():
            raise ValueError("Date of birth cannot be in the future.")
        return v

    @field_validator("allergies", mode="before")
    @classmethod
    def split_allergies(cls, v):
        if isinstance(v, str):
            return [a.strip() for a in v.split(",") if a.strip()]
        return v or []


class AppointmentForm(BaseModel):
    patient_id: str
    doctor_id: str
    date: str = Field(..., description="Appointment date in YYYY-MM-DD format")
    time: str = Field(..., description="Appointment time in HH:MM format (24-hour)")
    duration: int = Field(30, gt=0, le=480)
    reason: str = Field(..., min_length=1)
    status: Literal["scheduled", "confirmed", "completed", "cancelled", "no-show"] = "scheduled"
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        # Stored zero-padded so slot comparisons stay lexical
        try:
            return dt.datetime.strptime(v.strip(), "%Y-%m-%d").strftime("%Y-%m-%d")
        except ValueError:
            raise ValueError("Date must be in format YYYY-MM-DD.")

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        # Accept both formats, store as HH:MM
        for fmt in ("%H:%M", "%H:%M:%S", "%I:%M %p"):
            try:
                return dt.datetime.strptime(v.strip(), fmt).strftime("%H:%M")
            except ValueError:
                pass
        raise ValueError("Time must be in 'HH:MM' or 'HH:MM AM/PM' format.")


class PrescriptionForm(BaseModel):
    medication: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1)
    frequency: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1)
    instructions: Optional[str] = None


class MedicalRecordForm(BaseModel):
    patient_id: str
    doctor_id: str
    appointment_id: Optional[str] = None
    date: dt.date
    type: Literal["general", "specialist", "emergency", "followup", "preventive", "other"] = "general"
    reason: str = Field(..., min_length=1)
    symptoms: Optional[str] = None
    diagnosis: str = Field(..., min_length=1)
    treatment: Optional[str] = None
    notes: Optional[str] = None


class InvoiceItemForm(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    unit_price: float = Field(..., ge=0)
    medicine_id: Optional[str] = None


class InvoiceForm(BaseModel):
    patient_id: str
    appointment_id: Optional[str] = None
    date: dt.date
    tax: float = Field(0, ge=0)
    invoice_type: Literal["ordinary", "general-consultation", "gynecological-consultation"] = "ordinary"


class PaymentForm(BaseModel):
    invoice_id: str
    amount: float = Field(..., gt=0)
    payment_method: Literal["cash", "card", "mobile-money", "bank-transfer", "check"]
    payment_date: dt.date
    reference: Optional[str] = None
    notes: Optional[str] = None


class MedicineForm(BaseModel):
    name: str = Field(..., min_length=1)
    category: Literal["medication", "medical-supply", "equipment", "consumable", "diagnostic"] = "medication"
    manufacturer: str = ""
    batch_number: str = ""
    expiry_date: dt.date
    current_stock: int = Field(0, ge=0)
    min_stock: int = Field(0, ge=0)
    unit_price: float = Field(..., ge=0)
    location: str = ""
    unit: str = ""
    description: Optional[str] = None


class StockMovementForm(BaseModel):
    medicine_id: str
    type: Literal["in", "out"]
    quantity: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    reference: Optional[str] = None
    date: dt.date = Field(default_factory=dt.date.today)


class ProfileForm(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    role: Role
    phone: str
    speciality: Optional[str] = None
    department: Optional[str] = None
    hire_date: Optional[dt.date] = None
    salary: Optional[float] = Field(None, ge=0)
    work_schedule: Optional[str] = None
    emergency_contact: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _clean_phone(v)


class WorkflowForm(BaseModel):
    patient_id: str
    invoice_id: Optional[str] = None
    consultation_type: Literal["general", "specialist", "emergency", "followup", "preventive", "other"] = "general"
    status: Literal["payment-pending", "payment-completed", "vitals-pending"] = "payment-pending"


class VitalSignsForm(BaseModel):
    temperature: Optional[float] = Field(None, ge=30, le=45)
    blood_pressure_systolic: Optional[int] = Field(None, ge=50, le=300)
    blood_pressure_diastolic: Optional[int] = Field(None, ge=30, le=200)
    heart_rate: Optional[int] = Field(None, ge=20, le=250)
    weight: Optional[float] = Field(None, gt=0, le=500)
    height: Optional[float] = Field(None, gt=0, le=272)
    oxygen_saturation: Optional[int] = Field(None, ge=50, le=100)
    respiratory_rate: Optional[int] = Field(None, ge=5, le=80)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_readings(self):
        readings = self.model_dump(exclude={"notes"})
        if all(v is None for v in readings.values()):
            raise ValueError("Enter at least one measurement.")
        if (self.blood_pressure_systolic is None) != (self.blood_pressure_diastolic is None):
            raise ValueError("Blood pressure needs both systolic and diastolic values.")
        return self
