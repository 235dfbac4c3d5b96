from src.models.profile_db import Profile
from src.models.patient_db import Patient
from src.models.appointments_db import Appointment
from src.models.medical_record_db import MedicalRecord, Prescription
from src.models.medicine_db import Medicine, StockMovement
from src.models.invoice_db import Invoice, InvoiceItem, Payment
from src.models.workflow_db import ConsultationWorkflow, VitalSigns

__all__ = [
    "Profile",
    "Patient",
    "Appointment",
    "MedicalRecord",
    "Prescription",
    "Medicine",
    "StockMovement",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "ConsultationWorkflow",
    "VitalSigns",
]
