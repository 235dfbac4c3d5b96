from datetime import date
import logging

from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from extensions import db
from src.models import MedicalRecord, Patient
from src.services.db_context import db_context, rollback


logger = logging.getLogger("patient_service")


def calculate_age(date_of_birth: date, today: date | None = None) -> int:
    """Age in whole years; a birthday not yet reached this year does not count."""
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def get_all_patients():
    try:
        with db_context():
            return Patient.query.order_by(Patient.first_name.asc()).all()
    except Exception as e:
        logger.exception(f"[get_all_patients] Failed: {e}")
        return []


def get_patient(patient_id: str):
    try:
        with db_context():
            return db.session.get(Patient, patient_id)
    except Exception as e:
        logger.exception(f"[get_patient] Failed for id={patient_id}: {e}")
        return None


def create_patient(data: dict, created_by: str | None = None):
    try:
        with db_context():
            patient = Patient(**data, created_by=created_by)
            db.session.add(patient)
            db.session.commit()
            logger.info(f"[create_patient] Created {patient.id} {patient.full_name}")
            return patient
    except Exception as e:
        rollback()
        logger.exception(f"[create_patient] Failed for {data.get('first_name')} {data.get('last_name')}: {e}")
        return None


def update_patient(patient_id: str, updates: dict):
    try:
        with db_context():
            patient = db.session.get(Patient, patient_id)
            if not patient:
                return None

            for key, value in updates.items():
                if key in ("id", "created_at", "created_by"):
                    continue
                setattr(patient, key, value)

            db.session.commit()
            return patient
    except Exception as e:
        rollback()
        logger.exception(f"[update_patient] Failed for id={patient_id}: {e}")
        return None


def delete_patient(patient_id: str) -> bool:
    """Delete a patient; appointments, records and invoices go with it."""
    try:
        with db_context():
            p = db.session.get(Patient, patient_id)
            if not p:
                return False
            db.session.delete(p)
            db.session.commit()
            return True
    except Exception as e:
        rollback()
        logger.exception(f"[delete_patient] Error deleting patient {patient_id}: {e}")
        return False


def search_patients(query: str):
    """Case-insensitive substring match on first name, last name or phone."""
    pattern = f"%{query.strip()}%"
    try:
        with db_context():
            return (
                Patient.query
                .filter(or_(
                    Patient.first_name.ilike(pattern),
                    Patient.last_name.ilike(pattern),
                    Patient.phone.ilike(pattern),
                ))
                .order_by(Patient.first_name.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[search_patients] Failed for query={query!r}: {e}")
        return []


def get_patient_with_medical_history(patient_id: str):
    """Patient with consultations (newest first), their prescriptions and doctors loaded."""
    try:
        with db_context():
            patient = db.session.get(Patient, patient_id)
            if not patient:
                return None, []
            records = (
                MedicalRecord.query
                .options(
                    selectinload(MedicalRecord.prescriptions),
                    selectinload(MedicalRecord.doctor),
                )
                .filter(MedicalRecord.patient_id == patient_id)
                .order_by(MedicalRecord.date.desc())
                .all()
            )
            return patient, records
    except Exception as e:
        logger.exception(f"[get_patient_with_medical_history] Failed for id={patient_id}: {e}")
        return None, []


def filter_patients(patients, term: str = ""):
    """List-view filter: full name or phone contains ``term``."""
    term = (term or "").strip().lower()
    if not term:
        return list(patients)
    return [
        p for p in patients
        if term in f"{p.first_name} {p.last_name}".lower() or term in (p.phone or "")
    ]
