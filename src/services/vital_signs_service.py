import logging

from sqlalchemy.orm import joinedload

from extensions import db
from src.models import VitalSigns
from src.services.db_context import db_context, rollback

logger = logging.getLogger("vital_signs_service")


def get_vital_signs_by_patient(patient_id: str):
    try:
        with db_context():
            return (
                VitalSigns.query
                .options(joinedload(VitalSigns.recorder))
                .filter(VitalSigns.patient_id == patient_id)
                .order_by(VitalSigns.recorded_at.desc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_vital_signs_by_patient] Failed for patient={patient_id}: {e}")
        return []


def get_latest_vital_signs(patient_id: str):
    try:
        with db_context():
            return (
                VitalSigns.query
                .filter(VitalSigns.patient_id == patient_id)
                .order_by(VitalSigns.recorded_at.desc())
                .first()
            )
    except Exception as e:
        logger.exception(f"[get_latest_vital_signs] Failed for patient={patient_id}: {e}")
        return None


def create_vital_signs(data: dict, recorded_by: str | None = None):
    try:
        with db_context():
            vitals = VitalSigns(**data, recorded_by=recorded_by)
            db.session.add(vitals)
            db.session.commit()
            logger.info(f"[create_vital_signs] Recorded {vitals.id} for patient={vitals.patient_id}")
            return vitals
    except Exception as e:
        rollback()
        logger.exception(f"[create_vital_signs] Failed for patient={data.get('patient_id')}: {e}")
        return None


def update_vital_signs(vitals_id: str, updates: dict):
    try:
        with db_context():
            vitals = db.session.get(VitalSigns, vitals_id)
            if not vitals:
                return None

            for key, value in updates.items():
                if key in ("id", "patient_id", "created_at", "recorded_by"):
                    continue
                setattr(vitals, key, value)

            db.session.commit()
            return vitals
    except Exception as e:
        rollback()
        logger.exception(f"[update_vital_signs] Failed for id={vitals_id}: {e}")
        return None


def delete_vital_signs(vitals_id: str) -> bool:
    try:
        with db_context():
            vitals = db.session.get(VitalSigns, vitals_id)
            if not vitals:
                return False
            db.session.delete(vitals)
            db.session.commit()
            return True
    except Exception as e:
        rollback()
        logger.exception(f"[delete_vital_signs] Error deleting vital signs {vitals_id}: {e}")
        return False


# -------------------------------
# Interpretation
# -------------------------------

def calculate_bmi(weight: float | None, height: float | None) -> float:
    """Body mass index from kg and cm, one decimal; 0 when either is missing."""
    if not weight or not height or weight <= 0 or height <= 0:
        return 0
    meters = height / 100
    return round(weight / (meters * meters), 1)


def interpret_bmi(bmi: float) -> str:
    if bmi < 18.5:
        return "Insuffisance pondérale"
    if bmi < 25:
        return "Poids normal"
    if bmi < 30:
        return "Surpoids"
    return "Obésité"


def interpret_blood_pressure(systolic: int, diastolic: int) -> str:
    if systolic < 90 or diastolic < 60:
        return "Hypotension"
    if systolic < 120 and diastolic < 80:
        return "Normale"
    if systolic < 130 and diastolic < 80:
        return "Élevée"
    if systolic < 140 or diastolic < 90:
        return "Hypertension stade 1"
    return "Hypertension stade 2"
