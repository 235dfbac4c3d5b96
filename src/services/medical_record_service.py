import logging

from sqlalchemy import or_
from sqlalchemy.orm import joinedload, selectinload

from extensions import db
from src.models import MedicalRecord, Prescription
from src.services.db_context import db_context, rollback


logger = logging.getLogger("medical_record_service")


def _with_relations(query):
    return query.options(
        joinedload(MedicalRecord.patient),
        joinedload(MedicalRecord.doctor),
        selectinload(MedicalRecord.prescriptions),
    )


def get_all_records():
    try:
        with db_context():
            return _with_relations(MedicalRecord.query).order_by(MedicalRecord.date.desc()).all()
    except Exception as e:
        logger.exception(f"[get_all_records] Failed: {e}")
        return []


def get_record(record_id: str):
    try:
        with db_context():
            return _with_relations(MedicalRecord.query).filter(MedicalRecord.id == record_id).first()
    except Exception as e:
        logger.exception(f"[get_record] Failed for id={record_id}: {e}")
        return None


def get_records_by_patient(patient_id: str):
    try:
        with db_context():
            return (
                _with_relations(MedicalRecord.query)
                .filter(MedicalRecord.patient_id == patient_id)
                .order_by(MedicalRecord.date.desc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_records_by_patient] Failed for patient={patient_id}: {e}")
        return []


def get_records_by_doctor(doctor_id: str):
    try:
        with db_context():
            return (
                _with_relations(MedicalRecord.query)
                .filter(MedicalRecord.doctor_id == doctor_id)
                .order_by(MedicalRecord.date.desc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_records_by_doctor] Failed for doctor={doctor_id}: {e}")
        return []


def search_records(query: str, doctor_id: str | None = None):
    """Case-insensitive substring match on reason, diagnosis or symptoms, optionally for one doctor."""
    pattern = f"%{query.strip()}%"
    try:
        with db_context():
            q = _with_relations(MedicalRecord.query).filter(or_(
                MedicalRecord.reason.ilike(pattern),
                MedicalRecord.diagnosis.ilike(pattern),
                MedicalRecord.symptoms.ilike(pattern),
            ))
            if doctor_id:
                q = q.filter(MedicalRecord.doctor_id == doctor_id)
            return q.order_by(MedicalRecord.date.desc()).all()
    except Exception as e:
        logger.exception(f"[search_records] Failed for query={query!r}: {e}")
        return []


def create_record(data: dict, prescriptions: list[dict] | None = None):
    """
    Create a consultation, then attach its prescriptions.

    The two steps commit separately: when the prescriptions fail the record
    is kept and returned without them.
    """
    prescriptions = prescriptions or []
    try:
        with db_context():
            record = MedicalRecord(**data)
            db.session.add(record)
            db.session.commit()
            record_id = record.id
            logger.info(f"[create_record] Created medical record {record_id}")
    except Exception as e:
        rollback()
        logger.exception(f"[create_record] Failed for patient={data.get('patient_id')}: {e}")
        return None

    if prescriptions:
        try:
            with db_context():
                db.session.add_all(
                    Prescription(**p, medical_record_id=record_id) for p in prescriptions
                )
                db.session.commit()
                logger.info(f"[create_record] Added {len(prescriptions)} prescriptions to {record_id}")
        except Exception as e:
            rollback()
            logger.exception(f"[create_record] Prescriptions failed for record {record_id}: {e}")

    return get_record(record_id)


def update_record(record_id: str, updates: dict):
    try:
        with db_context():
            record = db.session.get(MedicalRecord, record_id)
            if not record:
                return None

            for key, value in updates.items():
                if key in ("id", "created_at"):
                    continue
                setattr(record, key, value)

            db.session.commit()
            return record
    except Exception as e:
        rollback()
        logger.exception(f"[update_record] Failed for id={record_id}: {e}")
        return None


def delete_record(record_id: str) -> bool:
    try:
        with db_context():
            record = db.session.get(MedicalRecord, record_id)
            if not record:
                return False
            db.session.delete(record)
            db.session.commit()
            return True
    except Exception as e:
        rollback()
        logger.exception(f"[delete_record] Error deleting medical record {record_id}: {e}")
        return False


def get_prescription(prescription_id: str):
    try:
        with db_context():
            return db.session.get(Prescription, prescription_id)
    except Exception as e:
        logger.exception(f"[get_prescription] Failed for id={prescription_id}: {e}")
        return None


def add_prescription(record_id: str, data: dict):
    try:
        with db_context():
            prescription = Prescription(**data, medical_record_id=record_id)
            db.session.add(prescription)
            db.session.commit()
            return prescription
    except Exception as e:
        rollback()
        logger.exception(f"[add_prescription] Failed for record={record_id}: {e}")
        return None


def delete_prescription(prescription_id: str) -> bool:
    try:
        with db_context():
            prescription = db.session.get(Prescription, prescription_id)
            if not prescription:
                return False
            db.session.delete(prescription)
            db.session.commit()
            return True
    except Exception as e:
        rollback()
        logger.exception(f"[delete_prescription] Error deleting prescription {prescription_id}: {e}")
        return False


def get_prescription_records():
    """Consultations that carry at least one prescription, newest first."""
    return [r for r in get_all_records() if r.prescriptions]
