"""
Patient journey through a paid consultation.

A consultation invoice opens a workflow at ``payment-pending``; paying it in
full moves it to ``vitals-pending``. Recording vital signs sends it to
``doctor-assignment`` (or straight to ``consultation-ready`` when a doctor is
already set), assigning a doctor makes it ready, and the doctor then starts
and completes the consultation.
"""
import logging
from datetime import date

from sqlalchemy.orm import joinedload

from extensions import db
from src.models import ConsultationWorkflow
from src.models.workflow_db import WORKFLOW_STATUSES
from src.services import vital_signs_service
from src.services.db_context import db_context, rollback

logger = logging.getLogger("workflow_service")

# Statuses shown in a doctor's queue
DOCTOR_QUEUE_STATUSES = ("consultation-ready", "in-progress")

# Invoice type -> consultation type of the workflow it opens
CONSULTATION_INVOICE_TYPES = {
    "general-consultation": "general",
    "gynecological-consultation": "specialist",
}


def _with_relations(query):
    return query.options(
        joinedload(ConsultationWorkflow.patient),
        joinedload(ConsultationWorkflow.doctor),
        joinedload(ConsultationWorkflow.invoice),
        joinedload(ConsultationWorkflow.vital_signs),
    )


# -------------------------------
# Queries
# -------------------------------

def get_all_workflows():
    try:
        with db_context():
            return (
                _with_relations(ConsultationWorkflow.query)
                .order_by(ConsultationWorkflow.created_at.desc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_all_workflows] Failed: {e}")
        return []


def get_workflow(workflow_id: str):
    try:
        with db_context():
            return (
                _with_relations(ConsultationWorkflow.query)
                .filter(ConsultationWorkflow.id == workflow_id)
                .first()
            )
    except Exception as e:
        logger.exception(f"[get_workflow] Failed for id={workflow_id}: {e}")
        return None


def get_workflows_by_status(status: str):
    try:
        with db_context():
            return (
                _with_relations(ConsultationWorkflow.query)
                .filter(ConsultationWorkflow.status == status)
                .order_by(ConsultationWorkflow.created_at.desc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_workflows_by_status] Failed for status={status}: {e}")
        return []


def get_workflows_by_doctor(doctor_id: str):
    """A doctor's queue: ready or ongoing consultations, oldest arrival first."""
    try:
        with db_context():
            return (
                _with_relations(ConsultationWorkflow.query)
                .filter(
                    ConsultationWorkflow.doctor_id == doctor_id,
                    ConsultationWorkflow.status.in_(DOCTOR_QUEUE_STATUSES),
                )
                .order_by(ConsultationWorkflow.created_at.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_workflows_by_doctor] Failed for doctor={doctor_id}: {e}")
        return []


def get_workflow_by_invoice(invoice_id: str):
    try:
        with db_context():
            return ConsultationWorkflow.query.filter_by(invoice_id=invoice_id).first()
    except Exception as e:
        logger.exception(f"[get_workflow_by_invoice] Failed for invoice={invoice_id}: {e}")
        return None


# -------------------------------
# Writes
# -------------------------------

def create_workflow(data: dict, created_by: str | None = None):
    try:
        with db_context():
            workflow = ConsultationWorkflow(**data, created_by=created_by)
            db.session.add(workflow)
            db.session.commit()
            logger.info(f"[create_workflow] Created {workflow.id} for patient={workflow.patient_id}")
            return workflow
    except Exception as e:
        rollback()
        logger.exception(f"[create_workflow] Failed for patient={data.get('patient_id')}: {e}")
        return None


def open_for_invoice(invoice, created_by: str | None = None):
    """Start a workflow when a consultation is billed; other invoices open none."""
    consultation_type = CONSULTATION_INVOICE_TYPES.get(invoice.invoice_type)
    if consultation_type is None:
        return None
    return create_workflow(
        {
            "patient_id": invoice.patient_id,
            "invoice_id": invoice.id,
            "consultation_type": consultation_type,
            "status": "payment-pending",
        },
        created_by=created_by,
    )


def update_workflow(workflow_id: str, updates: dict):
    try:
        with db_context():
            workflow = db.session.get(ConsultationWorkflow, workflow_id)
            if not workflow:
                return None

            if "status" in updates and updates["status"] not in WORKFLOW_STATUSES:
                logger.warning(f"[update_workflow] Invalid status {updates['status']!r} for {workflow_id}")
                return None

            for key, value in updates.items():
                if key in ("id", "created_at", "created_by"):
                    continue
                setattr(workflow, key, value)

            db.session.commit()
            logger.info(f"[update_workflow] {workflow_id} now {workflow.status}")
            return workflow
    except Exception as e:
        rollback()
        logger.exception(f"[update_workflow] Failed for id={workflow_id}: {e}")
        return None


def _move(workflow_id: str, allowed_from: tuple, updates: dict):
    """Apply ``updates`` only when the workflow currently sits in one of ``allowed_from``."""
    workflow = get_workflow(workflow_id)
    if workflow is None:
        logger.warning(f"[workflow] Unknown workflow {workflow_id}")
        return None
    if workflow.status not in allowed_from:
        logger.warning(
            f"[workflow] {workflow_id} is {workflow.status}, expected one of {', '.join(allowed_from)}"
        )
        return None
    return update_workflow(workflow_id, updates)


def mark_invoice_paid(invoice_id: str):
    """A fully paid consultation invoice sends its patient to the nurse."""
    workflow = get_workflow_by_invoice(invoice_id)
    if workflow is None:
        return None
    return _move(workflow.id, ("payment-pending", "payment-completed"), {"status": "vitals-pending"})


def record_vital_signs(workflow_id: str, data: dict, recorded_by: str | None = None):
    """
    Store the patient's vital signs and link them to the workflow.

    The vitals row and the workflow update commit separately; when the
    update fails the vitals are kept and None is returned.
    """
    workflow = get_workflow(workflow_id)
    if workflow is None or workflow.status not in ("payment-completed", "vitals-pending"):
        logger.warning(f"[record_vital_signs] Workflow {workflow_id} is not waiting for vitals")
        return None

    vitals = vital_signs_service.create_vital_signs(
        {**data, "patient_id": workflow.patient_id}, recorded_by=recorded_by
    )
    if vitals is None:
        return None

    next_status = "consultation-ready" if workflow.doctor_id else "doctor-assignment"
    return update_workflow(workflow_id, {"vital_signs_id": vitals.id, "status": next_status})


def assign_doctor(workflow_id: str, doctor_id: str):
    return _move(
        workflow_id,
        ("doctor-assignment", "vitals-pending", "consultation-ready"),
        {"doctor_id": doctor_id, "status": "consultation-ready"},
    )


def start_consultation(workflow_id: str):
    return _move(workflow_id, ("consultation-ready",), {"status": "in-progress"})


def complete_consultation(workflow_id: str):
    return _move(workflow_id, ("in-progress",), {"status": "completed"})


def delete_workflow(workflow_id: str) -> bool:
    try:
        with db_context():
            workflow = db.session.get(ConsultationWorkflow, workflow_id)
            if not workflow:
                return False
            db.session.delete(workflow)
            db.session.commit()
            return True
    except Exception as e:
        rollback()
        logger.exception(f"[delete_workflow] Error deleting workflow {workflow_id}: {e}")
        return False


# -------------------------------
# Stats
# -------------------------------

def get_workflow_stats(today: date | None = None) -> dict:
    today = today or date.today()
    try:
        with db_context():
            rows = ConsultationWorkflow.query.with_entities(
                ConsultationWorkflow.status, ConsultationWorkflow.created_at
            ).all()
    except Exception as e:
        logger.exception(f"[get_workflow_stats] Failed: {e}")
        rows = []

    stats = {"total": len(rows), "today": sum(1 for _, created in rows if created and created.date() == today)}
    for status in WORKFLOW_STATUSES:
        stats[status] = sum(1 for s, _ in rows if s == status)
    return stats
