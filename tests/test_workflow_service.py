from datetime import date

import pytest

from src.services import invoice_service, vital_signs_service
from src.services import workflow_service as svc


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def doctor(make_profile):
    return make_profile(role="doctor")


@pytest.fixture
def consultation_invoice(patient):
    return invoice_service.create_invoice(
        {"patient_id": patient.id, "date": date(2026, 3, 10), "invoice_type": "general-consultation"},
        [{"description": "Consultation générale", "quantity": 1, "unit_price": 10000}],
    )


VITALS = {"temperature": 38.2, "blood_pressure_systolic": 135, "blood_pressure_diastolic": 85, "heart_rate": 92}


# -------------------------------
# Opening a workflow
# -------------------------------

def test_consultation_invoice_opens_workflow(consultation_invoice):
    workflow = svc.open_for_invoice(consultation_invoice)

    assert workflow.status == "payment-pending"
    assert workflow.consultation_type == "general"
    assert svc.get_workflow_by_invoice(consultation_invoice.id).id == workflow.id


def test_ordinary_invoice_opens_nothing(patient):
    invoice = invoice_service.create_invoice(
        {"patient_id": patient.id, "date": date(2026, 3, 10)},
        [{"description": "Seringues", "quantity": 10, "unit_price": 100}],
    )

    assert svc.open_for_invoice(invoice) is None
    assert svc.get_all_workflows() == []


# -------------------------------
# Full journey
# -------------------------------

def test_paid_invoice_goes_through_vitals_doctor_and_consultation(consultation_invoice, doctor, make_profile):
    nurse = make_profile(role="secretary", first_name="Awa")
    workflow = svc.open_for_invoice(consultation_invoice)

    assert svc.mark_invoice_paid(consultation_invoice.id).status == "vitals-pending"

    after_vitals = svc.record_vital_signs(workflow.id, VITALS, recorded_by=nurse.id)
    assert after_vitals.status == "doctor-assignment"
    assert after_vitals.vital_signs.temperature == 38.2
    assert after_vitals.vital_signs.recorded_by == nurse.id

    assert svc.assign_doctor(workflow.id, doctor.id).status == "consultation-ready"
    assert [w.id for w in svc.get_workflows_by_doctor(doctor.id)] == [workflow.id]

    assert svc.start_consultation(workflow.id).status == "in-progress"
    assert svc.complete_consultation(workflow.id).status == "completed"
    assert svc.get_workflows_by_doctor(doctor.id) == []


def test_vitals_with_doctor_already_set_make_workflow_ready(patient, doctor):
    workflow = svc.create_workflow(
        {"patient_id": patient.id, "status": "vitals-pending", "doctor_id": doctor.id}
    )

    assert svc.record_vital_signs(workflow.id, VITALS).status == "consultation-ready"


def test_out_of_order_steps_are_refused(patient, doctor):
    workflow = svc.create_workflow({"patient_id": patient.id})

    assert svc.record_vital_signs(workflow.id, VITALS) is None
    assert svc.start_consultation(workflow.id) is None
    assert svc.complete_consultation(workflow.id) is None
    assert svc.get_workflow(workflow.id).status == "payment-pending"
    assert vital_signs_service.get_vital_signs_by_patient(patient.id) == []


def test_unknown_workflow_is_refused(app):
    assert svc.start_consultation("missing") is None
    assert svc.update_workflow("missing", {"status": "completed"}) is None


def test_invalid_status_is_rejected(patient):
    workflow = svc.create_workflow({"patient_id": patient.id})

    assert svc.update_workflow(workflow.id, {"status": "teleported"}) is None
    assert svc.get_workflow(workflow.id).status == "payment-pending"


def test_filters_and_stats(patient, doctor):
    svc.create_workflow({"patient_id": patient.id})
    svc.create_workflow({"patient_id": patient.id, "status": "vitals-pending"})
    svc.create_workflow({"patient_id": patient.id, "status": "completed", "doctor_id": doctor.id})

    assert len(svc.get_workflows_by_status("vitals-pending")) == 1

    stats = svc.get_workflow_stats(today=date(1999, 1, 1))
    assert stats["total"] == 3
    assert stats["today"] == 0
    assert stats["payment-pending"] == 1
    assert stats["vitals-pending"] == 1
    assert stats["completed"] == 1
    assert stats["in-progress"] == 0


def test_delete_workflow(patient):
    workflow = svc.create_workflow({"patient_id": patient.id})

    assert svc.delete_workflow(workflow.id) is True
    assert svc.delete_workflow(workflow.id) is False
