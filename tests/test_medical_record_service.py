from datetime import date

import pytest

from src.models import Prescription
from src.services import medical_record_service as svc


@pytest.fixture
def record_data(make_patient, make_profile):
    doctor = make_profile(role="doctor")
    patient = make_patient()

    def _data(**overrides):
        data = {
            "patient_id": patient.id,
            "doctor_id": doctor.id,
            "date": date(2026, 3, 10),
            "type": "general",
            "reason": "Fièvre et céphalées",
            "symptoms": "Fièvre 39°C",
            "diagnosis": "Paludisme simple",
        }
        data.update(overrides)
        return data

    _data.doctor = doctor
    _data.patient = patient
    return _data


AMOXICILLIN = {"medication": "Amoxicilline", "dosage": "1g", "frequency": "2x/jour", "duration": "7 jours"}
PARACETAMOL = {
    "medication": "Paracétamol",
    "dosage": "500mg",
    "frequency": "3x/jour",
    "duration": "5 jours",
    "instructions": "Après les repas",
}


def test_create_with_prescriptions(record_data):
    record = svc.create_record(record_data(), [AMOXICILLIN, PARACETAMOL])

    assert record is not None
    assert {p.medication for p in record.prescriptions} == {"Amoxicilline", "Paracétamol"}
    assert record.patient.id == record_data.patient.id
    assert record.doctor.id == record_data.doctor.id


def test_failed_prescriptions_keep_the_record(record_data):
    broken = {"medication": "Sans dosage"}

    record = svc.create_record(record_data(), [broken])

    assert record is not None
    assert record.prescriptions == []
    assert svc.get_record(record.id) is not None


def test_invalid_record_is_not_created(record_data):
    assert svc.create_record(record_data(diagnosis=None)) is None
    assert svc.get_all_records() == []


def test_queries_by_patient_and_doctor(record_data, make_profile, make_patient):
    other_doctor = make_profile(role="doctor", first_name="Marie")
    other_patient = make_patient(first_name="Bob", phone="699000000")
    svc.create_record(record_data())
    svc.create_record(record_data(doctor_id=other_doctor.id))
    svc.create_record(record_data(patient_id=other_patient.id))

    assert len(svc.get_records_by_patient(record_data.patient.id)) == 2
    assert len(svc.get_records_by_doctor(record_data.doctor.id)) == 2
    assert len(svc.get_records_by_doctor(other_doctor.id)) == 1


def test_search_matches_reason_diagnosis_and_symptoms(record_data):
    svc.create_record(record_data())
    svc.create_record(record_data(reason="Toux", symptoms="Toux sèche", diagnosis="Bronchite"))

    assert len(svc.search_records("PALUDISME")) == 1
    assert len(svc.search_records("toux")) == 1
    assert len(svc.search_records("39°")) == 1
    assert svc.search_records("diabète") == []


def test_add_and_delete_prescription(record_data):
    record = svc.create_record(record_data())

    prescription = svc.add_prescription(record.id, PARACETAMOL)
    assert prescription.instructions == "Après les repas"
    assert [r.id for r in svc.get_prescription_records()] == [record.id]

    assert svc.delete_prescription(prescription.id)
    assert svc.get_prescription_records() == []
    assert svc.delete_prescription(prescription.id) is False


def test_delete_record_removes_prescriptions(record_data):
    record = svc.create_record(record_data(), [AMOXICILLIN])

    assert svc.delete_record(record.id)
    assert Prescription.query.count() == 0


def test_update_record(record_data):
    record = svc.create_record(record_data())
    updated = svc.update_record(record.id, {"treatment": "ACT 3 jours"})

    assert updated.treatment == "ACT 3 jours"
    assert svc.update_record("missing", {"treatment": "x"}) is None
