from datetime import date

from src.models import Appointment, MedicalRecord
from src.services import appointment_service, medical_record_service, patient_service as svc


def test_age_counts_only_reached_birthdays():
    born = date(1990, 6, 15)

    assert svc.calculate_age(born, today=date(2026, 6, 14)) == 35
    assert svc.calculate_age(born, today=date(2026, 6, 15)) == 36
    assert svc.calculate_age(born, today=date(2026, 12, 1)) == 36
    assert svc.calculate_age(born, today=date(2026, 1, 20)) == 35


def test_create_and_list(app, make_profile):
    secretary = make_profile(role="secretary")
    patient = svc.create_patient(
        {
            "first_name": "Brice",
            "last_name": "Tchoua",
            "date_of_birth": date(1985, 2, 3),
            "gender": "M",
            "phone": "699001122",
            "allergies": ["Pénicilline"],
        },
        created_by=secretary.id,
    )

    assert patient is not None
    assert patient.created_by == secretary.id
    assert [p.full_name for p in svc.get_all_patients()] == ["Brice Tchoua"]
    assert svc.get_patient(patient.id).allergies == ["Pénicilline"]


def test_create_with_missing_fields_returns_none(app):
    assert svc.create_patient({"first_name": "Only"}) is None
    assert svc.get_all_patients() == []


def test_delete_is_reflected_in_list(make_patient):
    keep = make_patient(first_name="Alice")
    drop = make_patient(first_name="Bob", phone="677000111")

    assert svc.delete_patient(drop.id) is True

    assert [p.id for p in svc.get_all_patients()] == [keep.id]
    assert svc.delete_patient(drop.id) is False


def test_delete_removes_dependent_rows(make_patient, make_profile):
    doctor = make_profile(role="doctor")
    patient = make_patient()
    appointment_service.create_appointment(
        {"patient_id": patient.id, "doctor_id": doctor.id, "date": "2026-03-10", "time": "10:00", "reason": "Fièvre"}
    )
    medical_record_service.create_record(
        {"patient_id": patient.id, "doctor_id": doctor.id, "date": date(2026, 3, 10), "reason": "Fièvre", "diagnosis": "Paludisme"}
    )

    assert svc.delete_patient(patient.id)
    assert Appointment.query.count() == 0
    assert MedicalRecord.query.count() == 0


def test_update_patient(make_patient):
    patient = make_patient()
    updated = svc.update_patient(patient.id, {"phone": "655443322", "id": "hijack"})

    assert updated.phone == "655443322"
    assert updated.id == patient.id
    assert svc.update_patient("missing", {"phone": "1"}) is None


def test_search_is_case_insensitive_on_name_and_phone(make_patient):
    make_patient(first_name="Alice", last_name="Nkomo", phone="677123456")
    make_patient(first_name="Bob", last_name="Alima", phone="699000000")
    make_patient(first_name="Carine", last_name="Ewane", phone="655000000")

    assert {p.first_name for p in svc.search_patients("ALI")} == {"Alice", "Bob"}
    assert [p.first_name for p in svc.search_patients("6550")] == ["Carine"]
    assert svc.search_patients("zzz") == []


def test_filter_patients_on_full_name(make_patient):
    make_patient(first_name="Alice", last_name="Nkomo")
    make_patient(first_name="Bob", last_name="Alima", phone="699000000")
    everyone = svc.get_all_patients()

    assert [p.first_name for p in svc.filter_patients(everyone, "alice nk")] == ["Alice"]
    assert len(svc.filter_patients(everyone, "")) == 2


def test_medical_history_is_newest_first(make_patient, make_profile):
    doctor = make_profile(role="doctor")
    patient = make_patient()
    for day in (1, 20, 10):
        medical_record_service.create_record(
            {"patient_id": patient.id, "doctor_id": doctor.id, "date": date(2026, 3, day),
             "reason": "Suivi", "diagnosis": f"Visite {day}"},
            [{"medication": "Paracétamol", "dosage": "500mg", "frequency": "3x/jour", "duration": "5 jours"}],
        )

    found, records = svc.get_patient_with_medical_history(patient.id)

    assert found.id == patient.id
    assert [r.date.day for r in records] == [20, 10, 1]
    assert all(len(r.prescriptions) == 1 for r in records)
    assert svc.get_patient_with_medical_history("missing") == (None, [])
