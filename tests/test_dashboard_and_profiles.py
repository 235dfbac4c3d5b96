from datetime import date, datetime, timezone

from src.services import (
    appointment_service,
    dashboard_service,
    invoice_service,
    medicine_service,
    profile_service,
)


def test_dashboard_snapshot(make_patient, make_profile):
    doctor = make_profile(role="doctor", first_name="Paul", last_name="Essomba")
    patient = make_patient()
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    for time, status in (("11:00", "confirmed"), ("09:00", "scheduled")):
        appointment_service.create_appointment(
            {"patient_id": patient.id, "doctor_id": doctor.id, "date": today,
             "time": time, "duration": 30, "reason": "Contrôle", "status": status}
        )
    appointment_service.create_appointment(
        {"patient_id": patient.id, "doctor_id": doctor.id, "date": "2020-01-01",
         "time": "10:00", "duration": 30, "reason": "Ancien"}
    )
    invoice_service.create_invoice(
        {"patient_id": patient.id, "date": date.today()},
        [{"description": "Consultation", "quantity": 1, "unit_price": 10000}],
    )
    medicine_service.create_medicine(
        {"name": "Quinine", "expiry_date": date(2030, 1, 1), "current_stock": 2,
         "min_stock": 10, "unit_price": 500}
    )

    snapshot = dashboard_service.get_dashboard_snapshot("UTC")
    stats = snapshot["stats"]

    assert stats["total_patients"] == 1
    assert stats["today_total"] == 2
    assert stats["today_scheduled"] == 1
    assert stats["today_confirmed"] == 1
    assert stats["monthly_revenue"] == 10000
    assert stats["critical_stock"] == 1
    assert [a["time"] for a in snapshot["today_appointments"]] == ["09:00", "11:00"]
    assert snapshot["today_appointments"][0]["doctor_name"] == "Paul Essomba"
    assert [p["name"] for p in snapshot["recent_patients"]] == ["Alice Nkomo"]


def test_dashboard_snapshot_falls_back_to_utc(app):
    stats = dashboard_service.get_dashboard_snapshot("Mars/Olympus")["stats"]

    assert stats["timezone"] == "UTC"
    assert stats["total_patients"] == 0


def test_profiles_by_role_skip_inactive(make_profile):
    make_profile(role="doctor", first_name="Paul")
    make_profile(role="doctor", first_name="Marie", is_active=False)
    make_profile(role="secretary")

    assert [p.first_name for p in profile_service.get_doctors()] == ["Paul"]
    assert profile_service.get_profile_stats() == {
        "total": 3,
        "active": 2,
        "inactive": 1,
        "doctors": 2,
        "admins": 0,
        "secretaries": 1,
    }


def test_user_profile_lookup_requires_active(make_profile):
    active = make_profile(role="admin")
    inactive = make_profile(role="doctor", is_active=False)

    assert profile_service.get_user_profile(active.id)["role"] == "admin"
    assert profile_service.get_user_profile(inactive.id) is None


def test_update_profile_keeps_email(make_profile):
    profile = make_profile(role="secretary")

    updated = profile_service.update_profile(
        profile.id, {"email": "other@clinicare.cm", "speciality": "Accueil", "role": "admin"}
    )

    assert updated.email == "secretary1@clinicare.cm"
    assert updated.speciality == "Accueil"
    assert updated.role == "admin"
