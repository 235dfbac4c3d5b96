from datetime import date, datetime

import pytest

from src.services import medical_record_service
from src.services.print_service import consultation_type_label, render_ordonnance


@pytest.fixture
def record(make_patient, make_profile):
    doctor = make_profile(role="doctor", first_name="Paul", last_name="Essomba")
    patient = make_patient(blood_type="O+")
    return medical_record_service.create_record(
        {
            "patient_id": patient.id,
            "doctor_id": doctor.id,
            "date": date(2026, 3, 10),
            "type": "general",
            "reason": "Fièvre",
            "diagnosis": "Paludisme simple",
        },
        [
            {"medication": "Artéméther", "dosage": "80mg", "frequency": "2x/jour", "duration": "3 jours"},
            {
                "medication": "Paracétamol",
                "dosage": "500mg",
                "frequency": "3x/jour",
                "duration": "5 jours",
                "instructions": "Après les repas",
            },
        ],
    )


def test_ordonnance_contents(app, record):
    html = render_ordonnance(record, now=datetime(2026, 3, 10, 14, 5, 9))

    assert html is not None
    assert "Alice Nkomo" in html
    assert "Dr. Paul Essomba" in html
    assert "Consultation : Générale" in html
    assert "Groupe sanguin : O+" in html
    assert "Paludisme simple" in html
    assert "Après les repas" in html
    assert "Ordonnance générée le 10/03/2026 à 14:05:09" in html
    assert "Cette ordonnance est valable 30 jours" in html
    assert app.config["CLINIC_NAME"] in html
    assert "window.print()" in html


def test_prescriptions_are_numbered(app, record):
    html = render_ordonnance(record, now=datetime(2026, 3, 10, 9, 0))

    assert '<span class="prescription-number">1</span>' in html
    assert '<span class="prescription-number">2</span>' in html
    assert '<span class="prescription-number">3</span>' not in html


def test_consultation_type_labels():
    assert consultation_type_label("emergency") == "Urgence"
    assert consultation_type_label("followup") == "Suivi"
    assert consultation_type_label("teleconsultation") == "Non défini"
