from flask import Blueprint, flash, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.schemas import PatientForm
from src.routes.guards import current_user_id, form_data, section_required, validation_message
from src.services import appointment_service, patient_service, vital_signs_service


patients_bp = Blueprint("patients", __name__, url_prefix="/patients")

PATIENT_FIELDS = (
    "first_name", "last_name", "date_of_birth", "gender", "phone", "email",
    "address", "emergency_contact", "blood_type", "allergies",
)


def _patient_form():
    return PatientForm(**form_data(request.form, *PATIENT_FIELDS))


@patients_bp.route("/", methods=["GET"])
@section_required("patients")
def list_patients():
    term = request.args.get("q", "")
    patients = patient_service.filter_patients(patient_service.get_all_patients(), term)
    return render_template(
        "patients.html",
        active_page="patients",
        patients=patients,
        q=term,
        calculate_age=patient_service.calculate_age,
    )


@patients_bp.route("/save", methods=["POST"])
@section_required("patients")
def save_patient():
    """
    Create or update a patient from the list-page form.
    """
    patient_id = request.form.get("patient_id") or None
    try:
        form = _patient_form()
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("patients.list_patients"))

    if patient_id:
        saved = patient_service.update_patient(patient_id, form.model_dump())
    else:
        saved = patient_service.create_patient(form.model_dump(), created_by=current_user_id())

    if saved is None:
        flash("Erreur lors de l'enregistrement du patient.", "error")
    else:
        flash(f"Patient {saved.full_name} enregistré.", "success")
    return redirect(url_for("patients.list_patients"))


@patients_bp.route("/<patient_id>", methods=["GET"])
@section_required("patients")
def patient_detail(patient_id: str):
    patient, records = patient_service.get_patient_with_medical_history(patient_id)
    if patient is None:
        flash("Patient introuvable.", "error")
        return redirect(url_for("patients.list_patients"))

    return render_template(
        "patient_detail.html",
        active_page="patients",
        patient=patient,
        age=patient_service.calculate_age(patient.date_of_birth),
        records=records,
        appointments=appointment_service.get_appointments_by_patient(patient_id),
        vitals=vital_signs_service.get_vital_signs_by_patient(patient_id),
    )


@patients_bp.route("/<patient_id>/delete", methods=["POST"])
@section_required("patients")
def delete_patient_route(patient_id: str):
    if patient_service.delete_patient(patient_id):
        flash("Patient supprimé.", "success")
    else:
        flash("Erreur lors de la suppression du patient.", "error")
    return redirect(url_for("patients.list_patients"))
