from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.medical_record_db import CONSULTATION_TYPES
from src.models.schemas import MedicalRecordForm, PrescriptionForm
from src.routes.guards import (
    form_data,
    has_permission,
    login_required,
    may_act_on,
    section_required,
    validation_message,
)
from src.services import medical_record_service, patient_service, print_service, profile_service, workflow_service


consultations_bp = Blueprint("consultations", __name__)

RECORD_FIELDS = (
    "patient_id", "doctor_id", "appointment_id", "date", "type",
    "reason", "symptoms", "diagnosis", "treatment", "notes",
)
PRESCRIPTION_FIELDS = ("medication", "dosage", "frequency", "duration", "instructions")


def _prescription_rows(form) -> list[dict]:
    """Rows from the repeated ``medication[]``/``dosage[]``/... inputs; blank rows skipped."""
    columns = {f: form.getlist(f"{f}[]") for f in PRESCRIPTION_FIELDS}
    rows = []
    for i in range(len(columns["medication"])):
        row = {f: (columns[f][i] if i < len(columns[f]) else "").strip() for f in PRESCRIPTION_FIELDS}
        if not row["medication"]:
            continue
        rows.append(PrescriptionForm(**{k: v for k, v in row.items() if v}).model_dump())
    return rows


def _owns_record(record_id: str) -> bool:
    record = medical_record_service.get_record(record_id)
    return record is None or may_act_on(record.doctor_id)


def _refused():
    flash("Vous ne pouvez modifier que vos propres consultations.", "error")
    return redirect(url_for("consultations.list_consultations"))


@consultations_bp.route("/consultations/", methods=["GET"])
@section_required("consultations")
def list_consultations():
    term = request.args.get("q", "").strip()
    own_id = g.auth.user.id if g.auth.user.role == "doctor" else None
    if term:
        records = medical_record_service.search_records(term, doctor_id=own_id)
    elif own_id:
        records = medical_record_service.get_records_by_doctor(own_id)
    else:
        records = medical_record_service.get_all_records()

    return render_template(
        "consultations.html",
        active_page="consultations",
        records=records,
        q=term,
        types=CONSULTATION_TYPES,
        queue=workflow_service.get_workflows_by_doctor(own_id) if own_id else [],
        type_label=print_service.consultation_type_label,
        patients=patient_service.get_all_patients(),
        doctors=profile_service.get_doctors(),
    )


@consultations_bp.route("/consultations/save", methods=["POST"])
@section_required("consultations")
def save_consultation():
    """
    Create a consultation with its prescriptions, or update an existing one.
    """
    record_id = request.form.get("record_id") or None
    data = form_data(request.form, *RECORD_FIELDS)
    if g.auth.user.role == "doctor":
        data["doctor_id"] = g.auth.user.id
        if record_id and not _owns_record(record_id):
            return _refused()

    try:
        form = MedicalRecordForm(**data)
        prescriptions = _prescription_rows(request.form)
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("consultations.list_consultations"))

    if record_id:
        saved = medical_record_service.update_record(record_id, form.model_dump())
    else:
        saved = medical_record_service.create_record(form.model_dump(), prescriptions)

    if saved is None:
        flash("Erreur lors de l'enregistrement de la consultation.", "error")
    elif not record_id and len(saved.prescriptions) < len(prescriptions):
        flash("Consultation enregistrée, mais l'ordonnance n'a pas pu être ajoutée.", "error")
    else:
        flash("Consultation enregistrée.", "success")
    return redirect(url_for("consultations.list_consultations"))


@consultations_bp.route("/consultations/<record_id>/delete", methods=["POST"])
@section_required("consultations")
def delete_consultation(record_id: str):
    if not _owns_record(record_id):
        return _refused()
    if medical_record_service.delete_record(record_id):
        flash("Consultation supprimée.", "success")
    else:
        flash("Erreur lors de la suppression de la consultation.", "error")
    return redirect(url_for("consultations.list_consultations"))


@consultations_bp.route("/consultations/<record_id>/prescriptions", methods=["POST"])
@section_required("consultations")
def add_prescription(record_id: str):
    if not _owns_record(record_id):
        return _refused()
    try:
        form = PrescriptionForm(**form_data(request.form, *PRESCRIPTION_FIELDS))
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("consultations.list_consultations"))

    if medical_record_service.add_prescription(record_id, form.model_dump()) is None:
        flash("Erreur lors de l'ajout du médicament.", "error")
    return redirect(url_for("consultations.list_consultations"))


@consultations_bp.route("/prescriptions/<prescription_id>/delete", methods=["POST"])
@section_required("consultations")
def delete_prescription(prescription_id: str):
    prescription = medical_record_service.get_prescription(prescription_id)
    if prescription is not None and not _owns_record(prescription.medical_record_id):
        return _refused()
    if not medical_record_service.delete_prescription(prescription_id):
        flash("Erreur lors de la suppression du médicament.", "error")
    return redirect(url_for("consultations.list_consultations"))


@consultations_bp.route("/prescriptions/", methods=["GET"])
@section_required("prescriptions")
def list_prescriptions():
    term = request.args.get("q", "").strip().lower()
    records = medical_record_service.get_prescription_records()
    if term:
        records = [
            r for r in records
            if (r.patient and term in r.patient.full_name.lower())
            or any(term in p.medication.lower() for p in r.prescriptions)
        ]
    return render_template(
        "prescriptions.html",
        active_page="prescriptions",
        records=records,
        q=term,
        type_label=print_service.consultation_type_label,
    )


@consultations_bp.route("/prescriptions/<record_id>/print", methods=["GET"])
@login_required
def print_ordonnance(record_id: str):
    role = g.auth.user.role
    if not (has_permission(role, "prescriptions") or has_permission(role, "consultations")):
        abort(403)

    record = medical_record_service.get_record(record_id)
    if record is None:
        abort(404)
    if not has_permission(role, "prescriptions") and not may_act_on(record.doctor_id):
        abort(403)

    html = print_service.render_ordonnance(record)
    if html is None:
        flash("Impossible de générer l'ordonnance.", "error")
        return redirect(url_for("consultations.list_prescriptions"))
    return html
