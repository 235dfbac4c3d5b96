from flask import Blueprint, flash, g, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.medical_record_db import CONSULTATION_TYPES
from src.models.schemas import VitalSignsForm, WorkflowForm
from src.models.workflow_db import WORKFLOW_STATUS_LABELS, WORKFLOW_STATUSES
from src.routes.guards import (
    current_user_id,
    form_data,
    has_permission,
    may_act_on,
    section_required,
    validation_message,
)
from src.services import patient_service, profile_service, vital_signs_service, workflow_service


workflow_bp = Blueprint("workflow", __name__, url_prefix="/workflow")

VITAL_FIELDS = (
    "temperature", "blood_pressure_systolic", "blood_pressure_diastolic", "heart_rate",
    "weight", "height", "oxygen_saturation", "respiratory_rate", "notes",
)


def _back():
    # Doctors drive their queue from the consultations page
    if has_permission(g.auth.user.role, "workflow"):
        return redirect(url_for("workflow.list_queue"))
    return redirect(url_for("consultations.list_consultations"))


@workflow_bp.route("/", methods=["GET"])
@section_required("workflow")
def list_queue():
    status = request.args.get("status", "all")
    if status in WORKFLOW_STATUSES:
        workflows = workflow_service.get_workflows_by_status(status)
    else:
        status = "all"
        workflows = workflow_service.get_all_workflows()

    return render_template(
        "workflow.html",
        active_page="workflow",
        workflows=workflows,
        status=status,
        statuses=WORKFLOW_STATUSES,
        status_labels=WORKFLOW_STATUS_LABELS,
        consultation_types=CONSULTATION_TYPES,
        stats=workflow_service.get_workflow_stats(),
        patients=patient_service.get_all_patients(),
        doctors=profile_service.get_doctors(),
        bmi=vital_signs_service.calculate_bmi,
        bmi_label=vital_signs_service.interpret_bmi,
        bp_label=vital_signs_service.interpret_blood_pressure,
    )


@workflow_bp.route("/create", methods=["POST"])
@section_required("workflow")
def create_workflow():
    try:
        form = WorkflowForm(**form_data(request.form, "patient_id", "invoice_id", "consultation_type", "status"))
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("workflow.list_queue"))

    if workflow_service.create_workflow(form.model_dump(), created_by=current_user_id()) is None:
        flash("Erreur lors de la création du parcours.", "error")
    else:
        flash("Patient ajouté à la file.", "success")
    return redirect(url_for("workflow.list_queue"))


@workflow_bp.route("/<workflow_id>/vitals", methods=["POST"])
@section_required("workflow")
def record_vitals(workflow_id: str):
    try:
        form = VitalSignsForm(**form_data(request.form, *VITAL_FIELDS))
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("workflow.list_queue"))

    if workflow_service.record_vital_signs(workflow_id, form.model_dump(), recorded_by=current_user_id()) is None:
        flash("Impossible d'enregistrer les constantes pour ce patient.", "error")
    else:
        flash("Constantes vitales enregistrées.", "success")
    return redirect(url_for("workflow.list_queue"))


@workflow_bp.route("/<workflow_id>/assign", methods=["POST"])
@section_required("workflow")
def assign_doctor(workflow_id: str):
    doctor_id = (request.form.get("doctor_id") or "").strip()
    if doctor_id not in {d.id for d in profile_service.get_doctors()}:
        flash("Médecin invalide.", "error")
    elif workflow_service.assign_doctor(workflow_id, doctor_id) is None:
        flash("Impossible d'attribuer ce patient.", "error")
    else:
        flash("Médecin attribué.", "success")
    return redirect(url_for("workflow.list_queue"))


@workflow_bp.route("/<workflow_id>/start", methods=["POST"])
@section_required("consultations")
def start_consultation(workflow_id: str):
    workflow = workflow_service.get_workflow(workflow_id)
    if workflow is None or not may_act_on(workflow.doctor_id):
        flash("Ce patient n'est pas dans votre file.", "error")
    elif workflow_service.start_consultation(workflow_id) is None:
        flash("Cette consultation ne peut pas commencer.", "error")
    return _back()


@workflow_bp.route("/<workflow_id>/complete", methods=["POST"])
@section_required("consultations")
def complete_consultation(workflow_id: str):
    workflow = workflow_service.get_workflow(workflow_id)
    if workflow is None or not may_act_on(workflow.doctor_id):
        flash("Ce patient n'est pas dans votre file.", "error")
    elif workflow_service.complete_consultation(workflow_id) is None:
        flash("Cette consultation n'est pas en cours.", "error")
    else:
        flash("Consultation terminée.", "success")
    return _back()


@workflow_bp.route("/<workflow_id>/delete", methods=["POST"])
@section_required("workflow")
def delete_workflow(workflow_id: str):
    if workflow_service.delete_workflow(workflow_id):
        flash("Parcours supprimé.", "success")
    else:
        flash("Erreur lors de la suppression du parcours.", "error")
    return redirect(url_for("workflow.list_queue"))
