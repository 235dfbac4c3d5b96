from datetime import date

from flask import Blueprint, flash, g, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.appointments_db import APPOINTMENT_STATUSES
from src.models.schemas import AppointmentForm
from src.routes.guards import current_user_id, form_data, may_act_on, section_required, validation_message
from src.services import appointment_service, patient_service, profile_service


appointments_bp = Blueprint("appointments", __name__, url_prefix="/appointments")

APPOINTMENT_FIELDS = ("patient_id", "doctor_id", "date", "time", "duration", "reason", "status", "notes")


def _owns_appointment(appointment_id: str) -> bool:
    appointment = appointment_service.get_appointment(appointment_id)
    return appointment is None or may_act_on(appointment.doctor_id)


def _refused():
    flash("Vous ne pouvez modifier que vos propres rendez-vous.", "error")
    return redirect(url_for("appointments.list_appointments"))


@appointments_bp.route("/", methods=["GET"])
@section_required("appointments")
def list_appointments():
    """
    Appointment list; doctors only see their own schedule.
    """
    if g.auth.user.role == "doctor":
        appointments = appointment_service.get_appointments_by_doctor(g.auth.user.id)
    else:
        appointments = appointment_service.get_all_appointments()

    filters = {
        "term": request.args.get("q", ""),
        "status": request.args.get("status", "all"),
        "date_from": request.args.get("from") or None,
        "date_to": request.args.get("to") or None,
    }
    try:
        week = appointment_service.week_dates(request.args.get("week") or date.today().strftime("%Y-%m-%d"))
    except ValueError:
        week = appointment_service.week_dates(date.today().strftime("%Y-%m-%d"))

    return render_template(
        "appointments.html",
        active_page="appointments",
        appointments=appointment_service.filter_appointments(appointments, **filters),
        filters=filters,
        statuses=APPOINTMENT_STATUSES,
        week=week,
        patients=patient_service.get_all_patients(),
        doctors=profile_service.get_doctors(),
    )


@appointments_bp.route("/save", methods=["POST"])
@section_required("appointments")
def save_appointment():
    """
    Create or update an appointment after checking the doctor's slot is free.
    """
    appointment_id = request.form.get("appointment_id") or None
    try:
        form = AppointmentForm(**form_data(request.form, *APPOINTMENT_FIELDS))
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("appointments.list_appointments"))

    if not may_act_on(form.doctor_id) or (appointment_id and not _owns_appointment(appointment_id)):
        return _refused()

    if form.status != "cancelled" and not appointment_service.check_availability(
        form.doctor_id, form.date, form.time, form.duration, exclude_appointment_id=appointment_id
    ):
        flash("Ce créneau n'est pas disponible pour ce médecin.", "error")
        return redirect(url_for("appointments.list_appointments"))

    if appointment_id:
        saved = appointment_service.update_appointment(appointment_id, form.model_dump())
    else:
        saved = appointment_service.create_appointment(form.model_dump(), created_by=current_user_id())

    if saved is None:
        flash("Erreur lors de l'enregistrement du rendez-vous.", "error")
    else:
        flash(f"Rendez-vous enregistré le {saved.date} à {saved.time}.", "success")
    return redirect(url_for("appointments.list_appointments"))


@appointments_bp.route("/<appointment_id>/status", methods=["POST"])
@section_required("appointments")
def update_status(appointment_id: str):
    if not _owns_appointment(appointment_id):
        return _refused()
    status = request.form.get("status", "")
    if status not in APPOINTMENT_STATUSES:
        flash("Statut invalide.", "error")
    elif appointment_service.update_appointment(appointment_id, {"status": status}) is None:
        flash("Erreur lors de la mise à jour du rendez-vous.", "error")
    return redirect(url_for("appointments.list_appointments"))


@appointments_bp.route("/<appointment_id>/delete", methods=["POST"])
@section_required("appointments")
def delete_appointment_route(appointment_id: str):
    if not _owns_appointment(appointment_id):
        return _refused()
    if appointment_service.delete_appointment(appointment_id):
        flash("Rendez-vous supprimé.", "success")
    else:
        flash("Erreur lors de la suppression du rendez-vous.", "error")
    return redirect(url_for("appointments.list_appointments"))
