from flask import Blueprint, flash, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.profile_db import ROLES
from src.models.schemas import ProfileForm
from src.routes.guards import form_data, section_required, validation_message
from src.services import profile_service


staff_bp = Blueprint("staff", __name__, url_prefix="/staff")

PROFILE_FIELDS = (
    "first_name", "last_name", "role", "phone", "speciality", "department",
    "hire_date", "salary", "work_schedule", "emergency_contact", "address",
)


@staff_bp.route("/", methods=["GET"])
@section_required("staff")
def list_staff():
    role = request.args.get("role", "all")
    term = request.args.get("q", "").strip().lower()

    staff = profile_service.get_all_profiles()
    if role in ROLES:
        staff = [p for p in staff if p.role == role]
    if term:
        staff = [p for p in staff if term in p.full_name.lower() or term in p.email.lower()]

    return render_template(
        "staff.html",
        active_page="staff",
        staff=staff,
        stats=profile_service.get_profile_stats(),
        roles=ROLES,
        role=role,
        q=term,
    )


@staff_bp.route("/<profile_id>/save", methods=["POST"])
@section_required("staff")
def save_profile(profile_id: str):
    try:
        form = ProfileForm(**form_data(request.form, *PROFILE_FIELDS))
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("staff.list_staff"))

    # is_active is toggled separately
    updates = form.model_dump(exclude={"is_active"})
    if profile_service.update_profile(profile_id, updates) is None:
        flash("Erreur lors de la mise à jour du membre du personnel.", "error")
    else:
        flash("Profil mis à jour.", "success")
    return redirect(url_for("staff.list_staff"))


@staff_bp.route("/<profile_id>/toggle", methods=["POST"])
@section_required("staff")
def toggle_active(profile_id: str):
    profile = profile_service.get_profile(profile_id)
    if profile is None:
        flash("Membre du personnel introuvable.", "error")
    elif profile_service.update_profile(profile_id, {"is_active": not profile.is_active}) is None:
        flash("Erreur lors de la mise à jour du statut.", "error")
    return redirect(url_for("staff.list_staff"))
