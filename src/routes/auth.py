import logging

from flask import Blueprint, flash, g, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.schemas import LoginForm, SignUpForm
from src.routes.guards import validation_message
from src.services.auth_context import get_auth_context, release_auth_context


logger = logging.getLogger("routes.auth")

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.before_app_request
def load_auth_context():
    """Attach the browser client's AuthContext to ``g`` for every request."""
    if request.endpoint == "static":
        return
    g.auth = get_auth_context()


@auth_bp.teardown_app_request
def drop_signed_out_context(exc=None):
    if request.endpoint == "static":
        return
    release_auth_context(exc)


def _safe_next(target: str | None) -> str:
    # Only local paths, never an absolute URL
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return url_for("dashboard.dashboard_home")


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "GET":
        if g.auth.is_authenticated:
            return redirect(url_for("dashboard.dashboard_home"))
        return render_template("login.html", next=request.args.get("next", ""))

    try:
        form = LoginForm(
            email=request.form.get("email", ""),
            password=request.form.get("password", ""),
        )
    except ValidationError as e:
        flash(validation_message(e), "error")
        return render_template("login.html", next=request.form.get("next", "")), 400

    if not g.auth.login(form.email, form.password):
        flash("Email ou mot de passe incorrect.", "error")
        return render_template("login.html", next=request.form.get("next", "")), 401

    return redirect(_safe_next(request.form.get("next")))


@auth_bp.route("/signup", methods=["GET", "POST"])
def signup():
    if request.method == "GET":
        return render_template("signup.html")

    try:
        form = SignUpForm(
            email=request.form.get("email", ""),
            password=request.form.get("password", ""),
            first_name=request.form.get("first_name", ""),
            last_name=request.form.get("last_name", ""),
            role=request.form.get("role") or "secretary",
            phone=request.form.get("phone", ""),
            speciality=request.form.get("speciality") or None,
        )
    except ValidationError as e:
        flash(validation_message(e), "error")
        return render_template("signup.html"), 400

    result = g.auth.sign_up(
        form.email,
        form.password,
        form.model_dump(include={"first_name", "last_name", "role", "phone", "speciality"}),
    )
    if not result.success:
        flash(result.error or "Création du compte impossible.", "error")
        return render_template("signup.html"), 400

    flash("Compte créé. Vous pouvez maintenant vous connecter.", "success")
    return redirect(url_for("auth.login"))


@auth_bp.route("/logout", methods=["POST"])
def logout():
    g.auth.logout()
    return redirect(url_for("auth.login"))


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    email = (request.form.get("email") or "").strip()
    if not email:
        flash("Veuillez saisir votre email.", "error")
    elif g.auth.reset_password(email, redirect_to=url_for("auth.login", _external=True)):
        flash("Un email de réinitialisation a été envoyé.", "success")
    else:
        flash("Impossible d'envoyer l'email de réinitialisation.", "error")
    return redirect(url_for("auth.login"))
