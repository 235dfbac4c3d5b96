from functools import wraps

from flask import flash, g, redirect, request, url_for


# (section id, label, endpoint) in sidebar order.
MENU = [
    ("dashboard", "Tableau de bord", "dashboard.dashboard_home"),
    ("patients", "Patients", "patients.list_patients"),
    ("appointments", "Rendez-vous", "appointments.list_appointments"),
    ("workflow", "Workflow Consultation", "workflow.list_queue"),
    ("consultations", "Consultations", "consultations.list_consultations"),
    ("prescriptions", "Ordonnances", "consultations.list_prescriptions"),
    ("billing", "Facturation", "billing.list_invoices"),
    ("staff", "Personnel", "staff.list_staff"),
    ("inventory", "Stock", "inventory.list_medicines"),
]

ROLE_SECTIONS = {
    "admin": {section for section, _, _ in MENU},
    "doctor": {"dashboard", "patients", "appointments", "consultations"},
    "secretary": {"dashboard", "patients", "appointments", "workflow", "prescriptions", "billing"},
}


def has_permission(role: str | None, section: str) -> bool:
    return section in ROLE_SECTIONS.get(role or "", set())


def menu_for(role: str | None) -> list[dict]:
    return [
        {"id": section, "label": label, "endpoint": endpoint}
        for section, label, endpoint in MENU
        if has_permission(role, section)
    ]


def current_user_id() -> str | None:
    auth = g.get("auth")
    return auth.user.id if auth is not None and auth.user else None


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        auth = g.get("auth")
        if auth is None or not auth.is_authenticated:
            return redirect(url_for("auth.login", next=request.path))
        return view(*args, **kwargs)

    return wrapped


def section_required(section: str):
    """Login plus role check; users without access land back on the dashboard."""
    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if not has_permission(g.auth.user.role, section):
                flash("Accès refusé pour votre rôle.", "error")
                return redirect(url_for("dashboard.dashboard_home"))
            return view(*args, **kwargs)

        return wrapped

    return decorator


def form_data(form, *fields) -> dict:
    """Selected fields from a submitted form, blanks dropped so model defaults apply."""
    data = {}
    for field in fields:
        value = (form.get(field) or "").strip()
        if value:
            data[field] = value
    return data


def validation_message(err) -> str:
    """First readable message from a pydantic ValidationError."""
    first = err.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    msg = first.get("msg", "Invalid value")
    return f"{loc}: {msg}" if loc else msg


def may_act_on(doctor_id: str | None) -> bool:
    """Doctors may only act on records carrying their own id; other roles are not scoped."""
    auth = g.get("auth")
    if auth is None or not auth.user:
        return False
    return auth.user.role != "doctor" or doctor_id == auth.user.id
