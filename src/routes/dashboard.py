from flask import Blueprint, current_app, render_template

from src.routes.guards import section_required


dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/", methods=["GET"])
@dashboard_bp.route("/dashboard", methods=["GET"])
@section_required("dashboard")
def dashboard_home():
    """
    Home screen: headline stats, today's appointments and recent patients.
    """
    # Local import to avoid circular dependency during app startup.
    from src.services.dashboard_service import get_dashboard_snapshot

    context = get_dashboard_snapshot(current_app.config["CLINIC_TIMEZONE"])
    return render_template("dashboard.html", active_page="dashboard", **context)
