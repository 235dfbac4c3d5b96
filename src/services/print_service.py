from datetime import datetime
import logging

import pytz
from flask import current_app, render_template


logger = logging.getLogger("print_service")

CONSULTATION_TYPE_LABELS = {
    "general": "Générale",
    "specialist": "Spécialisée",
    "emergency": "Urgence",
    "followup": "Suivi",
    "preventive": "Préventive",
    "other": "Autre",
}

VALIDITY_DAYS = 30


def consultation_type_label(type_: str) -> str:
    return CONSULTATION_TYPE_LABELS.get(type_, "Non défini")


def render_ordonnance(record, now: datetime | None = None) -> str | None:
    """
    Standalone printable HTML for a consultation's prescriptions.

    The page calls ``window.print()`` once loaded and closes itself after
    printing. Needs an app context for the template and clinic settings.
    """
    try:
        cfg = current_app.config
        if now is None:
            now = datetime.now(pytz.timezone(cfg.get("CLINIC_TIMEZONE", "UTC")))

        doctor = record.doctor
        return render_template(
            "ordonnance.html",
            record=record,
            patient=record.patient,
            doctor_name=f"Dr. {doctor.full_name}" if doctor else f"Dr. {cfg['CLINIC_NAME']}",
            prescriptions=list(record.prescriptions),
            consultation_label=consultation_type_label(record.type),
            clinic_name=cfg["CLINIC_NAME"],
            clinic_address=cfg["CLINIC_ADDRESS"],
            clinic_contact=cfg["CLINIC_CONTACT"],
            generated_date=now.strftime("%d/%m/%Y"),
            generated_time=now.strftime("%H:%M:%S"),
            validity_days=VALIDITY_DAYS,
        )
    except Exception as e:
        logger.exception(f"[render_ordonnance] Failed for record={getattr(record, 'id', None)}: {e}")
        return None
