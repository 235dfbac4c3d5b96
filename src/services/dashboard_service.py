from datetime import datetime
import logging

import pytz
from sqlalchemy.orm import joinedload

from src.models import Appointment, Invoice, Medicine, Patient
from src.services.db_context import db_context


logger = logging.getLogger("dashboard_service")


def _empty_snapshot(tz_name: str = "UTC") -> dict:
    return {
        "stats": {
            "total_patients": 0,
            "today_total": 0,
            "today_scheduled": 0,
            "today_confirmed": 0,
            "today_completed": 0,
            "today_cancelled": 0,
            "monthly_revenue": 0,
            "critical_stock": 0,
            "timezone": tz_name,
            "today_label": "",
            "as_of_human": "",
        },
        "today_appointments": [],
        "recent_patients": [],
    }


def get_dashboard_snapshot(tz_name: str = "UTC") -> dict:
    """
    Aggregate data for the dashboard home:
    - Today's appointments (with patient and doctor names)
    - Totals: patients, monthly revenue, critical stock
    - Recently registered patients
    """
    try:
        try:
            tz = pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            tz = pytz.UTC

        now = datetime.now(tz)
        today_str = now.strftime("%Y-%m-%d")

        with db_context():
            todays_appointments = (
                Appointment.query
                .options(joinedload(Appointment.patient), joinedload(Appointment.doctor))
                .filter(Appointment.date == today_str)
                .order_by(Appointment.time.asc())
                .all()
            )

            recent_patients = (
                Patient.query
                .order_by(Patient.created_at.desc())
                .limit(10)
                .all()
            )

            total_patients = Patient.query.count()

            monthly_revenue = sum(
                total for total, created_at in
                Invoice.query.with_entities(Invoice.total, Invoice.created_at)
                if created_at and (created_at.year, created_at.month) == (now.year, now.month)
            )

            critical_stock = (
                Medicine.query
                .filter(Medicine.current_stock <= Medicine.min_stock)
                .count()
            )

            status_counts: dict[str, int] = {}
            today_payload = []
            for appt in todays_appointments:
                status_counts[appt.status] = status_counts.get(appt.status, 0) + 1
                today_payload.append(
                    {
                        "id": appt.id,
                        "time": appt.time,
                        "duration": appt.duration,
                        "status": appt.status,
                        "reason": appt.reason,
                        "patient_name": appt.patient.full_name if appt.patient else "Unknown",
                        "doctor_name": appt.doctor.full_name if appt.doctor else "",
                    }
                )

            patients_payload = [
                {
                    "id": p.id,
                    "name": p.full_name,
                    "phone": p.phone,
                    "created_at_human": p.created_at.strftime("%b %d, %Y") if p.created_at else "",
                }
                for p in recent_patients
            ]

        stats = {
            "total_patients": total_patients,
            "today_total": len(today_payload),
            "today_scheduled": status_counts.get("scheduled", 0),
            "today_confirmed": status_counts.get("confirmed", 0),
            "today_completed": status_counts.get("completed", 0),
            "today_cancelled": status_counts.get("cancelled", 0),
            "monthly_revenue": monthly_revenue,
            "critical_stock": critical_stock,
            "timezone": str(tz),
            "today_label": now.strftime("%A, %b %d"),
            "as_of_human": now.strftime("%b %d, %Y %H:%M"),
        }

        return {
            "stats": stats,
            "today_appointments": today_payload,
            "recent_patients": patients_payload,
        }

    except Exception as e:
        logger.exception(f"[get_dashboard_snapshot] Failed: {e}")
        # Safe empty structures so the page still renders.
        return _empty_snapshot(tz_name)
