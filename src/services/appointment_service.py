from datetime import datetime, timedelta
import logging

import pytz
from sqlalchemy.orm import joinedload

from extensions import db
from src.models import Appointment
from src.services.db_context import db_context, rollback


logger = logging.getLogger("appointment_service")


def _with_people(query):
    return query.options(joinedload(Appointment.patient), joinedload(Appointment.doctor))


def _to_minutes(time_str: str) -> int:
    """'HH:MM' (or 'HH:MM:SS') -> minutes since midnight."""
    parts = time_str.strip().split(":")
    return int(parts[0]) * 60 + int(parts[1])


def windows_overlap(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    """Half-open [start, start + duration) windows in minutes; touching ends do not overlap."""
    return start_a < start_b + duration_b and start_a + duration_a > start_b


# -------------------------------
# 📅 QUERIES
# -------------------------------

def get_all_appointments():
    try:
        with db_context():
            return (
                _with_people(Appointment.query)
                .order_by(Appointment.date.asc(), Appointment.time.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_all_appointments] Failed: {e}")
        return []


def get_appointment(appointment_id: str):
    try:
        with db_context():
            return db.session.get(Appointment, appointment_id)
    except Exception as e:
        logger.exception(f"[get_appointment] Failed for id={appointment_id}: {e}")
        return None


def get_appointments_by_date(date: str):
    try:
        with db_context():
            return (
                _with_people(Appointment.query)
                .filter(Appointment.date == date)
                .order_by(Appointment.time.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_appointments_by_date] Failed for date={date}: {e}")
        return []


def get_appointments_by_doctor(doctor_id: str, date: str | None = None):
    try:
        with db_context():
            query = _with_people(Appointment.query).filter(Appointment.doctor_id == doctor_id)
            if date:
                query = query.filter(Appointment.date == date)
            return query.order_by(Appointment.date.asc(), Appointment.time.asc()).all()
    except Exception as e:
        logger.exception(f"[get_appointments_by_doctor] Failed for doctor={doctor_id}, date={date}: {e}")
        return []


def get_appointments_by_patient(patient_id: str):
    try:
        with db_context():
            return (
                _with_people(Appointment.query)
                .filter(Appointment.patient_id == patient_id)
                .order_by(Appointment.date.desc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_appointments_by_patient] Failed for patient={patient_id}: {e}")
        return []


# -------------------------------
# ✏️ WRITES
# -------------------------------

def create_appointment(data: dict, created_by: str | None = None):
    try:
        with db_context():
            appt = Appointment(**data, created_by=created_by)
            db.session.add(appt)
            db.session.commit()
            logger.info(f"[create_appointment] Created {appt.id} on {appt.date} at {appt.time}")
            return appt
    except Exception as e:
        rollback()
        logger.exception(
            f"[create_appointment] Failed for patient_id={data.get('patient_id')}, "
            f"date={data.get('date')}, time={data.get('time')}: {e}"
        )
        return None


def update_appointment(appointment_id: str, updates: dict):
    try:
        with db_context():
            appt = db.session.get(Appointment, appointment_id)
            if not appt:
                return None

            for key, value in updates.items():
                if key in ("id", "created_at", "created_by"):
                    continue
                setattr(appt, key, value)

            db.session.commit()
            return appt
    except Exception as e:
        rollback()
        logger.exception(f"[update_appointment] Failed for id={appointment_id}: {e}")
        return None


def delete_appointment(appointment_id: str) -> bool:
    try:
        with db_context():
            appt = db.session.get(Appointment, appointment_id)
            if not appt:
                return False

            db.session.delete(appt)
            db.session.commit()
            return True

    except Exception as e:
        rollback()
        logger.exception(f"[delete_appointment] Error deleting appointment {appointment_id}: {e}")
        return False


# -------------------------------
# 🕒 AVAILABILITY
# -------------------------------

def check_availability(
    doctor_id: str,
    date: str,
    time: str,
    duration: int,
    exclude_appointment_id: str | None = None,
) -> bool:
    """
    True when ``doctor_id`` has no non-cancelled appointment on ``date``
    overlapping [time, time + duration). ``exclude_appointment_id`` lets an
    edited appointment ignore itself. A failed lookup counts as unavailable.
    """
    try:
        with db_context():
            query = (
                Appointment.query
                .with_entities(Appointment.id, Appointment.time, Appointment.duration)
                .filter(
                    Appointment.doctor_id == doctor_id,
                    Appointment.date == date,
                    Appointment.status != "cancelled",
                )
            )
            if exclude_appointment_id:
                query = query.filter(Appointment.id != exclude_appointment_id)
            existing = query.all()
    except Exception as e:
        logger.exception(f"[check_availability] Failed for doctor={doctor_id}, date={date}: {e}")
        return False

    requested_start = _to_minutes(time)
    for appt_id, appt_time, appt_duration in existing:
        if windows_overlap(requested_start, duration, _to_minutes(appt_time), appt_duration):
            logger.info(f"[check_availability] Conflict with appointment {appt_id}")
            return False

    return True


# -------------------------------
# 📊 STATS & FILTERS
# -------------------------------

def get_appointment_stats(tz_name: str = "UTC") -> dict:
    tz = pytz.timezone(tz_name)
    now = datetime.now(tz)
    today = now.strftime("%Y-%m-%d")

    try:
        with db_context():
            rows = Appointment.query.with_entities(
                Appointment.date, Appointment.status, Appointment.created_at
            ).all()
    except Exception as e:
        logger.exception(f"[get_appointment_stats] Failed: {e}")
        rows = []

    today_rows = [r for r in rows if r.date == today]
    return {
        "today": {
            "total": len(today_rows),
            "confirmed": sum(1 for r in today_rows if r.status == "confirmed"),
            "pending": sum(1 for r in today_rows if r.status == "scheduled"),
            "completed": sum(1 for r in today_rows if r.status == "completed"),
        },
        "total": {
            "all": len(rows),
            "this_month": sum(
                1 for r in rows
                if r.created_at and (r.created_at.year, r.created_at.month) == (now.year, now.month)
            ),
        },
    }


def filter_appointments(appointments, term: str = "", status: str = "all", date_from=None, date_to=None):
    """List-view filter on patient name/reason, status and an inclusive date range."""
    term = (term or "").strip().lower()
    result = []
    for a in appointments:
        if status and status != "all" and a.status != status:
            continue
        if date_from and a.date < str(date_from):
            continue
        if date_to and a.date > str(date_to):
            continue
        if term:
            name = a.patient.full_name.lower() if a.patient else ""
            if term not in name and term not in (a.reason or "").lower():
                continue
        result.append(a)
    return result


def week_dates(anchor: str) -> list[str]:
    """Monday→Sunday dates (YYYY-MM-DD) of the week containing ``anchor``."""
    day = datetime.strptime(anchor, "%Y-%m-%d").date()
    monday = day - timedelta(days=day.weekday())
    return [(monday + timedelta(days=i)).strftime("%Y-%m-%d") for i in range(7)]
