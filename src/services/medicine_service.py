from datetime import date, timedelta
import logging

from sqlalchemy import or_

from extensions import db
from src.models import Medicine, StockMovement
from src.services.db_context import db_context, rollback


logger = logging.getLogger("medicine_service")


def get_all_medicines():
    try:
        with db_context():
            return Medicine.query.order_by(Medicine.name.asc()).all()
    except Exception as e:
        logger.exception(f"[get_all_medicines] Failed: {e}")
        return []


def get_medicine(medicine_id: str):
    try:
        with db_context():
            return db.session.get(Medicine, medicine_id)
    except Exception as e:
        logger.exception(f"[get_medicine] Failed for id={medicine_id}: {e}")
        return None


def get_medicines_by_category(category: str):
    try:
        with db_context():
            return (
                Medicine.query
                .filter(Medicine.category == category)
                .order_by(Medicine.name.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_medicines_by_category] Failed for category={category}: {e}")
        return []


def get_low_stock_medicines():
    try:
        with db_context():
            return (
                Medicine.query
                .filter(Medicine.current_stock <= Medicine.min_stock)
                .order_by(Medicine.current_stock.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_low_stock_medicines] Failed: {e}")
        return []


def get_expiring_medicines(days: int = 90, today: date | None = None):
    """Medicines expiring between today and ``days`` from now. Already expired stock is left out."""
    today = today or date.today()
    limit = today + timedelta(days=days)
    try:
        with db_context():
            return (
                Medicine.query
                .filter(Medicine.expiry_date >= today, Medicine.expiry_date <= limit)
                .order_by(Medicine.expiry_date.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_expiring_medicines] Failed for days={days}: {e}")
        return []


def search_medicines(query: str):
    pattern = f"%{query.strip()}%"
    try:
        with db_context():
            return (
                Medicine.query
                .filter(or_(
                    Medicine.name.ilike(pattern),
                    Medicine.manufacturer.ilike(pattern),
                    Medicine.batch_number.ilike(pattern),
                ))
                .order_by(Medicine.name.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[search_medicines] Failed for query={query!r}: {e}")
        return []


def create_medicine(data: dict, created_by: str | None = None):
    try:
        with db_context():
            medicine = Medicine(**data, created_by=created_by)
            db.session.add(medicine)
            db.session.commit()
            logger.info(f"[create_medicine] Created {medicine.id} {medicine.name}")
            return medicine
    except Exception as e:
        rollback()
        logger.exception(f"[create_medicine] Failed for name={data.get('name')}: {e}")
        return None


def update_medicine(medicine_id: str, updates: dict):
    try:
        with db_context():
            medicine = db.session.get(Medicine, medicine_id)
            if not medicine:
                return None

            for key, value in updates.items():
                if key in ("id", "created_at", "created_by"):
                    continue
                setattr(medicine, key, value)

            db.session.commit()
            return medicine
    except Exception as e:
        rollback()
        logger.exception(f"[update_medicine] Failed for id={medicine_id}: {e}")
        return None


def delete_medicine(medicine_id: str) -> bool:
    try:
        with db_context():
            medicine = db.session.get(Medicine, medicine_id)
            if not medicine:
                return False
            db.session.delete(medicine)
            db.session.commit()
            return True
    except Exception as e:
        rollback()
        logger.exception(f"[delete_medicine] Error deleting medicine {medicine_id}: {e}")
        return False


def add_stock_movement(data: dict, user_id: str | None = None):
    """
    Record an ``in``/``out`` movement and apply it to the medicine's stock.

    The movement row and the stock update are written separately; a failed
    stock update leaves the movement in place.
    """
    medicine_id = data["medicine_id"]
    try:
        with db_context():
            medicine = db.session.get(Medicine, medicine_id)
            if medicine is None:
                logger.warning(f"[add_stock_movement] Unknown medicine {medicine_id}")
                return None
            if data["type"] == "out" and data["quantity"] > medicine.current_stock:
                logger.warning(
                    f"[add_stock_movement] Refused out {data['quantity']} on {medicine_id}, "
                    f"only {medicine.current_stock} in stock"
                )
                return None
            movement = StockMovement(**data, user_id=user_id)
            db.session.add(movement)
            db.session.commit()
    except Exception as e:
        rollback()
        logger.exception(f"[add_stock_movement] Failed for medicine={medicine_id}: {e}")
        return None

    try:
        with db_context():
            medicine = db.session.get(Medicine, medicine_id)
            if medicine:
                delta = data["quantity"] if data["type"] == "in" else -data["quantity"]
                medicine.current_stock = medicine.current_stock + delta
                db.session.commit()
                logger.info(
                    f"[add_stock_movement] {data['type']} {data['quantity']} on {medicine_id}, "
                    f"stock now {medicine.current_stock}"
                )
    except Exception as e:
        rollback()
        logger.exception(f"[add_stock_movement] Stock update failed for medicine={medicine_id}: {e}")

    return movement


def get_stock_movements(medicine_id: str | None = None):
    try:
        with db_context():
            query = StockMovement.query
            if medicine_id:
                query = query.filter(StockMovement.medicine_id == medicine_id)
            return query.order_by(StockMovement.created_at.desc()).all()
    except Exception as e:
        logger.exception(f"[get_stock_movements] Failed for medicine={medicine_id}: {e}")
        return []


def get_inventory_stats(today: date | None = None) -> dict:
    today = today or date.today()
    soon = today + timedelta(days=90)
    medicines = get_all_medicines()
    return {
        "total_items": len(medicines),
        "low_stock": sum(1 for m in medicines if m.is_low_stock),
        "out_of_stock": sum(1 for m in medicines if m.current_stock <= 0),
        "expiring_soon": sum(1 for m in medicines if today <= m.expiry_date <= soon),
        "total_value": sum(m.current_stock * m.unit_price for m in medicines),
    }


def filter_medicines(medicines, term: str = "", category: str = "all", stock: str = "all"):
    """List-view filter: name/manufacturer substring, category, and ``low``/``out`` stock level."""
    term = (term or "").strip().lower()
    result = []
    for m in medicines:
        if category and category != "all" and m.category != category:
            continue
        if stock == "low" and not m.is_low_stock:
            continue
        if stock == "out" and m.current_stock > 0:
            continue
        if term and term not in m.name.lower() and term not in (m.manufacturer or "").lower():
            continue
        result.append(m)
    return result
