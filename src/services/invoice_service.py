from datetime import date, datetime, timezone
import logging

from sqlalchemy.orm import joinedload, selectinload

from extensions import db
from src.models import Invoice, InvoiceItem, Payment
from src.services.db_context import db_context, rollback


logger = logging.getLogger("invoice_service")


def _with_relations(query):
    return query.options(
        joinedload(Invoice.patient),
        selectinload(Invoice.items),
        selectinload(Invoice.payments),
    )


def get_all_invoices():
    try:
        with db_context():
            return _with_relations(Invoice.query).order_by(Invoice.created_at.desc()).all()
    except Exception as e:
        logger.exception(f"[get_all_invoices] Failed: {e}")
        return []


def get_invoice(invoice_id: str):
    try:
        with db_context():
            return _with_relations(Invoice.query).filter(Invoice.id == invoice_id).first()
    except Exception as e:
        logger.exception(f"[get_invoice] Failed for id={invoice_id}: {e}")
        return None


def generate_invoice_id(today: date | None = None) -> str:
    """Next ``INV-YYYY-MMNNN`` id; numbering restarts every month."""
    today = today or date.today()
    prefix = f"INV-{today.year}-{today.month:02d}"
    next_number = 1

    try:
        with db_context():
            rows = Invoice.query.with_entities(Invoice.id).filter(Invoice.id.like(f"{prefix}%")).all()
        # Compare numerically, "1000" sorts before "999" as text
        numbers = [int(row.id[len(prefix):]) for row in rows if row.id[len(prefix):].isdigit()]
        if numbers:
            next_number = max(numbers) + 1
    except Exception as e:
        logger.exception(f"[generate_invoice_id] Could not read last id for {prefix}: {e}")

    return f"{prefix}{next_number:03d}"


def create_invoice(data: dict, items: list[dict], created_by: str | None = None):
    """Create an invoice and its line items; totals are derived from the items."""
    invoice_id = generate_invoice_id(data.get("date"))
    line_items = []
    for item in items:
        quantity = item.get("quantity", 1)
        line_items.append({**item, "quantity": quantity, "total": quantity * item["unit_price"]})

    subtotal = sum(i["total"] for i in line_items)
    tax = data.get("tax", 0) or 0

    try:
        with db_context():
            invoice = Invoice(
                **{k: v for k, v in data.items() if k not in ("subtotal", "total", "tax")},
                id=invoice_id,
                subtotal=subtotal,
                tax=tax,
                total=subtotal + tax,
                created_by=created_by,
            )
            invoice.items = [InvoiceItem(**i) for i in line_items]
            db.session.add(invoice)
            db.session.commit()
            logger.info(f"[create_invoice] Created {invoice_id} total={invoice.total}")
            return invoice
    except Exception as e:
        rollback()
        logger.exception(f"[create_invoice] Failed for patient={data.get('patient_id')}: {e}")
        return None


def update_invoice(invoice_id: str, updates: dict):
    try:
        with db_context():
            invoice = db.session.get(Invoice, invoice_id)
            if not invoice:
                return None

            for key, value in updates.items():
                if key in ("id", "created_at", "created_by"):
                    continue
                setattr(invoice, key, value)

            db.session.commit()
            return invoice
    except Exception as e:
        rollback()
        logger.exception(f"[update_invoice] Failed for id={invoice_id}: {e}")
        return None


def delete_invoice(invoice_id: str) -> bool:
    try:
        with db_context():
            invoice = db.session.get(Invoice, invoice_id)
            if not invoice:
                return False
            db.session.delete(invoice)
            db.session.commit()
            return True
    except Exception as e:
        rollback()
        logger.exception(f"[delete_invoice] Error deleting invoice {invoice_id}: {e}")
        return False


def add_payment(data: dict, created_by: str | None = None):
    """Record a payment; the invoice flips to paid once payments cover its total."""
    invoice_id = data["invoice_id"]
    try:
        with db_context():
            if db.session.get(Invoice, invoice_id) is None:
                logger.warning(f"[add_payment] Unknown invoice {invoice_id}")
                return None
            payment = Payment(**data, created_by=created_by)
            db.session.add(payment)
            db.session.commit()
            logger.info(f"[add_payment] {payment.amount} on {invoice_id}")
    except Exception as e:
        rollback()
        logger.exception(f"[add_payment] Failed for invoice={invoice_id}: {e}")
        return None

    try:
        with db_context():
            invoice = db.session.get(Invoice, invoice_id)
            total_paid = sum(
                amount for (amount,) in
                Payment.query.with_entities(Payment.amount).filter(Payment.invoice_id == invoice_id)
            )
            if invoice and total_paid >= invoice.total and invoice.status != "paid":
                invoice.status = "paid"
                invoice.payment_method = data["payment_method"]
                invoice.paid_at = datetime.now(timezone.utc)
                db.session.commit()
                logger.info(f"[add_payment] Invoice {invoice_id} fully paid ({total_paid})")
    except Exception as e:
        rollback()
        logger.exception(f"[add_payment] Could not update status of {invoice_id}: {e}")

    return payment


def get_billing_stats(today: date | None = None) -> dict:
    today = today or date.today()
    try:
        with db_context():
            invoices = Invoice.query.with_entities(Invoice.total, Invoice.status, Invoice.created_at).all()
    except Exception as e:
        logger.exception(f"[get_billing_stats] Failed: {e}")
        invoices = []

    def _sum(rows):
        return sum(r.total for r in rows)

    paid = [i for i in invoices if i.status == "paid"]
    return {
        "total_revenue": _sum(invoices),
        "paid_amount": _sum(paid),
        "pending_amount": _sum(i for i in invoices if i.status == "pending"),
        "overdue_amount": _sum(i for i in invoices if i.status == "overdue"),
        "monthly_revenue": _sum(
            i for i in invoices
            if i.created_at and (i.created_at.year, i.created_at.month) == (today.year, today.month)
        ),
        "total_invoices": len(invoices),
        "paid_invoices": len(paid),
    }


PERIOD_DAYS = {"today": 0, "week": 7, "month": 30}


def filter_invoices(invoices, term: str = "", status: str = "all", period: str = "all", today: date | None = None):
    """List-view filter on invoice id / patient name, status and age in days."""
    today = today or date.today()
    term = (term or "").strip().lower()
    result = []
    for inv in invoices:
        if status and status != "all" and inv.status != status:
            continue
        if period in PERIOD_DAYS:
            age_days = (today - inv.date).days
            if period == "today" and age_days != 0:
                continue
            if period != "today" and age_days > PERIOD_DAYS[period]:
                continue
        if term:
            name = inv.patient.full_name.lower() if inv.patient else ""
            if term not in inv.id.lower() and term not in name:
                continue
        result.append(inv)
    return result
