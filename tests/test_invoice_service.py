from datetime import date

import pytest

from extensions import db
from src.models import Invoice
from src.services import invoice_service as svc


@pytest.fixture
def patient(make_patient):
    return make_patient()


def _items():
    return [
        {"description": "Consultation générale", "quantity": 1, "unit_price": 10000},
        {"description": "Paracétamol 500mg", "quantity": 2, "unit_price": 1500},
    ]


def test_invoice_ids_are_sequential_per_month(patient):
    march = date(2026, 3, 5)
    assert svc.generate_invoice_id(march) == "INV-2026-03001"

    first = svc.create_invoice({"patient_id": patient.id, "date": march}, _items())
    second = svc.create_invoice({"patient_id": patient.id, "date": march}, _items())
    april = svc.create_invoice({"patient_id": patient.id, "date": date(2026, 4, 1)}, _items())

    assert first.id == "INV-2026-03001"
    assert second.id == "INV-2026-03002"
    assert april.id == "INV-2026-04001"


def test_invoice_ids_keep_counting_past_999(patient):
    march = date(2026, 3, 5)
    db.session.add(Invoice(id="INV-2026-03999", patient_id=patient.id, date=march))
    db.session.commit()

    thousandth = svc.create_invoice({"patient_id": patient.id, "date": march}, _items())
    following = svc.create_invoice({"patient_id": patient.id, "date": march}, _items())

    assert thousandth.id == "INV-2026-031000"
    assert following.id == "INV-2026-031001"


def test_totals_are_derived_from_items(patient):
    invoice = svc.create_invoice({"patient_id": patient.id, "date": date(2026, 3, 5), "tax": 500}, _items())

    assert [i.total for i in invoice.items] == [10000, 3000]
    assert invoice.subtotal == 13000
    assert invoice.total == 13500
    assert invoice.status == "pending"


def test_payments_covering_total_mark_invoice_paid(patient):
    invoice = svc.create_invoice({"patient_id": patient.id, "date": date(2026, 3, 5)}, _items())

    svc.add_payment({"invoice_id": invoice.id, "amount": 5000, "payment_method": "cash", "payment_date": date(2026, 3, 5)})
    assert svc.get_invoice(invoice.id).status == "pending"

    svc.add_payment(
        {"invoice_id": invoice.id, "amount": 8000, "payment_method": "mobile-money", "payment_date": date(2026, 3, 6)}
    )
    paid = svc.get_invoice(invoice.id)

    assert paid.status == "paid"
    assert paid.payment_method == "mobile-money"
    assert paid.paid_at is not None
    assert paid.amount_paid == 13000


def test_payment_on_unknown_invoice_fails(app):
    assert svc.add_payment(
        {"invoice_id": "INV-0000-00000", "amount": 10, "payment_method": "cash", "payment_date": date(2026, 3, 5)}
    ) is None


def test_delete_invoice_removes_items(patient):
    invoice = svc.create_invoice({"patient_id": patient.id, "date": date(2026, 3, 5)}, _items())

    assert svc.delete_invoice(invoice.id)
    assert svc.get_invoice(invoice.id) is None
    assert svc.get_all_invoices() == []


def test_billing_stats(patient):
    today = date.today()
    paid = svc.create_invoice({"patient_id": patient.id, "date": today}, _items())
    svc.create_invoice({"patient_id": patient.id, "date": today}, _items())
    svc.update_invoice(paid.id, {"status": "paid"})

    stats = svc.get_billing_stats(today)

    assert stats["total_invoices"] == 2
    assert stats["paid_invoices"] == 1
    assert stats["total_revenue"] == 26000
    assert stats["paid_amount"] == 13000
    assert stats["pending_amount"] == 13000


def test_filter_invoices(patient, make_patient):
    other = make_patient(first_name="Bob", last_name="Alima", phone="699000000")
    today = date(2026, 3, 20)
    recent = svc.create_invoice({"patient_id": patient.id, "date": today}, _items())
    svc.create_invoice({"patient_id": other.id, "date": date(2026, 3, 15)}, _items())
    svc.create_invoice({"patient_id": other.id, "date": date(2026, 1, 2)}, _items())
    svc.update_invoice(recent.id, {"status": "paid"})
    invoices = svc.get_all_invoices()

    assert len(svc.filter_invoices(invoices, term="bob", today=today)) == 2
    assert len(svc.filter_invoices(invoices, term="inv-2026-01", today=today)) == 1
    assert [i.id for i in svc.filter_invoices(invoices, status="paid", today=today)] == [recent.id]
    assert len(svc.filter_invoices(invoices, period="today", today=today)) == 1
    assert len(svc.filter_invoices(invoices, period="week", today=today)) == 2
    assert len(svc.filter_invoices(invoices, period="month", today=today)) == 2
