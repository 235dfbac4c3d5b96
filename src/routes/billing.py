from flask import Blueprint, flash, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.invoice_db import INVOICE_STATUSES, INVOICE_TYPES, PAYMENT_METHODS
from src.models.schemas import InvoiceForm, InvoiceItemForm, PaymentForm
from src.routes.guards import current_user_id, form_data, section_required, validation_message
from src.services import invoice_service, medicine_service, patient_service, workflow_service


billing_bp = Blueprint("billing", __name__, url_prefix="/billing")

ITEM_FIELDS = ("description", "quantity", "unit_price", "medicine_id")


def _item_rows(form) -> list[dict]:
    columns = {f: form.getlist(f"{f}[]") for f in ITEM_FIELDS}
    rows = []
    for i in range(len(columns["description"])):
        row = {f: (columns[f][i] if i < len(columns[f]) else "").strip() for f in ITEM_FIELDS}
        if not row["description"]:
            continue
        rows.append(InvoiceItemForm(**{k: v for k, v in row.items() if v}).model_dump())
    return rows


@billing_bp.route("/", methods=["GET"])
@section_required("billing")
def list_invoices():
    filters = {
        "term": request.args.get("q", ""),
        "status": request.args.get("status", "all"),
        "period": request.args.get("period", "all"),
    }
    return render_template(
        "billing.html",
        active_page="billing",
        invoices=invoice_service.filter_invoices(invoice_service.get_all_invoices(), **filters),
        stats=invoice_service.get_billing_stats(),
        filters=filters,
        statuses=INVOICE_STATUSES,
        invoice_types=INVOICE_TYPES,
        patients=patient_service.get_all_patients(),
        medicines=medicine_service.get_all_medicines(),
    )


@billing_bp.route("/create", methods=["POST"])
@section_required("billing")
def create_invoice():
    try:
        form = InvoiceForm(**form_data(request.form, "patient_id", "appointment_id", "date", "tax", "invoice_type"))
        items = _item_rows(request.form)
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("billing.list_invoices"))

    if not items:
        flash("Ajoutez au moins une ligne à la facture.", "error")
        return redirect(url_for("billing.list_invoices"))

    invoice = invoice_service.create_invoice(form.model_dump(), items, created_by=current_user_id())
    if invoice is None:
        flash("Erreur lors de la création de la facture.", "error")
        return redirect(url_for("billing.list_invoices"))

    workflow_service.open_for_invoice(invoice, created_by=current_user_id())
    flash(f"Facture {invoice.id} créée.", "success")
    return redirect(url_for("billing.invoice_detail", invoice_id=invoice.id))


@billing_bp.route("/<invoice_id>", methods=["GET"])
@section_required("billing")
def invoice_detail(invoice_id: str):
    invoice = invoice_service.get_invoice(invoice_id)
    if invoice is None:
        flash("Facture introuvable.", "error")
        return redirect(url_for("billing.list_invoices"))

    return render_template(
        "invoice_detail.html",
        active_page="billing",
        invoice=invoice,
        payment_methods=PAYMENT_METHODS,
        statuses=INVOICE_STATUSES,
    )


@billing_bp.route("/<invoice_id>/payments", methods=["POST"])
@section_required("billing")
def add_payment(invoice_id: str):
    try:
        form = PaymentForm(
            invoice_id=invoice_id,
            **form_data(request.form, "amount", "payment_method", "payment_date", "reference", "notes"),
        )
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("billing.invoice_detail", invoice_id=invoice_id))

    if invoice_service.add_payment(form.model_dump(), created_by=current_user_id()) is None:
        flash("Erreur lors de l'enregistrement du paiement.", "error")
    else:
        flash("Paiement enregistré.", "success")
        invoice = invoice_service.get_invoice(invoice_id)
        if invoice is not None and invoice.status == "paid":
            workflow_service.mark_invoice_paid(invoice_id)
    return redirect(url_for("billing.invoice_detail", invoice_id=invoice_id))


@billing_bp.route("/<invoice_id>/status", methods=["POST"])
@section_required("billing")
def update_status(invoice_id: str):
    status = request.form.get("status", "")
    if status not in INVOICE_STATUSES:
        flash("Statut invalide.", "error")
    elif invoice_service.update_invoice(invoice_id, {"status": status}) is None:
        flash("Erreur lors de la mise à jour de la facture.", "error")
    return redirect(url_for("billing.invoice_detail", invoice_id=invoice_id))


@billing_bp.route("/<invoice_id>/delete", methods=["POST"])
@section_required("billing")
def delete_invoice(invoice_id: str):
    if invoice_service.delete_invoice(invoice_id):
        flash("Facture supprimée.", "success")
    else:
        flash("Erreur lors de la suppression de la facture.", "error")
    return redirect(url_for("billing.list_invoices"))
