from flask import Blueprint, flash, redirect, render_template, request, url_for
from pydantic import ValidationError

from src.models.medicine_db import MEDICINE_CATEGORIES
from src.models.schemas import MedicineForm, StockMovementForm
from src.routes.guards import current_user_id, form_data, section_required, validation_message
from src.services import medicine_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/inventory")

MEDICINE_FIELDS = (
    "name", "category", "manufacturer", "batch_number", "expiry_date", "current_stock",
    "min_stock", "unit_price", "location", "unit", "description",
)


@inventory_bp.route("/", methods=["GET"])
@section_required("inventory")
def list_medicines():
    filters = {
        "term": request.args.get("q", ""),
        "category": request.args.get("category", "all"),
        "stock": request.args.get("stock", "all"),
    }
    return render_template(
        "inventory.html",
        active_page="inventory",
        medicines=medicine_service.filter_medicines(medicine_service.get_all_medicines(), **filters),
        stats=medicine_service.get_inventory_stats(),
        expiring=medicine_service.get_expiring_medicines(),
        movements=medicine_service.get_stock_movements()[:20],
        categories=MEDICINE_CATEGORIES,
        filters=filters,
    )


@inventory_bp.route("/save", methods=["POST"])
@section_required("inventory")
def save_medicine():
    medicine_id = request.form.get("medicine_id") or None
    try:
        form = MedicineForm(**form_data(request.form, *MEDICINE_FIELDS))
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("inventory.list_medicines"))

    if medicine_id:
        # Stock only moves through stock movements once the product exists
        saved = medicine_service.update_medicine(medicine_id, form.model_dump(exclude={"current_stock"}))
    else:
        saved = medicine_service.create_medicine(form.model_dump(), created_by=current_user_id())

    if saved is None:
        flash("Erreur lors de l'enregistrement du produit.", "error")
    else:
        flash(f"Produit {saved.name} enregistré.", "success")
    return redirect(url_for("inventory.list_medicines"))


@inventory_bp.route("/<medicine_id>/delete", methods=["POST"])
@section_required("inventory")
def delete_medicine(medicine_id: str):
    if medicine_service.delete_medicine(medicine_id):
        flash("Produit supprimé.", "success")
    else:
        flash("Erreur lors de la suppression du produit.", "error")
    return redirect(url_for("inventory.list_medicines"))


@inventory_bp.route("/<medicine_id>/movements", methods=["POST"])
@section_required("inventory")
def add_movement(medicine_id: str):
    try:
        form = StockMovementForm(
            medicine_id=medicine_id,
            **form_data(request.form, "type", "quantity", "reason", "reference", "date"),
        )
    except ValidationError as e:
        flash(validation_message(e), "error")
        return redirect(url_for("inventory.list_medicines"))

    if medicine_service.add_stock_movement(form.model_dump(), user_id=current_user_id()) is None:
        flash("Erreur lors de l'enregistrement du mouvement de stock.", "error")
    else:
        flash("Mouvement de stock enregistré.", "success")
    return redirect(url_for("inventory.list_medicines"))
