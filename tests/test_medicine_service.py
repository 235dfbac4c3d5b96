from datetime import date, timedelta

import pytest

from src.services import medicine_service as svc


TODAY = date(2026, 3, 1)


@pytest.fixture
def add_medicine(app):
    def _add(name="Paracétamol 500mg", current_stock=100, min_stock=20, expiry_date=date(2027, 1, 1), **extra):
        data = {
            "name": name,
            "category": extra.pop("category", "medication"),
            "manufacturer": extra.pop("manufacturer", "Sanofi"),
            "batch_number": extra.pop("batch_number", "LOT-001"),
            "expiry_date": expiry_date,
            "current_stock": current_stock,
            "min_stock": min_stock,
            "unit_price": extra.pop("unit_price", 250),
            **extra,
        }
        return svc.create_medicine(data)

    return _add


def test_stock_movement_out_decreases_stock(add_medicine):
    med = add_medicine(current_stock=50)

    movement = svc.add_stock_movement(
        {"medicine_id": med.id, "type": "out", "quantity": 12, "reason": "Dispensation", "date": TODAY}
    )

    assert movement is not None
    assert svc.get_medicine(med.id).current_stock == 38


def test_stock_movement_in_increases_stock(add_medicine, make_profile):
    pharmacist = make_profile(role="admin")
    med = add_medicine(current_stock=5)

    svc.add_stock_movement(
        {"medicine_id": med.id, "type": "in", "quantity": 40, "reason": "Livraison", "date": TODAY},
        user_id=pharmacist.id,
    )

    assert svc.get_medicine(med.id).current_stock == 45
    [movement] = svc.get_stock_movements(med.id)
    assert movement.user_id == pharmacist.id


def test_stock_movement_out_beyond_stock_is_refused(add_medicine):
    med = add_medicine(current_stock=5)

    assert svc.add_stock_movement(
        {"medicine_id": med.id, "type": "out", "quantity": 50, "reason": "Dispensation", "date": TODAY}
    ) is None

    assert svc.get_medicine(med.id).current_stock == 5
    assert svc.get_stock_movements(med.id) == []


def test_stock_movement_for_unknown_medicine_fails(app):
    assert svc.add_stock_movement(
        {"medicine_id": "missing", "type": "in", "quantity": 1, "reason": "x", "date": TODAY}
    ) is None


def test_low_stock_uses_each_items_minimum(add_medicine):
    add_medicine(name="Amoxicilline", current_stock=10, min_stock=10)
    add_medicine(name="Ibuprofène", current_stock=3, min_stock=20)
    add_medicine(name="Gants", current_stock=500, min_stock=100, category="consumable")

    assert [m.name for m in svc.get_low_stock_medicines()] == ["Ibuprofène", "Amoxicilline"]


def test_expiring_within_window(add_medicine):
    add_medicine(name="Soon", expiry_date=TODAY + timedelta(days=30))
    add_medicine(name="Expired", expiry_date=TODAY - timedelta(days=1))
    add_medicine(name="Later", expiry_date=TODAY + timedelta(days=200))

    add_medicine(name="Long expired", expiry_date=TODAY - timedelta(days=400))

    assert [m.name for m in svc.get_expiring_medicines(today=TODAY)] == ["Soon"]
    assert [m.name for m in svc.get_expiring_medicines(days=365, today=TODAY)] == ["Soon", "Later"]


def test_by_category_and_search(add_medicine):
    add_medicine(name="Paracétamol", manufacturer="Sanofi")
    add_medicine(name="Seringues", category="medical-supply", manufacturer="BD")

    assert [m.name for m in svc.get_medicines_by_category("medical-supply")] == ["Seringues"]
    assert [m.name for m in svc.search_medicines("sanofi")] == ["Paracétamol"]


def test_inventory_stats(add_medicine):
    add_medicine(name="A", current_stock=0, min_stock=5, unit_price=100, expiry_date=TODAY + timedelta(days=10))
    add_medicine(name="B", current_stock=10, min_stock=5, unit_price=200, expiry_date=TODAY + timedelta(days=400))
    add_medicine(name="C", current_stock=0, min_stock=0, unit_price=50, expiry_date=TODAY - timedelta(days=30))

    stats = svc.get_inventory_stats(today=TODAY)

    assert stats == {
        "total_items": 3,
        "low_stock": 2,
        "out_of_stock": 2,
        "expiring_soon": 1,
        "total_value": 2000,
    }


def test_update_and_delete(add_medicine):
    med = add_medicine()

    assert svc.update_medicine(med.id, {"unit_price": 300}).unit_price == 300
    assert svc.delete_medicine(med.id)
    assert svc.get_all_medicines() == []


def test_filter_medicines(add_medicine):
    add_medicine(name="Paracétamol", current_stock=2, min_stock=10)
    add_medicine(name="Gants", current_stock=0, min_stock=10, category="consumable")
    add_medicine(name="Tensiomètre", current_stock=4, min_stock=1, category="equipment")
    everything = svc.get_all_medicines()

    assert [m.name for m in svc.filter_medicines(everything, stock="out")] == ["Gants"]
    assert {m.name for m in svc.filter_medicines(everything, stock="low")} == {"Paracétamol", "Gants"}
    assert [m.name for m in svc.filter_medicines(everything, category="equipment")] == ["Tensiomètre"]
    assert [m.name for m in svc.filter_medicines(everything, term="para")] == ["Paracétamol"]
