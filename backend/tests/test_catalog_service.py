import pytest

from openstock.extensions import db
from openstock.models import Product, ProductVariant, StockMovement, SupplierPrice
from openstock.services import catalog_service, settings_service, stock_service
from openstock.services.catalog_service import price_from_margin
from openstock.validation import ConflictError, NotFoundError, ValidationError


def test_price_from_margin_rounds_half_up():
    assert price_from_margin(10, 30) == 13.0
    assert price_from_margin(0.125, 0) == 0.13
    assert price_from_margin(19.99, 25) == 24.99


def test_create_product_derives_selling_price_from_settings_margin(db_session):
    settings_service.update_settings({"default_margin": 40})

    product = catalog_service.create_product({"name": "Lamp", "cost_price": 20})

    assert product.margin_percent == 40
    assert product.selling_price == 28.0
    assert product.stock_quantity == 0
    assert product.is_active is True


def test_explicit_selling_price_is_kept(db_session):
    product = catalog_service.create_product({"name": "Chair", "cost_price": 20, "selling_price": 35})

    assert product.selling_price == 35.0


def test_duplicate_sku_is_a_conflict(make_product):
    make_product(sku="DUP-1")

    with pytest.raises(ConflictError):
        make_product(sku="DUP-1")


@pytest.mark.parametrize("payload", [
    {"stock_min": 5, "stock_max": 4},
    {"stock_min": -1},
    {"cost_price": -2},
    {"margin_percent": -5},
    {"stock_quantity": 10},
    {"initial_stock": -3},
    {"name": ""},
])
def test_invalid_product_payloads(db_session, payload):
    with pytest.raises(ValidationError):
        catalog_service.create_product({"name": "Bad", **payload})


def test_missing_name_is_rejected(db_session):
    with pytest.raises(ValidationError):
        catalog_service.create_product({"cost_price": 1})


def test_unknown_category_is_rejected(db_session):
    with pytest.raises(NotFoundError):
        catalog_service.create_product({"name": "Orphan", "category_id": "cat_missing"})


def test_references_resolve(db_session, supplier):
    tax = catalog_service.create_tax({"name": "VAT", "rate": 20, "is_default": True})
    parent = catalog_service.create_category({"name": "Furniture"})
    child = catalog_service.create_category({"name": "Chairs", "parent_id": parent.id})

    product = catalog_service.create_product({
        "name": "Stool",
        "category_id": child.id,
        "tax_id": tax.id,
        "supplier_id": supplier.id,
    })

    assert product.category.parent_id == parent.id
    assert product.tax.rate == 20
    assert product.supplier.name == "Acme Wholesale"
    assert child.color == "#6B7280"
    assert supplier.country == "France"


def test_update_supplier(supplier):
    updated = catalog_service.update_supplier(supplier.id, {"city": "Lyon", "is_active": "false"})

    assert updated.city == "Lyon"
    assert updated.is_active is False


def test_update_product_thresholds_are_checked_against_current_values(product):
    with pytest.raises(ValidationError):
        catalog_service.update_product(product.id, {"stock_max": 1})

    updated = catalog_service.update_product(product.id, {"stock_max": 50, "description": "Blue widget"})
    assert updated.stock_max == 50
    assert updated.description == "Blue widget"


def test_update_product_cannot_write_stock(product):
    with pytest.raises(ValidationError):
        catalog_service.update_product(product.id, {"stock_quantity": 0})


def test_update_product_sku_conflict(make_product, product):
    other = make_product(name="Other", sku="OTHER-1")

    with pytest.raises(ConflictError):
        catalog_service.update_product(other.id, {"sku": "WID-001"})


def test_list_products_hides_archived(make_product):
    kept = make_product(name="Alpha")
    archived = make_product(name="Beta")
    catalog_service.archive_product(archived.id)

    assert [p.id for p in catalog_service.list_products()] == [kept.id]
    assert {p.id for p in catalog_service.list_products(include_inactive=True)} == {kept.id, archived.id}

    catalog_service.activate_product(archived.id)
    assert len(catalog_service.list_products()) == 2


def test_delete_product_without_history_is_hard_delete(make_product, supplier):
    product = make_product(name="Never stocked")
    product_id = product.id
    variant_id = catalog_service.create_variant(product_id, {"name": "Red"}).id
    supplier_price_id = catalog_service.create_supplier_price(
        product_id, {"supplier_id": supplier.id, "price": 3}
    ).id

    assert catalog_service.delete_product(product_id) == "deleted"
    assert db.session.get(Product, product_id) is None
    assert db.session.get(ProductVariant, variant_id) is None
    assert db.session.get(SupplierPrice, supplier_price_id) is None
    assert db.session.query(SupplierPrice).count() == 0


def test_delete_product_with_history_archives_and_keeps_ledger(product):
    movement_ids = {m.id for m in stock_service.target_movements(product.id)}

    assert catalog_service.delete_product(product.id) == "archived"

    kept = db.session.get(Product, product.id)
    assert kept.is_active is False
    assert {m.id for m in db.session.query(StockMovement).all()} == movement_ids


def test_get_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        catalog_service.get_product("prd_missing")


def test_variant_inherits_product_margin_and_books_initial_stock(product, variant):
    assert variant.margin_percent == 50
    assert variant.price == 16.5
    assert variant.stock_quantity == 4
    assert variant.is_active is True
    assert stock_service.target_movements(product.id, variant.id)[0].reason == "Initial stock"


def test_variant_with_history_cannot_be_deleted(variant):
    with pytest.raises(ConflictError):
        catalog_service.delete_variant(variant.id)


def test_variant_without_history_can_be_deleted(product):
    variant = catalog_service.create_variant(product.id, {"name": "Green"})

    catalog_service.delete_variant(variant.id)

    with pytest.raises(NotFoundError):
        catalog_service.get_variant(variant.id)


def test_update_variant(variant):
    updated = catalog_service.update_variant(variant.id, {"price": 19.9, "stock_min": 1})

    assert updated.price == 19.9
    assert updated.stock_min == 1


def test_preferred_supplier_price_is_unique_per_product(product, supplier):
    second_supplier = catalog_service.create_supplier({"name": "Beta Supply"})
    first = catalog_service.create_supplier_price(
        product.id, {"supplier_id": supplier.id, "price": 7, "is_preferred": True}
    )
    second = catalog_service.create_supplier_price(
        product.id, {"supplier_id": second_supplier.id, "price": 6, "is_preferred": True}
    )

    assert db.session.get(SupplierPrice, first.id).is_preferred is False
    assert db.session.get(SupplierPrice, second.id).is_preferred is True

    catalog_service.update_supplier_price(first.id, {"is_preferred": True})
    assert db.session.get(SupplierPrice, second.id).is_preferred is False


def test_supplier_price_rules(product, supplier):
    with pytest.raises(ValidationError):
        catalog_service.create_supplier_price(product.id, {"supplier_id": supplier.id, "price": -1})
    with pytest.raises(ValidationError):
        catalog_service.create_supplier_price(
            product.id, {"supplier_id": supplier.id, "price": 1, "min_quantity": 0}
        )
    with pytest.raises(NotFoundError):
        catalog_service.create_supplier_price(product.id, {"supplier_id": "sup_missing", "price": 1})


def test_variant_supplier_exclusions(product, variant, supplier):
    supplier_price = catalog_service.create_supplier_price(product.id, {"supplier_id": supplier.id, "price": 5})

    assert [sp.id for sp in catalog_service.supplier_prices_for_variant(variant.id)] == [supplier_price.id]

    first = catalog_service.exclude_variant(supplier_price.id, variant.id)
    again = catalog_service.exclude_variant(supplier_price.id, variant.id)
    assert first.id == again.id
    assert catalog_service.supplier_prices_for_variant(variant.id) == []
    assert db.session.get(SupplierPrice, supplier_price.id).to_dict()["excluded_variant_ids"] == [variant.id]

    assert catalog_service.include_variant(supplier_price.id, variant.id) is True
    assert catalog_service.include_variant(supplier_price.id, variant.id) is False
    assert len(catalog_service.supplier_prices_for_variant(variant.id)) == 1


def test_exclusion_requires_variant_of_same_product(make_product, variant, supplier):
    other = make_product(name="Other")
    supplier_price = catalog_service.create_supplier_price(other.id, {"supplier_id": supplier.id, "price": 5})

    with pytest.raises(ValidationError):
        catalog_service.exclude_variant(supplier_price.id, variant.id)


def test_delete_supplier_price(product, supplier):
    supplier_price = catalog_service.create_supplier_price(product.id, {"supplier_id": supplier.id, "price": 5})

    catalog_service.delete_supplier_price(supplier_price.id)

    assert db.session.get(SupplierPrice, supplier_price.id) is None
