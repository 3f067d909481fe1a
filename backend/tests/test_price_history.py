import pytest

from openstock.extensions import db
from openstock.models import SellingPriceHistory
from openstock.services import catalog_service, price_history_service
from openstock.services.price_history_service import record_quietly, record_selling_price_change
from openstock.validation import NotFoundError, ValidationError


def test_product_creation_records_initial_selling_price(product):
    history = price_history_service.selling_price_history(product.id)

    assert [h.price for h in history] == [15.0]
    assert history[0].variant_id is None


def test_recording_always_appends_even_when_unchanged(product):
    record_selling_price_change(product.id, 15.0)
    record_selling_price_change(product.id, 15.0)

    assert len(price_history_service.selling_price_history(product.id)) == 3


def test_variant_history_is_separate_from_product_history(product, variant):
    record_selling_price_change(product.id, 17.25, variant_id=variant.id, actor_id="usr_1")

    variant_history = price_history_service.selling_price_history(product.id, variant.id)
    product_history = price_history_service.selling_price_history(product.id)

    assert sorted(h.price for h in variant_history) == [16.5, 17.25]
    assert [h.price for h in product_history] == [15.0]
    assert any(h.created_by == "usr_1" for h in variant_history)


def test_negative_price_is_rejected(product):
    with pytest.raises(ValidationError):
        record_selling_price_change(product.id, -0.01)


def test_unknown_product_is_rejected(db_session):
    with pytest.raises(NotFoundError):
        record_selling_price_change("prd_missing", 1.0)


def test_variant_of_another_product_is_rejected(make_product, variant):
    other = make_product(name="Other")

    with pytest.raises(ValidationError):
        record_selling_price_change(other.id, 3.0, variant_id=variant.id)


def test_update_product_records_only_real_changes(product):
    catalog_service.update_product(product.id, {"selling_price": 15.0})
    catalog_service.update_product(product.id, {"selling_price": 18.0})

    prices = sorted(h.price for h in price_history_service.selling_price_history(product.id))
    assert prices == [15.0, 18.0]


def test_supplier_price_changes_are_recorded(product, supplier):
    supplier_price = catalog_service.create_supplier_price(product.id, {"supplier_id": supplier.id, "price": 6.0})
    catalog_service.update_supplier_price(supplier_price.id, {"price": 6.5})
    catalog_service.update_supplier_price(supplier_price.id, {"lead_time_days": 3})

    history = price_history_service.supplier_price_history(supplier_price.id)
    assert sorted(h.price for h in history) == [6.0, 6.5]


def test_record_quietly_logs_and_returns_none(app, product, caplog):
    before = db.session.query(SellingPriceHistory).count()

    with caplog.at_level("ERROR"):
        result = record_quietly(record_selling_price_change, "prd_missing", 5.0)

    assert result is None
    assert "Price history recording failed" in caplog.text
    assert db.session.query(SellingPriceHistory).count() == before


def test_history_failure_does_not_undo_price_change(product, monkeypatch):
    def _broken(*args, **kwargs):
        raise ValidationError("history store unavailable")

    monkeypatch.setattr(catalog_service, "record_selling_price_change", _broken)

    updated = catalog_service.update_product(product.id, {"selling_price": 21.0})

    assert updated.selling_price == 21.0
