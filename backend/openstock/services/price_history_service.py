# Overview: Append-only price history for selling prices and supplier prices.

"""
Price History Recorder

Every call appends one immutable row, even when the price did not change.
Callers that only want real changes compare old and new values before
calling.

Recording is decoupled from the mutation that triggered it: callers run the
recorder after their own commit through record_quietly(), so a failure here
is logged for operators and never rolls back a stock or catalog change.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, ProductVariant, SupplierPrice, SupplierPriceHistory, SellingPriceHistory
from ..validation import NotFoundError, ValidationError, validate_price


def record_selling_price_change(
    product_id: str,
    new_price,
    *,
    variant_id: str | None = None,
    actor_id: str | None = None,
    commit: bool = True,
) -> SellingPriceHistory:
    price = validate_price("price", new_price)

    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"product {product_id} not found")
    if variant_id is not None:
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None:
            raise NotFoundError(f"variant {variant_id} not found")
        if variant.product_id != product_id:
            raise ValidationError("variant does not belong to product")

    row = SellingPriceHistory(
        product_id=product_id,
        variant_id=variant_id,
        price=price,
        created_by=actor_id,
    )
    db.session.add(row)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return row


def record_supplier_price_change(
    supplier_price_id: str,
    new_price,
    *,
    actor_id: str | None = None,
    commit: bool = True,
) -> SupplierPriceHistory:
    price = validate_price("price", new_price)

    if db.session.get(SupplierPrice, supplier_price_id) is None:
        raise NotFoundError(f"supplier price {supplier_price_id} not found")

    row = SupplierPriceHistory(
        supplier_price_id=supplier_price_id,
        price=price,
        created_by=actor_id,
    )
    db.session.add(row)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return row


def record_quietly(recorder, *args, **kwargs):
    """
    Run a recorder after the originating change has committed.

    Failures are rolled back and logged; the return value is None in that
    case.
    """
    try:
        return recorder(*args, **kwargs)
    except (SQLAlchemyError, ValueError, LookupError):
        db.session.rollback()
        current_app.logger.exception(
            "Price history recording failed (%s); the originating change stays committed",
            getattr(recorder, "__name__", recorder),
        )
        return None


def selling_price_history(product_id: str, variant_id: str | None = None) -> list[SellingPriceHistory]:
    query = db.session.query(SellingPriceHistory).filter(SellingPriceHistory.product_id == product_id)
    if variant_id is None:
        query = query.filter(SellingPriceHistory.variant_id.is_(None))
    else:
        query = query.filter(SellingPriceHistory.variant_id == variant_id)
    return query.order_by(SellingPriceHistory.created_at.desc(), SellingPriceHistory.id.desc()).all()


def supplier_price_history(supplier_price_id: str) -> list[SupplierPriceHistory]:
    return (
        db.session.query(SupplierPriceHistory)
        .filter(SupplierPriceHistory.supplier_price_id == supplier_price_id)
        .order_by(SupplierPriceHistory.created_at.desc(), SupplierPriceHistory.id.desc())
        .all()
    )
