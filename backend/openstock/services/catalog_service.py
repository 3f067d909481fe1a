# backend/openstock/services/catalog_service.py
"""
Catalog Service (entity store)

Direct CRUD for taxes, categories, suppliers, products, variants and
supplier prices. These writes do not go through the ledger, with two
exceptions:
- stock_quantity is never writable here; an `initial_stock` on create is
  recorded as an `in` movement by the stock engine.
- selling/supplier price changes append history rows through the price
  history recorder after the catalog change commits.

DELETE POLICY:
Products with ledger history are archived (is_active=False) instead of
deleted; the cascade from products to stock_movements only ever fires for
products that never moved. Variants with history cannot be deleted.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Category,
    Product,
    ProductVariant,
    StockMovement,
    Supplier,
    SupplierPrice,
    Tax,
    VariantSupplierExclusion,
)
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_prices,
    enforce_rules_thresholds,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .price_history_service import record_quietly, record_selling_price_change, record_supplier_price_change
from .settings_service import get_settings
from .stock_service import apply_movement

TAX_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "rate", "is_default"}),
    required_on_create=frozenset({"name", "rate"}),
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description", "parent_id", "color"}),
    required_on_create=frozenset({"name"}),
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "email", "phone", "address", "city", "postal_code", "country", "notes", "is_active",
    }),
    required_on_create=frozenset({"name"}),
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "sku", "barcode", "name", "description", "category_id", "cost_price", "selling_price",
        "margin_percent", "tax_id", "stock_min", "stock_max", "unit", "supplier_id", "options",
    }),
    required_on_create=frozenset({"name"}),
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "sku", "barcode", "cost_price", "margin_percent", "price", "tax_id",
        "stock_min", "stock_max", "supplier_id",
    }),
    required_on_create=frozenset({"name"}),
)

SUPPLIER_PRICE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "supplier_id", "price", "min_quantity", "lead_time_days", "supplier_sku", "purchase_url", "is_preferred",
    }),
    required_on_create=frozenset({"supplier_id", "price"}),
)

CREATE_ONLY_FIELDS = frozenset({"initial_stock"})


def price_from_margin(cost_price: float, margin_percent: float) -> float:
    """Selling price = cost * (1 + margin/100), rounded half-up to cents."""
    value = Decimal(str(cost_price)) * (Decimal("1") + Decimal(str(margin_percent)) / Decimal("100"))
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _apply_patch(entity, patch: dict) -> None:
    for k, v in patch.items():
        setattr(entity, k, v)


def _require(model, entity_id: str, label: str):
    entity = db.session.get(model, entity_id) if entity_id is not None else None
    if entity is None:
        raise NotFoundError(f"{label} {entity_id} not found")
    return entity


def _check_references(patch: dict) -> None:
    if patch.get("category_id") is not None:
        _require(Category, patch["category_id"], "category")
    if patch.get("tax_id") is not None:
        _require(Tax, patch["tax_id"], "tax")
    if patch.get("supplier_id") is not None:
        _require(Supplier, patch["supplier_id"], "supplier")


def _initial_stock(patch: dict) -> int:
    raw = patch.pop("initial_stock", None)
    if raw is None:
        return 0
    quantity = coerce_int("initial_stock", raw)
    if quantity < 0:
        raise ValidationError("initial_stock must be >= 0")
    return quantity


def _commit_unique(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(message) from exc


# ---------------------------------------------------------------------------
# Taxes, categories, suppliers
# ---------------------------------------------------------------------------

def create_tax(payload: dict) -> Tax:
    patch = validate_payload(model=Tax, payload=payload, policy=TAX_POLICY, partial=False)
    if patch["rate"] < 0:
        raise ValidationError("rate must be >= 0")
    tax = Tax(**patch)
    db.session.add(tax)
    db.session.commit()
    return tax


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    if patch.get("parent_id") is not None:
        _require(Category, patch["parent_id"], "parent category")
    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    supplier = Supplier(**patch)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(supplier_id: str, payload: dict) -> Supplier:
    supplier = _require(Supplier, supplier_id, "supplier")
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    _apply_patch(supplier, patch)
    db.session.commit()
    return supplier


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def get_product(product_id: str) -> Product:
    return _require(Product, product_id, "product")


def list_products(include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(payload: dict, *, actor_id: str | None = None) -> Product:
    """
    Create a product.

    margin_percent defaults to the settings' default margin; a missing
    selling_price is derived from cost and margin. A positive
    initial_stock is booked through the stock engine so the ledger replays
    from zero.
    """
    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_POLICY,
        partial=False,
        extra_fields=CREATE_ONLY_FIELDS,
    )
    initial_stock = _initial_stock(patch)
    enforce_rules_prices(patch)
    enforce_rules_thresholds(patch.get("stock_min", 0), patch.get("stock_max"))
    _check_references(patch)

    if patch.get("margin_percent") is None:
        patch["margin_percent"] = get_settings().default_margin
    if patch.get("selling_price") is None:
        patch["selling_price"] = price_from_margin(patch.get("cost_price") or 0, patch["margin_percent"])

    product = Product(**patch)
    db.session.add(product)
    _commit_unique(f"SKU {patch.get('sku')!r} already exists")
    product_id = product.id

    record_quietly(record_selling_price_change, product_id, product.selling_price, actor_id=actor_id)

    if initial_stock > 0:
        apply_movement(
            product_id=product_id,
            movement_type="in",
            quantity=initial_stock,
            unit_cost=product.cost_price,
            reason="Initial stock",
            actor_id=actor_id,
        )
    return db.session.get(Product, product_id)


def update_product(product_id: str, payload: dict, *, actor_id: str | None = None) -> Product:
    """Patch descriptive fields, thresholds and prices (never stock_quantity)."""
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_prices(patch)
    _check_references(patch)

    def _op():
        product = _require(Product, product_id, "product")
        old_price = product.selling_price
        enforce_rules_thresholds(
            patch.get("stock_min", product.stock_min),
            patch["stock_max"] if "stock_max" in patch else product.stock_max,
        )
        _apply_patch(product, patch)
        _commit_unique(f"SKU {patch.get('sku')!r} already exists")
        return product, old_price

    product, old_price = run_with_retry(_op)
    if "selling_price" in patch and patch["selling_price"] != old_price:
        record_quietly(record_selling_price_change, product_id, patch["selling_price"], actor_id=actor_id)
    return db.session.get(Product, product_id)


def archive_product(product_id: str) -> Product:
    def _op():
        product = _require(Product, product_id, "product")
        product.is_active = False
        db.session.commit()
        return product

    return run_with_retry(_op)


def activate_product(product_id: str) -> Product:
    def _op():
        product = _require(Product, product_id, "product")
        product.is_active = True
        db.session.commit()
        return product

    return run_with_retry(_op)


def has_movements(product_id: str, variant_id: str | None = None) -> bool:
    query = db.session.query(StockMovement.id).filter(StockMovement.product_id == product_id)
    if variant_id is not None:
        query = query.filter(StockMovement.variant_id == variant_id)
    return query.first() is not None


def delete_product(product_id: str) -> str:
    """
    Hard-delete a product without ledger history (cascading to variants and
    supplier prices); archive one with history. Returns "deleted" or
    "archived".
    """
    def _op():
        # Product and variant rows stay locked (or version-checked) from the
        # history check through the delete.
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"product {product_id} not found")
        lock_for_update(db.session.query(ProductVariant).filter_by(product_id=product_id)).all()

        if has_movements(product_id):
            product.is_active = False
            db.session.commit()
            return "archived"
        db.session.delete(product)
        db.session.commit()
        return "deleted"

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

def get_variant(variant_id: str) -> ProductVariant:
    return _require(ProductVariant, variant_id, "variant")


def create_variant(product_id: str, payload: dict, *, actor_id: str | None = None) -> ProductVariant:
    product = _require(Product, product_id, "product")
    patch = validate_payload(
        model=ProductVariant,
        payload=payload,
        policy=VARIANT_POLICY,
        partial=False,
        extra_fields=CREATE_ONLY_FIELDS,
    )
    initial_stock = _initial_stock(patch)
    enforce_rules_prices(patch)
    enforce_rules_thresholds(patch.get("stock_min", 0), patch.get("stock_max"))
    _check_references(patch)

    if patch.get("margin_percent") is None:
        patch["margin_percent"] = product.margin_percent
    if patch.get("price") is None:
        patch["price"] = price_from_margin(patch.get("cost_price") or 0, patch["margin_percent"])

    variant = ProductVariant(product_id=product_id, **patch)
    db.session.add(variant)
    db.session.commit()
    variant_id = variant.id

    record_quietly(
        record_selling_price_change, product_id, variant.price, variant_id=variant_id, actor_id=actor_id
    )

    if initial_stock > 0:
        apply_movement(
            product_id=product_id,
            variant_id=variant_id,
            movement_type="in",
            quantity=initial_stock,
            unit_cost=variant.cost_price,
            reason="Initial stock",
            actor_id=actor_id,
        )
    return db.session.get(ProductVariant, variant_id)


def update_variant(variant_id: str, payload: dict, *, actor_id: str | None = None) -> ProductVariant:
    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=True)
    enforce_rules_prices(patch)
    _check_references(patch)

    def _op():
        variant = _require(ProductVariant, variant_id, "variant")
        old_price = variant.price
        enforce_rules_thresholds(
            patch.get("stock_min", variant.stock_min),
            patch["stock_max"] if "stock_max" in patch else variant.stock_max,
        )
        _apply_patch(variant, patch)
        db.session.commit()
        return variant, old_price

    variant, old_price = run_with_retry(_op)
    if "price" in patch and patch["price"] != old_price:
        record_quietly(
            record_selling_price_change,
            variant.product_id,
            patch["price"],
            variant_id=variant_id,
            actor_id=actor_id,
        )
    return db.session.get(ProductVariant, variant_id)


def delete_variant(variant_id: str) -> None:
    variant = _require(ProductVariant, variant_id, "variant")
    if has_movements(variant.product_id, variant_id):
        raise ConflictError("variant has stock movements and cannot be deleted")
    db.session.delete(variant)
    db.session.commit()


# ---------------------------------------------------------------------------
# Supplier prices and variant exclusions
# ---------------------------------------------------------------------------

def _clear_other_preferred(product_id: str, keep_id: str | None) -> None:
    query = db.session.query(SupplierPrice).filter(
        SupplierPrice.product_id == product_id,
        SupplierPrice.is_preferred.is_(True),
    )
    if keep_id is not None:
        query = query.filter(SupplierPrice.id != keep_id)
    for other in query.all():
        other.is_preferred = False


def _check_supplier_price_rules(patch: dict) -> None:
    enforce_rules_prices(patch)
    if patch.get("min_quantity") is not None and patch["min_quantity"] < 1:
        raise ValidationError("min_quantity must be >= 1")
    if patch.get("lead_time_days") is not None and patch["lead_time_days"] < 0:
        raise ValidationError("lead_time_days must be >= 0")


def create_supplier_price(product_id: str, payload: dict, *, actor_id: str | None = None) -> SupplierPrice:
    _require(Product, product_id, "product")
    patch = validate_payload(model=SupplierPrice, payload=payload, policy=SUPPLIER_PRICE_POLICY, partial=False)
    _check_supplier_price_rules(patch)
    _require(Supplier, patch["supplier_id"], "supplier")

    supplier_price = SupplierPrice(product_id=product_id, **patch)
    db.session.add(supplier_price)
    db.session.flush()
    if supplier_price.is_preferred:
        _clear_other_preferred(product_id, supplier_price.id)
    db.session.commit()

    record_quietly(record_supplier_price_change, supplier_price.id, supplier_price.price, actor_id=actor_id)
    return supplier_price


def update_supplier_price(supplier_price_id: str, payload: dict, *, actor_id: str | None = None) -> SupplierPrice:
    supplier_price = _require(SupplierPrice, supplier_price_id, "supplier price")
    patch = validate_payload(model=SupplierPrice, payload=payload, policy=SUPPLIER_PRICE_POLICY, partial=True)
    _check_supplier_price_rules(patch)
    if patch.get("supplier_id") is not None:
        _require(Supplier, patch["supplier_id"], "supplier")

    old_price = supplier_price.price
    _apply_patch(supplier_price, patch)
    if patch.get("is_preferred"):
        _clear_other_preferred(supplier_price.product_id, supplier_price.id)
    db.session.commit()

    if "price" in patch and patch["price"] != old_price:
        record_quietly(record_supplier_price_change, supplier_price_id, patch["price"], actor_id=actor_id)
    return db.session.get(SupplierPrice, supplier_price_id)


def delete_supplier_price(supplier_price_id: str) -> None:
    supplier_price = _require(SupplierPrice, supplier_price_id, "supplier price")
    db.session.delete(supplier_price)
    db.session.commit()


def _variant_of_supplier_price(supplier_price_id: str, variant_id: str) -> tuple[SupplierPrice, ProductVariant]:
    supplier_price = _require(SupplierPrice, supplier_price_id, "supplier price")
    variant = _require(ProductVariant, variant_id, "variant")
    if variant.product_id != supplier_price.product_id:
        raise ValidationError("variant does not belong to the supplier price's product")
    return supplier_price, variant


def exclude_variant(supplier_price_id: str, variant_id: str) -> VariantSupplierExclusion:
    """Mark a variant as not sourced through this supplier price (idempotent)."""
    _variant_of_supplier_price(supplier_price_id, variant_id)
    existing = db.session.query(VariantSupplierExclusion).filter_by(
        supplier_price_id=supplier_price_id,
        variant_id=variant_id,
    ).first()
    if existing is not None:
        return existing
    exclusion = VariantSupplierExclusion(supplier_price_id=supplier_price_id, variant_id=variant_id)
    db.session.add(exclusion)
    db.session.commit()
    return exclusion


def include_variant(supplier_price_id: str, variant_id: str) -> bool:
    """Remove an exclusion. Returns False when there was none."""
    _variant_of_supplier_price(supplier_price_id, variant_id)
    deleted = db.session.query(VariantSupplierExclusion).filter_by(
        supplier_price_id=supplier_price_id,
        variant_id=variant_id,
    ).delete()
    db.session.commit()
    return bool(deleted)


def supplier_prices_for_variant(variant_id: str) -> list[SupplierPrice]:
    """Supplier prices of the variant's product minus the ones excluding it."""
    variant = _require(ProductVariant, variant_id, "variant")
    excluded = db.select(VariantSupplierExclusion.supplier_price_id).where(
        VariantSupplierExclusion.variant_id == variant_id
    )
    return (
        db.session.query(SupplierPrice)
        .filter(
            SupplierPrice.product_id == variant.product_id,
            SupplierPrice.id.notin_(excluded),
        )
        .order_by(SupplierPrice.is_preferred.desc(), SupplierPrice.price.asc())
        .all()
    )
