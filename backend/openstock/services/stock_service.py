# Overview: Stock mutation engine and movement ledger reads.

# backend/openstock/services/stock_service.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..ids import generate_id
from ..models import MovementType, Product, ProductVariant, StockMovement, Supplier, SupplierPrice, signed_delta
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    coerce_int,
    validate_price,
)
from openstock.time_utils import normalize_datetime
from .concurrency import lock_for_update, run_with_retry
from .price_history_service import record_quietly, record_supplier_price_change
"""
Stock Ledger Invariants

Targets:
- A target is a (product_id, variant_id) pair; variant_id NULL means the
  product's own stock. Each target has its own stock_quantity and its own
  movement chain.

Mutation:
- quantity is a positive magnitude for in/out/transfer/return and a
  non-zero signed delta for adjustment.
- stock_after = stock_before + signed_delta(type, quantity).
- Non-adjustment movements that would go below zero raise
  InsufficientStockError; nothing is clamped.
- Adjustments may set stock to any non-negative value.
- The movement insert and the stock_quantity update commit together or
  not at all.

Concurrency:
- The target row is read with FOR UPDATE (where supported) and written
  with a version_id compare-and-swap. A stale write raises StaleDataError,
  the session rolls back and the whole operation reruns from the read.
- Batches lock their targets in sorted order.

Ledger:
- Movements are append-only; stock_quantity always equals stock_after of
  the target's newest movement, so replaying deltas from zero reproduces it.
"""


@dataclass(frozen=True)
class MovementRequest:
    product_id: str
    type: MovementType | str
    quantity: int
    variant_id: str | None = None
    unit_cost: float | None = None
    reference: str | None = None
    reason: str | None = None
    supplier_id: str | None = None

    @property
    def target(self) -> tuple[str, str | None]:
        return (self.product_id, self.variant_id)


@dataclass
class LedgerCheck:
    product_id: str
    variant_id: str | None
    stored_quantity: int
    replayed_quantity: int
    movement_count: int
    breaks: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return self.stored_quantity == self.replayed_quantity and not self.breaks

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "stored_quantity": self.stored_quantity,
            "replayed_quantity": self.replayed_quantity,
            "movement_count": self.movement_count,
            "breaks": list(self.breaks),
            "is_consistent": self.is_consistent,
        }


def _normalize_request(request: MovementRequest) -> MovementRequest:
    """Input boundary: parse the type and check quantity/cost before any DB work."""
    if not request.product_id:
        raise ValidationError("product_id is required")

    movement_type = MovementType.parse(request.type)
    quantity = coerce_int("quantity", request.quantity)
    if movement_type is MovementType.ADJUSTMENT:
        if quantity == 0:
            raise ValidationError("quantity must be non-zero for adjustment")
    elif quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type.value}")

    unit_cost = request.unit_cost
    if unit_cost is not None:
        unit_cost = validate_price("unit_cost", unit_cost)

    return replace(request, type=movement_type, quantity=quantity, unit_cost=unit_cost)


def _load_target(product_id: str, variant_id: str | None, *, lock: bool = True) -> Product | ProductVariant:
    if variant_id is None:
        query = db.session.query(Product).filter_by(id=product_id)
        if lock:
            query = lock_for_update(query)
        product = query.first()
        if product is None:
            raise NotFoundError(f"product {product_id} not found")
        if not product.is_active:
            raise ConflictError(f"product {product_id} is inactive")
        return product

    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"product {product_id} not found")
    if not product.is_active:
        raise ConflictError(f"product {product_id} is inactive")

    query = db.session.query(ProductVariant).filter_by(id=variant_id)
    if lock:
        query = lock_for_update(query)
    variant = query.first()
    if variant is None:
        raise NotFoundError(f"variant {variant_id} not found")
    if variant.product_id != product_id:
        raise ValidationError(f"variant {variant_id} does not belong to product {product_id}")
    return variant


def _ensure_supplier(supplier_id: str | None) -> None:
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError(f"supplier {supplier_id} not found")


def _next_sequence(product_id: str, variant_id: str | None) -> int:
    query = db.session.query(func.max(StockMovement.sequence)).filter(StockMovement.product_id == product_id)
    if variant_id is None:
        query = query.filter(StockMovement.variant_id.is_(None))
    else:
        query = query.filter(StockMovement.variant_id == variant_id)
    return int(query.scalar() or 0) + 1


def _apply_movement_inner(
    request: MovementRequest,
    target: Product | ProductVariant,
    *,
    actor_id: str | None = None,
    correlation_id: str | None = None,
) -> StockMovement:
    """Core mutation without locking, retry, or commit.

    Expects a normalized request and a target already loaded (and locked)
    in the current transaction.
    """
    stock_before = target.stock_quantity or 0
    delta = signed_delta(request.type, request.quantity)
    stock_after = stock_before + delta

    if stock_after < 0:
        if request.type is MovementType.ADJUSTMENT:
            raise ValidationError(
                f"adjustment of {delta} would make stock negative (current {stock_before})"
            )
        raise InsufficientStockError(
            f"insufficient stock: {stock_before} available, {abs(delta)} requested",
            available=stock_before,
            requested=abs(delta),
        )

    movement = StockMovement(
        product_id=request.product_id,
        variant_id=request.variant_id,
        type=request.type,
        quantity=request.quantity,
        stock_before=stock_before,
        stock_after=stock_after,
        sequence=_next_sequence(request.product_id, request.variant_id),
        unit_cost=request.unit_cost,
        reference=request.reference,
        reason=request.reason,
        supplier_id=request.supplier_id,
        correlation_id=correlation_id,
        created_by=actor_id,
    )
    target.stock_quantity = stock_after
    db.session.add(movement)
    db.session.flush()
    return movement


def _target_sort_key(key: tuple[str, str | None]) -> tuple[str, str]:
    return (key[0], key[1] or "")


def _apply_batch(
    requests: list[MovementRequest],
    *,
    actor_id: str | None = None,
    correlation_id: str | None = None,
) -> list[StockMovement]:
    def _op():
        targets = {}
        for key in sorted({r.target for r in requests}, key=_target_sort_key):
            targets[key] = _load_target(*key)
        for r in requests:
            _ensure_supplier(r.supplier_id)

        movements = [
            _apply_movement_inner(r, targets[r.target], actor_id=actor_id, correlation_id=correlation_id)
            for r in requests
        ]
        db.session.commit()
        return movements

    movements = run_with_retry(_op)
    for movement in movements:
        current_app.logger.debug(
            "Applied %s movement %s on %s/%s: %d -> %d",
            movement.type.value,
            movement.id,
            movement.product_id,
            movement.variant_id,
            movement.stock_before,
            movement.stock_after,
        )
        _sync_supplier_price(movement, actor_id=actor_id)
    return movements


def _update_supplier_price_from_receipt(supplier_price_id: str, unit_cost: float, actor_id: str | None):
    supplier_price = db.session.get(SupplierPrice, supplier_price_id)
    supplier_price.price = unit_cost
    return record_supplier_price_change(supplier_price_id, unit_cost, actor_id=actor_id, commit=True)


def _sync_supplier_price(movement: StockMovement, *, actor_id: str | None = None) -> None:
    """A receipt at a new unit cost updates that supplier's quoted price."""
    if movement.type is not MovementType.IN or movement.unit_cost is None or movement.supplier_id is None:
        return
    supplier_price = (
        db.session.query(SupplierPrice)
        .filter_by(product_id=movement.product_id, supplier_id=movement.supplier_id)
        .order_by(SupplierPrice.is_preferred.desc(), SupplierPrice.created_at.asc())
        .first()
    )
    if supplier_price is None or supplier_price.price == movement.unit_cost:
        return
    record_quietly(_update_supplier_price_from_receipt, supplier_price.id, movement.unit_cost, actor_id)


def apply_movement(
    *,
    product_id: str,
    movement_type: MovementType | str,
    quantity: int,
    variant_id: str | None = None,
    unit_cost: float | None = None,
    reference: str | None = None,
    reason: str | None = None,
    supplier_id: str | None = None,
    actor_id: str | None = None,
) -> StockMovement:
    """
    Validate and apply one stock movement, returning the persisted row.

    Raises:
        ValidationError: bad quantity/type/cost, or variant not owned by product
        NotFoundError: unknown product, variant or supplier
        ConflictError: product is inactive
        InsufficientStockError: a non-adjustment movement would go negative
        ConcurrentModificationError: lost-update race persisted through retries
    """
    request = _normalize_request(
        MovementRequest(
            product_id=product_id,
            variant_id=variant_id,
            type=movement_type,
            quantity=quantity,
            unit_cost=unit_cost,
            reference=reference,
            reason=reason,
            supplier_id=supplier_id,
        )
    )
    return _apply_batch([request], actor_id=actor_id)[0]


def apply_movements(requests, *, actor_id: str | None = None) -> list[StockMovement]:
    """
    Apply several movements atomically: either every movement is recorded
    or none is. Movements on the same target chain in request order.
    """
    normalized = [_normalize_request(r) for r in requests]
    if not normalized:
        raise ValidationError("batch must contain at least one movement")
    return _apply_batch(normalized, actor_id=actor_id)


def transfer_stock(
    *,
    source_product_id: str,
    destination_product_id: str,
    quantity: int,
    source_variant_id: str | None = None,
    destination_variant_id: str | None = None,
    reference: str | None = None,
    reason: str | None = None,
    actor_id: str | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move stock between two targets as linked dual entry.

    Writes a `transfer` movement at the source and an `in` movement at the
    destination, sharing one correlation_id, in a single transaction.
    """
    source = (source_product_id, source_variant_id)
    destination = (destination_product_id, destination_variant_id)
    if source == destination:
        raise ValidationError("source and destination must differ")

    correlation_id = generate_id("trf")
    outbound = _normalize_request(
        MovementRequest(
            product_id=source_product_id,
            variant_id=source_variant_id,
            type=MovementType.TRANSFER,
            quantity=quantity,
            reference=reference or correlation_id,
            reason=reason,
        )
    )
    inbound = replace(
        outbound,
        product_id=destination_product_id,
        variant_id=destination_variant_id,
        type=MovementType.IN,
    )
    out_movement, in_movement = _apply_batch(
        [outbound, inbound], actor_id=actor_id, correlation_id=correlation_id
    )
    return out_movement, in_movement


def set_stock_level(
    *,
    product_id: str,
    counted_quantity: int,
    variant_id: str | None = None,
    reason: str | None = None,
    reference: str | None = None,
    actor_id: str | None = None,
) -> StockMovement | None:
    """
    Physical-count correction: record the adjustment that brings the target
    to counted_quantity. Returns None when the count matches.
    """
    counted = coerce_int("counted_quantity", counted_quantity)
    if counted < 0:
        raise ValidationError("counted_quantity must be >= 0")

    def _op():
        target = _load_target(product_id, variant_id)
        delta = counted - (target.stock_quantity or 0)
        if delta == 0:
            db.session.rollback()
            return None
        request = MovementRequest(
            product_id=product_id,
            variant_id=variant_id,
            type=MovementType.ADJUSTMENT,
            quantity=delta,
            reference=reference,
            reason=reason or "Stock count",
        )
        movement = _apply_movement_inner(request, target, actor_id=actor_id)
        db.session.commit()
        return movement

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Ledger reads
# ---------------------------------------------------------------------------

def get_movement(movement_id: str) -> StockMovement:
    movement = db.session.get(StockMovement, movement_id)
    if movement is None:
        raise NotFoundError(f"movement {movement_id} not found")
    return movement


def _as_datetime(key: str, value) -> datetime | None:
    try:
        return normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def list_movements(
    product_id: str | None = None,
    *,
    variant_id: str | None = None,
    product_level_only: bool = False,
    movement_type: MovementType | str | None = None,
    start=None,
    end=None,
    limit: int | None = 200,
) -> list[StockMovement]:
    """Newest first. start/end are inclusive."""
    start_dt = _as_datetime("start", start)
    end_dt = _as_datetime("end", end)

    query = db.session.query(StockMovement)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if variant_id is not None:
        query = query.filter(StockMovement.variant_id == variant_id)
    elif product_level_only:
        query = query.filter(StockMovement.variant_id.is_(None))
    if movement_type is not None:
        query = query.filter(StockMovement.type == MovementType.parse(movement_type))
    if start_dt is not None:
        query = query.filter(StockMovement.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(StockMovement.created_at <= end_dt)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.sequence.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def target_movements(product_id: str, variant_id: str | None = None) -> list[StockMovement]:
    """The target's chain, oldest first."""
    query = db.session.query(StockMovement).filter(StockMovement.product_id == product_id)
    if variant_id is None:
        query = query.filter(StockMovement.variant_id.is_(None))
    else:
        query = query.filter(StockMovement.variant_id == variant_id)
    return query.order_by(StockMovement.sequence.asc()).all()


def replay_stock(product_id: str, variant_id: str | None = None) -> int:
    return sum(m.delta for m in target_movements(product_id, variant_id))


def verify_target(product_id: str, variant_id: str | None = None) -> LedgerCheck:
    if variant_id is None:
        target = db.session.get(Product, product_id)
    else:
        target = db.session.get(ProductVariant, variant_id)
        if target is not None and target.product_id != product_id:
            raise ValidationError(f"variant {variant_id} does not belong to product {product_id}")
    if target is None:
        raise NotFoundError(f"target {product_id}/{variant_id} not found")

    movements = target_movements(product_id, variant_id)
    breaks = []
    previous_after = 0
    for position, movement in enumerate(movements, start=1):
        if movement.sequence != position:
            breaks.append(f"{movement.id}: sequence {movement.sequence}, expected {position}")
        if movement.stock_before != previous_after:
            breaks.append(
                f"{movement.id}: stock_before {movement.stock_before} != previous stock_after {previous_after}"
            )
        if movement.stock_after != movement.stock_before + movement.delta:
            breaks.append(
                f"{movement.id}: stock_after {movement.stock_after} != "
                f"{movement.stock_before} + {movement.delta}"
            )
        previous_after = movement.stock_after

    return LedgerCheck(
        product_id=product_id,
        variant_id=variant_id,
        stored_quantity=target.stock_quantity or 0,
        replayed_quantity=sum(m.delta for m in movements),
        movement_count=len(movements),
        breaks=breaks,
    )


def verify_ledger() -> list[LedgerCheck]:
    """Check every product and variant target."""
    checks = []
    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        checks.append(verify_target(product.id))
        for variant in product.variants:
            checks.append(verify_target(product.id, variant.id))
    return checks
