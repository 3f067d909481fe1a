# Overview: Read-side projections: stock status, stock valuation, daily movement chart.

"""
Stock Status & Valuation Projector

Pure functions over snapshots of the entity store plus thin query helpers
that feed them. Nothing here writes.

Rounding: values are multiplied exactly (Decimal) and rounded half-up to
cents once, at the aggregate. Per-row rounding followed by a sum is never
used for totals.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import MovementType, Product, StockMovement
from ..validation import ValidationError
from openstock.time_utils import utctoday

CENT = Decimal("0.01")


class StockStatus(str, enum.Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    OVERSTOCK = "overstock"
    NORMAL = "normal"


def classify_stock(quantity: int, minimum: int | None, maximum: int | None) -> StockStatus:
    """
    Priority order: out of stock, low stock, overstock, normal.

    Out of stock wins even when minimum is 0; a missing minimum counts as 0
    and a missing maximum disables the overstock check.
    """
    quantity = quantity or 0
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= (minimum or 0):
        return StockStatus.LOW_STOCK
    if maximum is not None and quantity >= maximum:
        return StockStatus.OVERSTOCK
    return StockStatus.NORMAL


def _raw_value(cost_price, quantity) -> Decimal:
    return Decimal(str(cost_price or 0)) * Decimal(int(quantity or 0))


def _round_cents(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def stock_value(cost_price, quantity) -> float:
    return _round_cents(_raw_value(cost_price, quantity))


def total_stock_value(rows: Iterable[tuple]) -> float:
    """Sum (cost_price, quantity) pairs exactly, then round once."""
    return _round_cents(sum((_raw_value(cost, qty) for cost, qty in rows), Decimal("0")))


@dataclass
class MovementChart:
    labels: list[str] = field(default_factory=list)
    stock_in: list[int] = field(default_factory=list)
    stock_out: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"labels": self.labels, "stock_in": self.stock_in, "stock_out": self.stock_out}


def _movement_day(created_at) -> date:
    if isinstance(created_at, datetime):
        return created_at.date()
    return created_at


def aggregate_movements_by_day(movements, window_days: int = 14, *, today: date | None = None) -> MovementChart:
    """
    Bucket movements into a contiguous daily window ending today.

    in/return count as stock in, out/transfer as stock out, adjustments are
    left out. Quantities are absolute. Days without movements are zero, so
    every list has exactly window_days entries.
    """
    if window_days < 1:
        raise ValidationError("window_days must be >= 1")
    today = today or utctoday()

    days = [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]
    index = {day: i for i, day in enumerate(days)}
    chart = MovementChart(
        labels=[day.isoformat() for day in days],
        stock_in=[0] * window_days,
        stock_out=[0] * window_days,
    )

    for movement in movements:
        slot = index.get(_movement_day(movement.created_at))
        if slot is None:
            continue
        movement_type = MovementType.parse(movement.type)
        if movement_type.is_inbound:
            chart.stock_in[slot] += abs(movement.quantity)
        elif movement_type.is_outbound:
            chart.stock_out[slot] += abs(movement.quantity)

    return chart


# ---------------------------------------------------------------------------
# Store-backed projections
# ---------------------------------------------------------------------------

def _active_products() -> list[Product]:
    return db.session.query(Product).filter(Product.is_active.is_(True)).all()


def stock_level_summary() -> dict[str, int]:
    """Count active products per stock status."""
    counts = {status.value: 0 for status in StockStatus}
    for product in _active_products():
        status = classify_stock(product.stock_quantity, product.stock_min, product.stock_max)
        counts[status.value] += 1
    return counts


def inventory_valuation(limit: int | None = None, *, include_variants: bool = False) -> dict:
    """Value rows for active stock, highest first, with a total rounded once."""
    entries = []
    for product in _active_products():
        entries.append((product.id, None, product.name, product.cost_price, product.stock_quantity))
        if include_variants:
            for variant in product.variants:
                entries.append(
                    (product.id, variant.id, f"{product.name} - {variant.name}",
                     variant.cost_price, variant.stock_quantity)
                )

    entries.sort(key=lambda e: _raw_value(e[3], e[4]), reverse=True)
    rows = entries[:limit] if limit is not None else entries

    return {
        "items": [
            {
                "product_id": product_id,
                "variant_id": variant_id,
                "name": name,
                "cost_price": cost,
                "stock_quantity": qty,
                "stock_value": stock_value(cost, qty),
            }
            for product_id, variant_id, name, cost, qty in rows
        ],
        "total_stock_value": total_stock_value((e[3], e[4]) for e in entries),
    }


def movements_chart(window_days: int | None = None, *, today: date | None = None) -> MovementChart:
    if window_days is None:
        window_days = current_app.config.get("MOVEMENT_CHART_DAYS", 14)
    if window_days < 1:
        raise ValidationError("window_days must be >= 1")
    today = today or utctoday()
    window_start = datetime.combine(today - timedelta(days=window_days - 1), time.min)

    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.created_at >= window_start)
        .all()
    )
    return aggregate_movements_by_day(movements, window_days, today=today)
