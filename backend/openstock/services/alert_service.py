# Overview: Out-of-stock and low-stock alerts derived from current stock levels.

from __future__ import annotations

from dataclasses import asdict, dataclass

from ..extensions import db
from ..models import Product
from .settings_service import get_settings
from .valuation_service import StockStatus, classify_stock


@dataclass(frozen=True)
class StockAlert:
    id: str
    level: str
    title: str
    description: str
    product_id: str
    variant_id: str | None = None
    read: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def _product_alert(product: Product, status: StockStatus, acknowledged) -> StockAlert | None:
    if status is StockStatus.OUT_OF_STOCK:
        alert_id = f"out-of-stock-{product.id}"
        return StockAlert(
            id=alert_id,
            level="error",
            title="Out of Stock",
            description=f"{product.name} is out of stock",
            product_id=product.id,
            read=alert_id in acknowledged,
        )
    if status is StockStatus.LOW_STOCK:
        alert_id = f"low-stock-{product.id}"
        return StockAlert(
            id=alert_id,
            level="warning",
            title="Low Stock Alert",
            description=(
                f"{product.name} has only {product.stock_quantity} units left (min: {product.stock_min})"
            ),
            product_id=product.id,
            read=alert_id in acknowledged,
        )
    return None


def _variant_alert(product: Product, variant, status: StockStatus, acknowledged) -> StockAlert | None:
    label = f"{product.name} - {variant.name}"
    if status is StockStatus.OUT_OF_STOCK:
        alert_id = f"out-of-stock-variant-{variant.id}"
        return StockAlert(
            id=alert_id,
            level="error",
            title="Out of Stock",
            description=f"{label} is out of stock",
            product_id=product.id,
            variant_id=variant.id,
            read=alert_id in acknowledged,
        )
    if status is StockStatus.LOW_STOCK:
        alert_id = f"low-stock-variant-{variant.id}"
        return StockAlert(
            id=alert_id,
            level="warning",
            title="Low Stock Alert",
            description=f"{label} has only {variant.stock_quantity} units left",
            product_id=product.id,
            variant_id=variant.id,
            read=alert_id in acknowledged,
        )
    return None


def build_stock_alerts(acknowledged=frozenset()) -> list[StockAlert]:
    """
    Alerts for every active product and variant that is out of stock or low.

    Overstock is not alerted. Settings toggles suppress a whole alert kind.
    `acknowledged` holds alert ids the caller has already marked read.
    """
    settings = get_settings()
    enabled = set()
    if settings.out_of_stock_alert:
        enabled.add(StockStatus.OUT_OF_STOCK)
    if settings.low_stock_alert:
        enabled.add(StockStatus.LOW_STOCK)
    if not enabled:
        return []

    acknowledged = frozenset(acknowledged)
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    alerts = []
    for product in products:
        status = classify_stock(product.stock_quantity, product.stock_min, product.stock_max)
        if status in enabled:
            alerts.append(_product_alert(product, status, acknowledged))

        for variant in sorted(product.variants, key=lambda v: (v.name, v.id)):
            status = classify_stock(variant.stock_quantity, variant.stock_min, variant.stock_max)
            if status in enabled:
                alerts.append(_variant_alert(product, variant, status, acknowledged))

    return alerts
