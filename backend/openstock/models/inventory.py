from __future__ import annotations

import enum

from ..extensions import db
from ..ids import id_factory
from ..validation import ValidationError
from openstock.time_utils import to_utc_z, utcnow


class MovementType(str, enum.Enum):
    """Closed set of stock movement kinds."""

    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    RETURN = "return"

    @classmethod
    def parse(cls, value) -> "MovementType":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        allowed = ", ".join(m.value for m in cls)
        raise ValidationError(f"unknown movement type {value!r} (expected one of: {allowed})")

    @property
    def is_inbound(self) -> bool:
        return self in (MovementType.IN, MovementType.RETURN)

    @property
    def is_outbound(self) -> bool:
        return self in (MovementType.OUT, MovementType.TRANSFER)


def signed_delta(movement_type: MovementType, quantity: int) -> int:
    """
    Stock change implied by a movement.

    in/return add the magnitude, out/transfer subtract it, adjustment
    carries its own sign.
    """
    movement_type = MovementType.parse(movement_type)
    if movement_type is MovementType.ADJUSTMENT:
        return quantity
    if movement_type.is_inbound:
        return abs(quantity)
    return -abs(quantity)


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    Invariants:
    - stock_after == stock_before + signed_delta(type, quantity)
    - within a target (product_id, variant_id) rows form a chain ordered by
      sequence where each stock_before equals the previous stock_after
    - the target's stock_quantity equals stock_after of its last row

    Rows are never updated; they only disappear through the product
    cascade, which the catalog layer restricts to products without history.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_target_sequence", "product_id", "variant_id", "sequence"),
        db.Index("ix_movements_created", "created_at"),
        db.CheckConstraint("stock_before >= 0 AND stock_after >= 0", name="ck_movements_non_negative"),
        db.CheckConstraint("quantity <> 0", name="ck_movements_quantity_non_zero"),
    )

    id = db.Column(db.String(64), primary_key=True, default=id_factory("mov"))

    product_id = db.Column(
        db.String(64),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant_id = db.Column(db.String(64), db.ForeignKey("product_variants.id"), nullable=True, index=True)

    type = db.Column(
        db.Enum(
            MovementType,
            name="stock_movement_type",
            native_enum=False,
            create_constraint=True,
            validate_strings=True,
            length=16,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        index=True,
    )

    # Magnitude for in/out/transfer/return; signed delta for adjustment
    quantity = db.Column(db.Integer, nullable=False)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    # 1-based position within the target's chain
    sequence = db.Column(db.Integer, nullable=False)

    unit_cost = db.Column(db.Float, nullable=True)
    reference = db.Column(db.String(128), nullable=True, index=True)
    reason = db.Column(db.String(255), nullable=True)

    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=True, index=True)

    # Shared by both legs of a linked transfer
    correlation_id = db.Column(db.String(64), nullable=True, index=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic", passive_deletes=True))
    variant = db.relationship("ProductVariant", backref=db.backref("movements", lazy="dynamic", passive_deletes=True))
    supplier = db.relationship("Supplier")

    @property
    def delta(self) -> int:
        return signed_delta(self.type, self.quantity)

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} variant_id={self.variant_id} "
            f"type={self.type.value if self.type else None} {self.stock_before}->{self.stock_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "type": self.type.value if self.type else None,
            "quantity": self.quantity,
            "delta": self.delta,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "sequence": self.sequence,
            "unit_cost": self.unit_cost,
            "reference": self.reference,
            "reason": self.reason,
            "supplier_id": self.supplier_id,
            "correlation_id": self.correlation_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
