from __future__ import annotations

from ..extensions import db
from ..ids import id_factory
from openstock.time_utils import to_utc_z, utcnow


class SupplierPrice(db.Model):
    """
    A supplier's quoted price for a product.

    All variants of the product are sourced from this supplier unless a
    VariantSupplierExclusion row says otherwise. At most one row per product
    is meant to be preferred; the catalog service keeps it that way, the
    schema does not.
    """
    __tablename__ = "supplier_prices"

    id = db.Column(db.String(64), primary_key=True, default=id_factory("spp"))
    product_id = db.Column(
        db.String(64),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supplier_id = db.Column(
        db.String(64),
        db.ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price = db.Column(db.Float, nullable=False)
    min_quantity = db.Column(db.Integer, nullable=False, default=1)
    lead_time_days = db.Column(db.Integer, nullable=True)
    supplier_sku = db.Column(db.String(64), nullable=True)
    purchase_url = db.Column(db.String(512), nullable=True)
    is_preferred = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", back_populates="supplier_prices")
    supplier = db.relationship("Supplier", backref=db.backref("supplier_prices", lazy=True, passive_deletes=True))
    history = db.relationship(
        "SupplierPriceHistory",
        back_populates="supplier_price",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SupplierPriceHistory.created_at.desc()",
    )
    variant_exclusions = db.relationship(
        "VariantSupplierExclusion",
        back_populates="supplier_price",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "price": self.price,
            "min_quantity": self.min_quantity,
            "lead_time_days": self.lead_time_days,
            "supplier_sku": self.supplier_sku,
            "purchase_url": self.purchase_url,
            "is_preferred": self.is_preferred,
            "excluded_variant_ids": sorted(e.variant_id for e in self.variant_exclusions),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SupplierPriceHistory(db.Model):
    """Immutable snapshot of a supplier price at the moment it was written."""
    __tablename__ = "supplier_price_history"

    id = db.Column(db.String(64), primary_key=True, default=id_factory("sph"))
    supplier_price_id = db.Column(
        db.String(64),
        db.ForeignKey("supplier_prices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    supplier_price = db.relationship("SupplierPrice", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_price_id": self.supplier_price_id,
            "price": self.price,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }


class VariantSupplierExclusion(db.Model):
    """Marks a variant as NOT sourced through a supplier price."""
    __tablename__ = "variant_supplier_exclusions"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "supplier_price_id", name="uq_variant_supplier_exclusion"),
    )

    id = db.Column(db.String(64), primary_key=True, default=id_factory("vsx"))
    variant_id = db.Column(
        db.String(64),
        db.ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supplier_price_id = db.Column(
        db.String(64),
        db.ForeignKey("supplier_prices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    variant = db.relationship("ProductVariant", back_populates="supplier_exclusions")
    supplier_price = db.relationship("SupplierPrice", back_populates="variant_exclusions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "supplier_price_id": self.supplier_price_id,
            "created_at": to_utc_z(self.created_at),
        }


class SellingPriceHistory(db.Model):
    """Immutable snapshot of a product or variant selling price."""
    __tablename__ = "selling_price_history"
    __table_args__ = (
        db.Index("ix_selling_price_history_target", "product_id", "variant_id", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True, default=id_factory("slh"))
    product_id = db.Column(
        db.String(64),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    variant_id = db.Column(
        db.String(64),
        db.ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=True,
    )
    price = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    product = db.relationship("Product", back_populates="selling_price_history")
    variant = db.relationship("ProductVariant", back_populates="selling_price_history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "price": self.price,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
