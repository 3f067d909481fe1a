from __future__ import annotations

from ..extensions import db
from ..ids import id_factory
from openstock.time_utils import to_utc_z, utcnow


class Tax(db.Model):
    __tablename__ = "taxes"

    id = db.Column(db.String(64), primary_key=True, default=id_factory("tax"))
    name = db.Column(db.String(120), nullable=False)
    rate = db.Column(db.Float, nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rate": self.rate,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.String(64), primary_key=True, default=id_factory("cat"))
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.String(64), db.ForeignKey("categories.id"), nullable=True, index=True)
    color = db.Column(db.String(16), nullable=False, default="#6B7280")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "color": self.color,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.String(64), primary_key=True, default=id_factory("sup"))
    name = db.Column(db.String(160), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(80), nullable=False, default="France")
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Sellable base item.

    stock_quantity is owned by the stock mutation engine: it always equals
    stock_after of the newest product-level StockMovement (variant_id NULL).
    Catalog edits never write it directly.

    version_id makes every UPDATE a compare-and-swap; a writer holding a
    stale row gets StaleDataError and the engine retries from a fresh read.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint(
            "stock_max IS NULL OR stock_max >= stock_min",
            name="ck_products_stock_thresholds",
        ),
        db.Index("ix_products_active_name", "is_active", "name"),
    )

    id = db.Column(db.String(64), primary_key=True, default=id_factory("prd"))
    sku = db.Column(db.String(64), nullable=True, unique=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.String(64), db.ForeignKey("categories.id"), nullable=True, index=True)

    cost_price = db.Column(db.Float, nullable=False, default=0)
    selling_price = db.Column(db.Float, nullable=False, default=0)
    margin_percent = db.Column(db.Float, nullable=False, default=30)

    tax_id = db.Column(db.String(64), db.ForeignKey("taxes.id"), nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    stock_min = db.Column(db.Integer, nullable=False, default=0)
    stock_max = db.Column(db.Integer, nullable=True)

    unit = db.Column(db.String(24), nullable=False, default="unit")

    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    options = db.Column(db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    tax = db.relationship("Tax")
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductVariant.name",
    )
    supplier_prices = db.relationship(
        "SupplierPrice",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    selling_price_history = db.relationship(
        "SellingPriceHistory",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "cost_price": self.cost_price,
            "selling_price": self.selling_price,
            "margin_percent": self.margin_percent,
            "tax_id": self.tax_id,
            "stock_quantity": self.stock_quantity,
            "stock_min": self.stock_min,
            "stock_max": self.stock_max,
            "unit": self.unit,
            "supplier_id": self.supplier_id,
            "is_active": self.is_active,
            "options": self.options,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ProductVariant(db.Model):
    """A Product's sellable sub-unit; tracked as its own stock target."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_variants_stock_non_negative"),
        db.CheckConstraint(
            "stock_max IS NULL OR stock_max >= stock_min",
            name="ck_variants_stock_thresholds",
        ),
    )

    id = db.Column(db.String(64), primary_key=True, default=id_factory("var"))
    product_id = db.Column(
        db.String(64),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(160), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)

    cost_price = db.Column(db.Float, nullable=False, default=0)
    margin_percent = db.Column(db.Float, nullable=False, default=30)
    price = db.Column(db.Float, nullable=False, default=0)

    tax_id = db.Column(db.String(64), db.ForeignKey("taxes.id"), nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    stock_min = db.Column(db.Integer, nullable=False, default=0)
    stock_max = db.Column(db.Integer, nullable=True)

    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", back_populates="variants")
    supplier = db.relationship("Supplier")
    tax = db.relationship("Tax")
    supplier_exclusions = db.relationship(
        "VariantSupplierExclusion",
        back_populates="variant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    selling_price_history = db.relationship(
        "SellingPriceHistory",
        back_populates="variant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    # Variants are sold through their product; they share its active flag
    @property
    def is_active(self) -> bool:
        return bool(self.product.is_active) if self.product is not None else False

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} product_id={self.product_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "cost_price": self.cost_price,
            "margin_percent": self.margin_percent,
            "price": self.price,
            "tax_id": self.tax_id,
            "stock_quantity": self.stock_quantity,
            "stock_min": self.stock_min,
            "stock_max": self.stock_max,
            "supplier_id": self.supplier_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
