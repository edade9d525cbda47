from __future__ import annotations

from ..extensions import db
from smartbill.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    STOCK MIRROR:
    Product.stock is a denormalized read copy of Inventory.quantity for fast
    catalog reads. Inventory is the source of truth; only InventoryLedger
    writes this column.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category", "active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    price_cents = db.Column(db.Integer, nullable=False)
    tax_percentage = db.Column(db.Integer, nullable=False, default=5)

    stock = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} barcode={self.barcode!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "brand": self.brand,
            "description": self.description,
            "sku": self.sku,
            "barcode": self.barcode,
            "price_cents": self.price_cents,
            "tax_percentage": self.tax_percentage,
            "stock": self.stock,
            "active": self.active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Inventory(db.Model):
    """
    Authoritative stock record, one per product.

    status is derived from (quantity, min_stock) and rewritten after every
    quantity change; it is never set on its own.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.Index("ix_inventory_warehouse_location", "warehouse", "location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=10)
    max_stock = db.Column(db.Integer, nullable=False, default=100)
    reorder_level = db.Column(db.Integer, nullable=False, default=20)

    location = db.Column(db.String(128), nullable=False, default="Main Store")
    warehouse = db.Column(db.String(128), nullable=False, default="Default")
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="In Stock", index=True)
    last_restocked = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory", uselist=False, lazy=True))

    def __repr__(self) -> str:
        return f"<Inventory id={self.id} product_id={self.product_id} quantity={self.quantity} status={self.status!r}>"

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "barcode": self.barcode,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "reorder_level": self.reorder_level,
            "location": self.location,
            "warehouse": self.warehouse,
            "notes": self.notes,
            "status": self.status,
            "last_restocked": to_utc_z(self.last_restocked),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_product:
            data["product"] = self.product.to_dict() if self.product else None
        return data
