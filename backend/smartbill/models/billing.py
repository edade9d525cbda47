from __future__ import annotations

from ..extensions import db
from smartbill.time_utils import to_utc_z


class Bill(db.Model):
    """
    Completed sale document.

    Line items and money fields are fixed at creation; later edits may only
    touch notes and customer contact fields. Deletion is soft (deleted_at)
    and never reverses stock; voided_at records an explicit void-and-restock.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.Index("ix_bills_user_created", "user_id", "created_at"),
        db.Index("ix_bills_user_customer_mobile", "user_id", "customer_mobile"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    bill_number = db.Column(db.String(64), nullable=False, unique=True)

    # Shop details
    shop_name = db.Column(db.String(255), nullable=True)
    shop_address = db.Column(db.String(255), nullable=True)
    shop_phone = db.Column(db.String(32), nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)

    # Customer details
    customer_name = db.Column(db.String(255), nullable=True)
    customer_mobile = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # Money, all in cents: total = subtotal + tax - discount
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_percentage = db.Column(db.Integer, nullable=False, default=5)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="Pending", index=True)
    amount_received_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    cashier = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    items = db.relationship(
        "BillItem",
        backref="bill",
        lazy=True,
        order_by="BillItem.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Bill id={self.id} bill_number={self.bill_number!r} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "bill_number": self.bill_number,
            "shop_name": self.shop_name,
            "shop_address": self.shop_address,
            "shop_phone": self.shop_phone,
            "gst_number": self.gst_number,
            "customer_name": self.customer_name,
            "customer_mobile": self.customer_mobile,
            "customer_email": self.customer_email,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "tax_percentage": self.tax_percentage,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "amount_received_cents": self.amount_received_cents,
            "change_cents": self.change_cents,
            "cashier": self.cashier,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
        }


class BillItem(db.Model):
    """Individual line on a bill, kept in entry order."""
    __tablename__ = "bill_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "barcode": self.barcode,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
