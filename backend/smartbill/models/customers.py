from __future__ import annotations

from ..extensions import db
from smartbill.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer contact record, scoped to the shop user that created it.

    total_bills / total_spent_cents are denormalized aggregates, bumped
    atomically when a bill names the customer's mobile number.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_user_mobile", "user_id", "mobile_number"),
        db.Index("ix_customers_user_name", "user_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    mobile_number = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(128), nullable=True)
    zip_code = db.Column(db.String(16), nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    total_bills = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "mobile_number": self.mobile_number,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "gst_number": self.gst_number,
            "notes": self.notes,
            "total_bills": self.total_bills,
            "total_spent_cents": self.total_spent_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
