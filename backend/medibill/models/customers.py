from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class Customer(db.Model):
    """Tenant-owned customer with running purchase and loyalty totals."""
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_created_by_phone", "created_by", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(500), nullable=True)

    total_purchases = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    is_vip = db.Column(db.Boolean, nullable=False, default=False)
    last_visit = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "total_purchases": money_str(self.total_purchases),
            "loyalty_points": self.loyalty_points,
            "is_vip": self.is_vip,
            "last_visit": to_utc_z(self.last_visit),
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
