from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

REFUND_STATUS_PROCESSED = "PROCESSED"


class Refund(db.Model):
    """
    Return of goods against an original sale.

    Each RefundItem is paired with exactly one RETURN stock movement carrying
    reference "REF-<refund id>".
    """
    __tablename__ = "refunds"
    __table_args__ = (
        db.Index("ix_refunds_created_by_created_at", "created_by", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    reason = db.Column(db.String(500), nullable=False)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(32), nullable=False, default=REFUND_STATUS_PROCESSED)
    refunded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("RefundItem", backref="refund", lazy=True, order_by="RefundItem.id")
    original_sale = db.relationship("Sale", backref=db.backref("refunds", lazy=True))
    refunded_by_user = db.relationship("User", foreign_keys=[refunded_by])

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "original_sale_id": self.original_sale_id,
            "receipt_number": (
                self.original_sale.receipt.receipt_number
                if self.original_sale and self.original_sale.receipt else None
            ),
            "reason": self.reason,
            "refund_amount": money_str(self.refund_amount),
            "status": self.status,
            "refunded_by": self.refunded_by,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["refunded_by_user"] = (
                {"id": self.refunded_by_user.id, "name": self.refunded_by_user.name}
                if self.refunded_by_user else None
            )
        return data


class RefundItem(db.Model):
    __tablename__ = "refund_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("refunds.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(500), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_id": self.refund_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "reason": self.reason,
        }
