from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

PAYMENT_METHODS = ("CASH", "CARD", "MOBILE", "BANK_TRANSFER")

SALE_STATUS_COMPLETED = "COMPLETED"
SALE_STATUS_REFUNDED = "REFUNDED"


class Sale(db.Model):
    """
    A completed point-of-sale transaction.

    Written once by sales_service.create_sale together with its items, stock
    movements and receipt. The only later mutation is the status flip to
    REFUNDED made by refund_service.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_by_created_at", "created_by", "created_at"),
        db.Index("ix_sales_branch_created_at", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(32), nullable=False, default="COMPLETED")
    status = db.Column(db.String(32), nullable=False, default=SALE_STATUS_COMPLETED)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")
    receipt = db.relationship("Receipt", backref="sale", uselist=False)
    customer = db.relationship("Customer")
    branch = db.relationship("Branch")
    cashier = db.relationship("User", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return f"<Sale id={self.id} total={self.total_amount} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "created_by": self.created_by,
            "subtotal": money_str(self.subtotal),
            "tax_rate": money_str(self.tax_rate),
            "tax_amount": money_str(self.tax_amount),
            "discount_amount": money_str(self.discount_amount),
            "total_amount": money_str(self.total_amount),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "receipt_number": self.receipt.receipt_number if self.receipt else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["customer"] = self.customer.to_dict() if self.customer else None
            data["branch"] = {"id": self.branch.id, "name": self.branch.name} if self.branch else None
            data["cashier"] = (
                {"id": self.cashier.id, "name": self.cashier.name, "username": self.cashier.username}
                if self.cashier else None
            )
            data["receipt"] = self.receipt.to_dict() if self.receipt else None
        return data


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Price captured at sale time; later catalog price changes do not touch it
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product": (
                {"id": self.product.id, "name": self.product.name, "unit_type": self.product.unit_type}
                if self.product else None
            ),
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "batch_number": self.batch_number,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }


class Receipt(db.Model):
    """One per sale. receipt_number is globally unique."""
    __tablename__ = "receipts"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, unique=True)
    receipt_number = db.Column(db.String(32), nullable=False, unique=True)
    printed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    printed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "receipt_number": self.receipt_number,
            "printed_by": self.printed_by,
            "branch_id": self.branch_id,
            "printed_at": to_utc_z(self.printed_at),
        }


class ReceiptSequence(db.Model):
    """
    Per-day receipt counter.

    Allocation increments next_number with a single UPDATE so concurrent
    sales on the same day never draw the same number.
    """
    __tablename__ = "receipt_sequences"

    day = db.Column(db.String(8), primary_key=True)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
