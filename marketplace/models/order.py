# marketplace/models/order.py
from datetime import datetime
from marketplace.extensions import db

def _iso(dt):
    return dt.isoformat() if dt else None


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)

    status = db.Column(db.String(32), nullable=False, default="pending")
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    shipping_address = db.Column(db.JSON, nullable=True)

    # payment pairing
    payment_method = db.Column(db.String(32), nullable=True, default="paypal")
    payment_id = db.Column(db.String(64), nullable=True, index=True)
    paypal_capture_id = db.Column(db.String(64), nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)
    shipping_carrier = db.Column(db.String(100), nullable=True)

    paid_at = db.Column(db.DateTime, nullable=True)
    shipped_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("Profile")
    vendor = db.relationship("Vendor")
    items = db.relationship("OrderItem", backref="order", lazy=True, cascade="all, delete-orphan")
    history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )
    refunds = db.relationship("Refund", backref="order", lazy=True, cascade="all, delete-orphan")

    def to_dict(self, with_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "vendor_id": self.vendor_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "currency": self.currency,
            "shipping_address": self.shipping_address,
            "payment_method": self.payment_method,
            "payment_id": self.payment_id,
            "paypal_capture_id": self.paypal_capture_id,
            "cancellation_reason": self.cancellation_reason,
            "tracking_number": self.tracking_number,
            "shipping_carrier": self.shipping_carrier,
            "paid_at": _iso(self.paid_at),
            "shipped_at": _iso(self.shipped_at),
            "delivered_at": _iso(self.delivered_at),
            "cancelled_at": _iso(self.cancelled_at),
            "refunded_at": _iso(self.refunded_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if with_items:
            data["items"] = [it.to_dict() for it in self.items]
        return data

    def __repr__(self):
        return f"<Order #{self.id} [{self.status}] {self.total_amount_cents}c>"
