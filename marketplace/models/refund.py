from datetime import datetime
from marketplace.extensions import db


class Refund(db.Model):
    __tablename__ = "refunds"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    reason = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(32), default="pending")  # pending | completed | failed
    paypal_refund_id = db.Column(db.String(64), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "reason": self.reason,
            "status": self.status,
            "paypal_refund_id": self.paypal_refund_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Refund order={self.order_id} {self.amount_cents}c [{self.status}]>"
