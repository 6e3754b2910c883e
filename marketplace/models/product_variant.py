from datetime import datetime
from marketplace.extensions import db


class ProductVariant(db.Model):
    __tablename__ = "product_variants"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = db.Column(db.String(150), nullable=True)
    sku = db.Column(db.String(64), nullable=True, index=True)

    price_in_cents = db.Column(db.Integer, nullable=True)
    sale_price_in_cents = db.Column(db.Integer, nullable=True)

    inventory_quantity = db.Column(db.Integer, nullable=False, default=0)
    manage_inventory = db.Column(db.Boolean, nullable=False, default=True)

    image_url = db.Column(db.String(500), nullable=True)
    images = db.Column(db.JSON, nullable=True)
    attributes = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = db.relationship("Product", back_populates="variants")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "title": self.title,
            "sku": self.sku,
            "price_in_cents": self.price_in_cents,
            "sale_price_in_cents": self.sale_price_in_cents,
            "inventory_quantity": self.inventory_quantity,
            "manage_inventory": bool(self.manage_inventory),
            "image_url": self.image_url,
            "images": list(self.images or []),
            "attributes": self.attributes or {},
        }

    def __repr__(self) -> str:  # pragma: no cover - debug aid
        return f"<ProductVariant {self.title or ''} ({self.sku or ''})>"
