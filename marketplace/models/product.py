from datetime import datetime
from marketplace.extensions import db


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)

    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    ribbon_text = db.Column(db.String(60), nullable=True)

    # price in cents
    base_price = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    image_url = db.Column(db.String(500), nullable=True)
    gallery_images = db.Column(db.JSON, nullable=True)
    images = db.Column(db.JSON, nullable=True)  # legacy

    is_published = db.Column(db.Boolean, nullable=False, default=False)

    # only used for products without variants
    inventory_quantity = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = db.relationship("Vendor", back_populates="products")
    category = db.relationship("Category", back_populates="products")
    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    def to_dict(self, with_variants: bool = True) -> dict:
        data = {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "category_id": self.category_id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "ribbon_text": self.ribbon_text,
            "base_price": self.base_price,
            "currency": self.currency,
            "image_url": self.image_url,
            "gallery_images": list(self.gallery_images or []),
            "images": list(self.images or []),
            "is_published": bool(self.is_published),
            "inventory_quantity": self.inventory_quantity,
        }
        if with_variants:
            data["product_variants"] = [v.to_dict() for v in self.variants]
        return data

    def __repr__(self) -> str:
        return f"<Product {self.title}>"
