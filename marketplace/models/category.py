from marketplace.extensions import db


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(150), unique=True, nullable=True)
    description = db.Column(db.Text, nullable=True)

    products = db.relationship("Product", back_populates="category", lazy=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "slug": self.slug, "description": self.description}

    def __repr__(self): return f"<Category {self.name}>"
