# marketplace/models/profile.py
from datetime import datetime
from marketplace.extensions import db

ROLES = ("customer", "vendor", "admin")


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    full_name = db.Column(db.String(150), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="customer")

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    vendors = db.relationship("Vendor", back_populates="owner", lazy=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Profile {self.email} role={self.role}>"
