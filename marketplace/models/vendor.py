# marketplace/models/vendor.py
from datetime import datetime
from marketplace.extensions import db


class Vendor(db.Model):
    __tablename__ = "vendors"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    slug = db.Column(db.String(150), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)

    # onboarding / KYC
    onboarding_status = db.Column(db.String(32), nullable=False, default="not_started")
    onboarding_token = db.Column(db.String(64), unique=True, nullable=True, index=True)
    kyc_provider = db.Column(db.String(64), nullable=True)
    kyc_id = db.Column(db.String(128), nullable=True, index=True)
    onboarding_data = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = db.relationship("Profile", back_populates="vendors")
    products = db.relationship("Product", back_populates="vendor", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "website": self.website,
            "contact_email": self.contact_email,
            "onboarding_status": self.onboarding_status,
            "onboarding_token": self.onboarding_token,
            "kyc_provider": self.kyc_provider,
            "kyc_id": self.kyc_id,
            "onboarding_data": self.onboarding_data or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Vendor {self.slug} [{self.onboarding_status}]>"
