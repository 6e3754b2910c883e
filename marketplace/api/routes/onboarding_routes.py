# marketplace/api/routes/onboarding_routes.py
from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from marketplace.api.utils.auth import require_profile
from marketplace.extensions import db
from marketplace.models import Profile, Vendor
from marketplace.services.onboarding import (
    OnboardingError,
    find_vendor_for_webhook,
    new_onboarding_token,
    onboarding_url,
    record_kyc_result,
    request_appeal,
    set_onboarding_status,
    start_kyc,
)

onboarding_bp = Blueprint("onboarding_bp", __name__, url_prefix="/api/onboarding")

REVIEW_DECISIONS = ("approved", "rejected")


def _frontend_url() -> str:
    return current_app.config.get("FRONTEND_URL") or "https://skn.onrender.com"


def _owned_vendor(vendor_id):
    """Vendor owned by the requester, or an error response."""
    vendor = db.session.get(Vendor, vendor_id) if vendor_id is not None else None
    if vendor is None:
        return None, (jsonify({"ok": False, "error": "Vendor not found"}), 404)
    if vendor.owner_id != g.profile.id:
        return None, (jsonify({"ok": False, "error": "Unauthorized"}), 403)
    return vendor, None


@onboarding_bp.post("/signup")
def signup():
    data = request.get_json(silent=True) or {}
    name = str(data.get("name") or "").strip()
    slug = str(data.get("slug") or "").strip().lower()
    owner_id = data.get("owner_id")

    if not name or not slug or owner_id is None:
        return jsonify({"ok": False, "error": "owner_id, name and slug are required"}), 400
    try:
        owner = db.session.get(Profile, int(owner_id))
    except (TypeError, ValueError):
        owner = None
    if owner is None:
        return jsonify({"ok": False, "error": "Owner profile not found"}), 404

    if Vendor.query.filter_by(slug=slug).first() is not None:
        return jsonify({"ok": False, "error": "Slug already taken"}), 409

    try:
        vendor = Vendor(
            owner_id=owner.id,
            name=name,
            slug=slug,
            description=data.get("description"),
            website=data.get("website"),
            contact_email=data.get("contact_email") or owner.email,
            onboarding_token=new_onboarding_token(),
        )
        set_onboarding_status(vendor, "started")
        if owner.role == "customer":
            owner.role = "vendor"
        db.session.add(vendor)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "error": "Slug already taken"}), 409
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Vendor signup failed")
        return jsonify({"ok": False, "error": str(e)}), 500

    current_app.logger.info("Vendor %s signed up (owner %s)", vendor.slug, owner.id)
    return jsonify({
        "ok": True,
        "vendor": vendor.to_dict(),
        "onboardingUrl": onboarding_url(_frontend_url(), vendor.onboarding_token),
    }), 201


@onboarding_bp.get("/<token>")
def get_by_token(token: str):
    vendor = Vendor.query.filter_by(onboarding_token=token).first()
    if vendor is None:
        return jsonify({"ok": False, "error": "Onboarding session not found"}), 404
    return jsonify({"ok": True, "vendor": vendor.to_dict()}), 200


@onboarding_bp.post("/start-kyc")
@require_profile
def start_kyc_session():
    data = request.get_json(silent=True) or {}
    try:
        vendor_id = int(data.get("vendor_id"))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "vendor_id is required"}), 400

    vendor, err = _owned_vendor(vendor_id)
    if err:
        return err
    if not vendor.onboarding_token:
        vendor.onboarding_token = new_onboarding_token()

    try:
        session = start_kyc(vendor, current_app.config.get("KYC_PROVIDER") or "stub", _frontend_url())
        db.session.commit()
    except OnboardingError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, **session}), 200


@onboarding_bp.post("/webhook")
def kyc_webhook():
    data = request.get_json(silent=True) or {}
    try:
        vendor = find_vendor_for_webhook(
            onboarding_token=data.get("onboarding_token"),
            vendor_id=data.get("vendor_id"),
            kyc_id=data.get("kyc_id"),
        )
    except OnboardingError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    if vendor is None:
        return jsonify({"ok": False, "error": "Vendor not found"}), 404

    try:
        old = record_kyc_result(vendor, data.get("status"), data.get("details"), data.get("kyc_id"))
        db.session.commit()
    except OnboardingError as e:
        db.session.rollback()
        current_app.logger.warning("Rejected KYC webhook for vendor %s: %s", vendor.id, e)
        return jsonify({"ok": False, "error": str(e)}), 409

    current_app.logger.info("KYC webhook: vendor %s %s -> %s", vendor.id, old, vendor.onboarding_status)
    return jsonify({"ok": True, "vendor": vendor.to_dict()}), 200


@onboarding_bp.post("/<int:vendor_id>/appeal")
@require_profile
def appeal(vendor_id: int):
    vendor, err = _owned_vendor(vendor_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        entry = request_appeal(vendor, str(data.get("reason") or "").strip())
        db.session.commit()
    except OnboardingError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, "appeal": entry, "vendor": vendor.to_dict()}), 201


@onboarding_bp.post("/<int:vendor_id>/review")
@require_profile
def review(vendor_id: int):
    if not g.profile.is_admin:
        return jsonify({"ok": False, "error": "Only admins can review vendors"}), 403
    vendor = db.session.get(Vendor, vendor_id)
    if vendor is None:
        return jsonify({"ok": False, "error": "Vendor not found"}), 404

    data = request.get_json(silent=True) or {}
    decision = str(data.get("decision") or "").strip().lower()
    if decision not in REVIEW_DECISIONS:
        return jsonify({"ok": False, "error": "decision must be approved or rejected"}), 400

    try:
        set_onboarding_status(vendor, decision)
        info = dict(vendor.onboarding_data or {})
        info["review"] = {"decision": decision, "notes": data.get("notes"), "reviewed_by": g.profile.id}
        vendor.onboarding_data = info
        db.session.commit()
    except OnboardingError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, "vendor": vendor.to_dict()}), 200
