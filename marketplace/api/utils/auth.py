# marketplace/api/utils/auth.py
"""
Requester identity. Authentication itself happens at the hosted auth
provider in front of this service; the verified user id arrives in the
X-User-Id header.
"""
from functools import wraps

from flask import g, jsonify, request

from marketplace.extensions import db
from marketplace.models import Profile

USER_HEADER = "X-User-Id"


def current_profile():
    raw = (request.headers.get(USER_HEADER) or "").strip()
    if not raw.isdigit():
        return None
    return db.session.get(Profile, int(raw))


def require_profile(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        profile = current_profile()
        if profile is None:
            return jsonify({"ok": False, "error": "Authentication required"}), 401
        g.profile = profile
        return view(*args, **kwargs)
    return wrapper


def owns_vendor(vendor, profile) -> bool:
    return vendor is not None and vendor.owner_id == profile.id


def can_view_order(order, profile) -> bool:
    """Buyer, the selling vendor's owner, or an admin."""
    return profile.is_admin or order.user_id == profile.id or owns_vendor(order.vendor, profile)
