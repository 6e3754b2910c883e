# marketplace/services/onboarding.py
from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime

from marketplace.extensions import db
from marketplace.models import Vendor

log = logging.getLogger(__name__)

ONBOARDING_STATUSES = (
    "not_started",
    "started",
    "kyc_in_progress",
    "kyc_completed",
    "approved",
    "rejected",
    "appeal_requested",
)

ONBOARDING_TRANSITIONS = {
    "not_started": ("started", "kyc_in_progress"),
    "started": ("kyc_in_progress",),
    "kyc_in_progress": ("kyc_completed", "rejected"),
    "kyc_completed": ("approved", "rejected"),
    "rejected": ("appeal_requested",),
    "appeal_requested": ("kyc_in_progress", "approved", "rejected"),
    "approved": (),
}


# outcomes a KYC provider may report; approval stays with the admin review
KYC_RESULT_STATUSES = ("kyc_completed", "rejected")


class OnboardingError(ValueError):
    pass


def can_transition_onboarding(current: str, new: str) -> bool:
    return new in ONBOARDING_TRANSITIONS.get(current or "not_started", ())


def set_onboarding_status(vendor: Vendor, new_status: str) -> str:
    if new_status not in ONBOARDING_STATUSES:
        raise OnboardingError(f"Unknown onboarding status: {new_status}")
    old = vendor.onboarding_status or "not_started"
    if not can_transition_onboarding(old, new_status):
        raise OnboardingError(f"Cannot move vendor from {old} to {new_status}")
    vendor.onboarding_status = new_status
    vendor.updated_at = datetime.utcnow()
    log.info("Vendor %s onboarding: %s -> %s", vendor.id, old, new_status)
    return old


def new_onboarding_token() -> str:
    return str(uuid.uuid4())


def onboarding_url(frontend_url: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/onboarding/{token}"


def start_kyc(vendor: Vendor, provider: str, frontend_url: str) -> dict:
    # TODO: call the configured KYC provider instead of issuing a stub session
    session_id = f"stub-{int(time.time() * 1000)}"
    set_onboarding_status(vendor, "kyc_in_progress")
    vendor.kyc_provider = provider
    vendor.kyc_id = session_id
    return {
        "providerUrl": f"{onboarding_url(frontend_url, vendor.onboarding_token)}?provider={provider}&session={session_id}",
        "providerSessionId": session_id,
    }


def record_kyc_result(vendor: Vendor, status: str | None, details=None, kyc_id: str | None = None) -> str:
    status = status or "kyc_completed"
    if status not in KYC_RESULT_STATUSES:
        raise OnboardingError(f"KYC provider cannot report status {status}")
    old = set_onboarding_status(vendor, status)
    data = dict(vendor.onboarding_data or {})
    data["kyc_result"] = details or {}
    vendor.onboarding_data = data
    if kyc_id:
        vendor.kyc_id = kyc_id
    return old


def request_appeal(vendor: Vendor, reason: str | None) -> dict:
    set_onboarding_status(vendor, "appeal_requested")
    appeal = {
        "id": f"appeal-{int(time.time() * 1000)}",
        "reason": reason or "",
        "created_at": datetime.utcnow().isoformat(),
    }
    data = dict(vendor.onboarding_data or {})
    data["appeals"] = list(data.get("appeals") or []) + [appeal]
    # reassign so the JSON column is marked dirty
    vendor.onboarding_data = data
    return appeal


def find_vendor_for_webhook(onboarding_token=None, vendor_id=None, kyc_id=None):
    if onboarding_token:
        return Vendor.query.filter_by(onboarding_token=onboarding_token).first()
    if vendor_id is not None:
        try:
            vendor_id = int(vendor_id)
        except (TypeError, ValueError):
            raise OnboardingError("Invalid vendor_id") from None
        return db.session.get(Vendor, vendor_id)
    if kyc_id:
        return Vendor.query.filter_by(kyc_id=kyc_id).first()
    raise OnboardingError("Missing identifier")
