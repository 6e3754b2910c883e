# marketplace/api/routes/health_routes.py
from flask import Blueprint, current_app, jsonify

from marketplace.extensions import db

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/health")


def mask(value):
    if not value:
        return None
    value = str(value)
    if len(value) <= 8:
        return "••••"
    return f"{value[:4]}...{value[-4:]}"


def _database_reachable() -> bool:
    try:
        db.session.execute(db.text("SELECT 1"))
        return True
    except Exception:
        current_app.logger.exception("Health check: database not reachable")
        db.session.rollback()
        return False


@health_bp.get("")
@health_bp.get("/")
def health():
    try:
        cfg = current_app.config
        client_id = cfg.get("PAYPAL_CLIENT_ID")
        secret = cfg.get("PAYPAL_SECRET")
        db_uri = cfg.get("SQLALCHEMY_DATABASE_URI")

        return jsonify({
            "ok": True,
            "env": {
                "app_env": cfg.get("APP_ENV"),
                "port": cfg.get("PORT"),
            },
            "database": {
                "configured": bool(db_uri),
                "driver": str(db_uri).split(":", 1)[0] if db_uri else None,
                "reachable": _database_reachable(),
            },
            "paypal": {
                "env": cfg.get("PAYPAL_ENV"),
                "hasClientId": bool(client_id),
                "hasSecret": bool(secret),
                "clientId": mask(client_id),
            },
        }), 200
    except Exception:
        current_app.logger.exception("Health endpoint error")
        return jsonify({"ok": False, "error": "health check failed"}), 500
