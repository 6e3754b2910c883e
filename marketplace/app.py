# marketplace/app.py
import logging

# Show INFO logs even outside the werkzeug access log
logging.basicConfig(level=logging.INFO)

import click
from flask import Flask, jsonify, request

from marketplace.config import Config
from marketplace.extensions import db, migrate, cors, init_mail
from marketplace.services.paypal import redact

# Blueprints
from marketplace.api.routes.paypal_routes import paypal_bp
from marketplace.api.routes.order_routes import order_bp
from marketplace.api.routes.product_routes import api_products
from marketplace.api.routes.inventory_routes import inventory_bp
from marketplace.api.routes.onboarding_routes import onboarding_bp
from marketplace.api.routes.vendor_routes import vendor_bp
from marketplace.api.routes.health_routes import health_bp
from marketplace import models as _models  # noqa: F401

log = logging.getLogger(__name__)


def check_paypal_credentials(cfg) -> None:
    """Refuse to start without PayPal credentials."""
    missing = [k for k in ("PAYPAL_CLIENT_ID", "PAYPAL_SECRET") if not cfg.get(k)]
    if missing:
        log.error("Missing PayPal credentials: %s. Set them in .env or the environment.", ", ".join(missing))
        raise SystemExit(1)
    log.info(
        "PayPal configured: env=%s client_id=%s",
        cfg.get("PAYPAL_ENV"),
        redact(cfg.get("PAYPAL_CLIENT_ID")),
    )


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)

    check_paypal_credentials(app.config)

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_mail(app)

    cors.init_app(
        app,
        resources={
            r"/api/*": {
                "origins": app.config.get("CORS_ORIGINS") or [],
                "supports_credentials": True,
            }
        },
    )

    # Register blueprints
    app.register_blueprint(paypal_bp)
    app.register_blueprint(order_bp)
    app.register_blueprint(api_products)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(onboarding_bp)
    app.register_blueprint(vendor_bp)
    app.register_blueprint(health_bp)

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api"):
            return jsonify({"ok": False, "error": "Not found"}), 404
        return e

    @app.errorhandler(500)
    def server_error(e):
        if request.path.startswith("/api"):
            return jsonify({"ok": False, "error": "Internal server error"}), 500
        return e

    # Diagnostics: list all routes
    @app.get("/__routes")
    def __routes():
        lines = []
        for r in sorted(app.url_map.iter_rules(), key=lambda x: x.rule):
            methods = ",".join(
                sorted(m for m in r.methods if m in {"GET", "POST", "PUT", "DELETE", "PATCH"})
            )
            lines.append(f"{r.rule:45s} -> {r.endpoint} [{methods}]")
        return "<pre>" + "\n".join(lines) + "</pre>"

    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo(f"Tables created in {app.config['SQLALCHEMY_DATABASE_URI']}")

    return app
