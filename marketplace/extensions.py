# marketplace/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from flask_mail import Mail

db = SQLAlchemy()
migrate = Migrate()
cors = CORS()
mail = Mail()


def init_mail(app):
    """Flask-Mail over the MAIL_* settings; SSL wins when both SSL and TLS are on."""
    cfg = app.config
    if cfg.get("MAIL_USE_SSL") and cfg.get("MAIL_USE_TLS"):
        cfg["MAIL_USE_TLS"] = False
        app.logger.info("MAIL_USE_SSL and MAIL_USE_TLS both set, using SSL only")
    if not cfg.get("MAIL_DEFAULT_SENDER"):
        cfg["MAIL_DEFAULT_SENDER"] = cfg.get("MAIL_USERNAME")

    app.logger.info(
        "Mail: %s:%s ssl=%s tls=%s sender=%s suppress=%s",
        cfg.get("MAIL_SERVER"),
        cfg.get("MAIL_PORT"),
        bool(cfg.get("MAIL_USE_SSL")),
        bool(cfg.get("MAIL_USE_TLS")),
        cfg.get("MAIL_DEFAULT_SENDER"),
        bool(cfg.get("MAIL_SUPPRESS_SEND")),
    )
    mail.init_app(app)
