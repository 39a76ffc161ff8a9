import logging
import os
import sys

from flask import Flask, jsonify

from .constants import DEFAULT_MAIL_WORKERS
from .emailer import Mailer


def _configure_logging() -> None:
    logger = logging.getLogger("certbatch")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s - %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def create_app(mailer: Mailer | None = None):
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")
    app.config["MAX_CONTENT_LENGTH"] = int(os.getenv("MAX_CONTENT_LENGTH_MB", "25")) * 1024 * 1024

    site_root = os.getenv("SITE_ROOT", "/srv")
    app.config["SITE_ROOT"] = site_root
    app.config["CERT_MAIL_WORKERS"] = int(
        os.getenv("CERT_MAIL_WORKERS", str(DEFAULT_MAIL_WORKERS))
    )

    app.extensions["certbatch.mailer"] = mailer or Mailer()

    _configure_logging()

    @app.errorhandler(413)
    def too_large(_exc):
        return jsonify({"error": "Uploaded files are too large."}), 413

    @app.get("/healthz")
    def healthz():
        return jsonify({"ok": True})

    from .routes.certificates import bp as certificates_bp

    app.register_blueprint(certificates_bp)

    return app
