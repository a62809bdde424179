"""
Application factory and global configuration.

Creates the Flask app, applies security headers, configures rate limiting,
initializes Supabase and registers the JSON blueprints (forum, crop calendar,
commodity prices) plus the moderator CLI commands. This file keeps
startup/config concerns together and avoids domain logic here.
"""

from __future__ import annotations
import os
from flask import Flask, Response, jsonify
from dotenv import load_dotenv  # <-- ensure .env is loaded for local dev
from .extensions import limiter
from .routes.forum import forum_bp
from .routes.crop_calendar import calendar_bp
from .routes.prices import prices_bp
from .services import supabase_client
from .cli import scan_text_command, forum_status_command


def _validate_production_security(app: Flask, cfg_path: str) -> None:
    """
    Validate critical settings in production environments.

    Raises RuntimeError if production requirements are not met, so the app
    never starts with an insecure or half-configured setup.

    Checks:
    - SECRET_KEY must be set and strong (>= 32 characters)
    - DEBUG must be False
    - SUPABASE_SERVICE_ROLE_KEY must be set (forum moderation writes need it)
    - Forum thresholds must escalate (temporary block before permanent block)
    """
    is_production = "ProdConfig" in cfg_path
    is_test = app.config.get("TESTING", False)

    if not is_production or is_test:
        return

    errors = []

    secret_key = app.config.get("SECRET_KEY", "")
    if not secret_key:
        errors.append(
            "SECRET_KEY is not set. Set FLASK_SECRET_KEY environment variable. "
            "Generate with: python -c 'import secrets; print(secrets.token_hex(32))'"
        )
    elif len(secret_key) < 32:
        errors.append(
            f"SECRET_KEY is too weak ({len(secret_key)} chars). "
            "Must be at least 32 characters for production security."
        )

    if app.config.get("DEBUG", False):
        errors.append("DEBUG must be False in production.")

    if not app.config.get("SUPABASE_SERVICE_ROLE_KEY"):
        errors.append(
            "SUPABASE_SERVICE_ROLE_KEY is not set. Forum moderation state cannot be persisted without it."
        )

    temp_at = app.config.get("FORUM_TEMP_BLOCK_AT", 2)
    permanent_at = app.config.get("FORUM_PERMANENT_BLOCK_AT", 3)
    if not 0 < temp_at < permanent_at:
        errors.append(
            f"FORUM_TEMP_BLOCK_AT ({temp_at}) must be positive and below FORUM_PERMANENT_BLOCK_AT ({permanent_at})."
        )

    if errors:
        error_msg = "\n\n[ERROR] PRODUCTION CONFIGURATION VALIDATION FAILED:\n\n" + "\n\n".join(f"  * {err}" for err in errors)
        error_msg += "\n\n[WARNING] The application will not start until these issues are resolved.\n"
        raise RuntimeError(error_msg)

    app.logger.info("[OK] Production configuration validation passed")


def create_app() -> Flask:
    # Load .env early (for local dev)
    load_dotenv(override=True)

    app = Flask(__name__)

    # Allow APP_CONFIG to override (e.g., agrihub.config.DevConfig)
    cfg_path = os.getenv("APP_CONFIG", "agrihub.config.ProdConfig")
    try:
        app.config.from_object(cfg_path)
    except (ImportError, AttributeError) as e:
        app.logger.warning(f"Could not load config object {cfg_path}: {e}")

    _validate_production_security(app, cfg_path)

    limiter.init_app(app)

    if not app.config.get("RATELIMIT_ENABLED", True):
        limiter.enabled = False

    if not app.secret_key:
        app.secret_key = app.config.get("SECRET_KEY", "")

    supabase_client.init_supabase(app)

    @app.after_request
    def apply_security_headers(resp: Response) -> Response:
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(429)
    def rate_limited(_error):
        return jsonify({"success": False, "error": "Too many requests. Please slow down."}), 429

    # Blueprints
    app.register_blueprint(forum_bp)
    app.register_blueprint(calendar_bp)
    app.register_blueprint(prices_bp)

    # CLI
    app.cli.add_command(scan_text_command)
    app.cli.add_command(forum_status_command)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "database": supabase_client.is_configured()})

    return app
