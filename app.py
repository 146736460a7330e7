"""
Study Log — Flask Web Application

Gamified activity tracker: students log activities, earn XP, level up an
avatar, keep plan streaks and unlock achievements; teachers follow their
school and admins manage accounts.
"""

from __future__ import annotations

import os
from typing import Any

from flask import Flask, Response, jsonify

import database
from auth import auth_bp, login_manager
from blueprints import register_blueprints
from cache_backend import init_cache
from errors import register_error_handlers
from extensions import limiter
from logging_config import init_logging


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)

    # Load config
    from config import config_by_name
    if test_config is not None:
        app.config.from_object(config_by_name["testing"])
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        if hasattr(cfg, "validate"):
            cfg.validate()

    # Structured logging
    init_logging(app)

    # TTL store for focus timers (Redis or in-memory fallback)
    init_cache(app)

    # Register database teardown
    database.init_app(app)

    # Rate limiter (disabled in testing)
    if app.config.get("TESTING"):
        app.config["RATELIMIT_ENABLED"] = False
    limiter.init_app(app)

    # Register auth blueprint and login manager
    app.register_blueprint(auth_bp)
    login_manager.init_app(app)

    register_error_handlers(app)

    # Register all application blueprints
    register_blueprints(app)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # Security headers
    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not app.debug and not app.testing:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
