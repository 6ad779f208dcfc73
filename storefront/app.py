"""Storefront order API Flask application."""

from __future__ import annotations

from typing import Optional

from flask import Flask, jsonify

from .config import AppConfig, load_env
from .db.session import build_engine, init_db, make_session_factory
from .errors import StorefrontError
from .routes import admin, api, error_response
from .services import CartService, OrderService, PricingPolicy
from .services.logging import log_event, set_level


def create_app(config: Optional[AppConfig] = None, session_factory=None) -> Flask:
    config = config or load_env()
    set_level(config.log_level)
    if session_factory is None:
        engine = build_engine(config.database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["STOREFRONT_CONFIG"] = config

    cart_service = CartService(session_factory)
    components = {
        "cart_service": cart_service,
        "order_service": OrderService(
            session_factory,
            pricing=PricingPolicy.from_config(config),
            currency=config.currency,
            max_number_attempts=config.order_number_attempts,
        ),
    }
    app.extensions["storefront_components"] = components

    app.register_blueprint(api.api_bp)
    app.register_blueprint(admin.admin_bp)
    app.register_error_handler(StorefrontError, error_response)

    @app.errorhandler(401)
    def unauthorized(_exc):
        return jsonify({"error": "unauthenticated", "message": "Authentication required"}), 401

    log_event("info", "app.started", currency=config.currency, tax_rate=str(config.tax_rate))
    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)


if __name__ == "__main__":
    main()
