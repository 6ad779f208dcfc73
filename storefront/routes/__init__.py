"""HTTP blueprints for the storefront order API."""

from __future__ import annotations

from typing import Optional

from flask import abort, current_app, jsonify, request

from ..errors import OrderNotFoundError, StorefrontError
from ..models.checkout import Actor


def components() -> dict:
    return current_app.extensions["storefront_components"]


def current_actor() -> Actor:
    # identity is asserted by the upstream auth layer
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        abort(401)
    role = (request.headers.get("X-User-Role") or "customer").strip().lower()
    return Actor(user_id=user_id, role=role)


def error_response(exc: StorefrontError):
    if isinstance(exc, OrderNotFoundError):
        # AccessDeniedError lands here too; never reveal that the order exists
        return jsonify({"error": OrderNotFoundError.kind, "message": "Order not found"}), 404
    body = {"error": exc.kind, "message": str(exc)}
    body.update(exc.details())
    return jsonify(body), exc.http_status


def int_arg(name: str, default: int) -> int:
    raw: Optional[str] = request.args.get(name)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default
