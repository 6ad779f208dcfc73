"""Order administration API (privileged callers only)."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from . import components, current_actor, int_arg


admin_bp = Blueprint("storefront_admin", __name__, url_prefix="/admin")


@admin_bp.before_request
def guard_private_routes():
    actor = current_actor()
    if not actor.is_privileged:
        return jsonify({"error": "access_denied", "message": "Access denied"}), 403
    return None


@admin_bp.get("/orders")
def list_orders():
    data = components()["order_service"].list_orders(
        page=int_arg("page", 1),
        page_size=int_arg("limit", 10),
        status=request.args.get("status"),
        user_id=request.args.get("userId"),
    )
    return jsonify(data)


@admin_bp.get("/orders/stats")
def order_stats():
    return jsonify(components()["order_service"].get_stats())


@admin_bp.put("/orders/<order_id>/status")
def update_order_status(order_id: str):
    payload = request.get_json(silent=True) or {}
    result = components()["order_service"].update_status(
        order_id,
        str(payload.get("status") or ""),
        current_actor(),
        tracking_number=payload.get("tracking_number", payload.get("trackingNumber")),
        notes=payload.get("notes"),
    )
    return jsonify({"message": "Order status updated successfully", **result})
