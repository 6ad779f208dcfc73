"""Customer-facing order and cart API."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from . import components, current_actor, int_arg


api_bp = Blueprint("storefront_api", __name__, url_prefix="/api")


def _pick(payload: dict, *keys):
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _checkout_fields(payload: dict) -> dict:
    # camelCase from the SPA, snake_case from older clients
    return {
        "shipping_address": _pick(payload, "shippingAddress", "shipping_address"),
        "billing_address": _pick(payload, "billingAddress", "billing_address"),
        "payment_method": _pick(payload, "paymentMethod", "payment_method"),
        "payment_details": _pick(payload, "paymentDetails", "payment_details"),
        "notes": payload.get("notes"),
        "idempotency_key": request.headers.get("Idempotency-Key") or _pick(payload, "idempotencyKey", "idempotency_key"),
    }


@api_bp.post("/orders")
def create_order():
    actor = current_actor()
    payload = request.get_json(silent=True) or {}
    result = components()["order_service"].place_order(
        user_id=actor.user_id,
        items=payload.get("items"),
        **_checkout_fields(payload),
    )
    return jsonify(result.to_dict()), 200 if result.replayed else 201


@api_bp.post("/orders/checkout")
def checkout_cart():
    actor = current_actor()
    payload = request.get_json(silent=True) or {}
    result = components()["order_service"].checkout_cart(user_id=actor.user_id, **_checkout_fields(payload))
    return jsonify(result.to_dict()), 200 if result.replayed else 201


@api_bp.get("/orders")
def list_orders():
    actor = current_actor()
    data = components()["order_service"].list_user_orders(
        actor.user_id,
        page=int_arg("page", 1),
        page_size=int_arg("limit", 10),
        status=request.args.get("status"),
    )
    return jsonify(data)


@api_bp.get("/orders/<order_id>")
def get_order(order_id: str):
    actor = current_actor()
    return jsonify(components()["order_service"].get_order(order_id, actor))


@api_bp.post("/orders/<order_id>/cancel")
def cancel_order(order_id: str):
    actor = current_actor()
    result = components()["order_service"].cancel(order_id, actor)
    return jsonify({"message": "Order cancelled successfully", **result})


@api_bp.get("/cart")
def get_cart():
    actor = current_actor()
    return jsonify(components()["cart_service"].get_cart(user_id=actor.user_id))


@api_bp.post("/cart/items")
def add_cart_item():
    actor = current_actor()
    payload = request.get_json(silent=True) or {}
    try:
        result = components()["cart_service"].add_item(
            user_id=actor.user_id,
            product_id=str(_pick(payload, "productId", "product_id") or ""),
            variant=payload.get("variant"),
            quantity=payload.get("quantity", 1),
        )
    except ValueError as exc:
        return jsonify({"error": "invalid_item", "message": str(exc)}), 400
    return jsonify(result), 201


@api_bp.patch("/cart/items/<item_id>")
def update_cart_item(item_id: str):
    actor = current_actor()
    payload = request.get_json(silent=True) or {}
    try:
        result = components()["cart_service"].update_item(
            user_id=actor.user_id,
            item_id=item_id,
            variant=payload.get("variant"),
            quantity=payload.get("quantity"),
        )
    except ValueError as exc:
        return jsonify({"error": "invalid_item", "message": str(exc)}), 400
    return jsonify(result)


@api_bp.delete("/cart/items/<item_id>")
def remove_cart_item(item_id: str):
    actor = current_actor()
    components()["cart_service"].remove_item(user_id=actor.user_id, item_id=item_id)
    return jsonify({"status": "removed", "item_id": item_id})
