from typing import Any, Dict

from ..models.checkout import Address, VariantDetails, payment_from_dict, payment_to_dict


def _money(value: Any) -> float:
    return float(value or 0)


def _ts(value: Any):
    return value.isoformat() if value is not None else None


def to_order_item_dto(row: Any) -> Dict:
    variant = VariantDetails.from_stored(row.variant_details)
    return {
        "id": row.id,
        "product_id": row.product_id,
        "product_name": row.product_name,
        "quantity": row.quantity,
        "unit_price": _money(row.unit_price),
        "total_price": _money(row.total_price),
        "variant_details": variant.to_dict() if variant else None,
    }


def to_order_dto(row: Any, include_items: bool = True) -> Dict:
    dto = {
        "id": row.id,
        "order_number": row.order_number,
        "user_id": row.user_id,
        "status": row.status,
        "subtotal": _money(row.subtotal),
        "tax_amount": _money(row.tax_amount),
        "shipping_amount": _money(row.shipping_amount),
        "total_amount": _money(row.total_amount),
        "currency": row.currency,
        "shipping_address": Address.from_dict(row.shipping_address).to_dict(),
        "billing_address": Address.from_dict(row.billing_address).to_dict(),
        "payment_method": row.payment_method,
        "payment_details": payment_to_dict(payment_from_dict(row.payment_method, row.payment_details)),
        "payment_status": row.payment_status,
        "notes": row.notes,
        "tracking_number": row.tracking_number,
        "created_at": _ts(row.created_at),
        "updated_at": _ts(row.updated_at),
    }
    if include_items:
        dto["items"] = [to_order_item_dto(it) for it in row.items]
    return dto
