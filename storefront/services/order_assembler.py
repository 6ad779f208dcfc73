"""Order assembly: validate a checkout payload and compute its totals.

Nothing in this module touches storage. Validation errors raised here
short-circuit a checkout before any transaction is opened.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..config import AppConfig
from ..errors import (
    EmptyCartError,
    InvalidAddressError,
    InvalidCartItemError,
    InvalidPaymentError,
    OrderValidationError,
)
from ..models.checkout import (
    PAYMENT_METHODS,
    Address,
    CardPayment,
    CartLine,
    CashOnDelivery,
    NetBankingPayment,
    OrderDraft,
    PaymentDetails,
    UpiPayment,
    VariantDetails,
)
from ..utils.validators import MAX_MONEY, ensure_money, ensure_positive_int, to_money


ShippingRule = Callable[[Decimal], Decimal]


@dataclass(frozen=True)
class FlatRateShipping:
    """Flat fee, waived once the subtotal exceeds ``free_threshold``."""

    flat_rate: Decimal = Decimal("9.99")
    free_threshold: Optional[Decimal] = Decimal("100")

    def __call__(self, subtotal: Decimal) -> Decimal:
        if self.free_threshold is not None and subtotal > self.free_threshold:
            return Decimal("0.00")
        return to_money(self.flat_rate)


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: Decimal = Decimal("0.08")
    shipping: ShippingRule = FlatRateShipping()

    @classmethod
    def from_config(cls, config: AppConfig) -> "PricingPolicy":
        return cls(
            tax_rate=config.tax_rate,
            shipping=FlatRateShipping(config.shipping_flat_rate, config.free_shipping_threshold),
        )


def compute_totals(items: Iterable[CartLine], pricing: PricingPolicy) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """Return ``(subtotal, tax_amount, shipping_amount, total_amount)``.

    Line totals are rounded to cents before summing so that the subtotal
    equals the sum of the persisted ``total_price`` values.
    """
    subtotal = sum((line.total_price for line in items), Decimal("0.00"))
    tax_amount = to_money(subtotal * pricing.tax_rate)
    shipping_amount = to_money(pricing.shipping(subtotal))
    total_amount = subtotal + tax_amount + shipping_amount
    return subtotal, tax_amount, shipping_amount, total_amount


def parse_cart_items(raw_items: Optional[List[Any]]) -> List[CartLine]:
    if not raw_items:
        raise EmptyCartError()
    if not isinstance(raw_items, (list, tuple)):
        raise OrderValidationError("items must be a list")
    lines = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, CartLine):
            lines.append(_check_line(idx, raw))
            continue
        if not isinstance(raw, dict):
            raise InvalidCartItemError(idx, "expected an object")
        product_id = raw.get("product_id", raw.get("productId", raw.get("id")))
        if product_id in (None, ""):
            raise InvalidCartItemError(idx, "product_id is required")
        try:
            quantity = ensure_positive_int(raw.get("quantity"), "quantity")
            unit_price = ensure_money(raw.get("unit_price", raw.get("unitPrice", raw.get("price"))), "unit_price")
        except ValueError as exc:
            raise InvalidCartItemError(idx, str(exc)) from exc
        variant = raw.get("variant_details", raw.get("variantDetails", raw.get("variant")))
        if variant is not None and not isinstance(variant, dict):
            raise InvalidCartItemError(idx, "variant_details must be an object")
        lines.append(
            CartLine(
                product_id=str(product_id),
                quantity=quantity,
                unit_price=unit_price,
                name=str(raw.get("name") or raw.get("product_name") or "").strip(),
                variant_details=VariantDetails.from_dict(variant),
            )
        )
    for idx, line in enumerate(lines):
        if line.total_price > MAX_MONEY:
            raise InvalidCartItemError(idx, "line total is too large")
    return lines


def _check_line(idx: int, line: CartLine) -> CartLine:
    if not line.product_id:
        raise InvalidCartItemError(idx, "product_id is required")
    try:
        ensure_positive_int(line.quantity, "quantity")
        ensure_money(line.unit_price, "unit_price")
    except ValueError as exc:
        raise InvalidCartItemError(idx, str(exc)) from exc
    return line


def parse_address(raw: Any, which: str) -> Address:
    if isinstance(raw, Address):
        address = raw
    elif isinstance(raw, dict) and raw:
        address = Address.from_dict(raw)
    else:
        raise InvalidAddressError(which, [])
    missing = address.missing_fields()
    if missing:
        raise InvalidAddressError(which, missing)
    return address


def parse_payment(method: Optional[str], details: Optional[Dict[str, Any]]) -> PaymentDetails:
    m = (method or "").strip().lower()
    if m not in PAYMENT_METHODS:
        raise InvalidPaymentError(
            f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}", method=method
        )
    details = details or {}
    if not isinstance(details, dict):
        raise InvalidPaymentError("paymentDetails must be an object", method=m)
    if m == "card":
        name = str(details.get("cardholder_name") or details.get("cardholderName") or details.get("name") or "").strip()
        last4 = str(details.get("last4") or "").strip()
        number = "".join(ch for ch in str(details.get("card_number") or details.get("cardNumber") or "") if ch.isdigit())
        if not last4 and number:
            # only the last four digits are ever kept
            last4 = number[-4:]
        if not name:
            raise InvalidPaymentError("cardholder name is required for card payments", method=m)
        if len(last4) != 4 or not last4.isdigit():
            raise InvalidPaymentError("card last4 digits are required for card payments", method=m)
        return CardPayment(
            cardholder_name=name,
            last4=last4,
            brand=str(details.get("brand") or "").strip(),
            reference=str(details.get("reference") or details.get("payment_intent_id") or "").strip(),
        )
    if m == "upi":
        return UpiPayment(vpa=str(details.get("vpa") or "").strip(), reference=str(details.get("reference") or "").strip())
    if m == "netbanking":
        return NetBankingPayment(
            bank_code=str(details.get("bank_code") or details.get("bankCode") or "").strip(),
            reference=str(details.get("reference") or "").strip(),
        )
    return CashOnDelivery()


def assemble(
    cart_items: Optional[List[Any]],
    addresses: Dict[str, Any],
    payment_selection: Optional[str],
    notes: Optional[str] = None,
    *,
    payment_details: Optional[Dict[str, Any]] = None,
    pricing: Optional[PricingPolicy] = None,
) -> OrderDraft:
    """Validate a checkout payload and return its :class:`OrderDraft`.

    ``addresses`` carries ``shipping`` and ``billing`` entries, either as
    :class:`Address` objects or raw dicts. Raises an
    :class:`~storefront.errors.OrderValidationError` subclass on bad input.
    """
    items = parse_cart_items(cart_items)
    addresses = addresses or {}
    shipping_address = parse_address(addresses.get("shipping"), "shipping")
    billing_address = parse_address(addresses.get("billing"), "billing")
    payment = parse_payment(payment_selection, payment_details)
    subtotal, tax_amount, shipping_amount, total_amount = compute_totals(items, pricing or PricingPolicy())
    if total_amount > MAX_MONEY:
        raise OrderValidationError("order total is too large")
    return OrderDraft(
        items=items,
        subtotal=subtotal,
        tax_amount=tax_amount,
        shipping_amount=shipping_amount,
        total_amount=total_amount,
        shipping_address=shipping_address,
        billing_address=billing_address,
        payment_method=payment.method,
        payment_details=payment,
        notes=str(notes or "").strip() or None,
    )
