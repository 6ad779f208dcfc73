"""Value types passed between the assembler, the commit engine and storage."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from ..utils.validators import to_money


ADDRESS_FIELDS = ("street", "city", "state", "zip", "country")

# legacy / client key spellings accepted on input
_ADDRESS_ALIASES = {
    "street": ("street", "address_line_1", "addressLine1", "address"),
    "line2": ("line2", "address_line_2", "addressLine2"),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip", "postal_code", "postalCode", "zipCode", "zip_code"),
    "country": ("country",),
    "name": ("name", "full_name", "fullName"),
    "phone": ("phone",),
}


@dataclass(frozen=True)
class Address:
    street: str
    city: str
    state: str
    zip: str
    country: str
    line2: str = ""
    name: str = ""
    phone: str = ""

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "Address":
        raw = raw or {}
        values = {}
        for attr, keys in _ADDRESS_ALIASES.items():
            value = ""
            for key in keys:
                if raw.get(key) not in (None, ""):
                    value = str(raw[key]).strip()
                    break
            values[attr] = value
        if not values["name"] and (raw.get("first_name") or raw.get("last_name")):
            values["name"] = f"{raw.get('first_name') or ''} {raw.get('last_name') or ''}".strip()
        return cls(**values)

    def missing_fields(self) -> List[str]:
        return [f for f in ADDRESS_FIELDS if not getattr(self, f)]

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class VariantDetails:
    variant_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional["VariantDetails"]:
        if not raw:
            return None
        attrs = {k: v for k, v in raw.items() if k not in ("id", "variant_id")}
        vid = raw.get("variant_id", raw.get("id"))
        return cls(variant_id=str(vid) if vid is not None else None, attributes=attrs)

    @classmethod
    def from_stored(cls, raw: Optional[Dict[str, Any]]) -> Optional["VariantDetails"]:
        """Read either the structured column value or an older flat blob."""
        if raw and isinstance(raw.get("attributes"), dict):
            vid = raw.get("variant_id")
            return cls(variant_id=str(vid) if vid is not None else None, attributes=dict(raw["attributes"]))
        return cls.from_dict(raw)

    def to_dict(self) -> Dict[str, Any]:
        return {"variant_id": self.variant_id, "attributes": dict(self.attributes)}


PAYMENT_METHODS = ("card", "upi", "netbanking", "cod")


@dataclass(frozen=True)
class CardPayment:
    cardholder_name: str
    last4: str
    brand: str = ""
    reference: str = ""
    method: str = field(default="card", init=False)


@dataclass(frozen=True)
class UpiPayment:
    vpa: str = ""
    reference: str = ""
    method: str = field(default="upi", init=False)


@dataclass(frozen=True)
class NetBankingPayment:
    bank_code: str = ""
    reference: str = ""
    method: str = field(default="netbanking", init=False)


@dataclass(frozen=True)
class CashOnDelivery:
    method: str = field(default="cod", init=False)


PaymentDetails = Union[CardPayment, UpiPayment, NetBankingPayment, CashOnDelivery]


def payment_to_dict(payment: PaymentDetails) -> Dict[str, str]:
    return asdict(payment)


def payment_from_dict(method: str, raw: Optional[Dict[str, Any]]) -> PaymentDetails:
    """Rebuild a stored payment variant; tolerant of older rows."""
    raw = dict(raw or {})
    raw.pop("method", None)
    if method == "card":
        return CardPayment(
            cardholder_name=str(raw.get("cardholder_name", "")),
            last4=str(raw.get("last4", "")),
            brand=str(raw.get("brand", "")),
            reference=str(raw.get("reference", "")),
        )
    if method == "upi":
        return UpiPayment(vpa=str(raw.get("vpa", "")), reference=str(raw.get("reference", "")))
    if method == "netbanking":
        return NetBankingPayment(bank_code=str(raw.get("bank_code", "")), reference=str(raw.get("reference", "")))
    return CashOnDelivery()


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    unit_price: Decimal
    name: str = ""
    variant_details: Optional[VariantDetails] = None

    @property
    def total_price(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class OrderDraft:
    items: List[CartLine]
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    shipping_address: Address
    billing_address: Address
    payment_method: str
    payment_details: PaymentDetails
    notes: Optional[str] = None


@dataclass(frozen=True)
class CommitResult:
    order_id: str
    order_number: str
    total: Decimal
    replayed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"orderId": self.order_id, "orderNumber": self.order_number, "total": float(self.total)}


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as supplied by the identity provider."""

    user_id: str
    role: str = "customer"

    @property
    def is_privileged(self) -> bool:
        return self.role == "admin"
