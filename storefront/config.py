import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
import json
from typing import Optional


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    currency: str
    tax_rate: Decimal = Decimal("0.08")
    shipping_flat_rate: Decimal = Decimal("9.99")
    free_shipping_threshold: Decimal = Decimal("100")
    order_number_attempts: int = 3


def validate_currency(value: Optional[str]) -> str:
    v = (value or "INR").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def validate_tax_rate(value) -> Decimal:
    rate = _decimal(value, "TAX_RATE", Decimal("0.08"))
    if rate < 0 or rate > 1:
        raise ValueError("TAX_RATE must be between 0 and 1")
    return rate


def _decimal(value, field: str, default: Decimal) -> Decimal:
    if value is None or str(value).strip() == "":
        return default
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"{field} must be a number") from exc
    if d < 0:
        raise ValueError(f"{field} must be >= 0")
    return d


def _settings_path() -> Path:
    override = os.getenv("STOREFRONT_SETTINGS")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[1] / "data" / "settings.json"


def _load_settings_file() -> dict:
    path = _settings_path()
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"settings file is not valid JSON: {path}") from exc
    return data if isinstance(data, dict) else {}


def load_env() -> AppConfig:
    # data/settings.json wins, environment variables are the fallback
    s = _load_settings_file()

    def pick(key: str, default=None):
        value = s.get(key)
        if value is None or value == "":
            value = os.getenv(key)
        return default if value is None or value == "" else value

    attempts = int(pick("ORDER_NUMBER_ATTEMPTS", 3))
    if attempts < 1:
        raise ValueError("ORDER_NUMBER_ATTEMPTS must be >= 1")
    return AppConfig(
        database_url=pick("DATABASE_URL", "sqlite:///data/app.db"),
        secret_key=pick("SECRET_KEY", "dev_secret"),
        log_level=str(pick("LOG_LEVEL", "INFO")).upper(),
        currency=validate_currency(pick("CURRENCY")),
        tax_rate=validate_tax_rate(pick("TAX_RATE")),
        shipping_flat_rate=_decimal(pick("SHIPPING_FLAT_RATE"), "SHIPPING_FLAT_RATE", Decimal("9.99")),
        free_shipping_threshold=_decimal(pick("FREE_SHIPPING_THRESHOLD"), "FREE_SHIPPING_THRESHOLD", Decimal("100")),
        order_number_attempts=attempts,
    )

