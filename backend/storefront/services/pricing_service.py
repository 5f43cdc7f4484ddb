# Overview: Service-layer pricing; resolves effective line prices and cart totals in minor units.

"""
Pricing Resolver

All amounts are integer minor units (paise). Conversions from major-unit
decimals happen once, at the cart parsing boundary, with ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from ..errors import ValidationError


MINOR_UNITS_PER_MAJOR = 100


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    unit_base_price: int
    variant_id: str | None = None
    variant_price_adjustment: int = 0
    product_name: str = ""
    image: str | None = None
    variant_label: str | None = None


def effective_unit_price(line: CartLine) -> int:
    return line.unit_base_price + (line.variant_price_adjustment or 0)


def line_total(line: CartLine) -> int:
    return effective_unit_price(line) * line.quantity


def cart_total(lines: Iterable[CartLine]) -> int:
    return sum(line_total(line) for line in lines)


def to_minor_units(value: Any) -> int:
    """
    Convert a major-unit amount ("1299.50", 1299.5, Decimal) to minor units.

    Floats go through str() first so 0.1 + 0.2 style drift never leaks in.
    """
    if isinstance(value, bool):
        raise ValidationError("amount must be a number")
    try:
        if isinstance(value, float):
            amount = Decimal(str(value))
        else:
            amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"invalid amount: {value!r}")
    minor = (amount * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def format_amount(minor: int) -> str:
    """2700_00 -> "2700", 2700_50 -> "2700.50"."""
    sign = "-" if minor < 0 else ""
    major, rest = divmod(abs(minor), MINOR_UNITS_PER_MAJOR)
    if rest == 0:
        return f"{sign}{major}"
    return f"{sign}{major}.{rest:02d}"


def parse_cart_line(payload: dict) -> CartLine:
    """
    Build a CartLine from a storefront cart entry.

    Accepts either flat keys (price, variantId, variantPriceAdjustment) or the
    nested selectedVariation {id, color, priceAdjustment} the storefront sends.
    Prices are major units on the wire.
    """
    if not isinstance(payload, dict):
        raise ValidationError("cart line must be an object")

    invalid: list[str] = []

    product_id = payload.get("productId", payload.get("id"))
    if product_id in (None, ""):
        invalid.append("productId")

    quantity = payload.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        invalid.append("quantity")

    base_raw = payload.get("unitBasePrice", payload.get("price"))
    base = None
    if base_raw is None:
        invalid.append("price")
    else:
        try:
            base = to_minor_units(base_raw)
        except ValidationError:
            invalid.append("price")
        else:
            if base < 0:
                invalid.append("price")

    variation = payload.get("selectedVariation") or {}
    if not isinstance(variation, dict):
        invalid.append("selectedVariation")
        variation = {}
    variant_id = payload.get("variantId", variation.get("id"))
    adjustment_raw = payload.get("variantPriceAdjustment", variation.get("priceAdjustment", 0))
    adjustment = 0
    try:
        adjustment = to_minor_units(adjustment_raw or 0)
    except ValidationError:
        invalid.append("variantPriceAdjustment")

    if invalid:
        raise ValidationError(f"Invalid cart line: {', '.join(invalid)}", fields=invalid)

    return CartLine(
        product_id=str(product_id),
        quantity=quantity,
        unit_base_price=base,
        variant_id=str(variant_id) if variant_id not in (None, "") else None,
        variant_price_adjustment=adjustment,
        product_name=str(payload.get("productName", payload.get("name")) or ""),
        image=payload.get("image"),
        variant_label=payload.get("variantLabel", variation.get("color")),
    )


def parse_cart(items: Any) -> list[CartLine]:
    if not isinstance(items, list):
        raise ValidationError("items must be a list", fields=["items"])
    return [parse_cart_line(item) for item in items]
