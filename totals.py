"""Line-item validation and invoice totals."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import config

CENT = Decimal("0.01")


class ValidationError(ValueError):
    """Input rejected before it reaches a calculation or the store."""


def _dec(value) -> Decimal:
    # str() first so 0.1 stays 0.1 instead of its binary expansion
    return Decimal(str(value))


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_line_item(item: dict) -> None:
    description = item.get("description") or ""
    if not isinstance(description, str):
        raise ValidationError("Line item description must be text")
    description = description.strip()
    if not description:
        raise ValidationError("Line item description is required")
    try:
        quantity = _dec(item.get("quantity"))
        unit_price = _dec(item.get("unit_price"))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Line item '{description}' has a non-numeric quantity or price")
    if not quantity.is_finite() or not unit_price.is_finite():
        raise ValidationError(f"Line item '{description}' has a non-numeric quantity or price")
    if quantity <= 0:
        raise ValidationError(f"Line item '{description}' must have a positive quantity")
    if unit_price < 0:
        raise ValidationError(f"Line item '{description}' cannot have a negative price")


def validate_line_items(items: list[dict]) -> None:
    for item in items:
        validate_line_item(item)


def line_amount(item: dict) -> float:
    return float(_round(_dec(item["quantity"]) * _dec(item["unit_price"])))


def calculate_totals(items: list[dict], tax_rate: float | None = None) -> dict:
    """Subtotal, tax and total for already-validated line items.

    Rounding order: the raw subtotal is rounded half-up to cents, tax is the
    rounded subtotal times the rate rounded half-up, and total is the exact
    sum of the two rounded values.
    """
    rate = _dec(config.TAX_RATE if tax_rate is None else tax_rate)

    raw_subtotal = sum(
        (_dec(item["quantity"]) * _dec(item["unit_price"]) for item in items),
        Decimal("0"),
    )
    subtotal = _round(raw_subtotal)
    tax_amount = _round(subtotal * rate)
    total = subtotal + tax_amount

    return {
        "subtotal": float(subtotal),
        "tax_amount": float(tax_amount),
        "tax_rate": float(rate * 100),
        "total": float(total),
    }


def sum_amounts(amounts) -> float:
    """Sum money values exactly and round the result half-up to cents."""
    return float(_round(sum((_dec(amount) for amount in amounts), Decimal("0"))))
