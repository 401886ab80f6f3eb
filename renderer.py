"""Decides what an invoice shows and how it is styled under a template."""

from __future__ import annotations

import datetime

from template_registry import DEFAULT_SETTINGS
from totals import line_amount

CONTACT_FIELDS = (("email", "Email"), ("phone", "Phone"), ("trn", "TRN"))

BANK_FIELDS = (
    ("bank_name", "Bank"),
    ("account_name", "Account Name"),
    ("account_number", "Account Number"),
    ("iban", "IBAN"),
    ("swift_code", "SWIFT/BIC"),
)


def format_currency(amount) -> str:
    amount = float(amount or 0)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_date(value) -> str:
    if not value:
        return "N/A"
    try:
        parsed = datetime.date.fromisoformat(str(value)[:10])
    except ValueError:
        return "N/A"
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def format_quantity(quantity) -> str:
    quantity = float(quantity)
    return str(int(quantity)) if quantity.is_integer() else f"{quantity:g}"


def _party_block(party: dict | None) -> dict:
    party = party or {}
    lines = [line for line in (party.get("address") or "").splitlines() if line.strip()]
    for key, label in CONTACT_FIELDS:
        if party.get(key):
            lines.append(f"{label}: {party[key]}")
    return {"name": party.get("name") or "", "lines": lines}


def _payment_details(seller: dict) -> list[dict]:
    bank = seller.get("bank_details") or {}
    return [
        {"label": label, "value": str(bank[key])}
        for key, label in BANK_FIELDS
        if bank.get(key)
    ]


def build_render_descriptor(invoice: dict, settings: dict | None = None) -> dict:
    """Bind an invoice and template settings into what the rasterizer draws.

    Optional sections are included only when the template enables them and
    the invoice actually carries the data; otherwise they are left out
    entirely (None) rather than drawn empty.
    """
    settings = {**DEFAULT_SETTINGS, **(settings or {})}
    seller = invoice.get("seller") or {}
    status = invoice.get("status") or "draft"

    items = []
    for index, item in enumerate(invoice.get("items") or [], 1):
        unit = item.get("unit") or ""
        items.append({
            "index": index,
            "description": item.get("description", ""),
            "quantity": f"{format_quantity(item['quantity'])} {unit}".strip(),
            "unit_price": format_currency(item["unit_price"]),
            "amount": format_currency(line_amount(item)),
        })

    tax_rate = invoice.get("tax_rate")
    if tax_rate is None:
        tax_rate = 5
    totals = {
        "subtotal": format_currency(invoice.get("subtotal")),
        "tax_label": f"VAT ({float(tax_rate):g}%)",
        "tax_amount": format_currency(invoice.get("tax_amount")),
        "total": format_currency(invoice.get("total")),
    }

    logo = seller.get("logo") if settings.get("show_logo") else None
    payment = _payment_details(seller) if settings.get("show_payment_details") else []
    signature = seller.get("signature") if settings.get("show_signature") else None

    return {
        "accent_color": settings.get("primary_color") or DEFAULT_SETTINGS["primary_color"],
        "font_family": settings.get("font_family") or DEFAULT_SETTINGS["font_family"],
        "header": {
            "title": "INVOICE",
            "number": f"#{invoice.get('number', '')}",
            "status": status.capitalize(),
        },
        "seller": _party_block(seller),
        "client": _party_block(invoice.get("client")),
        "dates": [
            {"label": "Invoice Date", "value": format_date(invoice.get("issue_date"))},
            {"label": "Due Date", "value": format_date(invoice.get("due_date"))},
        ],
        "items": items,
        "totals": totals,
        "logo": logo or None,
        "payment_details": payment or None,
        "signature": signature or None,
        "notes": (invoice.get("notes") or "").strip() or None,
        "footer_text": settings.get("footer_text") or "",
    }


def render_invoice(invoice: dict, registry) -> dict:
    """Descriptor for an invoice under the registry's active template."""
    active = registry.get_active()
    descriptor = build_render_descriptor(invoice, active.get("settings"))
    descriptor["template_id"] = active["id"]
    return descriptor
