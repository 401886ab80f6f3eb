"""Sequential invoice numbers, recomputed from the existing invoices each time."""

from __future__ import annotations

import re

import config


def next_invoice_number(invoices: list[dict], prefix: str | None = None, width: int | None = None) -> str:
    """Return the number after the highest PREFIX-NNNNNN already in use.

    No counter is kept anywhere: the whole set is scanned on every call, so
    deleted or hand-edited invoices are picked up automatically. Numbers that
    don't follow the pattern are ignored.
    """
    prefix = prefix or config.INVOICE_PREFIX
    width = width or config.INVOICE_NUMBER_WIDTH
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")

    highest = 0
    for invoice in invoices:
        match = pattern.match((invoice.get("number") or "").strip())
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}-{highest + 1:0{width}d}"
