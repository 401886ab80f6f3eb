"""Key/value record store backed by the `records` table."""

from __future__ import annotations

import copy
import logging

from models import db, Record

logger = logging.getLogger(__name__)

INVOICES_KEY = "invoices"
EXPENSES_KEY = "expenses"
CUSTOMERS_KEY = "customers"
PRODUCTS_KEY = "products"
TEMPLATES_KEY = "invoiceTemplates"
ACTIVE_TEMPLATE_KEY = "activeTemplateId"
COMPANY_KEY = "companyDetails"

ALL_KEYS = (
    INVOICES_KEY, EXPENSES_KEY, CUSTOMERS_KEY, PRODUCTS_KEY,
    TEMPLATES_KEY, ACTIVE_TEMPLATE_KEY, COMPANY_KEY,
)


class RecordStore:
    """get/set/remove over JSON values. Must be used inside an app context.

    Values are deep-copied on the way in and out so callers can never mutate
    a persisted value behind the session's back.
    """

    def get(self, key: str, default=None):
        record = db.session.get(Record, key, populate_existing=True)
        if record is None or record.value is None:
            return default
        return copy.deepcopy(record.value)

    def set(self, key: str, value) -> None:
        self._put(key, value)
        db.session.commit()

    def set_many(self, values: dict) -> None:
        """Write several keys in one transaction (all or nothing)."""
        try:
            for key, value in values.items():
                self._put(key, value)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def remove(self, key: str) -> None:
        record = db.session.get(Record, key)
        if record is not None:
            db.session.delete(record)
            db.session.commit()

    def _put(self, key: str, value) -> None:
        record = db.session.get(Record, key)
        if record is None:
            db.session.add(Record(key=key, value=copy.deepcopy(value)))
        else:
            record.value = copy.deepcopy(value)
