import copy
import datetime
import logging
import math
import uuid

import config
from numbering import next_invoice_number
from store import (
    RecordStore, ALL_KEYS, INVOICES_KEY, EXPENSES_KEY, CUSTOMERS_KEY,
    PRODUCTS_KEY, COMPANY_KEY,
)
from totals import ValidationError, calculate_totals, sum_amounts, validate_line_items

logger = logging.getLogger(__name__)

store = RecordStore()

STATUSES = ('draft', 'pending', 'paid')

EXPENSE_CATEGORIES = [
    "Office Supplies",
    "Rent",
    "Utilities",
    "Salaries",
    "Marketing",
    "Travel",
    "Software",
    "Equipment",
    "Maintenance",
    "Insurance",
    "Legal & Professional",
    "Meals & Entertainment",
    "Taxes",
    "Miscellaneous",
]

EMPTY_COMPANY = {
    "name": "",
    "logo": None,
    "address": "",
    "phone": "",
    "email": "",
    "website": "",
    "tax_id": "",
    "bank_details": {
        "account_name": "",
        "account_number": "",
        "bank_name": "",
        "swift_code": "",
        "iban": "",
    },
    "signature": None,
}


class NotFoundError(LookupError):
    """Raised when an operation cannot proceed without the referenced record."""


class InvalidTransitionError(ValidationError):
    """Status moved backwards without an explicit override."""


def _now():
    return datetime.datetime.now().isoformat(timespec='seconds')


def _new_id():
    return uuid.uuid4().hex


def _parse_date(value, field):
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date")


def _find(records, record_id):
    for record in records:
        if record.get('id') == record_id:
            return record
    return None


# ----------------------------------------------------------------------
# Invoices
# ----------------------------------------------------------------------

def get_invoices(status=None):
    invoices = store.get(INVOICES_KEY, [])
    if status and status.lower() != 'all':
        invoices = [inv for inv in invoices if inv.get('status') == status.lower()]
    return invoices


def get_invoice(invoice_id):
    return _find(get_invoices(), invoice_id)


def require_invoice(invoice_id):
    invoice = get_invoice(invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def next_number():
    return next_invoice_number(get_invoices())


def _prepare_items(items, products=None):
    """Fill product defaults, assign ids unique within the invoice, validate."""
    if products is None:
        products = store.get(PRODUCTS_KEY, [])
    products = {p.get('id'): p for p in products if isinstance(p, dict)}
    prepared = []
    seen_ids = set()
    for position, raw in enumerate(items, 1):
        if not isinstance(raw, dict):
            raise ValidationError("Every line item must be an object")
        item = dict(raw)
        product = products.get(item.get('product_id'))
        if product:
            if not item.get('description'):
                item['description'] = product.get('name', '')
            if item.get('unit_price') in (None, ''):
                item['unit_price'] = product.get('price', 0)
            if not item.get('unit'):
                item['unit'] = product.get('unit', 'item')
        item.setdefault('unit', 'item')
        if item.get('id') in (None, '') or item['id'] in seen_ids:
            item['id'] = position
            while item['id'] in seen_ids:
                item['id'] += len(items)
        seen_ids.add(item['id'])
        prepared.append(item)

    validate_line_items(prepared)
    for item in prepared:
        item['quantity'] = float(item['quantity'])
        item['unit_price'] = float(item['unit_price'])
    return prepared


def _client_from(data):
    client = dict(data.get('client') or {})
    customer_id = data.get('customer_id')
    if customer_id:
        customer = get_customer(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        # Denormalized copy, later customer edits don't reach this invoice
        snapshot = {k: v for k, v in customer.items() if k not in ('id', 'created_at')}
        client = {**snapshot, **client, 'customer_id': customer_id}
    if not _text(client.get('name'), 'Client name'):
        raise ValidationError("Client name is required")
    return client


def _seller_from(data):
    if data.get('seller'):
        return dict(data['seller'])
    company = get_company_profile()
    return {
        'name': company.get('name', ''),
        'address': company.get('address', ''),
        'email': company.get('email', ''),
        'phone': company.get('phone', ''),
        'trn': company.get('tax_id', ''),
        'logo': company.get('logo'),
        'signature': company.get('signature'),
        'bank_details': dict(company.get('bank_details') or {}),
    }


def _text(value, field):
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    return value.strip()


def _check_status(status):
    status = _text(status, 'status').lower()
    if status not in STATUSES:
        raise ValidationError(f"Status must be one of {', '.join(STATUSES)}")
    return status


def _check_transition(invoice, new_status, override=False):
    """Validate new_status for invoice; backwards moves need override."""
    new_status = _check_status(new_status)
    if not override and STATUSES.index(new_status) < STATUSES.index(invoice['status']):
        raise InvalidTransitionError(
            f"Cannot move invoice {invoice['number']} from {invoice['status']} back to {new_status}"
        )
    return new_status


def create_invoice(data):
    """Validate, number, total and persist a new invoice. Returns the stored dict."""
    invoices = get_invoices()
    items = _prepare_items(data.get('items') or [])
    if not items:
        raise ValidationError("An invoice needs at least one line item")

    status = _check_status(data.get('status') or 'draft')

    issue_date = _parse_date(data.get('issue_date') or datetime.date.today(), 'issue_date')
    due_date = _parse_date(
        data.get('due_date') or issue_date + datetime.timedelta(days=config.PAYMENT_TERMS_DAYS),
        'due_date',
    )

    now = _now()
    invoice = {
        'id': _new_id(),
        'number': _text(data.get('number'), 'Invoice number') or next_invoice_number(invoices),
        'client': _client_from(data),
        'seller': _seller_from(data),
        'issue_date': issue_date.isoformat(),
        'due_date': due_date.isoformat(),
        'status': status,
        'items': items,
        'notes': data.get('notes') or '',
        'created_at': now,
        'updated_at': now,
    }
    invoice.update(calculate_totals(items))

    store.set(INVOICES_KEY, invoices + [invoice])
    logger.info(f"Invoice {invoice['number']} created ({invoice['total']:.2f})")
    return invoice


def update_invoice(invoice_id, data):
    """Replace editable fields of an invoice and re-derive its totals."""
    invoices = get_invoices()
    current = _find(invoices, invoice_id)
    if current is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")

    updated = copy.deepcopy(current)
    if 'items' in data:
        updated['items'] = _prepare_items(data['items'] or [])
        if not updated['items']:
            raise ValidationError("An invoice needs at least one line item")
    if 'client' in data or 'customer_id' in data:
        updated['client'] = _client_from(data)
    if 'seller' in data:
        updated['seller'] = dict(data['seller'] or {})
    number = _text(data.get('number'), 'Invoice number')
    if number:
        updated['number'] = number
    for field in ('issue_date', 'due_date'):
        if data.get(field):
            updated[field] = _parse_date(data[field], field).isoformat()
    if 'notes' in data:
        updated['notes'] = data['notes'] or ''
    if data.get('status'):
        updated['status'] = _check_transition(current, data['status'], bool(data.get('override')))

    updated.update(calculate_totals(updated['items']))
    updated['updated_at'] = _now()

    store.set(INVOICES_KEY, [updated if inv['id'] == invoice_id else inv for inv in invoices])
    logger.info(f"Invoice {updated['number']} updated")
    return updated


def update_invoice_status(invoice_id, new_status, override=False):
    """Move an invoice along draft -> pending -> paid.

    Going backwards is only allowed with override=True.
    """
    invoice = require_invoice(invoice_id)
    new_status = _check_transition(invoice, new_status, override)
    invoices = get_invoices()
    for inv in invoices:
        if inv['id'] == invoice_id:
            inv['status'] = new_status
            inv['updated_at'] = _now()
            invoice = inv
    store.set(INVOICES_KEY, invoices)
    return invoice


def delete_invoice(invoice_id):
    invoices = get_invoices()
    remaining = [inv for inv in invoices if inv['id'] != invoice_id]
    if len(remaining) == len(invoices):
        return False
    store.set(INVOICES_KEY, remaining)
    logger.info(f"Invoice {invoice_id} deleted")
    return True


# ----------------------------------------------------------------------
# Expenses
# ----------------------------------------------------------------------

def _validate_expense(data):
    if not data.get('date'):
        raise ValidationError("Expense date is required")
    _parse_date(data['date'], 'date')
    try:
        amount = float(data.get('amount'))
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a positive number")
    if not amount > 0:
        raise ValidationError("Amount must be a positive number")
    if not _text(data.get('category'), 'Category'):
        raise ValidationError("Category is required")
    if not _text(data.get('description'), 'Description'):
        raise ValidationError("Description is required")


def get_expenses():
    return store.get(EXPENSES_KEY, [])


def get_expense(expense_id):
    return _find(get_expenses(), expense_id)


def create_expense(data):
    _validate_expense(data)
    expense = {
        'id': _new_id(),
        'date': _parse_date(data['date'], 'date').isoformat(),
        'amount': float(data['amount']),
        'category': data['category'].strip(),
        'description': data['description'].strip(),
        'notes': data.get('notes') or '',
        'payment_method': data.get('payment_method') or '',
        'receipt': data.get('receipt') or '',
        'created_at': _now(),
    }
    store.set(EXPENSES_KEY, get_expenses() + [expense])
    return expense


def update_expense(expense_id, data):
    expenses = get_expenses()
    current = _find(expenses, expense_id)
    if current is None:
        raise NotFoundError(f"Expense {expense_id} not found")
    merged = {**current, **{k: v for k, v in data.items() if k not in ('id', 'created_at')}}
    _validate_expense(merged)
    merged['amount'] = float(merged['amount'])
    merged['date'] = _parse_date(merged['date'], 'date').isoformat()
    store.set(EXPENSES_KEY, [merged if e['id'] == expense_id else e for e in expenses])
    return merged


def delete_expense(expense_id):
    expenses = get_expenses()
    remaining = [e for e in expenses if e['id'] != expense_id]
    if len(remaining) == len(expenses):
        return False
    store.set(EXPENSES_KEY, remaining)
    return True


def filter_expenses(category=None, start=None, end=None):
    expenses = get_expenses()
    if category and category != 'all':
        expenses = [e for e in expenses if e['category'] == category]
    if start:
        start = _parse_date(start, 'start')
        expenses = [e for e in expenses if datetime.date.fromisoformat(e['date']) >= start]
    if end:
        end = _parse_date(end, 'end')
        expenses = [e for e in expenses if datetime.date.fromisoformat(e['date']) <= end]
    return expenses


def expense_total(expenses=None):
    if expenses is None:
        expenses = get_expenses()
    return sum_amounts(e['amount'] for e in expenses)


def expense_categories():
    """Categories in use, in first-seen order."""
    seen = []
    for e in get_expenses():
        if e['category'] not in seen:
            seen.append(e['category'])
    return seen


# ----------------------------------------------------------------------
# Customers and products (reference data)
# ----------------------------------------------------------------------

def _reference_records(key):
    return store.get(key, [])


def _create_reference(key, data, required):
    if not _text(data.get(required), required.capitalize()):
        raise ValidationError(f"{required.capitalize()} is required")
    record = {**data, 'id': _new_id(), 'created_at': _now()}
    store.set(key, _reference_records(key) + [record])
    return record


def _update_reference(key, record_id, data):
    records = _reference_records(key)
    current = _find(records, record_id)
    if current is None:
        raise NotFoundError(f"Record {record_id} not found")
    merged = {**current, **{k: v for k, v in data.items() if k not in ('id', 'created_at')}}
    store.set(key, [merged if r['id'] == record_id else r for r in records])
    return merged


def _delete_reference(key, record_id):
    records = _reference_records(key)
    remaining = [r for r in records if r['id'] != record_id]
    if len(remaining) == len(records):
        return False
    store.set(key, remaining)
    return True


def get_customers():
    return _reference_records(CUSTOMERS_KEY)


def get_customer(customer_id):
    return _find(get_customers(), customer_id)


def add_customer(data):
    return _create_reference(CUSTOMERS_KEY, data, 'name')


def update_customer(customer_id, data):
    return _update_reference(CUSTOMERS_KEY, customer_id, data)


def delete_customer(customer_id):
    return _delete_reference(CUSTOMERS_KEY, customer_id)


def get_products():
    return _reference_records(PRODUCTS_KEY)


def get_product(product_id):
    return _find(get_products(), product_id)


def _clean_product(data):
    if 'price' in data:
        try:
            price = float(data['price'])
        except (TypeError, ValueError):
            raise ValidationError("Price must be a number")
        if not math.isfinite(price):
            raise ValidationError("Price must be a number")
        if price < 0:
            raise ValidationError("Price cannot be negative")
        data = {**data, 'price': price}
    return data


def add_product(data):
    return _create_reference(PRODUCTS_KEY, _clean_product(data), 'name')


def update_product(product_id, data):
    return _update_reference(PRODUCTS_KEY, product_id, _clean_product(data))


def delete_product(product_id):
    return _delete_reference(PRODUCTS_KEY, product_id)


# ----------------------------------------------------------------------
# Company profile
# ----------------------------------------------------------------------

def get_company_profile():
    saved = store.get(COMPANY_KEY) or {}
    profile = {**copy.deepcopy(EMPTY_COMPANY), **saved}
    profile['bank_details'] = {**EMPTY_COMPANY['bank_details'], **(saved.get('bank_details') or {})}
    return profile


def update_company_profile(details):
    profile = {**get_company_profile(), **details}
    store.set(COMPANY_KEY, profile)
    return profile


def update_bank_details(bank_details):
    profile = get_company_profile()
    profile['bank_details'] = {**profile['bank_details'], **bank_details}
    store.set(COMPANY_KEY, profile)
    return profile


# ----------------------------------------------------------------------
# Backup
# ----------------------------------------------------------------------

def export_data():
    """Export all data to a dictionary."""
    return {key: store.get(key) for key in ALL_KEYS}


def _imported_invoices(invoices, products):
    """Re-validate backed-up invoices and re-derive their totals."""
    if not isinstance(invoices, list):
        raise ValidationError("invoices must be a list")
    restored = []
    for invoice in invoices:
        if not isinstance(invoice, dict):
            raise ValidationError("Every invoice must be an object")
        number = invoice.get('number', invoice.get('id'))
        items = invoice.get('items') or []
        if not isinstance(items, list):
            raise ValidationError(f"Invoice {number} items must be a list")
        items = _prepare_items(items, products or [])
        if not items:
            raise ValidationError(f"Invoice {number} has no line items")
        restored.append({
            **invoice,
            'status': _check_status(invoice.get('status') or 'draft'),
            'items': items,
            **calculate_totals(items),
        })
    return restored


def import_data(data):
    """Import data from dictionary, replacing existing data."""
    unknown = set(data) - set(ALL_KEYS)
    if unknown:
        return False, f"Unknown keys: {', '.join(sorted(unknown))}"
    values = {key: data.get(key) for key in ALL_KEYS}
    try:
        if values[INVOICES_KEY] is not None:
            values[INVOICES_KEY] = _imported_invoices(values[INVOICES_KEY], values[PRODUCTS_KEY])
    except ValidationError as e:
        logger.warning(f"Rejected backup: {e}")
        return False, str(e)
    try:
        store.set_many(values)
    except Exception as e:
        logger.exception("Import failed")
        return False, str(e)
    return True, "Data imported successfully."


# ----------------------------------------------------------------------
# Dashboard
# ----------------------------------------------------------------------

def get_dashboard_stats(recent=5):
    """Invoice counts, paid revenue and the most recently created invoices."""
    invoices = get_invoices()
    paid = [inv for inv in invoices if inv.get('status') == 'paid']
    newest_first = sorted(invoices, key=lambda inv: inv.get('created_at') or '', reverse=True)
    return {
        'total_invoices': len(invoices),
        'paid_invoices': len(paid),
        'unpaid_invoices': len(invoices) - len(paid),
        'total_revenue': sum_amounts(inv.get('total', 0) for inv in paid),
        'customers': len(get_customers()),
        'products': len(get_products()),
        'recent_invoices': newest_first[:recent],
    }
