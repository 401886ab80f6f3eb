"""Configuration management for the invoice engine."""
import os
from dotenv import load_dotenv

load_dotenv()


def clean_env_value(value):
    """Strip whitespace and surrounding quotes from an environment value."""
    if not value:
        return ""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return value.strip()


# Where the SQLite database and exported PDFs live
DATA_DIR = clean_env_value(os.getenv("DATA_DIR")) or "./data"

DATABASE_URL = clean_env_value(os.getenv("DATABASE_URL")) or \
    f"sqlite:///{os.path.abspath(os.path.join(DATA_DIR, 'invoices.db'))}"

EXPORT_DIR = clean_env_value(os.getenv("EXPORT_DIR")) or os.path.join(DATA_DIR, "exports")

# Single fixed tax rate (0.05 == 5%)
TAX_RATE = float(os.getenv("TAX_RATE", "0.05"))

# Invoice numbers look like INV-000001
INVOICE_PREFIX = clean_env_value(os.getenv("INVOICE_PREFIX")) or "INV"
INVOICE_NUMBER_WIDTH = int(os.getenv("INVOICE_NUMBER_WIDTH", "6"))

# Days between issue date and due date when no due date is given
PAYMENT_TERMS_DAYS = int(os.getenv("PAYMENT_TERMS_DAYS", "14"))

# Rasterization scale for PDF export (2x for quality)
EXPORT_SCALE = float(os.getenv("EXPORT_SCALE", "2"))

LOG_LEVEL = clean_env_value(os.getenv("LOG_LEVEL")).upper() or "INFO"
