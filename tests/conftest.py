import base64
import io

import pytest
from PIL import Image

import db_manager
from app import create_app
from models import db
from template_registry import TemplateRegistry


@pytest.fixture
def app():
    """Flask app on an in-memory database, with an app context pushed"""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "EXPORT_SCALE": 1,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def store(app):
    return db_manager.store


@pytest.fixture
def registry(store):
    return TemplateRegistry(store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def png_data_url():
    buffer = io.BytesIO()
    Image.new("RGBA", (12, 8), (200, 30, 30, 255)).save(buffer, "PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


@pytest.fixture
def invoice_data():
    return {
        "client": {"name": "Acme Trading LLC", "address": "Dubai, UAE", "email": "ap@acme.test"},
        "seller": {"name": "Gulf Chemicals", "address": "Sharjah, UAE"},
        "issue_date": "2026-03-01",
        "items": [
            {"description": "Solvent drum", "quantity": 2, "unit_price": 100},
            {"description": "Delivery", "quantity": 1, "unit_price": 50},
        ],
    }
