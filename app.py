from flask import Flask, Blueprint, request, jsonify, send_file, current_app
from flask_cors import CORS
from flask_migrate import Migrate, upgrade
import asyncio
import datetime
import io
import json
import logging
import os
import sys

import config
import db_manager
from db_manager import NotFoundError, InvalidTransitionError
from models import db
from pdf_builder import ExportError, export_invoice
from rasterizer import PillowRasterizer
from renderer import render_invoice
from template_registry import TemplateRegistry
from totals import ValidationError

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)
migrate = Migrate()


def get_registry():
    return TemplateRegistry(db_manager.store)


def _json_body():
    return request.get_json(silent=True) or {}


# ----------------------------------------------------------------------
# Error handling
# ----------------------------------------------------------------------

@api.app_errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({'error': str(e)}), 400


@api.app_errorhandler(InvalidTransitionError)
def handle_transition_error(e):
    return jsonify({'error': str(e)}), 409


@api.app_errorhandler(NotFoundError)
def handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@api.app_errorhandler(ExportError)
def handle_export_error(e):
    return jsonify({'error': f"Export failed: {e}"}), 500


# ----------------------------------------------------------------------
# Invoices
# ----------------------------------------------------------------------

@api.route('/api/invoices', methods=['GET', 'POST'])
def invoices():
    if request.method == 'POST':
        invoice = db_manager.create_invoice(_json_body())
        return jsonify(invoice), 201

    status_filter = request.args.get('status', 'All')
    return jsonify(db_manager.get_invoices(status=status_filter))


@api.route('/api/invoices/<invoice_id>', methods=['GET', 'PUT', 'DELETE'])
def manage_invoice(invoice_id):
    if request.method == 'DELETE':
        if not db_manager.delete_invoice(invoice_id):
            return jsonify({'error': 'Invoice not found'}), 404
        return jsonify({'message': 'Invoice deleted successfully'})

    if request.method == 'PUT':
        return jsonify(db_manager.update_invoice(invoice_id, _json_body()))

    invoice = db_manager.get_invoice(invoice_id)
    if not invoice:
        return jsonify({'error': 'Invoice not found'}), 404
    return jsonify(invoice)


@api.route('/api/invoices/<invoice_id>/status', methods=['POST'])
def update_status(invoice_id):
    data = _json_body()
    new_status = data.get('status')
    if not new_status:
        return jsonify({'error': 'Status not provided'}), 400
    invoice = db_manager.update_invoice_status(invoice_id, new_status, override=bool(data.get('override')))
    return jsonify({'message': f"Status updated to {invoice['status']}", 'invoice': invoice})


@api.route('/api/invoices/<invoice_id>/pay', methods=['POST'])
def mark_paid(invoice_id):
    db_manager.update_invoice_status(invoice_id, 'paid')
    return jsonify({'message': 'Invoice marked as Paid'})


@api.route('/api/next-invoice-number')
def next_invoice_number():
    return jsonify({'invoice_number': db_manager.next_number()})


@api.route('/api/dashboard')
def dashboard():
    return jsonify(db_manager.get_dashboard_stats())


@api.route('/api/invoices/<invoice_id>/render')
def render(invoice_id):
    invoice = db_manager.require_invoice(invoice_id)
    return jsonify(render_invoice(invoice, get_registry()))


@api.route('/invoices/<invoice_id>/pdf')
def download_pdf(invoice_id):
    invoice = db_manager.require_invoice(invoice_id)
    rasterizer = current_app.config.get('RASTERIZER') or PillowRasterizer()
    result = asyncio.run(export_invoice(invoice, get_registry(), rasterizer,
                                        scale=current_app.config['EXPORT_SCALE']))
    return send_file(
        io.BytesIO(result.data),
        as_attachment=True,
        download_name=result.filename,
        mimetype='application/pdf'
    )


# ----------------------------------------------------------------------
# Expenses
# ----------------------------------------------------------------------

@api.route('/api/expenses', methods=['GET', 'POST'])
def expenses():
    if request.method == 'POST':
        return jsonify(db_manager.create_expense(_json_body())), 201

    filtered = db_manager.filter_expenses(
        category=request.args.get('category'),
        start=request.args.get('start'),
        end=request.args.get('end'),
    )
    return jsonify({'expenses': filtered, 'total': db_manager.expense_total(filtered)})


@api.route('/api/expenses/categories')
def expense_categories():
    return jsonify({
        'predefined': db_manager.EXPENSE_CATEGORIES,
        'in_use': db_manager.expense_categories(),
    })


@api.route('/api/expenses/<expense_id>', methods=['GET', 'PUT', 'DELETE'])
def manage_expense(expense_id):
    if request.method == 'DELETE':
        if not db_manager.delete_expense(expense_id):
            return jsonify({'error': 'Expense not found'}), 404
        return jsonify({'message': 'Expense deleted successfully'})

    if request.method == 'PUT':
        return jsonify(db_manager.update_expense(expense_id, _json_body()))

    expense = db_manager.get_expense(expense_id)
    if not expense:
        return jsonify({'error': 'Expense not found'}), 404
    return jsonify(expense)


# ----------------------------------------------------------------------
# Customers and products
# ----------------------------------------------------------------------

@api.route('/api/customers', methods=['GET', 'POST'])
def customers():
    if request.method == 'POST':
        return jsonify(db_manager.add_customer(_json_body())), 201
    return jsonify(db_manager.get_customers())


@api.route('/api/customers/<customer_id>', methods=['PUT', 'DELETE'])
def manage_customer(customer_id):
    if request.method == 'DELETE':
        if not db_manager.delete_customer(customer_id):
            return jsonify({'error': 'Customer not found'}), 404
        return jsonify({'message': 'Customer deleted successfully'})
    return jsonify(db_manager.update_customer(customer_id, _json_body()))


@api.route('/api/products', methods=['GET', 'POST'])
def products():
    if request.method == 'POST':
        return jsonify(db_manager.add_product(_json_body())), 201
    return jsonify(db_manager.get_products())


@api.route('/api/products/<product_id>', methods=['PUT', 'DELETE'])
def manage_product(product_id):
    if request.method == 'DELETE':
        if not db_manager.delete_product(product_id):
            return jsonify({'error': 'Product not found'}), 404
        return jsonify({'message': 'Product deleted successfully'})
    return jsonify(db_manager.update_product(product_id, _json_body()))


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------

@api.route('/api/templates', methods=['GET', 'POST'])
def templates():
    registry = get_registry()
    if request.method == 'POST':
        data = _json_body()
        if not (data.get('name') or '').strip():
            return jsonify({'error': 'Template name is required'}), 400
        template_id = registry.create(data)
        return jsonify(registry.get(template_id)), 201
    return jsonify({'templates': registry.list(), 'active_id': registry.active_id})


@api.route('/api/templates/active', methods=['GET', 'PUT'])
def active_template():
    registry = get_registry()
    if request.method == 'PUT':
        if not registry.set_active(_json_body().get('id')):
            return jsonify({'error': 'Template not found'}), 404
    return jsonify(registry.get_active())


@api.route('/api/templates/<template_id>', methods=['PUT', 'DELETE'])
def manage_template(template_id):
    registry = get_registry()
    if request.method == 'DELETE':
        if registry.get(template_id) is None:
            return jsonify({'error': 'Template not found'}), 404
        if not registry.delete(template_id):
            return jsonify({'error': 'Built-in templates cannot be deleted'}), 400
        return jsonify({'message': 'Template deleted', 'active_id': registry.active_id})

    if not registry.update(template_id, _json_body()):
        return jsonify({'error': 'Template not found'}), 404
    return jsonify(registry.get(template_id))


@api.route('/api/templates/<template_id>/settings', methods=['PATCH'])
def template_settings(template_id):
    registry = get_registry()
    if not registry.update_settings(template_id, _json_body()):
        return jsonify({'error': 'Template not found'}), 404
    return jsonify(registry.get(template_id))


# ----------------------------------------------------------------------
# Company profile and backups
# ----------------------------------------------------------------------

@api.route('/api/company', methods=['GET', 'POST'])
def company():
    if request.method == 'POST':
        return jsonify(db_manager.update_company_profile(_json_body()))
    return jsonify(db_manager.get_company_profile())


@api.route('/api/company/bank-details', methods=['POST'])
def bank_details():
    return jsonify(db_manager.update_bank_details(_json_body()))


@api.route('/settings/export')
def export_data():
    data = db_manager.export_data()
    json_str = json.dumps(data, indent=4)
    mem = io.BytesIO()
    mem.write(json_str.encode('utf-8'))
    mem.seek(0)

    filename = f"invoice_data_{datetime.date.today()}.json"
    return send_file(
        mem,
        as_attachment=True,
        download_name=filename,
        mimetype='application/json'
    )


@api.route('/api/settings/import', methods=['POST'])
def import_data():
    if 'file' not in request.files:
        return jsonify({"error": "No file uploaded"}), 400

    file = request.files['file']
    if file.filename == '':
        return jsonify({"error": "No file selected"}), 400

    try:
        data = json.load(file)
    except json.JSONDecodeError:
        return jsonify({"error": "Invalid JSON file"}), 400
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid backup format"}), 400

    success, message = db_manager.import_data(data)
    if success:
        return jsonify({"message": message})
    return jsonify({"error": f"Error importing data: {message}"}), 500


# ----------------------------------------------------------------------
# App factory
# ----------------------------------------------------------------------

def init_db(app):
    """Apply migrations when the project has them, otherwise create tables."""
    migration_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')
    if os.path.exists(migration_dir) and not app.config.get('TESTING'):
        try:
            upgrade(directory=migration_dir)
            logger.info("Database migrated successfully.")
            return
        except Exception as e:
            logger.warning(f"Migration failed: {e}. Attempting db.create_all() as fallback.")
    db.create_all()


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.update(
        SQLALCHEMY_DATABASE_URI=config.DATABASE_URL,
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        EXPORT_SCALE=config.EXPORT_SCALE,
        RASTERIZER=None,
    )
    if test_config:
        app.config.update(test_config)

    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///'):
        db_path = app.config['SQLALCHEMY_DATABASE_URI'][len('sqlite:///'):]
        if db_path and db_path != ':memory:':
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    CORS(app)  # Enable CORS for all routes
    app.register_blueprint(api)

    with app.app_context():
        init_db(app)
        # Seed built-in templates on first start
        get_registry().list()

    return app


if __name__ == '__main__':
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=config.LOG_LEVEL,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    create_app().run(debug=False, port=5000)
