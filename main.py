import asyncio
import datetime
import logging
import sys

import config
import db_manager
from app import create_app, get_registry
from pdf_builder import ExportError, export_invoice, save_export
from rasterizer import PillowRasterizer
from totals import ValidationError

logger = logging.getLogger(__name__)


def print_menu():
    print("\n--- Invoice Generator ---")
    print("1. Add Customer")
    print("2. List Customers")
    print("3. Create Invoice")
    print("4. List Invoices")
    print("5. Export PDF for Invoice")
    print("6. Mark Invoice as Paid")
    print("7. Choose Template")
    print("8. Add Expense")
    print("9. Exit")
    print("-------------------------")


def find_invoice(number):
    for invoice in db_manager.get_invoices():
        if invoice['number'] == number:
            return invoice
    return None


def add_customer_flow():
    print("\n[Add Customer]")
    name = input("Name: ")
    address = input("Address (use \\n for newlines): ").replace("\\n", "\n")
    email = input("Email: ")
    phone = input("Phone: ")
    try:
        db_manager.add_customer({"name": name, "address": address, "email": email, "phone": phone})
    except ValidationError as e:
        print(f"Customer not saved: {e}")
        return
    print("Customer added successfully!")


def list_customers_flow():
    print("\n[List Customers]")
    customers = db_manager.get_customers()
    for index, c in enumerate(customers, 1):
        print(f"{index}. {c['name']} | {c.get('email', '')}")
    return customers


def create_invoice_flow():
    print("\n[Create Invoice]")
    customers = list_customers_flow()
    data = {}
    choice = input("Customer # (leave empty to type a client): ")
    if choice:
        try:
            data["customer_id"] = customers[int(choice) - 1]["id"]
        except (ValueError, IndexError):
            print("Invalid customer")
            return None
    else:
        data["client"] = {
            "name": input("Client Name: "),
            "address": input("Client Address: "),
        }

    suggested = db_manager.next_number()
    data["number"] = input(f"Invoice Number [{suggested}]: ") or suggested

    date_str = input("Issue Date (YYYY-MM-DD) [Today]: ")
    data["issue_date"] = date_str or datetime.date.today().isoformat()
    data["due_date"] = input(f"Due Date (YYYY-MM-DD) [{config.PAYMENT_TERMS_DAYS} days after issue]: ") or None

    items = []
    print("Enter items (leave Description empty to finish):")
    while True:
        desc = input("Description: ")
        if not desc:
            break
        try:
            items.append({
                "description": desc,
                "quantity": float(input("Quantity: ")),
                "unit_price": float(input("Unit Price: ")),
            })
        except ValueError:
            print("Invalid number format, try again.")
    data["items"] = items
    data["notes"] = input("Notes: ")

    if not items:
        print("No items added. Invoice cancelled.")
        return None
    try:
        invoice = db_manager.create_invoice(data)
    except (ValidationError, db_manager.NotFoundError) as e:
        print(f"Invoice not created: {e}")
        return None
    print(f"Invoice {invoice['number']} created: total ${invoice['total']:,.2f}")
    return invoice


def list_invoices_flow():
    print("\n[List Invoices]")
    for inv in db_manager.get_invoices():
        print(f"#{inv['number']} | {inv['client']['name']} | {inv['issue_date']} | {inv['status']} | ${inv['total']:.2f}")


def export_pdf_flow(rasterizer=None):
    print("\n[Export PDF]")
    invoice = find_invoice(input("Enter Invoice Number: "))
    if not invoice:
        print("Invoice not found.")
        return None
    try:
        result = asyncio.run(export_invoice(invoice, get_registry(), rasterizer or PillowRasterizer()))
    except ExportError as e:
        print(f"Export failed: {e}")
        return None
    path = save_export(result)
    print(f"PDF generated: {path} ({result.page_count} pages)")
    return path


def mark_paid_flow():
    print("\n[Mark Paid]")
    invoice = find_invoice(input("Enter Invoice Number: "))
    if not invoice:
        print("Invoice not found.")
        return
    db_manager.update_invoice_status(invoice['id'], "paid")
    print(f"Invoice {invoice['number']} marked as Paid.")


def choose_template_flow():
    print("\n[Templates]")
    registry = get_registry()
    active_id = registry.active_id
    templates = registry.list()
    for index, t in enumerate(templates, 1):
        marker = "*" if t['id'] == active_id else " "
        print(f"{marker} {index}. {t['name']} - {t.get('description', '')}")
    choice = input("Activate template # (empty to keep): ")
    if not choice:
        return
    try:
        template = templates[int(choice) - 1]
    except (ValueError, IndexError):
        print("Invalid template")
        return
    registry.set_active(template['id'])
    print(f"Active template: {template['name']}")


def add_expense_flow():
    print("\n[Add Expense]")
    for index, category in enumerate(db_manager.EXPENSE_CATEGORIES, 1):
        print(f"{index}. {category}")
    category = input("Category # or custom name: ")
    if category.isdigit() and 1 <= int(category) <= len(db_manager.EXPENSE_CATEGORIES):
        category = db_manager.EXPENSE_CATEGORIES[int(category) - 1]
    data = {
        "date": input("Date (YYYY-MM-DD) [Today]: ") or datetime.date.today().isoformat(),
        "amount": input("Amount: "),
        "category": category,
        "description": input("Description: "),
    }
    try:
        db_manager.create_expense(data)
    except ValidationError as e:
        print(f"Expense not saved: {e}")
        return
    print("Expense added successfully!")


def main():
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=config.LOG_LEVEL,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    app = create_app()

    actions = {
        '1': add_customer_flow,
        '2': list_customers_flow,
        '3': create_invoice_flow,
        '4': list_invoices_flow,
        '5': export_pdf_flow,
        '6': mark_paid_flow,
        '7': choose_template_flow,
        '8': add_expense_flow,
    }

    with app.app_context():
        while True:
            print_menu()
            choice = input("Select an option: ")
            if choice == '9':
                print("Goodbye!")
                break
            action = actions.get(choice)
            if action:
                action()
            else:
                print("Invalid choice, please try again.")


if __name__ == "__main__":
    main()
