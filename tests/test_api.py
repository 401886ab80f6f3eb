import io
import json


def create(client, invoice_data, **changes):
    response = client.post("/api/invoices", json={**invoice_data, **changes})
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def test_create_and_fetch_invoice(client, invoice_data):
    invoice = create(client, invoice_data)
    assert invoice["number"] == "INV-000001"
    assert invoice["total"] == 262.5

    response = client.get(f"/api/invoices/{invoice['id']}")
    assert response.status_code == 200
    assert response.get_json() == invoice

    listing = client.get("/api/invoices").get_json()
    assert [inv["id"] for inv in listing] == [invoice["id"]]


def test_next_invoice_number(client, invoice_data):
    assert client.get("/api/next-invoice-number").get_json() == {"invoice_number": "INV-000001"}
    create(client, invoice_data)
    assert client.get("/api/next-invoice-number").get_json() == {"invoice_number": "INV-000002"}


def test_invalid_invoice_is_400(client, invoice_data):
    response = client.post("/api/invoices", json={**invoice_data, "items": [{"description": "x", "quantity": -1, "unit_price": 1}]})
    assert response.status_code == 400
    assert "positive quantity" in response.get_json()["error"]


def test_unknown_invoice(client):
    assert client.get("/api/invoices/missing").status_code == 404
    assert client.put("/api/invoices/missing", json={"notes": "x"}).status_code == 404
    assert client.delete("/api/invoices/missing").status_code == 404
    assert client.get("/invoices/missing/pdf").status_code == 404


def test_status_endpoints(client, invoice_data):
    invoice = create(client, invoice_data)

    response = client.post(f"/api/invoices/{invoice['id']}/status", json={"status": "pending"})
    assert response.status_code == 200
    assert client.post(f"/api/invoices/{invoice['id']}/pay").status_code == 200

    backwards = client.post(f"/api/invoices/{invoice['id']}/status", json={"status": "draft"})
    assert backwards.status_code == 409

    forced = client.post(f"/api/invoices/{invoice['id']}/status", json={"status": "draft", "override": True})
    assert forced.get_json()["invoice"]["status"] == "draft"

    assert client.post(f"/api/invoices/{invoice['id']}/status", json={}).status_code == 400


def test_update_and_delete_invoice(client, invoice_data):
    invoice = create(client, invoice_data)
    response = client.put(f"/api/invoices/{invoice['id']}", json={
        "items": [{"description": "Drum", "quantity": 1, "unit_price": 100}],
    })
    assert response.get_json()["total"] == 105.0

    assert client.delete(f"/api/invoices/{invoice['id']}").status_code == 200
    assert client.get(f"/api/invoices/{invoice['id']}").status_code == 404


def test_render_descriptor_follows_active_template(client, invoice_data):
    invoice = create(client, invoice_data)
    client.put("/api/templates/active", json={"id": "modern"})

    descriptor = client.get(f"/api/invoices/{invoice['id']}/render").get_json()
    assert descriptor["template_id"] == "modern"
    assert descriptor["accent_color"] == "#0EA5E9"


def test_pdf_download(client, invoice_data):
    invoice = create(client, invoice_data)
    response = client.get(f"/invoices/{invoice['id']}/pdf")

    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.data.startswith(b"%PDF")
    assert "invoice-INV-000001-acme-trading-llc-" in response.headers["Content-Disposition"]


def test_templates_lifecycle(client):
    listing = client.get("/api/templates").get_json()
    assert listing["active_id"] == "classic"
    assert len(listing["templates"]) == 3

    created = client.post("/api/templates", json={"name": "Mine", "settings": {"show_logo": False}})
    assert created.status_code == 201
    template_id = created.get_json()["id"]
    assert client.get("/api/templates/active").get_json()["id"] == template_id

    patched = client.patch(f"/api/templates/{template_id}/settings", json={"footer_text": "Merci"})
    assert patched.get_json()["settings"]["footer_text"] == "Merci"
    assert patched.get_json()["settings"]["show_logo"] is False

    deleted = client.delete(f"/api/templates/{template_id}")
    assert deleted.get_json()["active_id"] == "classic"

    assert client.delete("/api/templates/classic").status_code == 400
    assert client.delete("/api/templates/missing").status_code == 404
    assert client.put("/api/templates/active", json={"id": "missing"}).status_code == 404
    assert client.patch("/api/templates/missing/settings", json={}).status_code == 404
    assert client.post("/api/templates", json={}).status_code == 400


def test_expense_endpoints(client):
    for amount, category, date in [(100, "Rent", "2026-01-01"), (40.5, "Travel", "2026-02-03")]:
        response = client.post("/api/expenses", json={
            "date": date, "amount": amount, "category": category, "description": "x",
        })
        assert response.status_code == 201

    everything = client.get("/api/expenses").get_json()
    assert everything["total"] == 140.5
    travel = client.get("/api/expenses?category=Travel").get_json()
    assert [e["category"] for e in travel["expenses"]] == ["Travel"]
    january = client.get("/api/expenses?start=2026-01-01&end=2026-01-31").get_json()
    assert january["total"] == 100

    categories = client.get("/api/expenses/categories").get_json()
    assert categories["in_use"] == ["Rent", "Travel"]
    assert "Office Supplies" in categories["predefined"]

    bad = client.post("/api/expenses", json={"date": "2026-01-01", "amount": 0, "category": "Rent", "description": "x"})
    assert bad.status_code == 400
    assert client.delete("/api/expenses/missing").status_code == 404


def test_customers_and_company(client):
    customer = client.post("/api/customers", json={"name": "Acme"}).get_json()
    assert client.put(f"/api/customers/{customer['id']}", json={"phone": "+971"}).get_json()["phone"] == "+971"
    assert client.put("/api/customers/missing", json={}).status_code == 404
    assert client.post("/api/customers", json={}).status_code == 400

    product = client.post("/api/products", json={"name": "Drum", "price": 10}).get_json()
    assert client.delete(f"/api/products/{product['id']}").status_code == 200

    client.post("/api/company", json={"name": "Gulf Chemicals"})
    client.post("/api/company/bank-details", json={"iban": "AE07"})
    company = client.get("/api/company").get_json()
    assert company["name"] == "Gulf Chemicals"
    assert company["bank_details"]["iban"] == "AE07"


def test_backup_export_and_import(client, invoice_data):
    invoice = create(client, invoice_data)
    backup = client.get("/settings/export")
    assert backup.mimetype == "application/json"

    client.delete(f"/api/invoices/{invoice['id']}")
    response = client.post("/api/settings/import", data={
        "file": (io.BytesIO(backup.data), "backup.json"),
    }, content_type="multipart/form-data")
    assert response.status_code == 200
    assert client.get(f"/api/invoices/{invoice['id']}").status_code == 200

    invalid = client.post("/api/settings/import", data={
        "file": (io.BytesIO(b"not json"), "backup.json"),
    }, content_type="multipart/form-data")
    assert invalid.status_code == 400

    wrong_shape = client.post("/api/settings/import", data={
        "file": (io.BytesIO(json.dumps([1, 2]).encode()), "backup.json"),
    }, content_type="multipart/form-data")
    assert wrong_shape.status_code == 400


def test_put_cannot_move_status_back(client, invoice_data):
    invoice = create(client, invoice_data, status="paid")

    backwards = client.put(f"/api/invoices/{invoice['id']}", json={"status": "draft"})
    assert backwards.status_code == 409
    assert client.get(f"/api/invoices/{invoice['id']}").get_json()["status"] == "paid"

    forced = client.put(f"/api/invoices/{invoice['id']}", json={"status": "draft", "override": True})
    assert forced.status_code == 200
    assert forced.get_json()["status"] == "draft"


def test_non_text_number_is_400(client, invoice_data):
    response = client.post("/api/invoices", json={**invoice_data, "number": 42})
    assert response.status_code == 400


def test_dashboard(client, invoice_data):
    create(client, invoice_data, status="paid")
    create(client, invoice_data)

    stats = client.get("/api/dashboard").get_json()
    assert stats["total_invoices"] == 2
    assert stats["paid_invoices"] == 1
    assert stats["unpaid_invoices"] == 1
    assert stats["total_revenue"] == 262.5
