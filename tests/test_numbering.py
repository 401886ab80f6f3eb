from numbering import next_invoice_number


def test_first_number():
    assert next_invoice_number([], prefix="INV", width=6) == "INV-000001"


def test_increments_highest_matching_number():
    invoices = [
        {"number": "INV-000009"},
        {"number": "INV-000010"},
        {"number": "INV-000002"},
        {"number": "custom-77"},
        {"number": "INV-12a"},
        {"number": "XINV-000900"},
        {},
    ]
    assert next_invoice_number(invoices, prefix="INV", width=6) == "INV-000011"


def test_idempotent_for_same_set():
    invoices = [{"number": "INV-000004"}]
    first = next_invoice_number(invoices, prefix="INV", width=6)
    second = next_invoice_number(invoices, prefix="INV", width=6)
    assert first == second == "INV-000005"


def test_manual_number_becomes_new_maximum():
    invoices = [{"number": "INV-000003"}, {"number": "INV-000500"}]
    assert next_invoice_number(invoices, prefix="INV", width=6) == "INV-000501"


def test_self_heals_after_deletion():
    invoices = [{"number": "INV-000001"}, {"number": "INV-000002"}, {"number": "INV-000003"}]
    assert next_invoice_number(invoices[:2], prefix="INV", width=6) == "INV-000003"


def test_no_matching_numbers_starts_at_one():
    assert next_invoice_number([{"number": "2026/17"}], prefix="INV", width=6) == "INV-000001"


def test_custom_prefix_and_width():
    invoices = [{"number": "BILL-0041"}, {"number": "INV-000900"}]
    assert next_invoice_number(invoices, prefix="BILL", width=4) == "BILL-0042"


def test_width_grows_past_padding():
    assert next_invoice_number([{"number": "INV-999999"}], prefix="INV", width=6) == "INV-1000000"
