import pytest


def test_missing_key_returns_default(store):
    assert store.get("invoices") is None
    assert store.get("invoices", []) == []


def test_set_get_remove(store):
    store.set("companyDetails", {"name": "Gulf Chemicals"})
    assert store.get("companyDetails") == {"name": "Gulf Chemicals"}

    store.remove("companyDetails")
    assert store.get("companyDetails") is None
    store.remove("companyDetails")


def test_returned_values_are_copies(store):
    store.set("invoices", [{"id": "a", "items": []}])
    loaded = store.get("invoices")
    loaded[0]["items"].append({"id": 1})
    assert store.get("invoices") == [{"id": "a", "items": []}]


def test_set_many_is_all_or_nothing(store):
    store.set("activeTemplateId", "classic")
    store.set("invoiceTemplates", [{"id": "classic", "name": "Classic"}])
    with pytest.raises(Exception):
        store.set_many({"activeTemplateId": "modern", "invoiceTemplates": object()})

    assert store.get("activeTemplateId") == "classic"
    assert store.get("invoiceTemplates") == [{"id": "classic", "name": "Classic"}]
