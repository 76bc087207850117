"""
Tests for the SQLite accounting store.

This test suite verifies that the store:
- Persists rows across instances
- Scopes every query by owner
- Filters, sorts and paginates document listings
- Round-trips JSON settings and OCR payloads
"""

import sqlite3

import pytest

from keiri_docs.services.storage import SQLiteAccountingStore


def add(store, owner="owner-1", **overrides):
    data = {"type": "請求書", "vendor_name": "Vendor", "input_method": "upload"}
    data.update(overrides)
    return store.create_document(owner, data)


def test_create_document_defaults(store):
    doc = add(store, ocr_raw={"vendor_name": "株式会社ABC", "confidence": 0.9})

    assert doc.status == "未処理"
    assert doc.owner_id == "owner-1"
    assert doc.created_at == doc.updated_at
    assert doc.ocr_raw == {"vendor_name": "株式会社ABC", "confidence": 0.9}


def test_persists_across_instances(temp_db):
    doc = add(SQLiteAccountingStore(temp_db))

    reopened = SQLiteAccountingStore(temp_db)
    assert reopened.get_document("owner-1", doc.id).vendor_name == "Vendor"


def test_invalid_status_is_rejected_by_schema(store):
    with pytest.raises(sqlite3.IntegrityError):
        add(store, status="done")


def test_owner_scoping(store):
    doc = add(store, owner="owner-1")

    assert store.get_document("owner-2", doc.id) is None
    assert store.update_document("owner-2", doc.id, {"vendor_name": "x"}) is None
    assert store.delete_document("owner-2", doc.id) is False
    assert store.list_documents("owner-2") == ([], 0)


def test_list_filters_and_search(store):
    add(store, vendor_name="Amazon Japan", issue_date="2026-03-01")
    add(store, vendor_name="東京電力", description="電気料金 AMAZON", issue_date="2026-04-01")
    add(store, vendor_name="ヤマト", type="領収書", status="処理済み", issue_date="2026-03-20")

    rows, total = store.list_documents("owner-1", search="amazon")
    assert total == 2

    rows, total = store.list_documents("owner-1", doc_type="領収書", status="処理済み")
    assert [r.vendor_name for r in rows] == ["ヤマト"]

    rows, total = store.list_documents("owner-1", date_from="2026-03-01", date_to="2026-03-31")
    assert total == 2


def test_sort_whitelist_and_pagination(store):
    for amount in (300, 100, 200):
        add(store, amount=amount)

    rows, total = store.list_documents("owner-1", sort="amount", direction="asc", limit=2)
    assert total == 3
    assert [r.amount for r in rows] == [100, 200]

    rows, _ = store.list_documents("owner-1", sort="amount", direction="asc", limit=2, offset=2)
    assert [r.amount for r in rows] == [300]

    # Unknown sort column falls back to created_at instead of reaching SQL
    rows, _ = store.list_documents("owner-1", sort="amount; DROP TABLE documents")
    assert len(rows) == 3


def test_update_touches_updated_at(store):
    doc = add(store)
    updated = store.update_document("owner-1", doc.id, {"vendor_name": "New", "unknown": "ignored"})

    assert updated.vendor_name == "New"
    assert updated.updated_at >= doc.updated_at


def test_due_and_created_queries(store):
    add(store, due_date="2026-10-18")
    add(store, due_date="2026-10-25")
    add(store, due_date="2026-10-19", status="処理済み")

    due = store.find_documents_due_between("owner-1", "未処理", "2026-10-18", "2026-10-21")
    assert [d.due_date for d in due] == ["2026-10-18"]

    created = store.find_documents_created_between("owner-1", "2000-01-01", "2999-12-31T23:59:59")
    assert len(created) == 3


def test_mail_items_decide_only_pending(store):
    item = store.create_mail_item("owner-1", {"file_name": "a.pdf", "sender": "s", "temp_path": "/tmp/a.pdf"})

    assert store.get_pending_mail_items("owner-1", [item.id])[0].id == item.id
    assert store.decide_mail_items("owner-1", [item.id], "approved") == 1
    assert store.decide_mail_items("owner-1", [item.id], "rejected") == 0
    assert store.list_mail_items("owner-1")[0].status == "approved"
    assert store.get_pending_mail_items("owner-1", [item.id]) == []


def test_rule_keyword_unique_per_owner(store):
    store.create_rule("owner-1", {"keyword": "amazon", "document_type": "領収書"})
    store.create_rule("owner-2", {"keyword": "amazon", "document_type": "領収書"})

    with pytest.raises(sqlite3.IntegrityError):
        store.create_rule("owner-1", {"keyword": "amazon", "document_type": "請求書"})


def test_rule_update_and_delete(store):
    rule = store.create_rule("owner-1", {"keyword": "gas", "document_type": "光熱費", "priority": 1})

    updated = store.update_rule("owner-1", rule.id, {"is_active": False, "priority": 9})
    assert updated.is_active is False
    assert updated.priority == 9
    assert store.delete_rule("owner-1", rule.id) is True
    assert store.list_rules("owner-1") == []


def test_settings_round_trip_json(store):
    store.set_setting("owner-1", "notification_flags", {"due_date_notify": False})
    store.set_setting("owner-1", "accountant_doc_types", ["請求書", "領収書"])
    store.set_setting("owner-1", "accountant_doc_types", ["領収書"])

    assert store.get_setting("owner-1", "accountant_doc_types") == ["領収書"]
    assert store.get_setting("owner-1", "missing") is None
    assert store.list_settings("owner-1") == {
        "accountant_doc_types": ["領収書"],
        "notification_flags": {"due_date_notify": False},
    }
    assert store.owners_with_setting("notification_flags") == [("owner-1", {"due_date_notify": False})]


def test_contacts_and_roles(store):
    contact = store.add_contact("owner-1", "allowed_senders", "billing@example.com", "請求窓口")

    assert [c.email for c in store.list_contacts("owner-1", "allowed_senders")] == ["billing@example.com"]
    assert store.list_contacts("owner-1", "notify_recipients") == []
    assert store.delete_contact("owner-1", "allowed_senders", contact.id) is True

    with pytest.raises(ValueError):
        store.list_contacts("owner-1", "documents")

    assert store.get_user_role("nobody") == "staff"
    store.set_user_role("u1", "viewer")
    assert store.get_user_role("u1") == "viewer"
