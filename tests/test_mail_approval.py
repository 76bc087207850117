"""
Tests for the mail approval state machine.

Covers the pending -> approved / rejected transitions, type precedence,
the partial-failure model and the re-analysis payload.
"""

import asyncio
from datetime import date
from unittest.mock import patch

import pytest

from keiri_docs.services.errors import NoPendingItems
from keiri_docs.services.mail_approval import (
    ReanalysisPayload,
    approve_mail_items,
    reject_mail_items,
    resolve_document_type,
)
from keiri_docs.services.ocr_types import OcrResult

from conftest import FakeAnalyzer, FakeStorage

OWNER = "owner-1"


def month_folder():
    today = date.today()
    return f"{today.year:04d}年/{today.month:02d}月"


def queue(store, file_name="scan.pdf", ai_type=None, temp_path="default", owner=OWNER):
    if temp_path == "default":
        temp_path = f"/経理書類/一時保存/{file_name}"
    return store.create_mail_item(owner, {
        "file_name": file_name,
        "sender": "経理部 <billing@example.com>",
        "received_at": "2026-10-01T09:00:00+00:00",
        "ai_type": ai_type,
        "ai_confidence": 0.7 if ai_type else None,
        "temp_path": temp_path,
    })


def statuses(store, owner=OWNER):
    return {item.file_name: item.status for item in store.list_mail_items(owner)}


@pytest.mark.parametrize(
    "override, fresh, stored, expected",
    [
        ("契約書", "領収書", "請求書", "契約書"),
        (None, "領収書", "請求書", "領収書"),
        (None, None, "領収書", "領収書"),
        (None, None, None, "請求書"),
        ("", "", "", "請求書"),
        ("", "領収書", None, "領収書"),
    ],
)
def test_resolve_document_type(override, fresh, stored, expected):
    assert resolve_document_type(override, fresh, stored) == expected


def test_approve_moves_file_and_registers_document(store, storage, analyzer):
    item = queue(store, "receipt.jpg", ai_type="領収書")

    report = asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id]))

    destination = f"/経理書類/領収書/{month_folder()}/未処理/receipt.jpg"
    assert storage.moves == [("/経理書類/一時保存/receipt.jpg", destination)]
    assert report.requested == 1
    assert report.approved == 1

    docs, total = store.list_documents(OWNER)
    assert total == 1
    doc = docs[0]
    assert doc.type == "領収書"
    assert doc.vendor_name == "経理部 <billing@example.com>"
    assert doc.description == "メール添付: receipt.jpg"
    assert doc.input_method == "email"
    assert doc.status == "未処理"
    assert doc.storage_path == destination
    assert doc.ocr_raw is None
    assert statuses(store) == {"receipt.jpg": "approved"}
    assert analyzer.calls == []


def test_override_type_wins_over_ai_type(store, storage, analyzer):
    item = queue(store, ai_type="領収書")

    asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id], override_type="契約書"))

    assert storage.moves[0][1] == "/経理書類/契約書/scan.pdf"
    assert store.list_documents(OWNER)[0][0].type == "契約書"


def test_reanalysis_fills_document_fields(store, storage):
    fresh = OcrResult(
        vendor_name="東京ガス",
        amount=8800,
        issue_date="2026-09-30",
        due_date="2026-10-31",
        description="ガス料金",
        type="請求書",
        confidence=0.95,
    )
    analyzer = FakeAnalyzer(fresh)
    item = queue(store, ai_type="領収書")

    asyncio.run(approve_mail_items(
        store, storage, analyzer, OWNER, [item.id],
        reanalysis=ReanalysisPayload(base64_data="QUJD", mime_type="application/pdf"),
    ))

    doc = store.list_documents(OWNER)[0][0]
    assert doc.type == "請求書"
    assert doc.vendor_name == "東京ガス"
    assert doc.amount == 8800
    assert doc.due_date == "2026-10-31"
    assert doc.description == "ガス料金"
    assert doc.ocr_raw["confidence"] == 0.95
    assert analyzer.calls[0]["mime_type"] == "application/pdf"


def test_empty_fresh_vendor_falls_back_to_sender(store, storage):
    analyzer = FakeAnalyzer(OcrResult(vendor_name="", type=None))
    item = queue(store, ai_type="領収書")

    asyncio.run(approve_mail_items(
        store, storage, analyzer, OWNER, [item.id],
        reanalysis=ReanalysisPayload(base64_data="QUJD", mime_type="image/png"),
    ))

    doc = store.list_documents(OWNER)[0][0]
    assert doc.vendor_name == "経理部 <billing@example.com>"
    assert doc.type == "領収書"


def test_move_failure_keeps_temp_path(store, analyzer):
    storage = FakeStorage(fail_on={"/経理書類/一時保存/scan.pdf"})
    item = queue(store)

    report = asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id]))

    assert report.approved == 1
    assert store.list_documents(OWNER)[0][0].storage_path == "/経理書類/一時保存/scan.pdf"
    assert statuses(store) == {"scan.pdf": "approved"}


def test_insert_failure_leaves_item_pending_and_continues(store, storage, analyzer):
    first = queue(store, "a.pdf")
    second = queue(store, "b.pdf")
    real_create = store.create_document

    def flaky_create(owner_id, data):
        if data["description"].endswith("a.pdf"):
            raise RuntimeError("insert failed")
        return real_create(owner_id, data)

    with patch.object(store, "create_document", side_effect=flaky_create):
        report = asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [first.id, second.id]))

    assert report.requested == 2
    assert report.approved == 1
    assert [o.status for o in report.outcomes] == ["failed", "approved"]
    assert statuses(store) == {"a.pdf": "pending", "b.pdf": "approved"}


def test_item_without_temp_path_is_skipped(store, storage, analyzer):
    item = queue(store, temp_path=None)

    report = asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id]))

    assert report.approved == 0
    assert report.outcomes[0].status == "skipped"
    assert storage.moves == []
    assert statuses(store) == {"scan.pdf": "pending"}


def test_no_pending_items_raises(store, storage, analyzer):
    item = queue(store)
    reject_mail_items(store, OWNER, [item.id])

    with pytest.raises(NoPendingItems):
        asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id]))

    with pytest.raises(NoPendingItems):
        asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, ["unknown"]))


def test_other_owner_items_are_invisible(store, storage, analyzer):
    item = queue(store, owner="owner-2")

    with pytest.raises(NoPendingItems):
        asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id]))


def test_reject_counts_only_pending_items(store):
    a = queue(store, "a.pdf")
    b = queue(store, "b.pdf")

    assert reject_mail_items(store, OWNER, [a.id]) == 1
    assert reject_mail_items(store, OWNER, [a.id, b.id, "missing"]) == 1
    assert statuses(store) == {"a.pdf": "rejected", "b.pdf": "rejected"}


def test_approved_item_cannot_be_rejected(store, storage, analyzer):
    item = queue(store)
    asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id]))

    assert reject_mail_items(store, OWNER, [item.id]) == 0
    assert statuses(store) == {"scan.pdf": "approved"}


def test_unclassified_item_defaults_to_invoice(store, storage, analyzer):
    item = queue(store, ai_type=None)

    asyncio.run(approve_mail_items(store, storage, analyzer, OWNER, [item.id]))

    destination = f"/経理書類/請求書/{month_folder()}/未処理/scan.pdf"
    doc = store.list_documents(OWNER)[0][0]
    assert doc.type == "請求書"
    assert doc.storage_path == destination
    assert storage.moves == [("/経理書類/一時保存/scan.pdf", destination)]
