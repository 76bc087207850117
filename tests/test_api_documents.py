import base64

from keiri_docs.services.ocr_types import OcrResult

USER = {"X-User-Id": "owner-1"}


def create(client, **overrides):
    payload = {"type": "請求書", "vendor_name": "株式会社ABC", "amount": 1100, "issue_date": "2026-03-15", "input_method": "upload"}
    payload.update(overrides)
    r = client.post("/documents", json=payload, headers=USER)
    assert r.status_code == 201
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_missing_user_header_is_401(client):
    assert client.get("/documents").status_code == 401


def test_create_and_get_document(client):
    doc = create(client, storage_path="/経理書類/請求書/2026年/03月/未処理/a.pdf")
    assert doc["status"] == "未処理"

    r = client.get(f"/documents/{doc['id']}", headers=USER)
    assert r.status_code == 200
    assert r.json()["vendor_name"] == "株式会社ABC"

    assert client.get(f"/documents/{doc['id']}", headers={"X-User-Id": "someone-else"}).status_code == 404


def test_create_requires_input_method(client):
    r = client.post("/documents", json={"type": "請求書", "vendor_name": "x"}, headers=USER)
    assert r.status_code == 422


def test_list_with_filters(client):
    create(client, vendor_name="Amazon")
    create(client, vendor_name="ヤマト", type="領収書")

    r = client.get("/documents", params={"type": "領収書"}, headers=USER)
    body = r.json()
    assert body["count"] == 1
    assert body["data"][0]["vendor_name"] == "ヤマト"

    r = client.get("/documents", params={"search": "AMAZON", "sort": "bogus"}, headers=USER)
    assert r.json()["count"] == 1


def test_patch_status_moves_file(client, storage):
    doc = create(client, storage_path="/経理書類/請求書/2026年/03月/未処理/a.pdf")

    r = client.patch(f"/documents/{doc['id']}", json={"status": "処理済み"}, headers=USER)

    assert r.status_code == 200
    assert r.json()["storage_path"] == "/経理書類/請求書/2026年/03月/処理済み/a.pdf"
    assert len(storage.moves) == 1


def test_patch_empty_body_is_400(client):
    doc = create(client)
    assert client.patch(f"/documents/{doc['id']}", json={}, headers=USER).status_code == 400


def test_patch_unknown_document_is_404(client):
    assert client.patch("/documents/nope", json={"status": "処理済み"}, headers=USER).status_code == 404


def test_delete_document(client):
    doc = create(client)
    assert client.delete(f"/documents/{doc['id']}", headers=USER).json() == {"success": True}
    assert client.delete(f"/documents/{doc['id']}", headers=USER).status_code == 404


def test_upload_builds_canonical_path(client, storage):
    r = client.post("/storage/upload", json={
        "base64": base64.b64encode(b"jpeg").decode(),
        "fileName": "r.jpg",
        "type": "領収書",
        "date": "2026-02-03",
    }, headers=USER)

    assert r.status_code == 200
    assert r.json()["data"]["path"] == "/経理書類/領収書/2026年/02月/未処理/r.jpg"
    assert storage.uploads["/経理書類/領収書/2026年/02月/未処理/r.jpg"] == b"jpeg"


def test_upload_rejects_bad_date(client):
    r = client.post("/storage/upload", json={
        "base64": "QUJD", "fileName": "r.jpg", "type": "領収書", "date": "03/02/2026",
    }, headers=USER)
    assert r.status_code == 400


def test_ocr_applies_rules_and_model_setting(client, store, analyzer):
    analyzer.result = OcrResult(vendor_name="Amazon Japan", type="請求書", confidence=0.9)
    store.create_rule("owner-1", {"keyword": "amazon", "document_type": "領収書"})
    store.set_setting("owner-1", "gemini_model", "gemini-2.5-pro")

    r = client.post("/ocr/analyze", json={"base64": "QUJD", "mimeType": "image/png"}, headers=USER)

    assert r.status_code == 200
    body = r.json()
    assert body["data"]["type"] == "領収書"
    assert body["model_used"] == "gemini-2.5-pro"
    assert analyzer.calls[0]["document_types"] == ["請求書", "領収書", "契約書"]


def test_ocr_rejects_unsupported_type(client):
    r = client.post("/ocr/analyze", json={"base64": "QUJD", "mimeType": "text/plain"}, headers=USER)
    assert r.status_code == 400
