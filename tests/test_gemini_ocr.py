"""
Tests for Gemini response normalization and the analyzer wrapper.

The model is mocked through model_factory; no network calls are made.
"""

import asyncio
import base64
from unittest.mock import AsyncMock, Mock, patch

import pytest

from keiri_docs.services.errors import ValidationFailed
from keiri_docs.services.gemini_ocr import (
    GeminiDocumentAnalyzer,
    build_prompt,
    parse_model_response,
    validate_upload,
)
from keiri_docs.services.ocr_types import OcrResult

PDF_B64 = base64.b64encode(b"%PDF-1.4 test").decode()


def test_parses_fenced_json():
    raw = '```json\n{"vendor_name": "株式会社ABC", "amount": 11000, "issue_date": "2026-03-01", "type": "請求書", "confidence": 0.93}\n```'
    result = parse_model_response(raw)
    assert result.vendor_name == "株式会社ABC"
    assert result.amount == 11000
    assert result.issue_date == "2026-03-01"
    assert result.type == "請求書"
    assert result.confidence == 0.93
    assert result.due_date is None


def test_plain_fence_without_language():
    result = parse_model_response('```\n{"vendor_name": "X"}\n```')
    assert result.vendor_name == "X"


def test_wrong_field_types_fall_back_individually():
    raw = '{"vendor_name": 123, "amount": "1,000", "confidence": true, "type": ["請求書"], "description": "ok"}'
    result = parse_model_response(raw)
    assert result.vendor_name == ""
    assert result.amount is None
    assert result.confidence == 0
    assert result.type is None
    assert result.description == "ok"


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not json",
        "[1, 2]",
        "null",
        '"text"',
        "{" * 5000,
        '{"vendor_name": "A", "amount": 10',
        'Here is the JSON:\n```json\n{"vendor_name": "A"}\n```',
        '```json\n{"vendor_name": "A"}\n```\nLet me know if you need anything else.',
    ],
)
def test_garbage_returns_fallback(raw):
    assert parse_model_response(raw) == OcrResult()


def test_fences_inside_string_values_are_stripped():
    raw = '```json\n{"vendor_name": "A", "description": "see ```code```"}\n```'
    result = parse_model_response(raw)
    assert result.vendor_name == "A"
    assert result.description == "see code"


@pytest.mark.parametrize("field", ["amount", "confidence"])
def test_out_of_range_numbers_are_dropped(field):
    raw = '{"vendor_name": "A", "%s": %s}' % (field, "9" * 400)
    result = parse_model_response(raw)
    assert result.vendor_name == "A"
    assert result.amount is None
    assert result.confidence == 0


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_numbers_are_dropped(literal):
    result = parse_model_response('{"vendor_name": "A", "amount": %s, "confidence": %s}' % (literal, literal))
    assert result.vendor_name == "A"
    assert result.amount is None
    assert result.confidence == 0


def test_prompt_lists_candidate_types():
    assert "請求書/領収書/契約書" in build_prompt()
    assert "医薬品仕入/社会保険料" in build_prompt(["医薬品仕入", "社会保険料"])


def test_validate_upload():
    assert validate_upload(PDF_B64, "application/pdf") == b"%PDF-1.4 test"

    with pytest.raises(ValidationFailed):
        validate_upload(PDF_B64, "image/gif")
    with pytest.raises(ValidationFailed):
        validate_upload("@@not-base64@@", "image/png")


def test_validate_upload_rejects_oversized_payload():
    with patch("keiri_docs.services.gemini_ocr.settings") as mock_settings:
        mock_settings.ocr_max_upload_bytes = 4
        with pytest.raises(ValidationFailed):
            validate_upload(PDF_B64, "application/pdf")


def test_analyze_without_api_key_returns_fallback():
    factory = Mock()
    analyzer = GeminiDocumentAnalyzer(api_key="", model_factory=factory)

    result = asyncio.run(analyzer.analyze(PDF_B64, "application/pdf"))

    assert result == OcrResult()
    factory.assert_not_called()


def test_analyze_calls_model_and_normalizes():
    model = Mock()
    model.generate_content_async = AsyncMock(return_value=Mock(text='{"vendor_name": "ヤマト運輸", "amount": 1200, "confidence": 0.8}'))
    factory = Mock(return_value=model)

    with patch("keiri_docs.services.gemini_ocr.genai.configure") as configure:
        analyzer = GeminiDocumentAnalyzer(api_key="key", default_model="gemini-default", model_factory=factory)
        result = asyncio.run(analyzer.analyze(PDF_B64, "application/pdf", model_id="gemini-custom", document_types=["請求書"]))

    configure.assert_called_once_with(api_key="key")
    factory.assert_called_once_with("gemini-custom")
    prompt, part = model.generate_content_async.call_args.args[0]
    assert "請求書" in prompt
    assert part == {"mime_type": "application/pdf", "data": b"%PDF-1.4 test"}
    assert result.vendor_name == "ヤマト運輸"
    assert result.amount == 1200


def test_analyze_sdk_error_returns_fallback():
    model = Mock()
    model.generate_content_async = AsyncMock(side_effect=RuntimeError("quota exceeded"))

    with patch("keiri_docs.services.gemini_ocr.genai.configure"):
        analyzer = GeminiDocumentAnalyzer(api_key="key", model_factory=Mock(return_value=model))
        result = asyncio.run(analyzer.analyze(PDF_B64, "application/pdf"))

    assert result == OcrResult()
