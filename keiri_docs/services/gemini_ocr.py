
import base64
import json
import math
import re
from typing import Any, Callable

# TODO: move to the google-genai SDK, google-generativeai is past end of support
import google.generativeai as genai
from loguru import logger

from .errors import ValidationFailed
from .ocr_types import OcrResult, fallback_result
from ..core.config import settings
from ..models.document import BUILTIN_DOCUMENT_TYPES

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

SUPPORTED_MIME_TYPES = ["image/jpeg", "image/jpg", "image/png", "application/pdf"]

_FENCE_JSON = re.compile(r"```json\s*")
_FENCE = re.compile(r"```\s*")


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid amount or confidence
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    # json.loads yields unbounded ints and accepts NaN/Infinity
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def parse_model_response(raw_text: str | None) -> OcrResult:
    """
    Turn Gemini's free-text answer into a strict OcrResult.

    The model is asked for bare JSON but frequently wraps it in Markdown
    fences, drops fields or returns the wrong types. Every field is checked
    on its own; anything that cannot be decoded yields the fallback record.
    This function never raises.
    """
    if not isinstance(raw_text, str):
        return fallback_result()

    cleaned = _FENCE.sub("", _FENCE_JSON.sub("", raw_text)).strip()

    try:
        parsed = json.loads(cleaned)
    except (ValueError, RecursionError):
        logger.error(f"Failed to parse Gemini response as JSON: {raw_text[:200]!r}")
        return fallback_result()

    if not isinstance(parsed, dict):
        logger.error(f"Gemini response is not a JSON object: {type(parsed).__name__}")
        return fallback_result()

    def text(name: str) -> str | None:
        value = parsed.get(name)
        return value if isinstance(value, str) else None

    amount = parsed.get("amount")
    confidence = parsed.get("confidence")

    return OcrResult(
        vendor_name=text("vendor_name") or "",
        amount=amount if _is_number(amount) else None,
        issue_date=text("issue_date"),
        due_date=text("due_date"),
        description=text("description"),
        type=text("type"),
        confidence=confidence if _is_number(confidence) else 0,
    )


def build_prompt(document_types: list[str] | None = None) -> str:
    """Extraction prompt listing the document types the model may choose from"""
    candidates = "/".join(document_types or BUILTIN_DOCUMENT_TYPES)
    return f"""この画像は経理書類です。以下の情報をJSON形式で抽出してください。

必ず以下のJSON形式のみで回答してください。余計なテキストは含めないでください。

{{
  "vendor_name": "取引先名（会社名・店舗名）",
  "amount": 金額（数値、税込。見つからない場合はnull）,
  "issue_date": "発行日（YYYY-MM-DD形式。見つからない場合はnull）",
  "due_date": "支払期日（YYYY-MM-DD形式。見つからない場合はnull）",
  "description": "摘要・品目の要約",
  "type": "書類種別（{candidates}のいずれか。判別できない場合はnull）",
  "confidence": 解析の確信度（0.0〜1.0）
}}"""


def validate_upload(base64_data: str, mime_type: str) -> bytes:
    """
    Check an OCR upload before it is sent to Gemini.

    Returns:
        The decoded file bytes

    Raises:
        ValidationFailed: unsupported MIME type, bad base64 or file too large
    """
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise ValidationFailed(f"Unsupported file type: {mime_type}")

    # Cheap size estimate before decoding
    if len(base64_data) * 3 / 4 > settings.ocr_max_upload_bytes:
        raise ValidationFailed("File exceeds the 10MB upload limit")

    try:
        return base64.b64decode(base64_data, validate=True)
    except ValueError:
        raise ValidationFailed("base64 payload could not be decoded")


class GeminiDocumentAnalyzer:
    """
    Gemini-backed OCR for invoices, receipts and contracts.

    Any SDK failure (missing key, quota, network, safety block) is logged
    and converted into the fallback OcrResult so that intake and approval
    never fail because of the model.
    """

    def __init__(
        self,
        api_key: str | None = None,
        default_model: str | None = None,
        model_factory: Callable[[str], Any] | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.default_model = default_model or settings.gemini_model or DEFAULT_GEMINI_MODEL
        self._model_factory = model_factory or genai.GenerativeModel
        self._configured = False

    def _get_model(self, model_id: str):
        if not self._configured:
            genai.configure(api_key=self.api_key)
            self._configured = True
        return self._model_factory(model_id)

    async def analyze(
        self,
        base64_data: str,
        mime_type: str,
        model_id: str | None = None,
        document_types: list[str] | None = None,
    ) -> OcrResult:
        if not self.api_key:
            logger.error("GEMINI_API_KEY not set - returning fallback OCR result")
            return fallback_result()

        model_name = model_id or self.default_model
        logger.info("Analyzing document with Gemini", model=model_name, mime_type=mime_type)

        try:
            model = self._get_model(model_name)
            response = await model.generate_content_async([
                build_prompt(document_types),
                {"mime_type": mime_type, "data": base64.b64decode(base64_data)},
            ])
            result = parse_model_response(response.text)
        except Exception as e:
            logger.error(f"Gemini analysis failed: {e}")
            return fallback_result()

        logger.info(
            "Gemini analysis complete",
            vendor=result.vendor_name,
            doc_type=result.type,
            confidence=result.confidence,
        )
        return result


_default_analyzer: GeminiDocumentAnalyzer | None = None


def get_document_analyzer() -> GeminiDocumentAnalyzer:
    global _default_analyzer
    if _default_analyzer is None:
        _default_analyzer = GeminiDocumentAnalyzer()
    return _default_analyzer
