from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import CurrentUser, analyzer_dependency, get_current_user, store_dependency, to_http_exception
from ...services.classification_rules import apply_classification_rules
from ...services.document_types import document_type_names
from ...services.errors import KeiriDocsError
from ...services.gemini_ocr import GeminiDocumentAnalyzer, validate_upload
from ...services.ocr_types import OcrResult
from ...services.setting_values import as_str
from ...services.storage import AccountingStoreBase

router = APIRouter(prefix="/ocr", tags=["ocr"])


class AnalyzeRequest(BaseModel):
    base64: str
    mime_type: str = Field(alias="mimeType")

    model_config = {"populate_by_name": True}


class AnalyzeResponse(BaseModel):
    data: OcrResult
    model_used: str


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(
    req: AnalyzeRequest,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
    analyzer: GeminiDocumentAnalyzer = Depends(analyzer_dependency),
):
    """
    Read a document image/PDF with Gemini and apply the owner's rules.

    Classification rules take precedence over the model's type guess.
    """
    try:
        validate_upload(req.base64, req.mime_type)
    except KeiriDocsError as e:
        raise to_http_exception(e)

    model_id = as_str(store.get_setting(user.id, "gemini_model")) or analyzer.default_model
    result = await analyzer.analyze(
        req.base64,
        req.mime_type,
        model_id=model_id,
        document_types=document_type_names(store, user.id),
    )
    result = apply_classification_rules(result, store.list_rules(user.id))
    return AnalyzeResponse(data=result, model_used=model_id)
