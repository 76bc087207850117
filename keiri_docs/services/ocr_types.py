
from pydantic import BaseModel

class OcrResult(BaseModel):
    vendor_name: str = ""
    amount: float | None = None
    issue_date: str | None = None  # YYYY-MM-DD
    due_date: str | None = None  # YYYY-MM-DD
    description: str | None = None
    type: str | None = None  # Document type suggested by the model
    confidence: float = 0.0


def fallback_result() -> OcrResult:
    """All-default record used whenever the model output cannot be trusted"""
    return OcrResult()
