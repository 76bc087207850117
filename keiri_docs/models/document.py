
from typing import Any, Literal
from pydantic import BaseModel, Field

DocumentStatus = Literal["未処理", "処理済み", "アーカイブ"]
InputMethod = Literal["camera", "upload", "email"]

STATUS_UNPROCESSED = "未処理"
STATUS_PROCESSED = "処理済み"

CONTRACT_TYPE = "契約書"
DEFAULT_DOCUMENT_TYPE = "請求書"
BUILTIN_DOCUMENT_TYPES = ["請求書", "領収書", "契約書"]


class Document(BaseModel):
    id: str
    type: str
    vendor_name: str
    amount: float | None = None
    issue_date: str | None = None
    due_date: str | None = None
    description: str | None = None
    input_method: InputMethod
    status: DocumentStatus = STATUS_UNPROCESSED
    storage_path: str | None = None
    ocr_raw: Any | None = None
    owner_id: str
    created_at: str
    updated_at: str


class DocumentCreate(BaseModel):
    type: str = Field(min_length=1)
    vendor_name: str
    amount: float | None = None
    issue_date: str | None = None
    due_date: str | None = None
    description: str | None = None
    input_method: InputMethod
    storage_path: str | None = None
    ocr_raw: Any | None = None


class DocumentUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""
    type: str | None = None
    vendor_name: str | None = None
    amount: float | None = None
    issue_date: str | None = None
    due_date: str | None = None
    description: str | None = None
    status: DocumentStatus | None = None

    def changes(self) -> dict:
        # type, vendor_name and status cannot be cleared, the rest accept explicit nulls
        data = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name in ("type", "vendor_name", "status") and value is None:
                continue
            data[name] = value
        return data


class DocumentList(BaseModel):
    data: list[Document]
    count: int
