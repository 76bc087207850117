
from typing import Literal
from pydantic import BaseModel, Field

MailItemStatus = Literal["pending", "approved", "rejected"]


class PendingMailItem(BaseModel):
    id: str
    file_name: str
    sender: str
    received_at: str | None = None
    ai_type: str | None = None
    ai_confidence: float | None = None
    temp_path: str | None = None
    status: MailItemStatus = "pending"
    owner_id: str
    created_at: str


class MailAttachment(BaseModel):
    file_name: str
    mime_type: str
    base64_data: str
    size: int = 0


class FetchedMail(BaseModel):
    message_id: str
    sender: str
    sender_email: str
    subject: str = ""
    received_at: str
    attachments: list[MailAttachment] = []


class MailDecisionRequest(BaseModel):
    """Request body for /mail/decide"""
    action: Literal["approve", "reject"]
    ids: list[str] = Field(min_length=1)
    type: str | None = None
    base64: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")

    model_config = {"populate_by_name": True}
