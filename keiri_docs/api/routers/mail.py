import httpx
from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from ..deps import (
    CurrentUser,
    analyzer_dependency,
    get_current_user,
    gmail_dependency,
    publisher_dependency,
    storage_dependency,
    store_dependency,
    to_http_exception,
)
from ...models.mail import MailDecisionRequest, PendingMailItem
from ...services.dropbox_client import FileStorage
from ...services.errors import KeiriDocsError, ValidationFailed
from ...services.events.event_publisher import EventPublisher, MailItemsApprovedEvent
from ...services.gemini_ocr import GeminiDocumentAnalyzer
from ...services.gmail_client import GmailClient
from ...services.mail_approval import ReanalysisPayload, approve_mail_items, reject_mail_items
from ...services.mail_intake import ingest_mails
from ...services.storage import AccountingStoreBase

router = APIRouter(prefix="/mail", tags=["mail"])


@router.get("/pending", response_model=list[PendingMailItem])
async def list_pending(
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    return store.list_mail_items(user.id, status="pending")


@router.post("/fetch")
async def fetch_mail(
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
    storage: FileStorage = Depends(storage_dependency),
    analyzer: GeminiDocumentAnalyzer = Depends(analyzer_dependency),
    gmail: GmailClient = Depends(gmail_dependency),
):
    """Pull unread attachments from allowed senders into the approval queue"""
    try:
        allowed = [c.email for c in store.list_contacts(user.id, "allowed_senders")]
        if not allowed:
            raise ValidationFailed("許可された送信元が設定されていません")

        try:
            mails = await gmail.fetch_unread_with_attachments(allowed)
        except httpx.HTTPError as e:
            logger.error(f"Gmail fetch failed: {e}")
            raise HTTPException(status_code=502, detail="メールの取得に失敗しました")

        staged = await ingest_mails(store, storage, analyzer, user.id, mails)
    except KeiriDocsError as e:
        raise to_http_exception(e)

    return {"fetched": len(mails), "staged": len(staged), "items": staged}


@router.post("/decide")
async def decide(
    req: MailDecisionRequest,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
    storage: FileStorage = Depends(storage_dependency),
    analyzer: GeminiDocumentAnalyzer = Depends(analyzer_dependency),
    publisher: EventPublisher = Depends(publisher_dependency),
):
    """
    Approve or reject pending attachments.

    Approve accepts an optional type override and optional file content
    (base64 + mimeType) to re-run OCR before registering the documents.

    Example request:
    {
        "action": "approve",
        "ids": ["5b0f..."],
        "type": "領収書"
    }
    """
    if req.action == "reject":
        count = reject_mail_items(store, user.id, req.ids)
        return {"action": "reject", "count": count}

    reanalysis = None
    if req.base64 and req.mime_type:
        reanalysis = ReanalysisPayload(base64_data=req.base64, mime_type=req.mime_type)

    try:
        report = await approve_mail_items(
            store, storage, analyzer, user.id, req.ids,
            override_type=req.type,
            reanalysis=reanalysis,
        )
    except KeiriDocsError as e:
        raise to_http_exception(e)

    try:
        publisher.publish(MailItemsApprovedEvent(
            owner_id=user.id,
            requested=report.requested,
            approved=report.approved,
            document_ids=[o.document_id for o in report.documents],
        ))
    except Exception as e:
        # Don't fail the approval if event publishing fails
        logger.warning(f"Failed to publish event: {e}")

    return {
        "action": "approve",
        "requested": report.requested,
        "approved": report.approved,
        "outcomes": [o.model_dump() for o in report.outcomes],
    }
