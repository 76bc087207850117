"""
Approve or reject e-mail attachments waiting in the intake queue.

pending -> approved and pending -> rejected are the only transitions.
Approval is a best-effort batch: every item is processed on its own, a
failure is recorded in the report and the loop moves on. Only items whose
document row was created are marked approved, so failed items stay
pending and can be retried.
"""

from datetime import datetime
from typing import Literal, Protocol

from loguru import logger
from pydantic import BaseModel

from .document_paths import build_document_path
from .dropbox_client import FileStorage
from .errors import NoPendingItems
from .ocr_types import OcrResult
from .storage import AccountingStoreBase
from ..models.document import DEFAULT_DOCUMENT_TYPE, STATUS_UNPROCESSED, Document
from ..models.mail import PendingMailItem


class DocumentAnalyzer(Protocol):
    async def analyze(self, base64_data: str, mime_type: str) -> OcrResult:
        ...


class ReanalysisPayload(BaseModel):
    """File content sent along with an approval to re-run OCR"""
    base64_data: str
    mime_type: str


class ItemOutcome(BaseModel):
    mail_item_id: str
    file_name: str
    status: Literal["approved", "skipped", "failed"]
    reason: str | None = None
    document_id: str | None = None
    storage_path: str | None = None


class ApprovalReport(BaseModel):
    requested: int
    approved: int
    outcomes: list[ItemOutcome]

    @property
    def documents(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.status == "approved"]


def resolve_document_type(
    override_type: str | None,
    fresh_type: str | None,
    stored_ai_type: str | None,
) -> str:
    """
    Explicit override > fresh re-analysis > type guessed at intake > 請求書.

    A blank string counts as unset at every level.
    """
    return override_type or fresh_type or stored_ai_type or DEFAULT_DOCUMENT_TYPE


def reject_mail_items(store: AccountingStoreBase, owner_id: str, ids: list[str]) -> int:
    """
    Reject pending items. Ids that are unknown or already decided are ignored.

    Returns:
        Number of items moved to rejected
    """
    count = store.decide_mail_items(owner_id, ids, "rejected")
    logger.info("Mail items rejected", owner_id=owner_id, requested=len(ids), rejected=count)
    return count


def _document_values(item: PendingMailItem, doc_type: str, storage_path: str, fresh: OcrResult | None) -> dict:
    return {
        "type": doc_type,
        "vendor_name": (fresh.vendor_name if fresh else "") or item.sender,
        "amount": fresh.amount if fresh else None,
        "issue_date": fresh.issue_date if fresh else None,
        "due_date": fresh.due_date if fresh else None,
        "description": fresh.description if fresh and fresh.description is not None else f"メール添付: {item.file_name}",
        "input_method": "email",
        "status": STATUS_UNPROCESSED,
        "storage_path": storage_path,
        "ocr_raw": fresh.model_dump() if fresh else None,
    }


async def _approve_item(
    store: AccountingStoreBase,
    storage: FileStorage,
    analyzer: DocumentAnalyzer,
    owner_id: str,
    item: PendingMailItem,
    override_type: str | None,
    reanalysis: ReanalysisPayload | None,
) -> ItemOutcome:
    if not item.temp_path:
        logger.warning("Mail item has no temporary file, skipping", mail_item_id=item.id)
        return ItemOutcome(mail_item_id=item.id, file_name=item.file_name, status="skipped", reason="no temporary file")

    fresh: OcrResult | None = None
    if reanalysis is not None:
        fresh = await analyzer.analyze(reanalysis.base64_data, reanalysis.mime_type)

    doc_type = resolve_document_type(override_type, fresh.type if fresh else None, item.ai_type)
    destination = build_document_path(doc_type, item.file_name, datetime.now(), STATUS_UNPROCESSED)

    try:
        stored_path = await storage.move(item.temp_path, destination)
    except Exception as e:
        # The document is still registered, pointing at the temporary file
        logger.error(f"Dropbox move failed for mail item {item.id}, keeping temp path: {e}")
        stored_path = item.temp_path

    try:
        document: Document = store.create_document(owner_id, _document_values(item, doc_type, stored_path, fresh))
    except Exception as e:
        logger.error(f"Failed to register document for mail item {item.id}: {e}")
        return ItemOutcome(
            mail_item_id=item.id,
            file_name=item.file_name,
            status="failed",
            reason=str(e),
            storage_path=stored_path,
        )

    return ItemOutcome(
        mail_item_id=item.id,
        file_name=item.file_name,
        status="approved",
        document_id=document.id,
        storage_path=stored_path,
    )


async def approve_mail_items(
    store: AccountingStoreBase,
    storage: FileStorage,
    analyzer: DocumentAnalyzer,
    owner_id: str,
    ids: list[str],
    override_type: str | None = None,
    reanalysis: ReanalysisPayload | None = None,
) -> ApprovalReport:
    """
    Turn pending mail attachments into documents.

    Items are processed sequentially in creation order. Each approved item
    is moved from the temporary folder to its canonical path and registered
    as an e-mail document.

    Raises:
        NoPendingItems: none of the ids refers to a pending item of this owner
    """
    items = store.get_pending_mail_items(owner_id, ids)
    if not items:
        raise NoPendingItems("No pending mail items to approve")

    outcomes = []
    for item in items:
        outcomes.append(await _approve_item(store, storage, analyzer, owner_id, item, override_type, reanalysis))

    approved_ids = [o.mail_item_id for o in outcomes if o.status == "approved"]
    if approved_ids:
        store.decide_mail_items(owner_id, approved_ids, "approved")

    logger.info(
        "Mail approval finished",
        owner_id=owner_id,
        requested=len(ids),
        approved=len(approved_ids),
        failed=sum(1 for o in outcomes if o.status == "failed"),
    )
    return ApprovalReport(requested=len(ids), approved=len(approved_ids), outcomes=outcomes)
