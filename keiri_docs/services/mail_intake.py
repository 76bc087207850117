"""
Stage fetched e-mail attachments for human approval.
"""

import base64

from loguru import logger

from .dropbox_client import FileStorage
from .mail_approval import DocumentAnalyzer
from .storage import AccountingStoreBase
from ..core.config import settings
from ..models.mail import FetchedMail, PendingMailItem

ANALYZABLE_TYPES = ("application/pdf",)


def temp_folder(root: str | None = None) -> str:
    base = root if root is not None else settings.storage_root
    return f"{base}/一時保存"


def _should_analyze(mime_type: str) -> bool:
    return mime_type.startswith("image/") or mime_type in ANALYZABLE_TYPES


async def ingest_mails(
    store: AccountingStoreBase,
    storage: FileStorage,
    analyzer: DocumentAnalyzer,
    owner_id: str,
    mails: list[FetchedMail],
) -> list[PendingMailItem]:
    """
    Upload every attachment to the temporary folder and queue it as pending.

    The AI guess (type and confidence) is stored with the item so the
    approval screen can pre-select a type. An attachment whose upload or
    insert fails is logged and skipped.
    """
    staged: list[PendingMailItem] = []

    for mail in mails:
        for attachment in mail.attachments:
            try:
                uploaded = await storage.upload(
                    f"{temp_folder()}/{attachment.file_name}",
                    base64.b64decode(attachment.base64_data),
                )
            except Exception as e:
                logger.error(f"Failed to stage attachment {attachment.file_name} from {mail.sender_email}: {e}")
                continue

            ai_type = None
            ai_confidence = None
            if _should_analyze(attachment.mime_type):
                ocr = await analyzer.analyze(attachment.base64_data, attachment.mime_type)
                ai_type = ocr.type
                ai_confidence = ocr.confidence

            try:
                item = store.create_mail_item(owner_id, {
                    "file_name": attachment.file_name,
                    "sender": mail.sender,
                    "received_at": mail.received_at,
                    "ai_type": ai_type,
                    "ai_confidence": ai_confidence,
                    "temp_path": uploaded,
                })
            except Exception as e:
                logger.error(f"Failed to queue attachment {attachment.file_name}: {e}")
                continue

            staged.append(item)

    logger.info("Mail intake finished", owner_id=owner_id, mails=len(mails), staged=len(staged))
    return staged
