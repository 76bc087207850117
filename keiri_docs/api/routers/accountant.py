from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException
from loguru import logger
from pydantic import BaseModel

from ..deps import (
    CurrentUser,
    publisher_dependency,
    require_roles,
    storage_dependency,
    store_dependency,
    to_http_exception,
)
from ...core.config import settings
from ...services.accountant_export import (
    ExportResult,
    build_export,
    previous_month,
    resolve_export_types,
    run_monthly_exports,
)
from ...services.dropbox_client import FileStorage
from ...services.errors import KeiriDocsError
from ...services.events.event_publisher import AccountantExportEvent, EventPublisher
from ...services.storage import AccountingStoreBase

router = APIRouter(tags=["accountant"])


class ExportRequest(BaseModel):
    """Request body for /accountant/export"""
    target_month: str | None = None  # YYYY-MM, defaults to the previous month
    doc_types: list[str] | None = None


def _publish_export(publisher: EventPublisher, owner_id: str, result: ExportResult):
    if not result.results:
        return
    try:
        publisher.publish(AccountantExportEvent(
            owner_id=owner_id,
            target_month=result.target_month,
            total_count=result.total_count,
            total_amount=result.total_amount,
            folder_path=result.folder_path,
            csv_path=result.csv_path,
        ))
    except Exception as e:
        logger.warning(f"Failed to publish event: {e}")


@router.post("/accountant/export", response_model=ExportResult)
async def export_for_accountant(
    req: ExportRequest,
    user: CurrentUser = Depends(require_roles("admin", "staff")),
    store: AccountingStoreBase = Depends(store_dependency),
    storage: FileStorage = Depends(storage_dependency),
    publisher: EventPublisher = Depends(publisher_dependency),
):
    """
    Copy one month of documents into the accountant hand-off folder.

    Example request:
    {
        "target_month": "2026-09",
        "doc_types": ["請求書", "領収書"]
    }
    """
    target_month = req.target_month or previous_month(date.today())
    types = resolve_export_types(req.doc_types, store.get_setting(user.id, "accountant_doc_types"))

    try:
        result = await build_export(store, storage, user.id, target_month, types)
    except KeiriDocsError as e:
        raise to_http_exception(e)

    _publish_export(publisher, user.id, result)
    return result


@router.get("/cron/accountant")
async def scheduled_export(
    authorization: str | None = Header(default=None),
    store: AccountingStoreBase = Depends(store_dependency),
    storage: FileStorage = Depends(storage_dependency),
):
    """Monthly trigger: exports the previous month for every opted-in owner"""
    if not settings.cron_secret or authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")

    target_month, processed = await run_monthly_exports(store, storage, date.today())
    return {"target_month": target_month, "processed": len(processed), "owner_ids": processed}
