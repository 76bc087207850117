"""
Canonical Dropbox paths for accounting documents.

Layout under the storage root:
    /経理書類/請求書/2026年/03月/未処理/invoice.pdf
    /経理書類/契約書/contract.pdf   (contracts are not split by month or status)
"""

from datetime import date, datetime

from ..core.config import settings
from ..models.document import CONTRACT_TYPE, STATUS_UNPROCESSED


def build_document_path(
    doc_type: str,
    file_name: str,
    when: date,
    status: str = STATUS_UNPROCESSED,
    root: str | None = None,
) -> str:
    base = root if root is not None else settings.storage_root

    if doc_type == CONTRACT_TYPE:
        return f"{base}/{CONTRACT_TYPE}/{file_name}"

    year = f"{when.year:04d}年"
    month = f"{when.month:02d}月"
    return f"{base}/{doc_type}/{year}/{month}/{status}/{file_name}"


def file_name_from_path(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def parent_folder(path: str) -> str:
    """Folder part of a path, empty string for a bare file name"""
    if "/" not in path:
        return ""
    return path[: path.rfind("/")]


def reference_date(issue_date: str | None, created_at: str) -> date:
    """
    Date used to place a document in the month folders.

    The issue date wins when present. Otherwise the creation timestamp is
    converted to the local calendar day.
    """
    if issue_date:
        return date.fromisoformat(issue_date[:10])

    created = datetime.fromisoformat(created_at)
    if created.tzinfo is not None:
        created = created.astimezone()
    return created.date()
