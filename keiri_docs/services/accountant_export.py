"""
Monthly hand-off folder for the external accountant (税理士提出).

Copies every document of the selected types issued in the target month
into /経理書類/税理士提出/<YYYY>年/<MM>月/<type>/ and writes a CSV summary
next to them. Copy and CSV failures are logged and skipped; amounts are
summed over every matched document regardless of copy success.
"""

import calendar
import re
from datetime import date
from typing import Any

from loguru import logger
from pydantic import BaseModel

from .document_paths import file_name_from_path
from .dropbox_client import FileStorage
from .errors import InvalidTargetMonth
from .setting_values import as_bool, as_str_list
from .storage import AccountingStoreBase
from ..core.config import settings
from ..models.document import Document

DEFAULT_EXPORT_TYPES = [
    "請求書",
    "領収書",
    "売り上げ記録",
    "自動精算機の売上表",
    "社会保険料",
    "医薬品仕入",
]

CSV_HEADER = "種別,取引先,金額,発行日,ファイル名"
NO_DOCUMENTS_MESSAGE = "対象月の書類が見つかりませんでした"

_MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


class TypeSummary(BaseModel):
    type: str
    count: int
    total_amount: float


class ExportResult(BaseModel):
    target_month: str
    results: list[TypeSummary] = []
    total_count: int = 0
    total_amount: float = 0
    folder_path: str | None = None
    csv_path: str | None = None
    message: str | None = None


def parse_target_month(target_month: str) -> tuple[int, int]:
    """
    Validate a YYYY-MM string.

    Raises:
        InvalidTargetMonth: wrong format or month outside 01-12
    """
    if not isinstance(target_month, str) or not _MONTH_PATTERN.match(target_month):
        raise InvalidTargetMonth("target_month must be in YYYY-MM format")

    year, month = (int(part) for part in target_month.split("-"))
    if not 1 <= month <= 12:
        raise InvalidTargetMonth("target_month must be in YYYY-MM format")
    return year, month


def month_date_range(year: int, month: int) -> tuple[str, str]:
    """First and last day of the month as ISO dates (leap years included)"""
    last_day = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last_day:02d}"


def previous_month(today: date) -> str:
    if today.month == 1:
        return f"{today.year - 1:04d}-12"
    return f"{today.year:04d}-{today.month - 1:02d}"


def export_folder(year: int, month: int, root: str | None = None) -> str:
    base = root if root is not None else settings.storage_root
    return f"{base}/税理士提出/{year:04d}年/{month:02d}月"


def resolve_export_types(requested: list[str] | None, stored_setting: Any) -> list[str]:
    """Request list, else the owner's accountant_doc_types setting, else the defaults"""
    if requested:
        return requested
    stored = as_str_list(stored_setting)
    if stored is not None:
        return stored
    return list(DEFAULT_EXPORT_TYPES)


def escape_csv_field(value: str) -> str:
    if "," in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def format_amount(amount: float | None) -> str:
    if amount is None:
        return ""
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def csv_row(document: Document, file_name: str) -> str:
    return ",".join([
        escape_csv_field(document.type),
        escape_csv_field(document.vendor_name),
        format_amount(document.amount),
        document.issue_date or "",
        escape_csv_field(file_name),
    ])


def build_csv(rows: list[str]) -> str:
    return "\n".join([CSV_HEADER, *rows])


def group_by_type(documents: list[Document]) -> dict[str, list[Document]]:
    groups: dict[str, list[Document]] = {}
    for document in documents:
        groups.setdefault(document.type, []).append(document)
    return groups


async def build_export(
    store: AccountingStoreBase,
    storage: FileStorage,
    owner_id: str,
    target_month: str,
    types: list[str],
) -> ExportResult:
    """
    Build the accountant folder for one owner and month.

    Raises:
        InvalidTargetMonth: before any query or Dropbox call
    """
    year, month = parse_target_month(target_month)
    date_from, date_to = month_date_range(year, month)

    documents = store.find_documents_by_issue_date(owner_id, types, date_from, date_to)
    if not documents:
        logger.info("No documents to export", owner_id=owner_id, target_month=target_month)
        return ExportResult(target_month=target_month, message=NO_DOCUMENTS_MESSAGE)

    base_path = export_folder(year, month)
    await storage.ensure_folder(base_path)

    summaries: list[TypeSummary] = []
    rows: list[str] = []

    for doc_type, group in group_by_type(documents).items():
        type_folder = f"{base_path}/{doc_type}"
        await storage.ensure_folder(type_folder)

        copied = 0
        type_amount = 0.0

        for document in group:
            if document.storage_path:
                file_name = file_name_from_path(document.storage_path) or f"{document.vendor_name}.pdf"
                try:
                    await storage.copy(document.storage_path, f"{type_folder}/{file_name}")
                    copied += 1
                    rows.append(csv_row(document, file_name))
                except Exception as e:
                    logger.error(f"Copy failed for document {document.id}: {e}")

            type_amount += document.amount or 0

        summaries.append(TypeSummary(type=doc_type, count=copied, total_amount=type_amount))

    csv_path = None
    if rows:
        path = f"{base_path}/提出書類一覧_{month:02d}月.csv"
        try:
            await storage.upload_csv(path, build_csv(rows))
            csv_path = path
        except Exception as e:
            logger.error(f"Failed to write export CSV {path}: {e}")

    result = ExportResult(
        target_month=target_month,
        results=summaries,
        total_count=sum(s.count for s in summaries),
        total_amount=sum(s.total_amount for s in summaries),
        folder_path=base_path,
        csv_path=csv_path,
    )
    logger.info(
        "Accountant export finished",
        owner_id=owner_id,
        target_month=target_month,
        total_count=result.total_count,
        total_amount=result.total_amount,
    )
    return result


async def run_monthly_exports(
    store: AccountingStoreBase,
    storage: FileStorage,
    today: date,
) -> tuple[str, list[str]]:
    """
    Scheduled export of the previous month for every owner who enabled it.

    Owners are processed one after another; a failing owner is logged and
    skipped.

    Returns:
        (target month, ids of owners whose export ran)
    """
    target_month = previous_month(today)
    processed = []

    for owner_id, enabled in store.owners_with_setting("accountant_auto_enabled"):
        if not as_bool(enabled):
            continue

        types = resolve_export_types(None, store.get_setting(owner_id, "accountant_doc_types"))
        try:
            result = await build_export(store, storage, owner_id, target_month, types)
        except Exception as e:
            logger.error(f"Scheduled export failed for owner {owner_id}: {e}")
            continue

        if result.results:
            processed.append(owner_id)

    logger.info("Scheduled accountant export finished", target_month=target_month, processed=len(processed))
    return target_month, processed
