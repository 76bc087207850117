"""
E-mail notifications sent to an owner's notify recipients.

Three independent notifications, each switched on by the owner's
notification_flags setting:
- due-date alert: unprocessed documents due within the next few days
- month summary: totals of the current month, sent near month end
- unapproved mail: attachments still waiting for approval
"""

import calendar
from datetime import date, timedelta
from html import escape
from typing import Protocol

from loguru import logger

from .setting_values import as_bool, as_dict
from .storage import AccountingStoreBase
from ..core.config import settings
from ..models.document import STATUS_PROCESSED, STATUS_UNPROCESSED, Document
from ..models.mail import PendingMailItem

DEFAULT_NOTIFICATION_FLAGS = {
    "due_date_notify": True,
    "month_end_notify": False,
    "unapproved_mail_notify": True,
}

NO_RECIPIENTS_MESSAGE = "通知先が設定されていません"
DONE_MESSAGE = "通知チェック完了"

_CELL = 'style="padding:8px 12px;border-bottom:1px solid #e4e4e7;"'


class Mailer(Protocol):
    async def send(self, to: list[str], subject: str, html: str) -> dict: ...


def format_yen(amount: float | None) -> str:
    if amount is None:
        return "-"
    return f"¥{amount:,.0f}"


def wrap_html(title: str, body: str) -> str:
    return (
        '<!DOCTYPE html><html lang="ja"><head><meta charset="UTF-8" />'
        f"<title>{escape(title)}</title></head>"
        '<body style="font-family:sans-serif;background-color:#f4f4f5;color:#18181b;">'
        '<h1 style="font-size:18px;">経理書類管理</h1>'
        f"{body}"
        '<p style="font-size:12px;color:#a1a1aa;">このメールは経理書類管理システムから自動送信されています。</p>'
        "</body></html>"
    )


def _table(headers: list[str], rows: list[list[str]]) -> str:
    head = "".join(f"<th {_CELL}>{h}</th>" for h in headers)
    body = "".join(
        "<tr>" + "".join(f"<td {_CELL}>{escape(cell)}</td>" for cell in row) + "</tr>"
        for row in rows
    )
    return f'<table style="border-collapse:collapse;font-size:14px;"><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>'


def build_due_date_alert_html(documents: list[Document]) -> str:
    rows = [[d.vendor_name, d.type, format_yen(d.amount), d.due_date or ""] for d in documents]
    body = (
        "<h2>支払期限が近い書類があります</h2>"
        f"<p>以下の書類の支払期限が{settings.due_alert_days}日以内に迫っています。ご確認ください。</p>"
        + _table(["取引先", "種別", "金額", "期限"], rows)
        + f"<p>合計 {len(documents)} 件</p>"
    )
    return wrap_html("支払期限アラート", body)


def summarize_month(documents: list[Document]) -> dict:
    breakdown: dict[str, dict] = {}
    for d in documents:
        entry = breakdown.setdefault(d.type, {"type": d.type, "count": 0, "amount": 0.0})
        entry["count"] += 1
        entry["amount"] += d.amount or 0

    return {
        "total_count": len(documents),
        "total_amount": sum(d.amount or 0 for d in documents),
        "pending_count": sum(1 for d in documents if d.status == STATUS_UNPROCESSED),
        "processed_count": sum(1 for d in documents if d.status == STATUS_PROCESSED),
        "type_breakdown": list(breakdown.values()),
    }


def build_month_summary_html(year: int, month: int, summary: dict) -> str:
    rows = [[t["type"], f"{t['count']}件", format_yen(t["amount"])] for t in summary["type_breakdown"]]
    body = (
        f"<h2>{year}年{month}月の書類まとめ</h2>"
        f"<p>登録数 {summary['total_count']} / 合計金額 {format_yen(summary['total_amount'])}"
        f" / 未処理 {summary['pending_count']} / 処理済み {summary['processed_count']}</p>"
    )
    if rows:
        body += "<h3>種別内訳</h3>" + _table(["種別", "件数", "金額"], rows)
    return wrap_html(f"{year}年{month}月 書類まとめ", body)


def build_unapproved_mail_html(items: list[PendingMailItem]) -> str:
    rows = [
        [i.file_name, i.sender, i.ai_type or "-", (i.received_at or "-")[:10]]
        for i in items
    ]
    body = (
        "<h2>未承認の添付ファイルがあります</h2>"
        "<p>メールから取り込んだ以下のファイルが承認待ちです。管理画面から確認してください。</p>"
        + _table(["ファイル名", "差出人", "AI判定", "受信日"], rows)
        + f"<p>合計 {len(items)} 件が承認待ちです。</p>"
    )
    return wrap_html("未承認メール通知", body)


def is_near_month_end(today: date) -> bool:
    """Last three days of the month"""
    return today.day >= calendar.monthrange(today.year, today.month)[1] - 2


def notification_flags(stored) -> dict[str, bool]:
    flags = as_dict(stored, {})
    return {
        key: as_bool(flags.get(key), default)
        for key, default in DEFAULT_NOTIFICATION_FLAGS.items()
    }


async def _send(mailer: Mailer, to: list[str], subject: str, html: str, count: int, kind: str) -> dict:
    result = await mailer.send(to, subject, html)
    if not result.get("success"):
        logger.warning("Notification not sent", kind=kind, error=result.get("error"))
    return {"sent": bool(result.get("success")), "count": count, "error": result.get("error")}


async def run_notifications(
    store: AccountingStoreBase,
    mailer: Mailer,
    owner_id: str,
    today: date,
) -> dict:
    """
    Check and send every enabled notification for one owner.

    Returns:
        {"message": str, "results": {name: {"sent", "count", "error"}}}
    """
    flags = notification_flags(store.get_setting(owner_id, "notification_flags"))
    recipients = [c.email for c in store.list_contacts(owner_id, "notify_recipients")]
    if not recipients:
        return {"message": NO_RECIPIENTS_MESSAGE, "results": {}}

    results: dict[str, dict] = {}

    if flags["due_date_notify"]:
        until = today + timedelta(days=settings.due_alert_days)
        due = store.find_documents_due_between(owner_id, STATUS_UNPROCESSED, today.isoformat(), until.isoformat())
        if due:
            results["due_date"] = await _send(
                mailer, recipients,
                f"【経理書類管理】支払期限アラート（{len(due)}件）",
                build_due_date_alert_html(due),
                len(due), "due_date",
            )
        else:
            results["due_date"] = {"sent": False, "count": 0, "error": None}

    if flags["month_end_notify"]:
        if is_near_month_end(today):
            last_day = calendar.monthrange(today.year, today.month)[1]
            documents = store.find_documents_created_between(
                owner_id,
                f"{today.year:04d}-{today.month:02d}-01",
                f"{today.year:04d}-{today.month:02d}-{last_day:02d}T23:59:59",
            )
            summary = summarize_month(documents)
            results["month_summary"] = await _send(
                mailer, recipients,
                f"【経理書類管理】{today.year}年{today.month}月の書類まとめ",
                build_month_summary_html(today.year, today.month, summary),
                summary["total_count"], "month_summary",
            )
        else:
            results["month_summary"] = {"sent": False, "count": 0, "error": None}

    if flags["unapproved_mail_notify"]:
        pending = store.list_mail_items(owner_id, status="pending")
        if pending:
            results["unapproved_mail"] = await _send(
                mailer, recipients,
                f"【経理書類管理】未承認の添付ファイル（{len(pending)}件）",
                build_unapproved_mail_html(pending),
                len(pending), "unapproved_mail",
            )
        else:
            results["unapproved_mail"] = {"sent": False, "count": 0, "error": None}

    logger.info("Notification check finished", owner_id=owner_id, sent=[k for k, v in results.items() if v["sent"]])
    return {"message": DONE_MESSAGE, "results": results}
