"""
Gmail inbox reader for e-mailed invoices and receipts.

Uses the Gmail REST API with an OAuth2 refresh token. Only unread messages
with attachments from allowed senders are collected, and each collected
message is marked read so it is not ingested twice.
"""

import re
from datetime import datetime, UTC
from email.utils import parsedate_to_datetime

import httpx
from loguru import logger

from ..core.config import settings
from ..models.mail import FetchedMail, MailAttachment

TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

ALLOWED_ATTACHMENT_TYPES = ["application/pdf", "image/jpeg", "image/jpg", "image/png"]

_ADDRESS = re.compile(r"<([^>]+)>")
_DISPLAY_NAME = re.compile(r'^"?([^"<]+)"?\s*<')


def extract_email(from_header: str) -> str:
    """'田中太郎 <tanaka@example.com>' -> 'tanaka@example.com'"""
    match = _ADDRESS.search(from_header)
    return match.group(1) if match else from_header.strip()


def extract_name(from_header: str) -> str:
    """'田中太郎 <tanaka@example.com>' -> '田中太郎'"""
    match = _DISPLAY_NAME.match(from_header)
    return match.group(1).strip() if match else ""


def to_standard_base64(data: str) -> str:
    # Gmail returns URL-safe base64
    return data.replace("-", "+").replace("_", "/")


def _header(headers: list[dict], name: str) -> str:
    for h in headers:
        if (h.get("name") or "").lower() == name:
            return h.get("value") or ""
    return ""


def _received_at(date_header: str) -> str:
    if date_header:
        try:
            return parsedate_to_datetime(date_header).astimezone(UTC).isoformat()
        except (TypeError, ValueError):
            logger.warning(f"Unparseable Date header: {date_header!r}")
    return datetime.now(UTC).isoformat()


class GmailClient:

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        max_fetch: int | None = None,
        timeout: float = 30,
    ):
        self.client_id = client_id or settings.gmail_client_id
        self.client_secret = client_secret or settings.gmail_client_secret
        self.refresh_token = refresh_token or settings.gmail_refresh_token
        self.max_fetch = max_fetch or settings.gmail_max_fetch
        self.timeout = timeout

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        r = await client.post(TOKEN_URL, data={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
        })
        r.raise_for_status()
        return r.json()["access_token"]

    async def _collect_attachments(
        self,
        client: httpx.AsyncClient,
        message_id: str,
        payload: dict | None,
    ) -> list[MailAttachment]:
        attachments: list[MailAttachment] = []
        if not payload:
            return attachments

        for part in payload.get("parts") or [payload]:
            if part.get("parts"):
                attachments.extend(await self._collect_attachments(client, message_id, part))
                continue

            mime_type = part.get("mimeType") or ""
            file_name = part.get("filename") or ""
            attachment_id = (part.get("body") or {}).get("attachmentId")

            if not file_name or not attachment_id:
                continue
            if mime_type.lower() not in ALLOWED_ATTACHMENT_TYPES:
                continue

            r = await client.get(f"{GMAIL_URL}/messages/{message_id}/attachments/{attachment_id}")
            r.raise_for_status()
            body = r.json()
            attachments.append(MailAttachment(
                file_name=file_name,
                mime_type=mime_type,
                base64_data=to_standard_base64(body.get("data") or ""),
                size=body.get("size") or 0,
            ))

        return attachments

    async def fetch_unread_with_attachments(self, allowed_emails: list[str]) -> list[FetchedMail]:
        """
        Unread messages with PDF/image attachments from allowed senders.

        Raises:
            httpx.HTTPError: OAuth or Gmail API failure
        """
        allowed = {e.lower() for e in allowed_emails}
        results: list[FetchedMail] = []

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            client.headers["Authorization"] = f"Bearer {await self._access_token(client)}"

            r = await client.get(
                f"{GMAIL_URL}/messages",
                params={"q": "is:unread has:attachment", "maxResults": self.max_fetch},
            )
            r.raise_for_status()
            messages = r.json().get("messages") or []

            for message in messages:
                message_id = message.get("id")
                if not message_id:
                    continue

                r = await client.get(f"{GMAIL_URL}/messages/{message_id}")
                r.raise_for_status()
                payload = r.json().get("payload") or {}
                headers = payload.get("headers") or []

                from_header = _header(headers, "from")
                sender_email = extract_email(from_header)
                if sender_email.lower() not in allowed:
                    continue

                attachments = await self._collect_attachments(client, message_id, payload)
                if not attachments:
                    continue

                r = await client.post(
                    f"{GMAIL_URL}/messages/{message_id}/modify",
                    json={"removeLabelIds": ["UNREAD"]},
                )
                r.raise_for_status()

                results.append(FetchedMail(
                    message_id=message_id,
                    sender=extract_name(from_header) or sender_email,
                    sender_email=sender_email,
                    subject=_header(headers, "subject"),
                    received_at=_received_at(_header(headers, "date")),
                    attachments=attachments,
                ))

        logger.info("Fetched mails from Gmail", candidates=len(messages), accepted=len(results))
        return results
