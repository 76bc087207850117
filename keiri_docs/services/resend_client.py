import httpx
from loguru import logger

from ..core.config import settings

RESEND_URL = "https://api.resend.com/emails"


class ResendClient:
    """
    Transactional e-mail through the Resend REST API.

    send() never raises: a missing key or an HTTP failure is reported in the
    returned dict so one failed notification does not abort the others.
    """

    def __init__(self, api_key: str | None = None, from_email: str | None = None, timeout: float = 10):
        self.api_key = api_key or settings.resend_api_key
        self.from_email = from_email or settings.resend_from_email
        self.timeout = timeout

    async def send(self, to: list[str], subject: str, html: str) -> dict:
        if not self.api_key:
            return {"success": False, "error": "RESEND_API_KEY が設定されていません"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(
                    RESEND_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.from_email, "to": to, "subject": subject, "html": html},
                )
        except httpx.HTTPError as e:
            logger.error(f"Resend request failed: {e}")
            return {"success": False, "error": str(e) or "メール送信に失敗しました"}

        if r.status_code >= 400:
            logger.error("Resend rejected message", status_code=r.status_code, subject=subject)
            return {"success": False, "error": f"Resend error {r.status_code}: {r.text[:200]}"}

        return {"success": True, "error": None}


_default_mailer: ResendClient | None = None


def get_mailer() -> ResendClient:
    global _default_mailer
    if _default_mailer is None:
        _default_mailer = ResendClient()
    return _default_mailer
