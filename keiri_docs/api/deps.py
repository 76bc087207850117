from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from ..services.dropbox_client import FileStorage, get_file_storage
from ..services.errors import KeiriDocsError, NotFound, ProtectedDocumentType, StorageError, ValidationFailed
from ..services.events.event_publisher import EventPublisher, get_event_publisher
from ..services.gemini_ocr import GeminiDocumentAnalyzer, get_document_analyzer
from ..services.gmail_client import GmailClient
from ..services.resend_client import ResendClient, get_mailer
from ..services.storage import AccountingStoreBase, get_store
from ..models.settings import UserRole


@dataclass
class CurrentUser:
    id: str
    role: UserRole


# Collaborators are resolved through these functions so tests can swap
# them with app.dependency_overrides.

def store_dependency() -> AccountingStoreBase:
    return get_store()


def storage_dependency() -> FileStorage:
    return get_file_storage()


def analyzer_dependency() -> GeminiDocumentAnalyzer:
    return get_document_analyzer()


def mailer_dependency() -> ResendClient:
    return get_mailer()


def gmail_dependency() -> GmailClient:
    return GmailClient()


def publisher_dependency() -> EventPublisher:
    return get_event_publisher()


def get_current_user(
    x_user_id: str | None = Header(default=None),
    store: AccountingStoreBase = Depends(store_dependency),
) -> CurrentUser:
    """Caller identity, set by the fronting gateway after authentication"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="認証が必要です")
    return CurrentUser(id=x_user_id, role=store.get_user_role(x_user_id))


def require_roles(*roles: str):
    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="この操作を行う権限がありません")
        return user
    return checker


def to_http_exception(error: KeiriDocsError) -> HTTPException:
    """Map a domain error onto its HTTP status"""
    if isinstance(error, ValidationFailed):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ProtectedDocumentType):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, StorageError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
