"""
Domain errors raised by the services layer.

Routers translate these into HTTP responses; services never build
HTTP responses themselves.
"""


class KeiriDocsError(Exception):
    """Base class for domain errors"""


class ValidationFailed(KeiriDocsError):
    """Request data rejected before any side effect"""


class NotFound(KeiriDocsError):
    """Row does not exist for the calling owner"""


class NoPendingItems(NotFound):
    """None of the requested mail items is still pending"""


class InvalidTargetMonth(ValidationFailed):
    """Export month is not a valid YYYY-MM string"""


class ProtectedDocumentType(KeiriDocsError):
    """Built-in document types cannot be renamed or deleted"""


class StorageError(KeiriDocsError):
    """Dropbox request failed"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
