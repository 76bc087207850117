"""
Abstract base class for the accounting data store.

Defines the interface the services depend on, so that the SQLite
implementation can be swapped for PostgreSQL (or a test double) without
touching business logic. Every method is scoped by owner: one owner never
sees another owner's rows.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ...models.document import Document
from ...models.mail import PendingMailItem
from ...models.settings import ClassificationRule, ContactEntry, DocumentTypeDefinition


class AccountingStoreBase(ABC):

    # ---------- documents ----------

    @abstractmethod
    def create_document(self, owner_id: str, data: dict) -> Document:
        """
        Insert a document and return the stored row.

        Args:
            owner_id: Owning user
            data: Column values (type, vendor_name, input_method required)
        """
        pass

    @abstractmethod
    def get_document(self, owner_id: str, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    def list_documents(
        self,
        owner_id: str,
        status: str | None = None,
        doc_type: str | None = None,
        search: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        sort: str = "created_at",
        direction: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Document], int]:
        """
        Filtered, sorted page of documents.

        Returns:
            (rows of the requested page, total number of matching rows)
        """
        pass

    @abstractmethod
    def update_document(self, owner_id: str, document_id: str, changes: dict) -> Optional[Document]:
        """Apply changes, touch updated_at and return the new row (None if not found)"""
        pass

    @abstractmethod
    def delete_document(self, owner_id: str, document_id: str) -> bool:
        pass

    @abstractmethod
    def find_documents_by_issue_date(
        self,
        owner_id: str,
        types: list[str],
        date_from: str,
        date_to: str,
    ) -> list[Document]:
        """Documents of the given types issued in [date_from, date_to], ordered by type then issue date"""
        pass

    @abstractmethod
    def find_documents_due_between(self, owner_id: str, status: str, date_from: str, date_to: str) -> list[Document]:
        pass

    @abstractmethod
    def find_documents_created_between(self, owner_id: str, start: str, end: str) -> list[Document]:
        pass

    # ---------- mail intake ----------

    @abstractmethod
    def create_mail_item(self, owner_id: str, data: dict) -> PendingMailItem:
        pass

    @abstractmethod
    def list_mail_items(self, owner_id: str, status: str | None = None) -> list[PendingMailItem]:
        pass

    @abstractmethod
    def get_pending_mail_items(self, owner_id: str, ids: list[str]) -> list[PendingMailItem]:
        """Requested items that are still pending, in creation order"""
        pass

    @abstractmethod
    def decide_mail_items(self, owner_id: str, ids: list[str], status: str) -> int:
        """
        Move pending items to a terminal status.

        Items that are no longer pending are not touched.

        Returns:
            Number of rows changed
        """
        pass

    # ---------- classification rules ----------

    @abstractmethod
    def list_rules(self, owner_id: str) -> list[ClassificationRule]:
        pass

    @abstractmethod
    def create_rule(self, owner_id: str, data: dict) -> ClassificationRule:
        pass

    @abstractmethod
    def update_rule(self, owner_id: str, rule_id: str, changes: dict) -> Optional[ClassificationRule]:
        pass

    @abstractmethod
    def delete_rule(self, owner_id: str, rule_id: str) -> bool:
        pass

    # ---------- document types ----------

    @abstractmethod
    def list_document_types(self, owner_id: str) -> list[DocumentTypeDefinition]:
        pass

    @abstractmethod
    def get_document_type(self, owner_id: str, type_id: str) -> Optional[DocumentTypeDefinition]:
        pass

    @abstractmethod
    def create_document_type(self, owner_id: str, data: dict) -> DocumentTypeDefinition:
        pass

    @abstractmethod
    def update_document_type(self, owner_id: str, type_id: str, changes: dict) -> Optional[DocumentTypeDefinition]:
        pass

    @abstractmethod
    def delete_document_type(self, owner_id: str, type_id: str) -> bool:
        pass

    # ---------- settings ----------

    @abstractmethod
    def get_setting(self, owner_id: str, key: str) -> Any:
        """Stored JSON value, or None when the key is not set"""
        pass

    @abstractmethod
    def set_setting(self, owner_id: str, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def list_settings(self, owner_id: str) -> dict[str, Any]:
        pass

    @abstractmethod
    def owners_with_setting(self, key: str) -> list[tuple[str, Any]]:
        """(owner_id, value) for every owner that stored the key"""
        pass

    # ---------- contacts and roles ----------

    @abstractmethod
    def list_contacts(self, owner_id: str, kind: str) -> list[ContactEntry]:
        """kind is 'allowed_senders' or 'notify_recipients'"""
        pass

    @abstractmethod
    def add_contact(self, owner_id: str, kind: str, email: str, display_name: str | None = None) -> ContactEntry:
        pass

    @abstractmethod
    def delete_contact(self, owner_id: str, kind: str, contact_id: str) -> bool:
        pass

    @abstractmethod
    def get_user_role(self, user_id: str) -> str:
        """Role of the user; users without a row are 'staff'"""
        pass

    @abstractmethod
    def set_user_role(self, user_id: str, role: str) -> None:
        pass
