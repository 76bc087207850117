"""
Document type taxonomy: built-in types merged with the owner's own rows.
"""

from .errors import NotFound, ProtectedDocumentType, ValidationFailed
from .storage import AccountingStoreBase
from ..models.document import BUILTIN_DOCUMENT_TYPES
from ..models.settings import DocumentTypeDefinition


def merge_document_types(stored: list[DocumentTypeDefinition]) -> list[DocumentTypeDefinition]:
    """
    Built-in types plus the owner's rows, deduplicated by name.

    A stored row with a built-in name keeps its settings (folder, icon,
    order) but is always flagged as default.
    """
    merged: dict[str, DocumentTypeDefinition] = {}

    for index, name in enumerate(BUILTIN_DOCUMENT_TYPES):
        merged[name] = DocumentTypeDefinition(name=name, sort_order=index, is_default=True)

    for row in stored:
        if row.name in merged:
            merged[row.name] = row.model_copy(update={"is_default": True})
        else:
            merged[row.name] = row

    # sorted() is stable: equal sort_order keeps built-ins first, then stored order
    return sorted(merged.values(), key=lambda t: t.sort_order)


def document_type_names(store: AccountingStoreBase, owner_id: str) -> list[str]:
    return [t.name for t in merge_document_types(store.list_document_types(owner_id))]


def _is_protected(definition: DocumentTypeDefinition) -> bool:
    return definition.is_default or definition.name in BUILTIN_DOCUMENT_TYPES


def create_document_type(store: AccountingStoreBase, owner_id: str, data: dict) -> DocumentTypeDefinition:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationFailed("Document type name is required")
    if name in document_type_names(store, owner_id):
        raise ValidationFailed(f"Document type already exists: {name}")
    return store.create_document_type(owner_id, {**data, "name": name, "is_default": False})


def update_document_type(store: AccountingStoreBase, owner_id: str, type_id: str, changes: dict) -> DocumentTypeDefinition:
    existing = store.get_document_type(owner_id, type_id)
    if existing is None:
        raise NotFound(f"Document type {type_id} not found")

    if "name" in changes and changes["name"] is not None:
        name = changes["name"].strip()
        if not name:
            raise ValidationFailed("Document type name is required")
        if name != existing.name and _is_protected(existing):
            raise ProtectedDocumentType(f"Built-in document type cannot be renamed: {existing.name}")
        changes = {**changes, "name": name}

    return store.update_document_type(owner_id, type_id, {k: v for k, v in changes.items() if v is not None})


def delete_document_type(store: AccountingStoreBase, owner_id: str, type_id: str) -> None:
    existing = store.get_document_type(owner_id, type_id)
    if existing is None:
        raise NotFound(f"Document type {type_id} not found")
    if _is_protected(existing):
        raise ProtectedDocumentType(f"Built-in document type cannot be deleted: {existing.name}")
    store.delete_document_type(owner_id, type_id)
