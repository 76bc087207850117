"""
Document edits and the Dropbox relocation they trigger.

A status change moves the stored file into the folder of the new status.
The database is the source of truth for metadata: when the move fails the
edit is still saved and the document keeps its old path.
"""

from dataclasses import dataclass

from loguru import logger

from .document_paths import build_document_path, file_name_from_path, reference_date
from .dropbox_client import FileStorage
from .errors import NotFound, ValidationFailed
from .storage import AccountingStoreBase
from ..models.document import Document


@dataclass
class StorageMove:
    from_path: str
    to_path: str


def plan_relocation(existing: Document, changes: dict) -> StorageMove | None:
    """
    Decide whether an edit must move the stored file.

    Only a status change relocates. Changing the type alone leaves the
    file where it is, even though its folder is named after the old type.

    Returns:
        The move to perform, or None when the file stays in place
    """
    new_status = changes.get("status") or existing.status
    new_type = changes.get("type") or existing.type

    if new_status == existing.status or not existing.storage_path:
        return None

    target = build_document_path(
        new_type,
        file_name_from_path(existing.storage_path),
        reference_date(existing.issue_date, existing.created_at),
        new_status,
    )
    if target == existing.storage_path:
        return None
    return StorageMove(from_path=existing.storage_path, to_path=target)


async def apply_document_update(
    store: AccountingStoreBase,
    storage: FileStorage,
    owner_id: str,
    document_id: str,
    changes: dict,
) -> Document:
    """
    Persist an edit, relocating the file first when the status changed.

    Raises:
        ValidationFailed: nothing to update
        NotFound: document does not exist for this owner
    """
    if not changes:
        raise ValidationFailed("No fields to update")

    existing = store.get_document(owner_id, document_id)
    if existing is None:
        raise NotFound(f"Document {document_id} not found")

    update = dict(changes)

    try:
        move = plan_relocation(existing, update)
    except ValueError as e:
        # Unparseable stored date: keep the file where it is
        logger.error(f"Could not compute new storage path for {document_id}: {e}")
        move = None

    if move is not None:
        try:
            update["storage_path"] = await storage.move(move.from_path, move.to_path)
            logger.info("Document file relocated", document_id=document_id, to_path=update["storage_path"])
        except Exception as e:
            logger.error(f"Dropbox move failed for {document_id}, keeping old path: {e}")

    updated = store.update_document(owner_id, document_id, update)
    if updated is None:
        raise NotFound(f"Document {document_id} not found")
    return updated
