from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from ..deps import CurrentUser, get_current_user, storage_dependency, store_dependency, to_http_exception
from ...models.document import STATUS_UNPROCESSED, Document, DocumentCreate, DocumentList, DocumentUpdate
from ...services.document_updates import apply_document_update
from ...services.dropbox_client import FileStorage
from ...services.errors import KeiriDocsError
from ...services.storage import AccountingStoreBase

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=DocumentList)
async def list_documents(
    status: str | None = None,
    type: str | None = None,
    search: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    sort: str = "created_at",
    direction: str = "desc",
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    """
    Filtered, paginated document list.

    Unknown sort columns fall back to created_at. The free-text search
    matches vendor name and description, case-insensitively.
    """
    rows, count = store.list_documents(
        user.id,
        status=status,
        doc_type=type,
        search=search,
        date_from=date_from,
        date_to=date_to,
        sort=sort,
        direction=direction,
        limit=limit,
        offset=offset,
    )
    return DocumentList(data=rows, count=count)


@router.get("/{document_id}", response_model=Document)
async def get_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    document = store.get_document(user.id, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="書類が見つかりません")
    return document


@router.post("", response_model=Document, status_code=201)
async def create_document(
    req: DocumentCreate,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    document = store.create_document(user.id, {**req.model_dump(), "status": STATUS_UNPROCESSED})
    logger.info("Document registered", document_id=document.id, doc_type=document.type, input_method=document.input_method)
    return document


@router.patch("/{document_id}", response_model=Document)
async def update_document(
    document_id: str,
    req: DocumentUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
    storage: FileStorage = Depends(storage_dependency),
):
    """Edit metadata. A status change also moves the file in Dropbox."""
    try:
        return await apply_document_update(store, storage, user.id, document_id, req.changes())
    except KeiriDocsError as e:
        raise to_http_exception(e)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    # The Dropbox file is left in place
    if not store.delete_document(user.id, document_id):
        raise HTTPException(status_code=404, detail="書類が見つかりません")
    return {"success": True}
