import base64
import binascii
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from ..deps import CurrentUser, get_current_user, storage_dependency, to_http_exception
from ...models.document import STATUS_UNPROCESSED, DocumentStatus
from ...services.document_paths import build_document_path
from ...services.dropbox_client import FileStorage
from ...services.errors import KeiriDocsError

router = APIRouter(prefix="/storage", tags=["storage"])


class UploadRequest(BaseModel):
    base64: str
    file_name: str = Field(alias="fileName", min_length=1)
    type: str = Field(min_length=1)
    date: str | None = None
    status: DocumentStatus = STATUS_UNPROCESSED

    model_config = {"populate_by_name": True}


@router.post("/upload")
async def upload(
    req: UploadRequest,
    user: CurrentUser = Depends(get_current_user),
    storage: FileStorage = Depends(storage_dependency),
):
    """Store a captured or uploaded file at its canonical Dropbox path"""
    try:
        when = date.fromisoformat(req.date[:10]) if req.date else date.today()
    except ValueError:
        raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD")

    try:
        content = base64.b64decode(req.base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="base64 payload could not be decoded")

    path = build_document_path(req.type, req.file_name, when, req.status)
    try:
        stored = await storage.upload(path, content)
    except KeiriDocsError as e:
        raise to_http_exception(e)

    logger.info("File uploaded", owner_id=user.id, path=stored, size=len(content))
    return {"data": {"path": stored}}
