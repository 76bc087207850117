"""
Dropbox file storage.

Talks to the Dropbox HTTP API v2 directly with httpx. Every write, copy
and move creates the destination folder first and waits for the pacing
delay before the request, which keeps sequential batch loops under the
Dropbox rate limit.
"""

import asyncio
import json
from abc import ABC, abstractmethod

import httpx
from loguru import logger

from .document_paths import parent_folder
from .errors import StorageError
from ..core.config import settings

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"

UTF8_BOM = "\ufeff"


class FileStorage(ABC):
    """
    Abstract file storage used by the document services.

    Implementations return the final path of the file, which may differ
    from the requested one (e.g. Dropbox autorename on copy).
    """

    @abstractmethod
    async def ensure_folder(self, path: str) -> None:
        """Create a folder (and its ancestors); existing folders are not an error"""
        pass

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """Upload bytes, overwriting any existing file"""
        pass

    @abstractmethod
    async def copy(self, from_path: str, to_path: str) -> str:
        """Copy a file, leaving the source in place"""
        pass

    @abstractmethod
    async def move(self, from_path: str, to_path: str) -> str:
        """Move a file, refusing to overwrite an existing destination"""
        pass

    async def upload_csv(self, path: str, content: str) -> str:
        """Upload CSV text as UTF-8 with BOM so spreadsheet apps detect the encoding"""
        return await self.upload(path, (UTF8_BOM + content).encode("utf-8"))


class DropboxStorage(FileStorage):

    def __init__(
        self,
        access_token: str | None = None,
        pacing_seconds: float | None = None,
        timeout: float = 30,
    ):
        self.access_token = access_token if access_token is not None else settings.dropbox_access_token
        self.pacing_seconds = pacing_seconds if pacing_seconds is not None else settings.storage_pacing_seconds
        self.timeout = timeout

    def _headers(self) -> dict:
        if not self.access_token:
            raise StorageError("DROPBOX_ACCESS_TOKEN not set")
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _pace(self):
        if self.pacing_seconds > 0:
            await asyncio.sleep(self.pacing_seconds)

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise StorageError(f"Dropbox request to {url} failed: {e}")

    async def _rpc(self, endpoint: str, payload: dict) -> httpx.Response:
        return await self._post(f"{API_URL}/{endpoint}", headers=self._headers(), json=payload)

    @staticmethod
    def _raise_for_status(r: httpx.Response, action: str):
        if r.is_success:
            return
        raise StorageError(f"Dropbox {action} failed ({r.status_code}): {r.text[:200]}", status_code=r.status_code)

    @staticmethod
    def _path_display(body: dict, fallback: str) -> str:
        metadata = body.get("metadata", body)
        return metadata.get("path_display") or fallback

    async def ensure_folder(self, path: str) -> None:
        r = await self._rpc("files/create_folder_v2", {"path": path, "autorename": False})

        # Folder already exists
        if r.status_code == 409 and "path/conflict" in r.text:
            return
        self._raise_for_status(r, "create_folder")
        logger.debug("Dropbox folder created", path=path)

    async def _ensure_parent(self, path: str):
        folder = parent_folder(path)
        if folder:
            await self.ensure_folder(folder)

    async def upload(self, path: str, data: bytes) -> str:
        await self._ensure_parent(path)
        await self._pace()

        # Dropbox-API-Arg must be ASCII; json.dumps escapes the Japanese folder names
        arg = json.dumps({"path": path, "mode": "overwrite", "autorename": False})
        headers = {
            **self._headers(),
            "Dropbox-API-Arg": arg,
            "Content-Type": "application/octet-stream",
        }
        r = await self._post(f"{CONTENT_URL}/files/upload", headers=headers, content=data)

        self._raise_for_status(r, "upload")
        return self._path_display(r.json(), path)

    async def copy(self, from_path: str, to_path: str) -> str:
        await self._ensure_parent(to_path)
        await self._pace()

        r = await self._rpc("files/copy_v2", {"from_path": from_path, "to_path": to_path, "autorename": True})
        self._raise_for_status(r, "copy")
        return self._path_display(r.json(), to_path)

    async def move(self, from_path: str, to_path: str) -> str:
        await self._ensure_parent(to_path)
        await self._pace()

        r = await self._rpc("files/move_v2", {"from_path": from_path, "to_path": to_path, "autorename": False})
        self._raise_for_status(r, "move")
        return self._path_display(r.json(), to_path)


_default_storage: DropboxStorage | None = None


def get_file_storage() -> FileStorage:
    global _default_storage
    if _default_storage is None:
        _default_storage = DropboxStorage()
    return _default_storage
