# Filename: neodrive_client/uploads.py
"""Client-side upload state machine.

Every file of a batch runs its own task: write credential, direct transfer to
the object store, metadata confirmation. Items move
``pending -> uploading -> completed | error | cancelled`` and never leave a
terminal state. Listeners registered with ``subscribe`` get the item after
each change.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence
from uuid import uuid4
import asyncio
import logging
import mimetypes
import os

import aiofiles

from neodrive.units import format_bytes

from .api import DriveAPI
from .config import CHUNK_SIZE, UPLOAD_TIMEOUT_SECONDS
from .errors import APIError, BatchRejected, ClientError, TransferError, UploadCancelled, UploadTimeout

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class UploadStatus(str, Enum):
    pending = "pending"
    uploading = "uploading"
    completed = "completed"
    error = "error"
    cancelled = "cancelled"


ACTIVE_STATUSES = frozenset({UploadStatus.pending, UploadStatus.uploading})


@dataclass
class UploadItem:
    name: str
    size: int
    path: str
    id: str = field(default_factory=lambda: uuid4().hex)
    progress_percent: int = 0
    status: UploadStatus = UploadStatus.pending
    error_message: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass
class UploadSource:
    name: str
    size: int
    mime_type: str
    open_chunks: Callable[[], AsyncIterator[bytes]]

    @classmethod
    def from_path(cls, path, mime_type: Optional[str] = None, chunk_size: int = CHUNK_SIZE) -> "UploadSource":
        path = Path(path)

        async def chunks():
            async with aiofiles.open(path, "rb") as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk

        guessed = mimetypes.guess_type(path.name)[0]
        return cls(path.name, os.path.getsize(path), mime_type or guessed or DEFAULT_MIME_TYPE, chunks)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: str = DEFAULT_MIME_TYPE, chunk_size: int = CHUNK_SIZE):
        async def chunks():
            for start in range(0, len(data), chunk_size):
                yield data[start:start + chunk_size]

        return cls(name, len(data), mime_type, chunks)


Listener = Callable[[UploadItem], None]


class UploadOrchestrator:
    def __init__(self, api: DriveAPI, transfer_timeout: float = UPLOAD_TIMEOUT_SECONDS):
        self.api = api
        self.transfer_timeout = transfer_timeout
        self.items: Dict[str, UploadItem] = {}
        self.batch_visible = False
        self.files: List[dict] = []
        self.usage: Optional[dict] = None
        self.last_warning: Optional[str] = None
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_requested = set()
        self._confirming = set()
        self._listeners: List[Listener] = []

    # --- observable state ---
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, item: UploadItem) -> None:
        for listener in list(self._listeners):
            try:
                listener(item)
            except Exception:
                logger.exception("Upload listener failed for %s", item.name)

    def _update(self, item: UploadItem, **changes) -> None:
        if not item.is_active:
            return
        for key, value in changes.items():
            setattr(item, key, value)
        self._emit(item)

    def _on_progress(self, item: UploadItem, sent: int, total: int) -> None:
        percent = min(100, sent * 100 // total) if total else 100
        if percent > item.progress_percent:
            self._update(item, progress_percent=percent)

    @property
    def remaining_quota(self) -> Optional[int]:
        if self.usage is None:
            return None
        return self.usage.get("remainingStorage")

    async def refresh(self) -> None:
        self.files = await self.api.list_files()
        self.usage = await self.api.storage_usage()

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except ClientError as e:
            logger.warning("Failed to refresh file list: %s", e)

    # --- batches ---
    async def start_batch(self, target_path: str, sources: Sequence[UploadSource]) -> List[UploadItem]:
        if not self.api.user_id:
            raise BatchRejected("Please sign in to upload files")

        remaining = self.remaining_quota
        total = sum(source.size for source in sources)
        if remaining is not None and total > remaining:
            raise BatchRejected(
                f"Not enough storage for these files. You have {format_bytes(remaining)} remaining."
            )

        batch = [(UploadItem(name=s.name, size=s.size, path=target_path), s) for s in sources]
        for item, _ in batch:
            self.items[item.id] = item
            self._emit(item)
        self.batch_visible = True

        for item, source in batch:
            self._tasks[item.id] = asyncio.create_task(self._upload(item, source))
        results = await asyncio.gather(*(self._tasks[item.id] for item, _ in batch), return_exceptions=True)

        for (item, _), result in zip(batch, results):
            # a task cancelled before it started never reaches its own handler
            if isinstance(result, asyncio.CancelledError) and item.id in self._cancel_requested:
                self._update(item, status=UploadStatus.cancelled, error_message="Upload cancelled")
            elif isinstance(result, BaseException):
                logger.error("Upload of %s crashed", item.name, exc_info=result)
                self._update(item, status=UploadStatus.error, error_message="Upload failed")
            self._tasks.pop(item.id, None)
            self._cancel_requested.discard(item.id)

        await self._refresh_quietly()
        return [item for item, _ in batch]

    async def _transfer(self, item: UploadItem, source: UploadSource, url: str) -> None:
        try:
            await asyncio.wait_for(
                self.api.put_object(
                    url,
                    source.mime_type,
                    source.size,
                    source.open_chunks(),
                    on_progress=lambda sent, total: self._on_progress(item, sent, total),
                ),
                timeout=self.transfer_timeout,
            )
        except asyncio.TimeoutError as e:
            raise UploadTimeout(f"Transfer of {item.name} exceeded {self.transfer_timeout}s") from e

    async def _upload(self, item: UploadItem, source: UploadSource) -> None:
        try:
            self._update(item, status=UploadStatus.uploading)
            credential = await self.api.request_upload_credential(
                source.name, source.size, source.mime_type, item.path
            )
            await self._transfer(item, source, credential["presignedUrl"])
            if item.id in self._cancel_requested:
                raise UploadCancelled(item.name)
            # past this point the server may already hold the record, so cancel is refused
            self._confirming.add(item.id)
            await self.api.confirm_upload(
                source.name, credential["uniqueKey"], source.size, source.mime_type, item.path
            )
            self._update(item, status=UploadStatus.completed, progress_percent=100)
        except (asyncio.CancelledError, UploadCancelled):
            if item.id not in self._cancel_requested:
                raise
            self._update(item, status=UploadStatus.cancelled, error_message="Upload cancelled")
        except UploadTimeout:
            self._update(item, status=UploadStatus.error, error_message="Upload timed out")
        except (APIError, TransferError) as e:
            self._update(item, status=UploadStatus.error, error_message=str(e))
        finally:
            self._tasks.pop(item.id, None)
            self._cancel_requested.discard(item.id)
            self._confirming.discard(item.id)

    def cancel(self, item_id: str) -> bool:
        """Abort a pending or uploading item.

        Terminal items are left as they are, and so is an item whose metadata
        confirmation is already in flight: it ends completed or error.
        """
        item = self.items.get(item_id)
        if item is None or not item.is_active or item_id in self._confirming:
            return False
        self._cancel_requested.add(item_id)
        task = self._tasks.get(item_id)
        if task is not None:
            task.cancel()
        else:
            self._update(item, status=UploadStatus.cancelled, error_message="Upload cancelled")
        return True

    def dismiss_batch(self) -> bool:
        if any(item.is_active for item in self.items.values()):
            self.last_warning = "Please wait for uploads to finish or cancel them before closing"
            logger.warning(self.last_warning)
            return False
        self.items.clear()
        self.batch_visible = False
        self.last_warning = None
        return True

    async def create_folder(self, target_path: str, name: str) -> dict:
        if not self.api.user_id:
            raise BatchRejected("Please sign in to create folders")
        record = await self.api.create_folder(name, target_path)
        await self._refresh_quietly()
        return record
