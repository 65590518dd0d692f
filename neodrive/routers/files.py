# Filename: neodrive/routers/files.py
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session as DBSession

from ..auth import current_session, get_settings_dep, optional_session
from ..config import Settings
from ..db import get_session
from ..models import FileRecord, FileType
from ..quota import Denied, check_limits, storage_usage, used_storage
from ..registry import FileRegistry
from ..schemas import (
    FileIdRequest,
    FileListOut,
    FileMetadataRequest,
    FileOut,
    MessageOut,
    PresignedUrlOut,
    PresignedUrlRequest,
    RenameRequest,
    UsageOut,
)
from ..sessions import Session
from ..storage import ObjectStore, make_storage_key
from ..utils import ensure_owner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/file", tags=["files"])


def get_storage(request: Request) -> ObjectStore:
    return request.app.state.storage


def get_registry(db: DBSession = Depends(get_session), storage: ObjectStore = Depends(get_storage)) -> FileRegistry:
    return FileRegistry(db, storage)


def file_out(record: FileRecord, storage: ObjectStore, settings: Settings) -> FileOut:
    out = FileOut.model_validate(record)
    if record.type == FileType.file and record.storage_key:
        out.url = storage.presign_get(record.storage_key, settings.presigned_url_expire_seconds)
    return out


def owned_record(registry: FileRegistry, file_id: str, session: Optional[Session]) -> FileRecord:
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    record = registry.get(file_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    ensure_owner(session, record.user_id)
    return record


def enforce_quota(db: DBSession, session: Session, size: int, mime_type: Optional[str]) -> None:
    decision = check_limits(session.subscription_tier, size, mime_type, used_storage(db, session.user_id))
    if isinstance(decision, Denied):
        logger.info("Upload denied for user %s: %s", session.user_id, decision.reason.value)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.message)


@router.get("", response_model=FileListOut)
def list_files(
    session: Session = Depends(current_session),
    registry: FileRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings_dep),
):
    records = registry.list(session.user_id)
    return FileListOut(files=[file_out(r, registry.storage, settings) for r in records])


@router.get("/getStorageUsage", response_model=UsageOut)
def get_storage_usage(session: Session = Depends(current_session), db: DBSession = Depends(get_session)):
    usage = storage_usage(db, session.user_id, session.subscription_tier)
    return UsageOut.model_validate(usage)


@router.post("/presignedUrl", response_model=PresignedUrlOut)
def presigned_url(
    data: PresignedUrlRequest,
    session: Optional[Session] = Depends(optional_session),
    db: DBSession = Depends(get_session),
    storage: ObjectStore = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
):
    session = ensure_owner(session, data.user_id)
    enforce_quota(db, session, data.size, data.mime_type)

    unique_key = make_storage_key(session.user_id, data.path, data.name)
    url = storage.presign_put(unique_key, data.mime_type, data.size, settings.presigned_url_expire_seconds)
    return PresignedUrlOut(
        presigned_url=url,
        unique_key=unique_key,
        expires_in=settings.presigned_url_expire_seconds,
    )


@router.post("/uploadFileMetadata", response_model=FileOut, status_code=status.HTTP_201_CREATED)
def upload_file_metadata(
    data: FileMetadataRequest,
    session: Optional[Session] = Depends(optional_session),
    registry: FileRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings_dep),
):
    session = ensure_owner(session, data.user_id)
    storage = registry.storage

    size = 0
    if data.type == FileType.file:
        key = data.storage_key
        if not key.startswith(f"{session.user_id}/") or ".." in key.split("/"):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
        # a retried confirmation must leave the accepted record and its object alone
        if registry.find_by_key(key) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File already exists")
        stored_size = storage.head(key)
        if stored_size is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded object not found")
        if stored_size != data.size:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded object size does not match")
        size = stored_size
        try:
            enforce_quota(registry.db, session, size, data.mime_type)
        except HTTPException:
            registry.discard_unreferenced(key)
            raise

    record = FileRecord(
        user_id=session.user_id,
        name=data.name,
        type=data.type,
        storage_key=data.storage_key if data.type == FileType.file else None,
        size=size,
        mime_type=data.mime_type if data.type == FileType.file else None,
        path=data.path,
        is_favorited=data.is_favorited,
    )
    try:
        record = registry.create(record)
    except HTTPException as e:
        if e.status_code == status.HTTP_409_CONFLICT and record.storage_key:
            registry.discard_unreferenced(record.storage_key)
        raise
    return file_out(record, storage, settings)


@router.post("/renameFile", response_model=FileOut)
def rename_file(
    data: RenameRequest,
    session: Optional[Session] = Depends(optional_session),
    registry: FileRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings_dep),
):
    record = owned_record(registry, data.id, session)
    record = registry.rename(record, data.name)
    return file_out(record, registry.storage, settings)


@router.post("/toggleFavorite", response_model=FileOut)
def toggle_favorite(
    data: FileIdRequest,
    session: Optional[Session] = Depends(optional_session),
    registry: FileRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings_dep),
):
    record = owned_record(registry, data.id, session)
    record = registry.toggle_favorite(record)
    return file_out(record, registry.storage, settings)


@router.delete("", response_model=MessageOut)
def delete_file(
    data: FileIdRequest,
    session: Optional[Session] = Depends(optional_session),
    registry: FileRegistry = Depends(get_registry),
):
    record = owned_record(registry, data.id, session)
    registry.delete(record)
    return MessageOut(message="File deleted successfully")
