# Filename: neodrive/registry.py
"""File metadata registry: CRUD over FileRecord plus the storage side effects
of rename and delete.

Folders own no storage object. A folder's children are the records whose path
equals ``{folder.path}{folder.name}/``; deeper descendants share that prefix.
"""
from typing import List, Optional
import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .errors import StorageError
from .models import FileCategory, FileRecord, FileType, new_id, utcnow
from .storage import ObjectStore, make_storage_key

logger = logging.getLogger(__name__)

DOCUMENT_MARKERS = ("text", "pdf", "document", "spreadsheet", "presentation")


def category_for(mime_type: Optional[str], file_type: FileType = FileType.file) -> Optional[FileCategory]:
    if file_type == FileType.folder:
        return None
    mime_type = (mime_type or "").lower()
    if mime_type.startswith("image/"):
        return FileCategory.images
    if mime_type.startswith("video/"):
        return FileCategory.videos
    if mime_type.startswith("audio/"):
        return FileCategory.audios
    if any(marker in mime_type for marker in DOCUMENT_MARKERS):
        return FileCategory.documents
    return FileCategory.others


def _conflict() -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File already exists")


class FileRegistry:
    def __init__(self, db: Session, storage: ObjectStore):
        self.db = db
        self.storage = storage

    def list(self, user_id: str) -> List[FileRecord]:
        stmt = select(FileRecord).where(FileRecord.user_id == user_id).order_by(FileRecord.created_at.desc())
        return list(self.db.exec(stmt).all())

    def get(self, file_id: str) -> Optional[FileRecord]:
        return self.db.get(FileRecord, file_id)

    def find(self, user_id: str, name: str, path: str) -> Optional[FileRecord]:
        stmt = select(FileRecord).where(
            FileRecord.user_id == user_id,
            FileRecord.name == name,
            FileRecord.path == path,
        )
        return self.db.exec(stmt).first()

    def find_by_key(self, storage_key: str) -> Optional[FileRecord]:
        return self.db.exec(select(FileRecord).where(FileRecord.storage_key == storage_key)).first()

    def discard_unreferenced(self, storage_key: str) -> None:
        """Remove an object only when no record points at it."""
        if self.find_by_key(storage_key) is None:
            self.discard_object(storage_key)

    def descendants(self, folder: FileRecord) -> List[FileRecord]:
        stmt = select(FileRecord).where(
            FileRecord.user_id == folder.user_id,
            FileRecord.path.startswith(folder.child_path, autoescape=True),
        )
        return list(self.db.exec(stmt).all())

    def is_folder_empty(self, folder: FileRecord) -> bool:
        return not self.descendants(folder)

    def create(self, record: FileRecord) -> FileRecord:
        if self.find(record.user_id, record.name, record.path):
            raise _conflict()
        record.id = new_id()
        record.category = category_for(record.mime_type, record.type)
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            # lost a race against a concurrent create of the same name or storage key
            self.db.rollback()
            raise _conflict()
        self.db.refresh(record)
        logger.info("Created %s %s%s for user %s", record.type.value, record.path, record.name, record.user_id)
        return record

    def rename(self, record: FileRecord, new_name: str) -> FileRecord:
        if new_name == record.name:
            return record
        if self.find(record.user_id, new_name, record.path):
            raise _conflict()

        if record.type == FileType.folder:
            old_prefix = record.child_path
            new_prefix = f"{record.path}{new_name}/"
            for child in self.descendants(record):
                child.path = new_prefix + child.path[len(old_prefix):]
                self.db.add(child)
            record.name = new_name
            record.updated_at = utcnow()
            self.db.add(record)
            self._commit_or_conflict()
            self.db.refresh(record)
            return record

        old_key = record.storage_key
        if not old_key:
            record.name = new_name
            record.updated_at = utcnow()
            self.db.add(record)
            self._commit_or_conflict()
            self.db.refresh(record)
            return record

        new_key = make_storage_key(record.user_id, record.path, new_name)
        self.storage.copy(old_key, new_key)

        record.name = new_name
        record.storage_key = new_key
        record.updated_at = utcnow()
        self.db.add(record)
        try:
            self.db.flush()
            self.storage.delete(old_key)
        except IntegrityError:
            self.db.rollback()
            self.discard_object(new_key)
            raise _conflict()
        except StorageError:
            self.db.rollback()
            self.discard_object(new_key)
            raise

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            self._restore(new_key, old_key)
            raise
        self.db.refresh(record)
        logger.info("Renamed file %s to %s (%s -> %s)", record.id, new_name, old_key, new_key)
        return record

    def toggle_favorite(self, record: FileRecord) -> FileRecord:
        record.is_favorited = not record.is_favorited
        record.updated_at = utcnow()
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(
            "File %s %s by user %s",
            record.id,
            "favorited" if record.is_favorited else "unfavorited",
            record.user_id,
        )
        return record

    def delete(self, record: FileRecord) -> None:
        if record.type == FileType.folder and not self.is_folder_empty(record):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot delete folder that contains files. Please delete all files inside the folder first.",
            )

        record_id, kind, storage_key = record.id, record.type, record.storage_key
        # The object is deleted before the commit. A failed commit then rolls back
        # and is logged, because the kept row no longer has an object behind it.
        self.db.delete(record)
        self.db.flush()
        if kind == FileType.file and storage_key:
            try:
                self.storage.delete(storage_key)
            except StorageError:
                self.db.rollback()
                raise
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            if storage_key:
                logger.error("Delete of %s failed to commit after object %s was removed", record_id, storage_key)
            raise
        logger.info("Deleted %s %s", kind.value, record_id)

    def _commit_or_conflict(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise _conflict()

    def discard_object(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except StorageError:
            logger.exception("Failed to remove partial copy %s", key)

    def _restore(self, new_key: str, old_key: str) -> None:
        try:
            self.storage.copy(new_key, old_key)
            self.storage.delete(new_key)
        except StorageError:
            logger.exception("Failed to move %s back to %s", new_key, old_key)
