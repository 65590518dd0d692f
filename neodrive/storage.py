# Filename: neodrive/storage.py
"""Object storage backends.

The server never proxies upload bytes through its own handlers: clients get a
time-boxed presigned URL and write the object directly. ``S3ObjectStore``
talks to S3 (or any S3-compatible endpoint such as MinIO); ``LocalObjectStore``
keeps objects on disk and serves its presigned URLs from ``/api/storage``.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import quote
from uuid import uuid4
import logging
import os
import shutil

import aiofiles
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from jose import JWTError, jwt

from .config import Settings
from .errors import ObjectNotFound, StorageError

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"


def sanitize_name(original_filename: str) -> str:
    return "".join(c for c in original_filename if c.isalnum() or c in " ._-").strip()


def make_storage_key(user_id: str, path: str, name: str) -> str:
    """Object key for one write of ``name`` under ``path``; unique per call."""
    uid = uuid4().hex[:12]
    return f"{user_id}{path}{uid}_{sanitize_name(name)}"


class InvalidCredential(Exception):
    pass


class ObjectStore(ABC):
    @abstractmethod
    def presign_put(self, key: str, content_type: str, size: int, expires_in: int) -> str:
        """URL permitting exactly one PUT of ``size`` bytes of ``content_type`` to ``key``."""

    @abstractmethod
    def presign_get(self, key: str, expires_in: int) -> str:
        ...

    @abstractmethod
    def head(self, key: str) -> Optional[int]:
        """Size of the stored object, or None if it does not exist."""

    @abstractmethod
    def copy(self, source_key: str, dest_key: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def check(self) -> bool:
        ...


class LocalObjectStore(ObjectStore):
    def __init__(self, root: Path, base_url: str, secret_key: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key

    def check(self) -> bool:
        self.root.mkdir(parents=True, exist_ok=True)
        return True

    def path_for(self, key: str) -> Path:
        target = (self.root / key).resolve()
        if self.root.resolve() not in target.parents:
            raise InvalidCredential("Object key escapes storage root")
        return target

    def _sign(self, key: str, op: str, expires_in: int, **claims) -> str:
        expire = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        to_encode = {"sub": key, "op": op, "exp": int(expire.timestamp()), **claims}
        return jwt.encode(to_encode, self.secret_key, algorithm=TOKEN_ALGORITHM)

    def _url(self, key: str, token: str) -> str:
        return f"{self.base_url}/api/storage/{quote(key)}?token={token}"

    def presign_put(self, key: str, content_type: str, size: int, expires_in: int) -> str:
        return self._url(key, self._sign(key, "put", expires_in, ct=content_type, len=size))

    def presign_get(self, key: str, expires_in: int) -> str:
        return self._url(key, self._sign(key, "get", expires_in))

    def verify(self, token: str, key: str, op: str) -> dict:
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[TOKEN_ALGORITHM])
        except JWTError as e:
            raise InvalidCredential("Invalid or expired storage credential") from e
        if claims.get("sub") != key or claims.get("op") != op:
            raise InvalidCredential("Credential does not cover this object")
        return claims

    async def write(self, key: str, chunks: AsyncIterator[bytes], expected_size: int) -> int:
        """Stream an object to disk; it only becomes visible once fully written."""
        dest_path = self.path_for(key)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = dest_path.with_name(f".{dest_path.name}.{uuid4().hex}.part")
        size = 0
        try:
            async with aiofiles.open(tmp_path, "wb") as out_file:
                async for chunk in chunks:
                    size += len(chunk)
                    if size > expected_size:
                        raise InvalidCredential("Body exceeds the declared content length")
                    await out_file.write(chunk)
            if size != expected_size:
                raise InvalidCredential("Body does not match the declared content length")
            os.replace(tmp_path, dest_path)
        finally:
            tmp_path.unlink(missing_ok=True)
        return size

    def head(self, key: str) -> Optional[int]:
        p = self.path_for(key)
        return p.stat().st_size if p.is_file() else None

    def copy(self, source_key: str, dest_key: str) -> None:
        src = self.path_for(source_key)
        if not src.is_file():
            raise ObjectNotFound(f"Object {source_key} not found")
        dest = self.path_for(dest_key)
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(src, dest)
        except OSError as e:
            raise StorageError(f"Failed to copy {source_key} to {dest_key}") from e

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}") from e


class S3ObjectStore(ObjectStore):
    def __init__(self, settings: Settings, client=None):
        self.bucket_name = settings.s3_bucket
        if client is None:
            config = Config(
                region_name=settings.s3_region,
                s3={"addressing_style": "path"},
                retries=dict(max_attempts=3, mode="standard"),
            )
            client = boto3.client(
                "s3",
                endpoint_url=settings.s3_endpoint,
                aws_access_key_id=settings.s3_access_key,
                aws_secret_access_key=settings.s3_secret_key,
                config=config,
            )
        self.s3_client = client

    def check(self) -> bool:
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except (ClientError, BotoCoreError):
            logger.exception("S3 connection failed for bucket %s", self.bucket_name)
            return False
        logger.info("S3 connection successful - bucket %s accessible", self.bucket_name)
        return True

    def presign_put(self, key: str, content_type: str, size: int, expires_in: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": key,
                    "ContentType": content_type,
                    "ContentLength": size,
                },
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to presign upload of {key}") from e

    def presign_get(self, key: str, expires_in: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to presign download of {key}") from e

    def head(self, key: str) -> Optional[int]:
        try:
            response = self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in ("404", "NoSuchKey", "NotFound"):
                return None
            raise StorageError(f"Failed to stat {key}: {error_code}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to stat {key}") from e
        return int(response["ContentLength"])

    def copy(self, source_key: str, dest_key: str) -> None:
        try:
            self.s3_client.copy_object(
                Bucket=self.bucket_name,
                CopySource={"Bucket": self.bucket_name, "Key": source_key},
                Key=dest_key,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to copy {source_key} to {dest_key}") from e

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete {key}") from e


def build_object_store(settings: Settings) -> ObjectStore:
    if settings.storage_backend == "s3":
        return S3ObjectStore(settings)
    return LocalObjectStore(settings.storage_path / "objects", settings.public_base_url, settings.secret_key)
