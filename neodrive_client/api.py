# Filename: neodrive_client/api.py
from typing import Any, AsyncIterator, Callable, Dict, List, Optional
import logging

import httpx

from .config import API_URL, REQUEST_TIMEOUT_SECONDS
from .errors import APIError, TransferError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"Request failed with status {response.status_code}"
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"Request failed with status {response.status_code}"


class DriveAPI:
    """Async client for the NeoDrive HTTP API.

    The session cookie set by ``login`` is kept in the underlying
    ``httpx.AsyncClient`` cookie jar and sent on every later call.
    """

    def __init__(
        self,
        base_url: str = API_URL,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.identity: Optional[Dict[str, Any]] = None

    async def __aenter__(self) -> "DriveAPI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    @property
    def user_id(self) -> Optional[str]:
        return self.identity["id"] if self.identity else None

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise APIError(0, "Network error, please try again") from e
        if response.status_code >= 400:
            raise APIError(response.status_code, _error_message(response))
        return response.json()

    # --- auth ---
    async def login(self, email: str, password: str) -> Dict[str, Any]:
        self.identity = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        return self.identity

    async def signup(self, name: str, email: str, password: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/auth/signup",
            json={"name": name, "email": email, "password": password, "confirmPassword": password},
        )

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout")
        self.identity = None
        self.client.cookies.clear()

    async def me(self) -> Dict[str, Any]:
        self.identity = await self._request("GET", "/api/auth/me")
        return self.identity

    # --- files ---
    async def list_files(self) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "/api/file")
        return payload["files"]

    async def storage_usage(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/file/getStorageUsage")

    async def request_upload_credential(self, name: str, size: int, mime_type: str, path: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/file/presignedUrl",
            json={"userId": self.user_id, "name": name, "size": size, "mimeType": mime_type, "path": path},
        )

    async def confirm_upload(
        self, name: str, storage_key: str, size: int, mime_type: str, path: str
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/file/uploadFileMetadata",
            json={
                "userId": self.user_id,
                "name": name,
                "type": "file",
                "storageKey": storage_key,
                "size": size,
                "mimeType": mime_type,
                "path": path,
            },
        )

    async def create_folder(self, name: str, path: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/file/uploadFileMetadata",
            json={"userId": self.user_id, "name": name, "type": "folder", "size": 0, "path": path},
        )

    async def rename(self, file_id: str, name: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/file/renameFile", json={"id": file_id, "name": name})

    async def toggle_favorite(self, file_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/file/toggleFavorite", json={"id": file_id})

    async def delete(self, file_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", "/api/file", json={"id": file_id})

    # --- user / billing ---
    async def change_name(self, name: str) -> Dict[str, Any]:
        payload = await self._request("PATCH", "/api/user/name", json={"userId": self.user_id, "name": name})
        if self.identity:
            self.identity["name"] = payload["name"]
        return payload

    async def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            "/api/user/password",
            json={
                "userId": self.user_id,
                "currentPassword": current_password,
                "newPassword": new_password,
                "confirmNewPassword": new_password,
            },
        )

    async def checkout(self, product: str) -> str:
        payload = await self._request("POST", "/api/stripe/checkout", json={"userId": self.user_id, "product": product})
        return payload["url"]

    # --- direct transfer ---
    async def put_object(
        self,
        url: str,
        content_type: str,
        size: int,
        chunks: AsyncIterator[bytes],
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Stream ``chunks`` to a presigned URL, reporting bytes sent so far."""

        async def body():
            sent = 0
            async for chunk in chunks:
                sent += len(chunk)
                yield chunk
                if on_progress:
                    on_progress(sent, size)

        try:
            response = await self.client.put(
                url,
                content=body(),
                headers={"Content-Type": content_type, "Content-Length": str(size)},
            )
        except httpx.TransportError as e:
            raise TransferError("Network error during upload") from e
        if not response.is_success:
            raise TransferError(f"Upload failed with status {response.status_code}")
