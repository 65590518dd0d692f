# Filename: neodrive/routers/storage.py
"""Presigned-URL endpoints of the local object store.

Active only when ``storage_backend == "local"``. With S3 the presigned URLs
point straight at the bucket and these routes answer 404.
"""
from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from fastapi.responses import FileResponse

from ..storage import InvalidCredential, LocalObjectStore

router = APIRouter(prefix="/api/storage", tags=["storage"])


def _local_store(request: Request) -> LocalObjectStore:
    store = request.app.state.storage
    if not isinstance(store, LocalObjectStore):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return store


@router.put("/{key:path}")
async def put_object(key: str, request: Request, token: str = Query(...)):
    store = _local_store(request)
    try:
        claims = store.verify(token, key, "put")
    except InvalidCredential as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    content_type = (request.headers.get("content-type") or "").strip()
    if content_type != claims.get("ct"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Content type does not match credential")

    try:
        await store.write(key, request.stream(), int(claims["len"]))
    except InvalidCredential as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return Response(status_code=status.HTTP_200_OK)


@router.get("/{key:path}")
def get_object(key: str, request: Request, token: str = Query(...)):
    store = _local_store(request)
    try:
        store.verify(token, key, "get")
        path = store.path_for(key)
    except InvalidCredential as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    return FileResponse(path, media_type="application/octet-stream", filename=path.name)
