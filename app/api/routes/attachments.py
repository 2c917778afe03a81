from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from app.dependencies.tickets import get_local_blob_store
from app.tickets.attachments import LocalBlobStore
from app.tickets.errors import BlobStoreError

# Matches the default ``attachment_url_base`` used when signing links.
router = APIRouter(prefix="/attachments", tags=["attachments"])

BlobStoreDep = Annotated[LocalBlobStore, Depends(get_local_blob_store)]


@router.get("/{path:path}", summary="Download an attachment through a signed link")
async def download_attachment(
    path: str,
    store: BlobStoreDep,
    expires: int = Query(...),
    signature: str = Query(..., min_length=1),
) -> FileResponse:
    if not store.verify_signature(path, expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    try:
        target = store.local_path(path)
    except BlobStoreError as exc:
        raise HTTPException(status_code=404, detail="Attachment not found") from exc
    if not target.is_file():
        raise HTTPException(status_code=404, detail="Attachment not found")
    return FileResponse(target, filename=target.name)
