# designvc/routes/versions.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from designvc.models.schemas import CommitIn, DeleteOut, RevertIn, VersionDiff, VersionOut
from designvc.services.storage import BlobFetchFailed, BlobStore
from designvc.services.versioning import VersionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["versions"])


def get_version_store(request: Request) -> VersionStore:
    return request.app.state.version_store


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


# ───────── COMMIT ─────────
@router.post("/versions", response_model=VersionOut, status_code=201)
def create_version(data: CommitIn, store: VersionStore = Depends(get_version_store)):
    return store.commit(
        commit_message=data.commit_message,
        png_base64=data.png_base64,
        created_by=data.created_by,
    )


# ───────── LOG ─────────
@router.get("/versions", response_model=List[VersionOut])
def list_versions(store: VersionStore = Depends(get_version_store)):
    return store.list_history()


# ───────── DIFF ─────────
@router.get("/versions/compare", response_model=VersionDiff)
def compare_versions(
    v1: Optional[int] = Query(None),
    v2: Optional[int] = Query(None),
    store: VersionStore = Depends(get_version_store),
):
    if v1 is None or v2 is None:
        raise HTTPException(400, "v1 and v2 query parameters are required")
    if v1 < 1 or v2 < 1:
        raise HTTPException(400, "v1 and v2 must be positive version numbers")
    return store.compare(v1, v2)


# ───────── REVERT ─────────
@router.post("/versions/revert", response_model=VersionOut, status_code=201)
def revert_version(data: RevertIn, store: VersionStore = Depends(get_version_store)):
    if data.target_version is None:
        raise HTTPException(400, "targetVersion is required")
    if data.target_version < 1:
        raise HTTPException(400, "targetVersion must be a positive version number")
    return store.revert(data.target_version, created_by=data.created_by)


@router.get("/versions/number/{version_number}", response_model=VersionOut)
def fetch_version_by_number(version_number: int, store: VersionStore = Depends(get_version_store)):
    return store.get_by_number(version_number)


# ───────── PNG proxy (keeps the add-on clear of bucket CORS) ─────────
@router.get("/versions/{version_number}/png")
def version_png(
    version_number: int,
    store: VersionStore = Depends(get_version_store),
    blobs: BlobStore = Depends(get_blob_store),
):
    version = store.get_by_number(version_number)
    if not version.preview_url:
        raise HTTPException(404, "Version or preview not found")

    try:
        png = blobs.fetch(version.preview_url)
    except BlobFetchFailed as exc:
        logger.warning(f"PNG proxy failed for V{version_number}: {exc}")
        raise HTTPException(502, "Failed to fetch preview from storage")

    return Response(
        content=png,
        media_type="image/png",
        headers={
            "Access-Control-Allow-Origin": "*",
            "Cache-Control": "public, max-age=31536000",
        },
    )


@router.get("/versions/{version_id}", response_model=VersionOut)
def fetch_version(version_id: int, store: VersionStore = Depends(get_version_store)):
    return store.get_by_id(version_id)


@router.delete("/versions/{version_number}", response_model=DeleteOut)
def delete_version(version_number: int, store: VersionStore = Depends(get_version_store)):
    store.delete(version_number)
    return DeleteOut(success=True, message=f"Version {version_number} deleted successfully")
