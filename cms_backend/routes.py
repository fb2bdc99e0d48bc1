"""
Service routes: health check and image ingestion.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, Response

from cms_backend.config import Settings
from cms_backend.dependencies import get_image_store, get_settings_dep
from cms_backend.images import compress_image, content_type_for, safe_filename
from cms_backend.schemas import ImageListResponse, UploadResponse
from cms_backend.storage import ImageStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
def health():
    return "OK"


@router.post("/image/compress", tags=["Images"])
async def compress(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings_dep),
):
    data = await file.read()
    try:
        compressed = await run_in_threadpool(
            compress_image,
            data,
            max_width=settings.image_max_width,
            quality=settings.image_quality,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info(
        "Compressed %s: %d -> %d bytes", file.filename, len(data), len(compressed)
    )
    return Response(content=compressed, media_type="image/webp")


@router.post("/image/upload", response_model=UploadResponse, tags=["Images"])
async def upload(
    file: UploadFile = File(...),
    store: ImageStore = Depends(get_image_store),
):
    data = await file.read()
    filename = f"{int(time.time() * 1000)}-{safe_filename(file.filename)}"
    await run_in_threadpool(
        store.save, filename, data, content_type=file.content_type
    )
    return UploadResponse(message="Image uploaded successfully", filename=filename)


@router.get("/images", response_model=ImageListResponse, tags=["Images"])
def list_images(store: ImageStore = Depends(get_image_store)):
    filenames = store.list()
    return ImageListResponse(images=filenames, count=len(filenames))


@router.get("/image/{filename}", tags=["Images"])
def get_image(filename: str, store: ImageStore = Depends(get_image_store)):
    data = store.get(filename)
    if data is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(content=data, media_type=content_type_for(filename))
