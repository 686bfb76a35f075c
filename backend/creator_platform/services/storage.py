from __future__ import annotations

import logging
from functools import lru_cache
from io import BytesIO
from pathlib import PurePosixPath
from typing import Optional, Tuple
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, UploadFile, status
from PIL import Image, ImageOps

from ..config import get_settings

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}
VIDEO_CONTENT_TYPES = {"video/mp4", "video/mpeg", "video/x-msvideo"}

PROFILE_PIC_SIZE = (300, 300)
BANNER_IMAGE_SIZE = (1200, 400)
DEFAULT_JPEG_QUALITY = 80


@lru_cache
def get_s3_client():
    """Return a cached S3 client pointed at the configured Spaces endpoint."""
    settings = get_settings()
    return boto3.client(
        "s3",
        region_name=settings.spaces_region,
        endpoint_url=settings.spaces_endpoint,
        aws_access_key_id=settings.spaces_key,
        aws_secret_access_key=settings.spaces_secret,
        config=Config(signature_version="s3v4", s3={"addressing_style": "virtual"}),
    )


def _read_upload(upload: UploadFile) -> bytes:
    upload.file.seek(0)
    data = upload.file.read()
    upload.file.seek(0)
    return data


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    return len(_read_upload(upload))


def validate_file(upload: UploadFile, kind: str = "image") -> None:
    """Reject uploads with the wrong content type or above the size limit for ``kind``."""
    settings = get_settings()
    if kind == "image":
        allowed, limit_mb = IMAGE_CONTENT_TYPES, settings.max_image_upload_mb
    elif kind == "video":
        allowed, limit_mb = VIDEO_CONTENT_TYPES, settings.max_video_upload_mb
    else:
        raise ValueError(f"Unsupported upload kind: {kind}")

    if upload.content_type not in allowed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {kind} format")
    if _upload_size(upload) > limit_mb * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{kind.capitalize()} size exceeds limit of {limit_mb}MB",
        )


def resize_image(data: bytes, size: Tuple[int, int], quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Crop-to-fill ``data`` to exactly ``size`` and re-encode as JPEG."""
    with Image.open(BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img)
        fitted = ImageOps.fit(img.convert("RGB"), size, Image.Resampling.LANCZOS)
        output = BytesIO()
        fitted.save(output, "JPEG", quality=quality, optimize=True)
    return output.getvalue()


def public_url(key: str) -> str:
    settings = get_settings()
    endpoint = urlparse(settings.spaces_endpoint)
    return f"{endpoint.scheme}://{settings.spaces_bucket}.{endpoint.netloc}/{key}"


def key_from_url(url: str) -> Optional[str]:
    settings = get_settings()
    path = urlparse(url).path.lstrip("/")
    if not path:
        return None
    # Path-style URLs carry the bucket as the first segment.
    bucket_prefix = f"{settings.spaces_bucket}/"
    if path.startswith(bucket_prefix) and not path.startswith("content/"):
        path = path[len(bucket_prefix):]
    return path


def upload_file(
    upload: UploadFile,
    folder_name: str,
    resize: Optional[Tuple[int, int]] = None,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> str:
    """Store ``upload`` under ``content/<folder_name>`` with a public-read ACL and return its URL."""
    settings = get_settings()
    key = str(PurePosixPath("content") / folder_name)
    content_type = upload.content_type or "application/octet-stream"
    try:
        body = _read_upload(upload)
        if resize and content_type.startswith("image/"):
            body = resize_image(body, resize, quality)
            content_type = "image/jpeg"
        get_s3_client().put_object(
            Bucket=settings.spaces_bucket,
            Key=key,
            Body=body,
            ACL="public-read",
            ContentType=content_type,
        )
    except (BotoCoreError, ClientError, OSError) as exc:
        logger.error("Upload of %s failed: %s", key, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"File upload failed: {exc}"
        ) from exc
    logger.info("Uploaded %s (%s bytes)", key, len(body))
    return public_url(key)


def delete_file(url: str) -> None:
    """Delete the object behind ``url``. Failures are logged and never raised."""
    settings = get_settings()
    key = key_from_url(url)
    if not key:
        logger.warning("Cannot derive object key from %s", url)
        return
    try:
        get_s3_client().delete_object(Bucket=settings.spaces_bucket, Key=key)
        logger.info("Deleted %s", key)
    except (BotoCoreError, ClientError) as exc:
        logger.error("Failed to delete %s: %s", key, exc)
