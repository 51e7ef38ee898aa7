"""
OSS Service — Aliyun Object Storage uploads for partner logos and news images.

Object names:
  {folder}/{app_id}.{ext}            when an app id is given (stable logo URL)
  {folder}/{epoch_ms}_{random}.{ext} otherwise
Objects are made public-read; the returned URL is {bucket_domain}/{name}.
oss2 is synchronous, so calls run in a worker thread.
"""

import time
import random
import string
import asyncio
import logging
import oss2

from opsconsole.config import get_settings

logger = logging.getLogger(__name__)

LOGO_FOLDER = "cpi_logo"
NEWS_FOLDER = "news"
CACHE_CONTROL = "public, max-age=31536000"


class OssError(Exception):
    """Upload or configuration failure."""


def _bucket() -> oss2.Bucket:
    settings = get_settings()
    if not settings.oss_configured:
        raise OssError("Object storage is not configured (OSS_ACCESS_KEY_ID / OSS_ACCESS_KEY_SECRET / OSS_BUCKET)")
    auth = oss2.Auth(settings.oss_access_key_id, settings.oss_access_key_secret)
    endpoint = settings.oss_endpoint
    if not endpoint.startswith("http"):
        endpoint = f"https://{endpoint}"
    return oss2.Bucket(auth, endpoint, settings.oss_bucket, connect_timeout=120)


def bucket_domain() -> str:
    settings = get_settings()
    if settings.oss_bucket_domain:
        return settings.oss_bucket_domain.rstrip("/")
    endpoint = settings.oss_endpoint.replace("https://", "").replace("http://", "")
    return f"https://{settings.oss_bucket}.{endpoint}"


def file_extension(filename: str | None, default: str = "png") -> str:
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].strip().lower()
        if ext:
            return ext
    return default


def object_name(folder: str, ext: str, app_id: str | None = None) -> str:
    if app_id:
        return f"{folder}/{app_id}.{ext}"
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=11))
    return f"{folder}/{int(time.time() * 1000)}_{suffix}.{ext}"


def _put_public(name: str, data: bytes, content_type: str | None) -> None:
    bucket = _bucket()
    headers = {"Cache-Control": CACHE_CONTROL}
    if content_type:
        headers["Content-Type"] = content_type
    bucket.put_object(name, data, headers=headers)
    try:
        bucket.put_object_acl(name, oss2.OBJECT_ACL_PUBLIC_READ)
    except oss2.exceptions.OssError as e:
        # Bucket policy may already grant public read
        logger.warning(f"Uploaded {name} but could not set public-read ACL: {e}")


async def upload_bytes(
    data: bytes,
    filename: str | None = None,
    content_type: str | None = None,
    folder: str = LOGO_FOLDER,
    app_id: str | None = None,
    ext: str | None = None,
) -> str:
    """Upload and return the public URL."""
    name = object_name(folder, ext or file_extension(filename), app_id)
    logger.info(f"Uploading {len(data)} bytes to OSS as {name}")
    try:
        await asyncio.to_thread(_put_public, name, data, content_type)
    except oss2.exceptions.OssError as e:
        logger.error(f"OSS upload failed for {name}: {e}", exc_info=True)
        raise OssError(f"File upload failed: {e}") from e
    return f"{bucket_domain()}/{name}"


async def delete_by_url(url: str) -> bool:
    """Delete the object behind a URL previously returned by upload_bytes."""
    name = url.replace(f"{bucket_domain()}/", "", 1)
    try:
        await asyncio.to_thread(_bucket().delete_object, name)
        return True
    except (OssError, oss2.exceptions.OssError) as e:
        logger.error(f"OSS delete failed for {name}: {e}", exc_info=True)
        return False
