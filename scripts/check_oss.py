#!/usr/bin/env python3
"""
OSS smoke test: upload a small text object to cpi_logo/, print its public URL,
then delete it again. Reads OSS_* settings from .env.
Run from the repo root: python -m scripts.check_oss [--force]
"""
import asyncio
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.common import parse_args, refuse_production


async def main():
    args = parse_args("Upload and delete a test object in OSS")
    refuse_production(args.force)

    from opsconsole.config import get_settings
    from opsconsole.services import oss_service

    settings = get_settings()
    print(f"Endpoint: {settings.oss_endpoint}")
    print(f"Bucket:   {settings.oss_bucket or '(not set)'}")
    print(f"Key id:   {settings.oss_access_key_id[:6]}..." if settings.oss_access_key_id else "Key id:   (not set)")

    try:
        url = await oss_service.upload_bytes(
            b"test file content for OSS connection test",
            content_type="text/plain",
            folder=oss_service.LOGO_FOLDER,
            app_id=f"test-connection-{int(time.time() * 1000)}",
            ext="txt",
        )
    except oss_service.OssError as e:
        print(f"Upload failed: {e}")
        sys.exit(1)

    print(f"Uploaded: {url}")
    deleted = await oss_service.delete_by_url(url)
    print("Deleted test object." if deleted else "Could not delete the test object, remove it manually.")


if __name__ == "__main__":
    asyncio.run(main())
