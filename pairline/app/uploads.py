"""
Multipart upload handling for Pairline.

Streams an UploadFile to the transient upload directory and hands the
DispatchPipeline an Attachment pointing at it.
"""
from __future__ import annotations

import logging
import uuid
from pathlib import Path

from fastapi import UploadFile

from pairline.dispatch import Attachment
from pairline.errors import UploadTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def has_file(upload: UploadFile | None) -> bool:
    """Browsers send an empty part with no filename when no file is picked."""
    return upload is not None and bool(upload.filename)


async def save_upload(upload: UploadFile, upload_dir: str | Path, max_bytes: int) -> Attachment:
    """
    Store an upload under a random name.

    Raises:
        UploadTooLarge: The file is bigger than max_bytes (nothing is kept)
    """
    directory = Path(upload_dir)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / uuid.uuid4().hex

    size = 0
    try:
        with target.open("wb") as fh:
            while chunk := await upload.read(CHUNK_SIZE):
                size += len(chunk)
                if size > max_bytes:
                    raise UploadTooLarge(max_bytes)
                fh.write(chunk)
    except UploadTooLarge:
        target.unlink(missing_ok=True)
        logger.warning(f"Rejected upload {upload.filename!r}: larger than {max_bytes} bytes")
        raise
    finally:
        await upload.close()

    logger.info(f"Stored upload {upload.filename!r} ({size} bytes) at {target}")
    return Attachment(
        path=target,
        filename=upload.filename or target.name,
        content_type=upload.content_type or None,
    )
