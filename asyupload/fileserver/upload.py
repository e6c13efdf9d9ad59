import os
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from asyupload import logger
from asyupload.fileserver.errors import FileServerError

DIRECTORY_MODE = 0o755


async def store_upload(fs_path:str, body:AsyncIterator[bytes]) -> int:
    """
    Writes the request body to fs_path, creating missing parent directories.
    An existing file is truncated. Returns the number of bytes written.

    On a failure halfway through the body the partial file stays on disk.
    """
    parent_dir = os.path.dirname(fs_path)
    try:
        await aiofiles.os.makedirs(parent_dir, mode=DIRECTORY_MODE, exist_ok=True)
    except OSError as exc:
        raise FileServerError(f"Failed to create directory: {exc}")

    try:
        f = await aiofiles.open(fs_path, 'wb')
    except OSError as exc:
        raise FileServerError(f"Failed to create file: {exc}")

    written = 0
    try:
        async for chunk in body:
            await f.write(chunk)
            written += len(chunk)
    except OSError as exc:
        logger.warning('Upload to %s aborted after %d bytes: %s' % (fs_path, written, exc))
        raise FileServerError(f"Failed to write file: {exc}")
    finally:
        await f.close()

    logger.info('Uploaded file: %s (%d bytes)' % (fs_path, written))
    return written
