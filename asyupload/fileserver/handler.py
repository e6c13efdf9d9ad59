import os
import stat

import aiofiles.os
import h11

from asyupload import logger
from asyupload.fileserver.config import FileServerConfig
from asyupload.fileserver.content import ServePolicy, classify
from asyupload.fileserver.errors import FileServerError, PathNotFoundError
from asyupload.fileserver.listing import read_directory, render_directory_listing
from asyupload.fileserver.paths import (
    ResolvedPath,
    resolve_request_path,
    resolve_upload_path,
    url_path_from_target,
)
from asyupload.fileserver.upload import store_upload
from asyupload.unicomm.protocol.server.http.httpserver import HTTPServerHandler


class FileServerHandler(HTTPServerHandler):
    """
    GET lists directories and serves files, PUT stores the request body as a file.
    Any other method is answered with 405 by the base class.
    """

    def __init__(self, config:FileServerConfig):
        super().__init__()
        self.config = config

    async def do_GET(self, event:h11.Request):
        url_path = url_path_from_target(event.target)
        resolved = resolve_request_path(url_path, self.config.root_directory)

        try:
            st = await aiofiles.os.stat(resolved.fs_path)
        except FileNotFoundError:
            raise PathNotFoundError("Path not found")
        except OSError as exc:
            raise FileServerError(f"Error accessing path: {exc}")

        if not stat.S_ISDIR(st.st_mode):
            await self._serve_file(resolved, event.headers)
            return

        try:
            entries = await read_directory(resolved.fs_path)
        except OSError as exc:
            raise FileServerError(f"Error reading directory: {exc}")

        body = render_directory_listing(resolved, entries).encode('utf-8', errors='surrogateescape')
        await self.send_body(200, body, b"text/html; charset=utf-8")

    async def _serve_file(self, resolved:ResolvedPath, request_headers):
        content = classify(resolved.fs_path)
        if content.policy is ServePolicy.INLINE:
            logger.info('Serving text file for viewing: %s (type: %s)' % (resolved.fs_path, content.mime_type))
        else:
            logger.info('Serving file for download: %s (type: %s)' % (resolved.fs_path, content.mime_type))
        headers = content.response_headers(os.path.basename(resolved.fs_path))
        await self.send_file(resolved.fs_path, request_headers, headers)

    async def do_PUT(self, event:h11.Request):
        url_path = url_path_from_target(event.target)
        resolved = resolve_upload_path(url_path, self.config.root_directory)

        written = await store_upload(resolved.fs_path, self._wrapper.iter_request_body())

        body = f"File uploaded successfully: {resolved.relative_path} ({written} bytes)\n"
        await self.send_body(201, body.encode('utf-8', errors='surrogateescape'), b"text/plain; charset=utf-8")
