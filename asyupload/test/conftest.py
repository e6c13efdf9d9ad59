from typing import NamedTuple

import pytest_asyncio

from asyupload.fileserver.config import FileServerConfig
from asyupload.fileserver.server import create_file_server
from asyupload.test.httpclient import H11Client


class RunningFileServer(NamedTuple):
    port: int
    root: object
    config: FileServerConfig

    async def request(self, method, target, body=None, headers=None):
        client = H11Client(self.port)
        try:
            return await client.request(method, target, body=body, headers=headers)
        finally:
            await client.close()


@pytest_asyncio.fixture
async def fileserver(tmp_path):
    root = tmp_path / 'root'
    root.mkdir()
    config = FileServerConfig.create('0', str(root), '127.0.0.1')
    async with create_file_server(config) as server:
        yield RunningFileServer(server.listen_port, root, config)
