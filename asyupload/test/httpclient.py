import asyncio
from typing import Dict, NamedTuple

import h11


class HTTPResult(NamedTuple):
    status: int
    headers: Dict[str, str]
    body: bytes

    @property
    def text(self):
        return self.body.decode('utf-8')


class H11Client:
    """Minimal keep-alive HTTP/1.1 client used to drive the server under test"""

    def __init__(self, port):
        self.port = port
        self.reader = None
        self.writer = None
        self.conn = None

    async def connect(self):
        self.reader, self.writer = await asyncio.open_connection('127.0.0.1', self.port)
        self.conn = h11.Connection(h11.CLIENT)

    async def close(self):
        if self.writer is not None:
            self.writer.close()
            self.writer = None

    async def request(self, method, target, body=None, headers=None):
        if self.conn is None:
            await self.connect()
        if self.conn.states == {h11.CLIENT: h11.DONE, h11.SERVER: h11.DONE}:
            self.conn.start_next_cycle()

        request_headers = [('Host', '127.0.0.1')]
        if headers:
            request_headers.extend(headers)
        if body is not None:
            request_headers.append(('Content-Length', str(len(body))))

        data = self.conn.send(h11.Request(method=method, target=target, headers=request_headers))
        if body:
            data += self.conn.send(h11.Data(data=body))
        data += self.conn.send(h11.EndOfMessage())
        self.writer.write(data)
        await self.writer.drain()

        response = None
        chunks = []
        while True:
            event = self.conn.next_event()
            if event is h11.NEED_DATA:
                self.conn.receive_data(await self.reader.read(65536))
                continue
            if isinstance(event, h11.Response):
                response = event
            elif isinstance(event, h11.Data):
                chunks.append(bytes(event.data))
            elif isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                break

        headers = {
            name.decode('ascii').lower(): value.decode('latin-1')
            for name, value in response.headers
        }
        return HTTPResult(response.status_code, headers, b''.join(chunks))

