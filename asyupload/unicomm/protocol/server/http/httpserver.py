
import asyncio
import datetime
import email.utils
from typing import List, Tuple

import aiofiles
import aiofiles.os
import h11

from asyupload import logger
from asyupload._version import __version__
from asyupload.unicomm.common.target import UniTarget
from asyupload.unicomm.common.connection import UniConnection
from asyupload.unicomm.server import UniServer

# unread request body that is still drained to keep a connection alive
MAX_DISCARD_BODY = 256 * 1024

SERVER_IDENT = " ".join(
    [f"asyupload/{__version__}", h11.PRODUCT_ID]
).encode("ascii")


class HTTPError(Exception):
    """Terminates the current request with an error response."""
    status_code = 500

    def __init__(self, message, status_code=None, headers=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers or []


class RangeNotSatisfiableError(HTTPError):
    status_code = 416

    def __init__(self, file_size):
        super().__init__(
            "Requested range not satisfiable",
            headers=[("Content-Range", f"bytes */{file_size}".encode("ascii"))],
        )
        self.file_size = file_size


def format_date_time(dt=None):
    """Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
    if dt is None:
        dt = datetime.datetime.now(datetime.timezone.utc)
    return email.utils.format_datetime(dt, usegmt=True)


def get_header(headers, name:bytes):
    """Returns the first value of a request header or None. h11 lowercases header names."""
    for hname, value in headers:
        if hname == name:
            return value
    return None


def parse_range_header(value:str, file_size:int):
    """
    Parses a single "bytes=" range against the size of the file.

    Returns:
        (start, end) inclusive byte offsets, or None if the header is malformed,
        uses another unit or asks for multiple ranges (the whole file is served then).

    Raises:
        RangeNotSatisfiableError: the range does not overlap the file
    """
    unit, sep, ranges = value.partition("=")
    if not sep or unit.strip().lower() != "bytes" or "," in ranges:
        return None
    first, sep, last = ranges.strip().partition("-")
    first, last = first.strip(), last.strip()
    if not sep or (first and not first.isdigit()) or (last and not last.isdigit()):
        return None

    if not first:
        if not last:
            return None
        # suffix range, the last N bytes
        suffix = int(last)
        if suffix == 0 or file_size == 0:
            raise RangeNotSatisfiableError(file_size)
        return max(file_size - suffix, 0), file_size - 1

    start = int(first)
    end = int(last) if last else file_size - 1
    if end < start:
        return None
    if start >= file_size:
        raise RangeNotSatisfiableError(file_size)
    return start, min(end, file_size - 1)


class HTTPWrapper:
    def __init__(self, client_id, stream:UniConnection, log_callback=None):
        self.log_callback = log_callback
        self.client_id = client_id
        self.stream = stream
        self.conn = h11.Connection(h11.SERVER)

    async def debug(self, *args):
        if self.log_callback is None:
            return
        await self.log_callback(' '.join(str(x) for x in args))

    async def send(self, event):
        # ConnectionClosed is never sent, closing is done by shutdown_and_clean_up
        assert type(event) is not h11.ConnectionClosed
        data = self.conn.send(event)
        try:
            await self.stream.write(data)
        except BaseException:
            self.conn.send_failed()
            raise

    async def _read_from_peer(self):
        if self.conn.they_are_waiting_for_100_continue:
            await self.debug("Sending 100 Continue")
            go_ahead = h11.InformationalResponse(
                status_code=100, headers=self.basic_headers()
            )
            await self.send(go_ahead)
        try:
            data = await self.stream.read_one()
        except OSError as exc:
            await self.debug('[%s] Error reading from peer: %s' % (self.client_id, exc))
            data = b""
        self.conn.receive_data(data)

    async def next_event(self):
        while True:
            event = self.conn.next_event()
            if event is h11.NEED_DATA:
                await self._read_from_peer()
                continue
            await self.debug('[%s] Event: %s' % (self.client_id, event))
            return event

    async def iter_request_body(self):
        """Yields the chunks of the current request body until EndOfMessage."""
        while True:
            try:
                event = await self.next_event()
            except h11.RemoteProtocolError as exc:
                raise ConnectionError(str(exc)) from exc
            if isinstance(event, h11.Data):
                if event.data:
                    yield bytes(event.data)
            elif isinstance(event, h11.EndOfMessage):
                return
            else:
                raise ConnectionError("connection closed before the request body was complete")

    async def discard_request_body(self, limit:int = MAX_DISCARD_BODY):
        """
        Reads and drops what is left of the request body so the connection can be reused.
        Returns False if the body was larger than limit or the peer went away.
        """
        discarded = 0
        while self.conn.their_state is h11.SEND_BODY:
            try:
                event = await self.next_event()
            except h11.RemoteProtocolError:
                return False
            if isinstance(event, h11.Data):
                discarded += len(event.data)
                if discarded > limit:
                    await self.debug('[%s] Unread request body too large, closing' % self.client_id)
                    return False
            elif isinstance(event, h11.ConnectionClosed):
                return False
        return True

    async def shutdown_and_clean_up(self):
        await self.stream.close()

    def basic_headers(self):
        # HTTP requires these headers in all responses
        return [
            ("Date", format_date_time().encode("ascii")),
            ("Server", SERVER_IDENT),
        ]


class HTTPServerHandler:
    """
    Base class for request handlers. One instance serves one connection,
    requests are dispatched to the do_<METHOD> coroutine of the subclass.
    """
    def __init__(self):
        self._wrapper:HTTPWrapper = None
        self._request:h11.Request = None

    def basic_headers(self):
        return self._wrapper.basic_headers()

    def allowed_methods(self):
        return sorted(name[3:] for name in dir(self) if name.startswith('do_'))

    async def _process_request(self, wrapper:HTTPWrapper, request:h11.Request):
        """
        Runs the handler for one request.
        Returns False if the connection can not be used for further requests.
        """
        self._wrapper = wrapper
        self._request = request
        method = request.method.decode("ascii")
        func = getattr(self, f"do_{method}", None)
        try:
            if func is None:
                allow = ", ".join(self.allowed_methods()).encode("ascii")
                await self._serve_error(405, "Method not allowed", [("Allow", allow)])
            else:
                await func(request)
        except HTTPError as exc:
            if wrapper.conn.our_state is not h11.SEND_RESPONSE:
                return False
            await self._serve_error(exc.status_code, exc.message, exc.headers)
        except ConnectionError:
            raise
        except Exception as exc:
            logger.exception('Unhandled error while processing %s %s' % (method, request.target))
            if wrapper.conn.our_state is not h11.SEND_RESPONSE:
                return False
            await self._serve_error(500, f"Internal server error: {exc}")

        if wrapper.conn.their_state is h11.SEND_BODY:
            return await wrapper.discard_request_body()
        return True

    async def _process_error(self, wrapper:HTTPWrapper, exc:h11.RemoteProtocolError):
        """Answers a request h11 could not parse"""
        self._wrapper = wrapper
        self._request = None
        await self._serve_error(exc.error_status_hint, f"Bad request: {exc}")

    async def send_body(self, status_code:int, body:bytes, content_type:bytes, headers=None):
        """Sends a complete response with an in-memory body"""
        response_headers = self.basic_headers()
        response_headers.extend([
            ("Content-Type", content_type),
            ("Content-Length", str(len(body)).encode("ascii")),
        ])
        if headers:
            response_headers.extend(headers)
        await self._wrapper.send(h11.Response(status_code=status_code, headers=response_headers))
        # responses to HEAD keep their Content-Length but carry no body
        if body and (self._request is None or self._request.method != b"HEAD"):
            await self._wrapper.send(h11.Data(data=body))
        await self._wrapper.send(h11.EndOfMessage())

    async def _serve_error(self, status_code:int, message:str, headers=None):
        """Serves a plaintext error response"""
        extra = [("X-Content-Type-Options", b"nosniff")]
        if headers:
            extra.extend(headers)
        body = (message + "\n").encode("utf-8")
        await self.send_body(status_code, body, b"text/plain; charset=utf-8", extra)

    async def send_file(self, file_path:str, request_headers, headers:List[Tuple[str, bytes]] = None, chunk_size:int = 64 * 1024):
        """
        Streams a file from disk.

        Sets Last-Modified, Content-Length and Accept-Ranges on top of the headers
        supplied by the caller, answers If-Modified-Since with 304 and a single
        byte range with 206.
        """
        try:
            stat = await aiofiles.os.stat(file_path)
            f = await aiofiles.open(file_path, 'rb')
        except OSError as exc:
            raise HTTPError(f"Error serving file: {exc}")

        try:
            file_size = stat.st_size
            mtime = datetime.datetime.fromtimestamp(int(stat.st_mtime), datetime.timezone.utc)
            response_headers = self.basic_headers()
            response_headers.append(("Last-Modified", format_date_time(mtime).encode("ascii")))
            if headers:
                response_headers.extend(headers)

            if self._is_not_modified(request_headers, mtime):
                await self._wrapper.send(h11.Response(status_code=304, headers=response_headers))
                await self._wrapper.send(h11.EndOfMessage())
                return

            status_code = 200
            start, end = 0, file_size - 1
            range_header = get_header(request_headers, b"range")
            if range_header is not None:
                byte_range = parse_range_header(range_header.decode("latin-1"), file_size)
                if byte_range is not None:
                    start, end = byte_range
                    status_code = 206
                    response_headers.append(
                        ("Content-Range", f"bytes {start}-{end}/{file_size}".encode("ascii"))
                    )

            content_length = end - start + 1
            response_headers.extend([
                ("Content-Length", str(content_length).encode("ascii")),
                ("Accept-Ranges", b"bytes"),
            ])
            await self._wrapper.send(h11.Response(status_code=status_code, headers=response_headers))

            if start > 0:
                await f.seek(start)
            remaining = content_length
            while remaining > 0:
                chunk = await f.read(min(chunk_size, remaining))
                if not chunk:
                    # file shrank while being served, h11 refuses to end a short message
                    raise ConnectionError(f"{file_path} truncated while being served")
                await self._wrapper.send(h11.Data(data=chunk))
                remaining -= len(chunk)
            await self._wrapper.send(h11.EndOfMessage())
        finally:
            await f.close()

    @staticmethod
    def _is_not_modified(request_headers, mtime:datetime.datetime):
        value = get_header(request_headers, b"if-modified-since")
        if value is None:
            return False
        try:
            since = email.utils.parsedate_to_datetime(value.decode("latin-1"))
        except (TypeError, ValueError):
            return False
        if since.tzinfo is None:
            since = since.replace(tzinfo=datetime.timezone.utc)
        return mtime <= since


class HTTPServer:
    def __init__(self, client_handler, target:UniTarget, log_callback=None):
        self.log_callback = log_callback
        self.target = target
        self.client_handler = client_handler

        self.clients = set()
        self.id_counter = 0
        self.uniserver = None
        self.__main_task = None
        self.started_evt = asyncio.Event()

    @property
    def listen_port(self):
        if self.uniserver is None:
            return None
        return self.uniserver.bound_port

    async def debug(self, *args):
        if self.log_callback is None:
            return
        await self.log_callback(' '.join(str(x) for x in args))

    async def __aenter__(self):
        self.__main_task = asyncio.create_task(self.serve())
        started = asyncio.create_task(self.started_evt.wait())
        await asyncio.wait([self.__main_task, started], return_when=asyncio.FIRST_COMPLETED)
        if self.__main_task.done():
            started.cancel()
            # raises the bind error
            self.__main_task.result()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.terminate()

    async def terminate(self):
        clients = list(self.clients)
        for client in clients:
            client.cancel()
        if clients:
            await asyncio.gather(*clients, return_exceptions=True)
        self.clients.clear()
        if self.__main_task is not None:
            self.__main_task.cancel()
            await asyncio.gather(self.__main_task, return_exceptions=True)
            self.__main_task = None

    async def __handle_connection(self, connection:UniConnection):
        client_id = self.id_counter
        self.id_counter += 1
        wrapper = HTTPWrapper(client_id, connection, log_callback=self.log_callback)
        handler = self.client_handler()
        await self.debug('[%s] New client connected from %s' % (client_id, connection.get_peer_str()))
        try:
            while True:
                states = wrapper.conn.states
                if h11.MUST_CLOSE in states.values() or h11.CLOSED in states.values():
                    break

                if states == {h11.CLIENT: h11.DONE, h11.SERVER: h11.DONE}:
                    wrapper.conn.start_next_cycle()
                    continue

                if states != {h11.CLIENT: h11.IDLE, h11.SERVER: h11.IDLE}:
                    await self.debug('[%s] Connection state not idle: %s' % (client_id, states))
                    break

                try:
                    event = await wrapper.next_event()
                except h11.RemoteProtocolError as exc:
                    await self.debug('[%s] Protocol error: %s' % (client_id, exc))
                    if wrapper.conn.our_state in (h11.IDLE, h11.SEND_RESPONSE):
                        await handler._process_error(wrapper, exc)
                    break

                if type(event) is h11.Request:
                    if not await handler._process_request(wrapper, event):
                        break
                    continue
                if type(event) is h11.ConnectionClosed:
                    break
                await self.debug('[%s] Unexpected event type %s' % (client_id, type(event)))
                break
        except asyncio.CancelledError:
            raise
        except ConnectionError as exc:
            await self.debug('[%s] Connection lost: %s' % (client_id, exc))
        except Exception:
            logger.exception('[%s] Error while handling connection' % client_id)
        finally:
            await wrapper.shutdown_and_clean_up()
            await self.debug('[%s] Client disconnected' % client_id)

    async def serve(self):
        """Accepts clients forever. Bind errors are raised."""
        self.uniserver = UniServer(self.target, bound_evt=self.started_evt)
        async for connection in self.uniserver.serve():
            task = asyncio.create_task(self.__handle_connection(connection))
            self.clients.add(task)
            task.add_done_callback(self.clients.discard)
