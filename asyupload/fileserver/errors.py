from asyupload.unicomm.protocol.server.http.httpserver import HTTPError


class FileServerError(HTTPError):
    """Filesystem failure while handling a request, reported as 500 with the reason."""
    status_code = 500


class InvalidPathError(FileServerError):
    status_code = 400


class PathNotFoundError(FileServerError):
    status_code = 404
