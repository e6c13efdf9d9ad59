"""
Mapping of request URLs onto the served directory tree.

The URL path is cleaned before it is joined onto the root directory, and the
joined result is checked once more to lie inside the root. Symbolic links
inside the root are not resolved, they are followed like any other entry.
"""

import os
import posixpath
import urllib.parse
from typing import NamedTuple

from asyupload.fileserver.errors import InvalidPathError

ROOT_PATH = '/'


class ResolvedPath(NamedTuple):
    url_path: str
    request_path: str
    fs_path: str

    @property
    def is_root(self):
        return self.request_path == ROOT_PATH

    @property
    def relative_path(self):
        """request_path without the leading slash, as reported back to uploaders"""
        return self.request_path.lstrip('/')


def url_path_from_target(target:bytes):
    """Percent-decoded path component of a raw request target, the query is dropped"""
    # undecodable bytes survive as surrogates, the same way os.fsdecode keeps them in file names
    raw = target.decode('utf-8', errors='surrogateescape')
    if not raw.startswith('/'):
        # absolute-form, e.g. http://host/path
        raw = urllib.parse.urlsplit(raw).path
    path = raw.partition('?')[0]
    return urllib.parse.unquote(path, errors='surrogateescape') or ROOT_PATH


def normalize_url_path(url_path:str):
    """
    Collapses '.', '..' and repeated separators.
    The result is always absolute, '..' can not climb above '/'.
    """
    # normpath keeps a leading '//' as POSIX allows it, anchoring on a single slash avoids that
    return posixpath.normpath(ROOT_PATH + url_path.lstrip('/'))


def resolve_request_path(url_path:str, root_directory:str):
    root_directory = os.path.normpath(root_directory)
    request_path = normalize_url_path(url_path)
    fs_path = os.path.normpath(os.path.join(root_directory, request_path.lstrip('/')))
    try:
        inside = os.path.commonpath([fs_path, root_directory]) == root_directory
    except ValueError:
        # different drives on Windows
        inside = False
    if not inside:
        raise InvalidPathError('Path escapes the served directory')
    return ResolvedPath(url_path, request_path, fs_path)


def resolve_upload_path(url_path:str, root_directory:str):
    resolved = resolve_request_path(url_path, root_directory)
    if resolved.is_root:
        raise InvalidPathError('Invalid file path')
    return resolved
