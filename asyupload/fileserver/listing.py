import asyncio
import html
import os
import posixpath
import urllib.parse
from typing import List, NamedTuple

from asyupload.fileserver.paths import ROOT_PATH, ResolvedPath, normalize_url_path


class DirEntryInfo(NamedTuple):
    name: str
    is_dir: bool

    @property
    def display_name(self):
        if self.is_dir:
            return self.name + '/'
        return self.name


def _scan_directory(dir_path:str) -> List[DirEntryInfo]:
    with os.scandir(dir_path) as it:
        entries = [DirEntryInfo(entry.name, entry.is_dir(follow_symlinks=False)) for entry in it]
    entries.sort(key=lambda entry: entry.name)
    return entries


async def read_directory(dir_path:str) -> List[DirEntryInfo]:
    """
    Immediate children of a directory, sorted by name.
    Symbolic links are listed as plain entries even if they point to a directory.
    The whole scan runs in the default executor, iterating entries touches the disk too.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _scan_directory, dir_path)


def parent_link(request_path:str):
    parent = posixpath.dirname(request_path)
    if not parent or parent == '.':
        return ROOT_PATH
    return parent


def entry_link(url_path:str, name:str):
    return normalize_url_path(posixpath.join(url_path, name))


def _href(path:str):
    return html.escape(urllib.parse.quote(path, errors='surrogateescape'), quote=True)


def render_directory_listing(resolved:ResolvedPath, entries:List[DirEntryInfo]):
    """HTML page listing the entries of the directory requested as resolved.url_path"""
    title = html.escape(resolved.url_path)
    lines = [
        f'<html><head><title>Directory listing for {title}</title></head><body>',
        f'<h1>Directory listing for {title}</h1>',
        '<hr>',
        '<ul>',
    ]
    if not resolved.is_root:
        lines.append(f'<li><a href="{_href(parent_link(resolved.request_path))}">../</a></li>')

    for entry in entries:
        href = _href(entry_link(resolved.url_path, entry.name))
        lines.append(f'<li><a href="{href}">{html.escape(entry.display_name)}</a></li>')

    lines.extend(['</ul>', '<hr>', '</body></html>'])
    return '\n'.join(lines) + '\n'
