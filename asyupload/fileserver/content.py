import enum
import mimetypes
import os
import urllib.parse
from typing import NamedTuple

DEFAULT_MIME_TYPE = 'application/octet-stream'

# MIME types a browser can display, everything else is sent as a download
TEXT_MIME_PREFIXES = (
    'text/',
    'application/json',
    'application/xml',
    'application/javascript',
    'application/x-javascript',
)


class ServePolicy(enum.Enum):
    INLINE = 'inline'
    DOWNLOAD = 'download'


class ContentClass(NamedTuple):
    mime_type: str
    policy: ServePolicy

    def response_headers(self, filename:str):
        """Content-Type and, for downloads, Content-Disposition of a file response"""
        if self.policy is ServePolicy.INLINE:
            if not self.mime_type:
                return []
            return [('Content-Type', self.mime_type.encode('ascii'))]
        return [
            ('Content-Disposition', content_disposition(filename).encode('ascii')),
            ('Content-Type', (self.mime_type or DEFAULT_MIME_TYPE).encode('ascii')),
        ]


def mime_type_by_extension(ext:str):
    """Returns the MIME type registered for the extension (leading dot included) or ''"""
    if not ext:
        return ''
    if not mimetypes.inited:
        mimetypes.init()
    for table in (mimetypes.types_map, mimetypes.common_types):
        mime_type = table.get(ext) or table.get(ext.lower())
        if mime_type is not None:
            return mime_type
    return ''


def is_text_mime_type(mime_type:str):
    if not mime_type:
        return False
    return mime_type.startswith(TEXT_MIME_PREFIXES)


def classify(file_path:str):
    ext = os.path.splitext(file_path)[1]
    mime_type = mime_type_by_extension(ext)
    if is_text_mime_type(mime_type):
        return ContentClass(mime_type, ServePolicy.INLINE)
    return ContentClass(mime_type, ServePolicy.DOWNLOAD)


def content_disposition(filename:str):
    """
    attachment header value for a file name.
    Names that are not plain ASCII get an RFC 5987 filename* parameter next to an
    ASCII fallback.
    """
    # header values can not carry control characters
    filename = ''.join(c if c.isprintable() else '_' for c in filename)
    quoted = filename.replace('\\', '\\\\').replace('"', '\\"')
    try:
        quoted.encode('ascii')
    except UnicodeEncodeError:
        fallback = quoted.encode('ascii', errors='replace').decode('ascii')
        encoded = urllib.parse.quote(filename, safe='')
        return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{encoded}'
    return f'attachment; filename="{quoted}"'
