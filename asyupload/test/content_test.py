import pytest

from asyupload.fileserver.content import (
    ServePolicy,
    classify,
    content_disposition,
    is_text_mime_type,
    mime_type_by_extension,
)


@pytest.mark.parametrize('mime_type, expected', [
    ('text/plain', True),
    ('text/html', True),
    ('application/json', True),
    ('application/xml', True),
    ('application/javascript', True),
    ('application/x-javascript', True),
    ('application/octet-stream', False),
    ('image/png', False),
    ('application/pdf', False),
    ('', False),
])
def test_is_text_mime_type(mime_type, expected):
    assert is_text_mime_type(mime_type) is expected


def test_mime_type_by_extension():
    assert mime_type_by_extension('.json') == 'application/json'
    assert mime_type_by_extension('.JSON') == 'application/json'
    assert mime_type_by_extension('.txt').startswith('text/plain')
    assert mime_type_by_extension('.nosuchextension') == ''
    assert mime_type_by_extension('') == ''


def test_classify_text_is_inline():
    content = classify('/srv/data/report.json')
    assert content.policy is ServePolicy.INLINE
    assert content.response_headers('report.json') == [('Content-Type', b'application/json')]


def test_classify_binary_is_download():
    content = classify('/srv/data/blob.bin')
    assert content.policy is ServePolicy.DOWNLOAD
    headers = dict(content.response_headers('blob.bin'))
    assert headers['Content-Disposition'] == b'attachment; filename="blob.bin"'
    assert headers['Content-Type'] == b'application/octet-stream'


def test_classify_unknown_extension():
    content = classify('/srv/data/README')
    assert content.mime_type == ''
    assert content.policy is ServePolicy.DOWNLOAD
    headers = dict(content.response_headers('README'))
    assert headers['Content-Type'] == b'application/octet-stream'


def test_classify_known_binary_keeps_mime_type():
    content = classify('photo.png')
    assert content.policy is ServePolicy.DOWNLOAD
    assert dict(content.response_headers('photo.png'))['Content-Type'] == b'image/png'


def test_content_disposition_escaping():
    assert content_disposition('a"b.bin') == 'attachment; filename="a\\"b.bin"'
    value = content_disposition('résumé.pdf')
    value.encode('ascii')
    assert "filename*=UTF-8''r%C3%A9sum%C3%A9.pdf" in value
    assert '\n' not in content_disposition('bad\nname.bin')
