import os

import pytest

from asyupload.fileserver.config import FileServerConfig
from asyupload.fileserver.server import get_parser, main, prepare_root_directory


def test_parser_defaults():
    args = get_parser().parse_args([])
    assert args.port == '8000'
    assert args.directory == '/tmp/upload'
    assert args.host == '0.0.0.0'
    assert args.debug is False


def test_parser_short_flags():
    args = get_parser().parse_args(['-h', '9000', '-d', '/srv/files'])
    config = FileServerConfig.from_args(args)
    assert config.port == '9000'
    assert config.port_number == 9000
    assert config.root_directory == '/srv/files'


def test_config_makes_root_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = FileServerConfig.create('8000', 'uploads')
    assert config.root_directory == os.path.join(str(tmp_path), 'uploads')


@pytest.mark.parametrize('port', ['http', '-1', '65536', ''])
def test_config_rejects_bad_port(port):
    with pytest.raises(ValueError):
        FileServerConfig.create(port, '/tmp/upload')


def test_config_is_immutable():
    config = FileServerConfig.create('8000', '/tmp/upload')
    with pytest.raises(AttributeError):
        config.port = '9000'


def test_prepare_root_directory_creates_parents(tmp_path):
    config = FileServerConfig.create('8000', str(tmp_path / 'a' / 'b' / 'c'))
    prepare_root_directory(config)
    assert os.path.isdir(config.root_directory)
    # idempotent
    prepare_root_directory(config)


def test_main_exits_when_root_can_not_be_created(tmp_path):
    blocker = tmp_path / 'file'
    blocker.write_text('x')
    with pytest.raises(SystemExit) as excinfo:
        main(['-d', str(blocker / 'sub')])
    assert excinfo.value.code == 1


def test_main_exits_on_invalid_port(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(['-h', 'eighty', '-d', str(tmp_path)])
    assert excinfo.value.code == 1
