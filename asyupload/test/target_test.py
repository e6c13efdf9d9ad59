import pytest

from asyupload.unicomm.common.target import UniTarget


def test_ip_target():
	target = UniTarget('127.0.0.1', 8000)
	assert target.ip == '127.0.0.1'
	assert target.hostname is None
	assert target.get_ip_or_hostname() == '127.0.0.1'


def test_hostname_target():
	target = UniTarget('localhost', 0)
	assert target.ip is None
	assert target.get_ip_or_hostname() == 'localhost'


@pytest.mark.parametrize('ip, port', [
	(None, 8000),
	('0.0.0.0', -1),
	('0.0.0.0', 65536),
])
def test_invalid_target(ip, port):
	with pytest.raises(ValueError):
		UniTarget(ip, port)
