import os
from typing import NamedTuple

DEFAULT_PORT = '8000'
DEFAULT_ROOT_DIRECTORY = '/tmp/upload'
DEFAULT_HOST = '0.0.0.0'


class FileServerConfig(NamedTuple):
    """Settings fixed at startup and handed to every request handler"""
    port: str
    root_directory: str
    host: str = DEFAULT_HOST

    @property
    def port_number(self):
        return int(self.port)

    @staticmethod
    def create(port=DEFAULT_PORT, root_directory=DEFAULT_ROOT_DIRECTORY, host=DEFAULT_HOST):
        """Validates the port and makes the root directory absolute"""
        port = str(port).strip()
        if not port.isdigit() or not 0 <= int(port) <= 65535:
            raise ValueError(f"Port must be a number between 0 and 65535, got {port!r}")
        if not root_directory:
            raise ValueError("Root directory must not be empty")
        return FileServerConfig(port, os.path.abspath(root_directory), host)

    @staticmethod
    def from_args(args):
        return FileServerConfig.create(args.port, args.directory, args.host)
