#!/usr/bin/env python3
"""
Upload File Server

Serves a directory over HTTP:
- GET on a directory returns an HTML listing
- GET on a file returns it, text-like files inline, everything else as a download
- PUT stores the request body under the requested path, creating directories

Usage:
    asyupload-fileserver [-h PORT] [-d DIRECTORY]

Example:
    asyupload-fileserver -h 8080 -d ./uploads
    curl -T notes.txt http://127.0.0.1:8080/docs/notes.txt
"""

import argparse
import asyncio
import logging
import os
import sys

from asyupload import logger
from asyupload._version import __version__
from asyupload.fileserver.config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_ROOT_DIRECTORY,
    FileServerConfig,
)
from asyupload.fileserver.handler import FileServerHandler
from asyupload.fileserver.upload import DIRECTORY_MODE
from asyupload.unicomm.common.target import UniTarget
from asyupload.unicomm.protocol.server.http.httpserver import HTTPServer


def prepare_root_directory(config:FileServerConfig):
    """Creates the root directory with its parents, raises OSError if that is not possible"""
    os.makedirs(config.root_directory, mode=DIRECTORY_MODE, exist_ok=True)
    if not os.path.isdir(config.root_directory):
        raise NotADirectoryError(f"Not a directory: {config.root_directory}")


def create_file_server(config:FileServerConfig, log_callback=None):
    target = UniTarget(config.host, config.port_number)
    handler_factory = lambda: FileServerHandler(config)
    return HTTPServer(handler_factory, target, log_callback=log_callback)


async def run_file_server(config:FileServerConfig, debug=False):
    """Serves until cancelled. Bind errors are raised."""
    log_callback = None
    if debug:
        async def log_callback(msg):
            logger.debug('[HTTP] %s' % msg)

    server = create_file_server(config, log_callback=log_callback)
    logger.info('Starting file server on port %s, serving directory: %s' % (config.port, config.root_directory))
    try:
        await server.serve()
    finally:
        await server.terminate()


def get_parser():
    # -h is the port, so the automatic help flag moves to --help
    parser = argparse.ArgumentParser(
        description='Asyupload file server - browse with GET, upload with PUT',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog='''
Examples:
  %(prog)s                        # Serve /tmp/upload on port 8000
  %(prog)s -h 9000 -d ./files     # Serve ./files on port 9000
  curl -T report.pdf http://127.0.0.1:8000/reports/report.pdf
        ''')
    parser.add_argument(
        '-h',
        dest='port',
        default=DEFAULT_PORT,
        help=f'Server port (default: {DEFAULT_PORT})'
    )
    parser.add_argument(
        '-d',
        dest='directory',
        default=DEFAULT_ROOT_DIRECTORY,
        help=f'Upload directory (default: {DEFAULT_ROOT_DIRECTORY})'
    )
    parser.add_argument(
        '--host',
        default=DEFAULT_HOST,
        help=f'Address to bind to (default: {DEFAULT_HOST})'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging (shows connection level activity)'
    )
    parser.add_argument(
        '--help',
        action='help',
        help='Show this help message and exit'
    )
    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'asyupload {__version__}'
    )
    return parser


def main(argv=None):
    parser = get_parser()
    args = parser.parse_args(argv)

    if args.debug:
        logger.setLevel(logging.DEBUG)

    try:
        config = FileServerConfig.from_args(args)
    except ValueError as e:
        logger.critical('Invalid configuration: %s' % e)
        sys.exit(1)

    try:
        prepare_root_directory(config)
    except OSError as e:
        logger.critical('Failed to create upload directory: %s' % e)
        sys.exit(1)

    try:
        asyncio.run(run_file_server(config, debug=args.debug))
    except KeyboardInterrupt:
        logger.info('File server stopped by user')
    except OSError as e:
        logger.critical('Server failed to start: %s' % e)
        sys.exit(1)


if __name__ == '__main__':
    main()
