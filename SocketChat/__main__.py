"""
Entry point for SocketChat.
This module provides a command-line interface to start the chat server.
"""

import argparse

from SocketChat.config import config
from SocketChat.core.logging import auto_configure
from SocketChat.start import api, server


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--host', default=config.DEFAULT_HOST,
                        help=f'listening address (default: {config.DEFAULT_HOST})')
    parser.add_argument('--db', default=config.SQLITE_DB_FILE,
                        help='SQLite database file (default: in-memory store)')
    parser.add_argument('--seed', action='store_true', help='create demo users and a group on startup')


def parse(argv=None):
    parser = argparse.ArgumentParser(prog='SocketChat', description='SocketChat starter')
    subparsers = parser.add_subparsers(dest='command', required=True, help='Available commands')

    # WebSocket server + REST api in one process
    server_parser = subparsers.add_parser('server', help='Startup SERVER (ws + api)')
    _add_common(server_parser)
    server_parser.add_argument('--port', type=int, default=config.DEFAULT_SERVER_PORT,
                               help=f'ws port (default: {config.DEFAULT_SERVER_PORT})')
    server_parser.add_argument('--api-port', type=int, default=config.DEFAULT_API_PORT,
                               help=f'api port (default: {config.DEFAULT_API_PORT})')

    srv_parser = subparsers.add_parser('srv-only', help='Startup server (ws server only)')
    _add_common(srv_parser)
    srv_parser.add_argument('--port', type=int, default=config.DEFAULT_SERVER_PORT,
                            help=f'ws port (default: {config.DEFAULT_SERVER_PORT})')

    api_parser = subparsers.add_parser('api-only', help='Startup api only')
    _add_common(api_parser)
    api_parser.add_argument('--api-port', '--port', dest='api_port', type=int, default=config.DEFAULT_API_PORT,
                            help=f'api port (default: {config.DEFAULT_API_PORT})')

    return parser.parse_args(argv)


def main(argv=None):
    args = parse(argv)
    auto_configure()

    if args.command == 'server':
        server.server(host=args.host, port=args.port, api_port=args.api_port, db=args.db, seed=args.seed)
    elif args.command == 'srv-only':
        server.server(host=args.host, port=args.port, db=args.db, seed=args.seed, srv_only=True)
    elif args.command == 'api-only':
        api.api(host=args.host, port=args.api_port, db=args.db, seed=args.seed)
    else:
        raise Exception('Unknown command')


if __name__ == '__main__':
    main()
