"""
Command-line interface for EdgeGrid Python SDK
Sends one signed request using credentials from a .edgerc file
"""

import argparse
import sys
from typing import Optional, Tuple

import requests

from . import __version__
from .config import DEFAULT_SECTION
from .exceptions import EdgeGridSDKError
from .http_clients import EdgeGridClient, MessageFormatter
from .http_clients.handlers import format_body


def parse_header(value: str) -> Tuple[str, str]:
    """Parse a ``Name: value`` header argument."""
    name, sep, header_value = value.partition(':')
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Invalid header {value!r}, expected 'Name: value'")
    return name.strip(), header_value.strip()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='edgegrid-http',
        description='Send an EG1-HMAC-SHA256 signed request to an EdgeGrid API'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'EdgeGrid Python SDK {__version__}'
    )

    parser.add_argument('path', help='Request path (e.g. /identity-management/v3/user-profile) or full URL')
    parser.add_argument(
        '-X', '--request',
        dest='method',
        default='GET',
        help='HTTP method (default: GET)'
    )
    parser.add_argument(
        '-H', '--header',
        dest='headers',
        action='append',
        type=parse_header,
        default=[],
        help="Request header 'Name: value' (repeatable)"
    )
    parser.add_argument(
        '-d', '--data',
        help='Request body; @FILE reads the body from a file'
    )
    parser.add_argument('--edgerc', help='Credential file (default: $EDGERC, ~/.edgerc, ./.edgerc)')
    parser.add_argument(
        '--section',
        default=DEFAULT_SECTION,
        help=f'Credential section (default: {DEFAULT_SECTION})'
    )
    parser.add_argument('--timeout', type=float, help='Request timeout in seconds')
    parser.add_argument('--max-body', type=int, help='Maximum number of body bytes to sign')
    parser.add_argument(
        '--sign-header',
        dest='headers_to_sign',
        action='append',
        help='Header name to include in the signature (repeatable)'
    )
    parser.add_argument('-i', '--include', action='store_true', help='Print response status and headers')
    parser.add_argument('--debug', action='store_true', help='Echo failed requests to stderr')
    parser.add_argument('--verbose', action='store_true', help='Echo requests and responses')
    parser.add_argument('--log', metavar='FILE', help='Append a one-line summary of each request to FILE')

    return parser


def read_data(data: Optional[str]) -> Optional[bytes]:
    """Resolve the ``--data`` argument to request body bytes."""
    if data is None:
        return None
    if data.startswith('@'):
        with open(data[1:], 'rb') as f:
            return f.read()
    return data.encode('utf-8')


def build_client(args) -> EdgeGridClient:
    """Create a client from parsed arguments."""
    config_kwargs = {'debug': args.debug, 'verbose': args.verbose}
    if args.timeout is not None:
        config_kwargs['timeout'] = args.timeout

    client = EdgeGridClient.from_edgerc(args.section, args.edgerc, **config_kwargs)
    if args.max_body is not None:
        client.set_max_body_size(args.max_body)
    if args.headers_to_sign:
        client.set_headers_to_sign(args.headers_to_sign)
    if args.log:
        client.set_simple_log(args.log, MessageFormatter.SHORT)
    return client


def handle_request(args) -> int:
    """
    Send the request and print the response.

    Returns:
        int: 0 for 1xx-3xx responses, 1 for 4xx/5xx responses
    """
    with build_client(args) as client:
        response = client.request(
            args.method,
            args.path,
            headers=dict(args.headers),
            data=read_data(args.data),
        )

    if args.include:
        print(f"HTTP/1.1 {response.status_code} {response.reason}")
        for name, value in response.headers.items():
            print(f"{name}: {value}")
        print()

    body = format_body(response.content)
    if body:
        print(body)

    return 0 if response.status_code < 400 else 1


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI

    Args:
        argv: Command line arguments (None to use sys.argv)

    Returns:
        int: Exit code (0 success, 1 HTTP or transport failure, 2 SDK error)
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        return handle_request(args)
    except EdgeGridSDKError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except requests.RequestException as e:
        print(f"Request failed: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
