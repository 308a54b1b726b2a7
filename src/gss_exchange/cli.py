"""Command-line interface for ``python -m gss_exchange``.

Subcommands
-----------
``keygen``   create an Ed25519 key pair for a principal
``acquire``  check that a principal's credential can be acquired
``serve``    run an acceptor that echoes requests with a timestamp
``connect``  run one initiator session (``negotiate-only`` or ``exchange``)

Every :class:`~gss_exchange.core.errors.ExchangeError` is reported as
``<code>: <message>`` with exit status 1.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from gss_exchange import __version__
from gss_exchange.core.config import SessionConfig
from gss_exchange.core.errors import ExchangeError
from gss_exchange.core.types import MutualAuthPolicy, SessionAction
from gss_exchange.mechanism.keystore import KeyDirectoryCredentialStore
from gss_exchange.mechanism.signed_dh import SignedDHMechanism
from gss_exchange.session import DEFAULT_MESSAGE, SessionServer, run_client

logger = logging.getLogger(__name__)

DEFAULT_KEY_DIR = Path.home() / ".gss-exchange"
DEFAULT_PORT = 4567


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gss-exchange",
        description="Mutually authenticated, protected request/response over TCP.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log negotiation rounds (DEBUG)."
    )
    parser.add_argument(
        "--keys",
        type=Path,
        default=DEFAULT_KEY_DIR,
        help=f"Key directory (default: {DEFAULT_KEY_DIR}).",
    )
    # --keys may also follow the subcommand.  SUPPRESS leaves the top-level
    # value in place when it does not.
    keys = argparse.ArgumentParser(add_help=False)
    keys.add_argument("--keys", type=Path, default=argparse.SUPPRESS, help="Key directory.")

    sub = parser.add_subparsers(dest="command", required=True)

    keygen = sub.add_parser("keygen", parents=[keys], help="Generate a key pair for a principal.")
    keygen.add_argument("principal")
    keygen.add_argument("--force", action="store_true", help="Replace an existing key.")
    keygen.set_defaults(func=_cmd_keygen)

    acquire = sub.add_parser("acquire", parents=[keys], help="Acquire a principal's credential.")
    acquire.add_argument("principal")
    acquire.set_defaults(func=_cmd_acquire)

    serve = sub.add_parser("serve", parents=[keys], help="Run the acceptor server.")
    serve.add_argument("--name", required=True, help="Acceptor principal name.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument(
        "--integrity-only",
        action="store_true",
        help="Do not offer confidentiality.",
    )
    serve.add_argument(
        "--no-mutual",
        action="store_true",
        help="Never prove our identity to initiators.",
    )
    serve.set_defaults(func=_cmd_serve)

    connect = sub.add_parser("connect", parents=[keys], help="Run one initiator session.")
    connect.add_argument("--name", required=True, help="Initiator principal name.")
    connect.add_argument("--peer", required=True, help="Acceptor principal name.")
    connect.add_argument("--host", default="127.0.0.1")
    connect.add_argument("--port", type=int, default=DEFAULT_PORT)
    connect.add_argument(
        "--action",
        choices=[a.value for a in SessionAction],
        default=SessionAction.EXCHANGE.value,
    )
    connect.add_argument("--message", default=DEFAULT_MESSAGE.decode("utf-8"))
    connect.add_argument(
        "--require-mutual",
        action="store_true",
        help="Fail instead of warning when the acceptor does not authenticate itself.",
    )
    connect.add_argument(
        "--integrity-only",
        action="store_true",
        help="Do not request confidentiality.",
    )
    connect.add_argument("--timeout", type=float, default=30.0)
    connect.set_defaults(func=_cmd_connect)

    return parser


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_keygen(args: argparse.Namespace) -> int:
    store = KeyDirectoryCredentialStore(args.keys)
    try:
        store.generate(args.principal, overwrite=args.force)
    except FileExistsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"Wrote {store.private_path(args.principal)}")
    print(f"Wrote {store.public_path(args.principal)}")
    return 0


def _cmd_acquire(args: argparse.Namespace) -> int:
    credential = KeyDirectoryCredentialStore(args.keys).acquire(args.principal)
    print(f"Credential acquired for {credential.name}")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    config = SessionConfig(
        local_name=args.name,
        host=args.host,
        port=args.port,
        allow_confidentiality=not args.integrity_only,
        request_mutual_auth=not args.no_mutual,
    )
    try:
        asyncio.run(_serve(config, KeyDirectoryCredentialStore(args.keys)))
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    return 0


async def _serve(config: SessionConfig, credentials: KeyDirectoryCredentialStore) -> None:
    # Fail fast on a missing credential rather than on the first connection.
    credentials.acquire(config.local_name)
    server = SessionServer(config, credentials, SignedDHMechanism(credentials))
    try:
        await server.serve_forever()
    finally:
        await server.close()


def _cmd_connect(args: argparse.Namespace) -> int:
    config = SessionConfig(
        local_name=args.name,
        peer_name=args.peer,
        host=args.host,
        port=args.port,
        negotiation_timeout=args.timeout,
        io_timeout=args.timeout,
        request_confidentiality=not args.integrity_only,
        mutual_auth_policy=MutualAuthPolicy.FAIL if args.require_mutual else MutualAuthPolicy.WARN,
    )
    credentials = KeyDirectoryCredentialStore(args.keys)
    result = asyncio.run(
        run_client(
            config,
            credentials,
            SignedDHMechanism(credentials),
            args.message.encode("utf-8"),
            action=SessionAction(args.action),
        )
    )

    print("Context established!")
    print(f"Client principal is {result.local_identity}")
    print(f"Server principal is {result.peer_identity}")
    if result.mutual_auth_achieved:
        print("Mutual authentication took place!")
    print(f"Protection capability: {result.protection_capability.value}")
    if result.reply is not None and result.request_protection is not None:
        print(f"Sent message ({result.request_protection.value}): {args.message}")
        print(f"Received message: {result.reply.decode('utf-8', errors='replace')}")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return the process exit status."""
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        return int(args.func(args))
    except ExchangeError as exc:
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 1
