"""Session driver -- the end-to-end client and server flows.

Initiator flow (:class:`InitiatorSession`)
------------------------------------------

1. **Acquire** the local credential.
2. **Connect** a :class:`~gss_exchange.wire.framing.FramedStream`.
3. **Negotiate** a :class:`~gss_exchange.context.SecurityContext` under
   a wall-clock bound.
4. **Apply the mutual-auth policy** (warn or fail).
5. **Exchange** one protected request and one protected reply.
6. **Tear down**: dispose the context and close the stream on every exit
   path, including failures and cancellation.

Acceptor flow (:class:`AcceptorSession`, :class:`SessionServer`)
----------------------------------------------------------------

The mirror image, one task per accepted connection.  The request handler
turns the request plaintext into the reply plaintext; the default
:func:`echo_with_timestamp` appends the current UTC time.

Usage
-----
::

    credentials = KeyDirectoryCredentialStore("~/.gss-exchange")
    mechanism = SignedDHMechanism(credentials)

    async with SessionServer(server_config, credentials, mechanism):
        result = await InitiatorSession(
            client_config, credentials, mechanism
        ).run(b"Hello There!")

Errors are never retried here: the specific :class:`ExchangeError`
subclass is logged and re-raised so the caller can tell a network problem
from an authentication rejection from a tamper event.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from gss_exchange.context.negotiation import negotiate_acceptor, negotiate_initiator
from gss_exchange.context.security_context import SecurityContext
from gss_exchange.core.errors import (
    ExchangeError,
    FrameTruncated,
    MutualAuthNotAchieved,
    StreamError,
)
from gss_exchange.core.types import (
    ContextRole,
    MutualAuthPolicy,
    SessionAction,
    SessionResult,
)
from gss_exchange.messaging.exchange import SecureChannel
from gss_exchange.wire.framing import FramedStream

if TYPE_CHECKING:
    from types import TracebackType

    from gss_exchange.core.config import SessionConfig
    from gss_exchange.core.interfaces import AuthenticationMechanism, CredentialProvider

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = b"Hello There!"

RequestHandler = Callable[[bytes], bytes]


def echo_with_timestamp(message: bytes) -> bytes:
    """Default acceptor handler: the request with the UTC time appended."""
    stamp = datetime.now(UTC).isoformat(timespec="seconds")
    return message + f" [{stamp}]".encode("utf-8")


# ---------------------------------------------------------------------------
# Initiator
# ---------------------------------------------------------------------------


class InitiatorSession:
    """One client session: connect, negotiate, exchange, tear down.

    Parameters
    ----------
    config:
        Endpoint configuration; ``peer_name`` is required.
    credentials:
        Supplies the local credential and the acceptor's public material.
    mechanism:
        The authentication mechanism shared with the acceptor.
    """

    def __init__(
        self,
        config: SessionConfig,
        credentials: CredentialProvider,
        mechanism: AuthenticationMechanism,
    ) -> None:
        if not config.peer_name:
            raise ValueError("An initiator session needs config.peer_name")
        self._config = config
        self._credentials = credentials
        self._mechanism = mechanism

    async def run(
        self,
        payload: bytes = DEFAULT_MESSAGE,
        *,
        action: SessionAction = SessionAction.EXCHANGE,
    ) -> SessionResult:
        """Run the session once.

        Raises
        ------
        CredentialUnavailable
            The local credential could not be acquired.
        StreamError
            The connection could not be opened or failed.
        ProtocolError
            The peer violated framing.
        AuthenticationFailed
            Either side rejected a negotiation token.
        NegotiationTimeoutError
            Negotiation exceeded its round or time bound.
        MutualAuthNotAchieved
            Mutual auth was required, not achieved, and the policy is
            ``fail``.
        IntegrityViolation
            The reply failed its integrity check.
        """
        config = self._config
        credential = self._credentials.acquire(config.local_name)
        stream = await self._connect()
        logger.info("Connected to %s as %s", stream.peer_address, config.local_name)
        try:
            with SecurityContext(
                self._mechanism,
                credential,
                config.peer_name,
                config.context_options(ContextRole.INITIATOR),
                max_rounds=config.max_rounds,
            ) as context:
                rounds = await negotiate_initiator(
                    context, stream, timeout=config.negotiation_timeout
                )
                _apply_mutual_auth_policy(context, config)

                result = {
                    "local_identity": context.local_identity,
                    "peer_identity": context.peer_identity,
                    "mutual_auth_achieved": context.mutual_auth_achieved,
                    "protection_capability": context.protection_capability,
                    "rounds": rounds,
                }
                if action is SessionAction.NEGOTIATE_ONLY:
                    return SessionResult(**result)

                channel = SecureChannel(context, stream)
                sent = await channel.send(payload, config.request_confidentiality)
                received = await channel.receive()
                logger.info(
                    "Exchange with %s complete (request %s, reply %s)",
                    context.peer_identity, sent.applied.value, received.applied.value,
                )
                return SessionResult(
                    **result,
                    request=payload,
                    reply=received.plaintext,
                    request_protection=sent.applied,
                    reply_protection=received.applied,
                )
        except ExchangeError as exc:
            logger.warning(
                "Session with %s failed: %s %s",
                config.peer_name, exc.code, exc.message,
            )
            raise
        finally:
            await stream.close()

    async def _connect(self) -> FramedStream:
        config = self._config
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(config.host, config.port),
                timeout=config.io_timeout,
            )
        except OSError as exc:
            raise StreamError(
                f"Cannot connect to {config.host}:{config.port}: {exc}",
                details={"host": config.host, "port": config.port},
            ) from exc
        return FramedStream(
            reader,
            writer,
            max_frame_size=config.max_frame_size,
            read_timeout=config.io_timeout,
        )


async def run_client(
    config: SessionConfig,
    credentials: CredentialProvider,
    mechanism: AuthenticationMechanism,
    payload: bytes = DEFAULT_MESSAGE,
    *,
    action: SessionAction = SessionAction.EXCHANGE,
) -> SessionResult:
    """Convenience wrapper: run one :class:`InitiatorSession`."""
    return await InitiatorSession(config, credentials, mechanism).run(payload, action=action)


# ---------------------------------------------------------------------------
# Acceptor
# ---------------------------------------------------------------------------


class AcceptorSession:
    """Serve one accepted connection: negotiate, answer one request, tear down.

    A session whose initiator disconnects right after negotiation (a
    ``negotiate-only`` client) ends without a request.
    """

    def __init__(
        self,
        config: SessionConfig,
        credentials: CredentialProvider,
        mechanism: AuthenticationMechanism,
        handler: RequestHandler = echo_with_timestamp,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._mechanism = mechanism
        self._handler = handler

    async def handle(self, stream: FramedStream) -> SessionResult:
        """Run the acceptor side over *stream*, then close it."""
        config = self._config
        try:
            credential = self._credentials.acquire(config.local_name)
            with SecurityContext(
                self._mechanism,
                credential,
                None,
                config.context_options(ContextRole.ACCEPTOR),
                max_rounds=config.max_rounds,
            ) as context:
                rounds = await negotiate_acceptor(
                    context, stream, timeout=config.negotiation_timeout
                )
                _apply_mutual_auth_policy(context, config)

                result = {
                    "local_identity": context.local_identity,
                    "peer_identity": context.peer_identity,
                    "mutual_auth_achieved": context.mutual_auth_achieved,
                    "protection_capability": context.protection_capability,
                    "rounds": rounds,
                }
                channel = SecureChannel(context, stream)
                try:
                    request = await channel.receive()
                except FrameTruncated as exc:
                    if exc.details.get("part") == "header" and exc.details.get("received") == 0:
                        logger.info("%s closed the session after negotiation", context.peer_identity)
                        return SessionResult(**result)
                    raise
                reply = self._handler(request.plaintext)
                sent = await channel.send(reply, request.applied.confidential)
                return SessionResult(
                    **result,
                    request=request.plaintext,
                    reply=reply,
                    request_protection=request.applied,
                    reply_protection=sent.applied,
                )
        finally:
            await stream.close()


class SessionServer:
    """Asyncio TCP server running one :class:`AcceptorSession` per connection.

    Sessions share nothing mutable except the read-only credential
    provider and the mechanism's replay cache.  A failed session is
    logged with its error code; it never stops the server.
    """

    def __init__(
        self,
        config: SessionConfig,
        credentials: CredentialProvider,
        mechanism: AuthenticationMechanism,
        handler: RequestHandler = echo_with_timestamp,
    ) -> None:
        self._config = config
        self._session = AcceptorSession(config, credentials, mechanism, handler)
        self._server: asyncio.Server | None = None
        self._active: set[asyncio.Task[None]] = set()

    @property
    def port(self) -> int:
        """The bound port (useful when configured with port 0)."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("Server is not started")
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._on_connection, self._config.host, self._config.port
        )
        logger.info(
            "Accepting sessions for %s on %s:%d",
            self._config.local_name, self._config.host, self.port,
        )

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        server = self._server
        if server is None:
            raise RuntimeError("Server closed before it started serving")
        await server.serve_forever()

    async def close(self) -> None:
        """Stop accepting connections and cancel sessions in flight."""
        if self._server is None:
            return
        self._server.close()
        for task in list(self._active):
            task.cancel()
        if self._active:
            await asyncio.gather(*self._active, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None

    async def __aenter__(self) -> SessionServer:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _on_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._active.add(task)
        stream = FramedStream(
            reader,
            writer,
            max_frame_size=self._config.max_frame_size,
            read_timeout=self._config.io_timeout,
        )
        peer = stream.peer_address
        try:
            result = await self._session.handle(stream)
            logger.info(
                "Session from %s (%s) complete in %d round(s)",
                peer, result.peer_identity, result.rounds,
            )
        except ExchangeError as exc:
            logger.error("Session from %s failed: %s %s", peer, exc.code, exc.message)
        except Exception:
            # Last stop for this connection's task; the server keeps running.
            logger.exception("Session from %s failed unexpectedly", peer)
        finally:
            if task is not None:
                self._active.discard(task)


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _apply_mutual_auth_policy(context: SecurityContext, config: SessionConfig) -> None:
    if not config.request_mutual_auth or context.mutual_auth_achieved:
        return
    if context.role is ContextRole.ACCEPTOR:
        # The initiator chose not to ask for mutual authentication.
        logger.info("Initiator %s did not request mutual authentication", context.peer_identity)
        return
    if config.mutual_auth_policy is MutualAuthPolicy.FAIL:
        raise MutualAuthNotAchieved(details={"peer": context.peer_identity})
    logger.warning(
        "Mutual authentication requested but not achieved with %s",
        context.peer_identity,
    )
