"""Negotiation loops that move tokens between a context and a framed stream.

Both roles run the same loop; they differ only in where the first token
comes from:

1. call :meth:`SecurityContext.step`; if it produced a token, send it;
2. if the context is not yet established, receive the next token;
3. repeat until established.

The outbound token is always sent **before** the establishment check, so a
final token and the "done" signal can share one round.  Rounds are strictly
sequential; each step depends on the exact previous token.

When the mechanism rejects a token and supplies an error token, the error
token is relayed to the peer before the failure propagates.  Any exit
other than establishment (rejection, stream failure, timeout,
cancellation) leaves the context ``FAILED`` and disposed.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from gss_exchange.core.errors import (
    AuthenticationFailed,
    NegotiationTimeoutError,
    StreamError,
)
from gss_exchange.core.types import ContextRole

if TYPE_CHECKING:
    from gss_exchange.context.security_context import SecurityContext
    from gss_exchange.core.types import StepResult
    from gss_exchange.wire.framing import FramedStream

logger = logging.getLogger(__name__)


async def negotiate_initiator(
    context: SecurityContext,
    stream: FramedStream,
    *,
    timeout: float | None = None,
) -> int:
    """Drive an initiator context to establishment.

    Returns the number of rounds the context took.

    Raises
    ------
    AuthenticationFailed
        Either side rejected a token.
    NegotiationTimeoutError
        The round bound or *timeout* (seconds) was exceeded.
    TransportError
        The stream failed or violated framing.
    """
    return await _negotiate(context, stream, None, timeout=timeout)


async def negotiate_acceptor(
    context: SecurityContext,
    stream: FramedStream,
    *,
    timeout: float | None = None,
) -> int:
    """Drive an acceptor context to establishment.

    The acceptor waits for the initiator's first token before its first
    step.  Errors are the same as :func:`negotiate_initiator`.
    """
    return await _negotiate(context, stream, _FIRST_TOKEN_FROM_PEER, timeout=timeout)


# Sentinel: read the first token from the stream before stepping.
_FIRST_TOKEN_FROM_PEER = object()


async def _negotiate(
    context: SecurityContext,
    stream: FramedStream,
    first: object,
    *,
    timeout: float | None,
) -> int:
    try:
        await asyncio.wait_for(_drive(context, stream, first), timeout=timeout)
    except TimeoutError as exc:
        raise NegotiationTimeoutError(
            f"Negotiation did not complete within {timeout} seconds",
            details={"timeout": timeout, "rounds": context.rounds},
        ) from exc
    finally:
        if not context.is_established:
            context.abort()
    return context.rounds


async def _drive(context: SecurityContext, stream: FramedStream, first: object) -> None:
    token: bytes | None = None
    if first is _FIRST_TOKEN_FROM_PEER:
        token = await stream.receive()

    while True:
        result = await _step(context, stream, token)
        if result.token is not None:
            await stream.send(result.token)
        if result.established:
            return
        token = await stream.receive()


async def _step(
    context: SecurityContext,
    stream: FramedStream,
    token: bytes | None,
) -> StepResult:
    try:
        return context.step(token)
    except AuthenticationFailed as exc:
        if exc.token is not None:
            logger.debug("Relaying error token to peer (%s)", exc.code)
            try:
                await stream.send(exc.token)
            except StreamError as relay_exc:
                logger.debug(
                    "Could not relay error token: %s %s", relay_exc.code, relay_exc.message
                )
        if context.role is ContextRole.ACCEPTOR:
            logger.warning("Rejected initiator token: %s %s", exc.code, exc.message)
        raise
