"""Secure message exchange over an established security context.

* :func:`protect` -- integrity-protect (and, when requested and
  negotiated, encrypt) an outbound payload.
* :func:`unprotect` -- verify and strip protection from an inbound
  payload.
* **SecureChannel** -- pairs both operations with a
  :class:`~gss_exchange.wire.framing.FramedStream`.

The protection actually applied is decided by the mechanism and may be
weaker than requested.  It is always reported back in
:attr:`ProtectedMessage.applied`; a downgrade is logged but not fatal.
An integrity failure on receipt is always fatal to the session.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gss_exchange.core.errors import IntegrityViolation
from gss_exchange.core.types import ProtectedMessage, UnwrappedMessage

if TYPE_CHECKING:
    from gss_exchange.context.security_context import SecurityContext
    from gss_exchange.wire.framing import FramedStream

logger = logging.getLogger(__name__)


def protect(
    context: SecurityContext,
    plaintext: bytes,
    confidential: bool = True,
) -> ProtectedMessage:
    """Protect *plaintext* for transmission to the context's peer.

    Raises
    ------
    ContextNotEstablished
        If *context* is not established (or already disposed).
    """
    data, applied = context.wrap(plaintext, confidential)
    message = ProtectedMessage(
        data=data,
        applied=applied,
        confidentiality_requested=confidential,
    )
    if message.downgraded:
        logger.warning(
            "Confidentiality requested but not available; message to %s "
            "sent with %s protection only",
            context.peer_identity,
            applied.value,
        )
    return message


def unprotect(context: SecurityContext, data: bytes) -> UnwrappedMessage:
    """Verify and remove protection from *data*.

    Raises
    ------
    IntegrityViolation
        If the message was modified, truncated, forged or replayed.
    ContextNotEstablished
        If *context* is not established (or already disposed).
    """
    try:
        plaintext, applied = context.unwrap(data)
    except IntegrityViolation as exc:
        logger.error(
            "Integrity violation on message from %s: %s",
            context.peer_identity,
            exc.code,
        )
        raise
    return UnwrappedMessage(plaintext=plaintext, applied=applied)


class SecureChannel:
    """Protected send/receive over an established context.

    Any number of messages may be exchanged over one context; the
    protection contract holds independently for each.

    Parameters
    ----------
    context:
        An established security context.
    stream:
        The framed stream the context was negotiated over.
    """

    def __init__(self, context: SecurityContext, stream: FramedStream) -> None:
        self._context = context
        self._stream = stream

    @property
    def context(self) -> SecurityContext:
        return self._context

    async def send(self, payload: bytes, confidential: bool = True) -> ProtectedMessage:
        """Protect *payload* and send it as one frame."""
        message = protect(self._context, payload, confidential)
        await self._stream.send(message.data)
        return message

    async def receive(self) -> UnwrappedMessage:
        """Receive one frame and unprotect it."""
        data = await self._stream.receive()
        return unprotect(self._context, data)
