"""gss-exchange context subpackage -- the negotiation state machine and its drivers."""
from __future__ import annotations

from gss_exchange.context.negotiation import negotiate_acceptor, negotiate_initiator
from gss_exchange.context.security_context import SecurityContext

__all__ = [
    "SecurityContext",
    "negotiate_acceptor",
    "negotiate_initiator",
]
