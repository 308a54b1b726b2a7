"""gss-exchange -- security-context negotiation and secure messaging.

A client and a server establish a mutually authenticated security
context over a byte stream by exchanging opaque mechanism tokens, then
exchange application payloads with integrity and optional
confidentiality protection.

Layers
------
1. Token framing (:mod:`gss_exchange.wire`)
2. Security context state machine (:mod:`gss_exchange.context`)
3. Secure message exchange (:mod:`gss_exchange.messaging`)
4. Session driver (:mod:`gss_exchange.session`)

Collaborators
-------------
* Credential providers and mechanisms (:mod:`gss_exchange.core.interfaces`)
* Reference mechanism and key store (:mod:`gss_exchange.mechanism`)
"""
from __future__ import annotations

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Layer 2 -- Security context
# ---------------------------------------------------------------------------
from gss_exchange.context import (
    SecurityContext,
    negotiate_acceptor,
    negotiate_initiator,
)

# ---------------------------------------------------------------------------
# Core -- types, errors, config, interfaces
# ---------------------------------------------------------------------------
from gss_exchange.core.config import SessionConfig
from gss_exchange.core.errors import (
    AuthenticationFailed,
    ContextNotEstablished,
    ContextStateError,
    CredentialUnavailable,
    ExchangeError,
    IntegrityViolation,
    MutualAuthNotAchieved,
    NegotiationTimeoutError,
    ProtocolError,
    SecurityError,
    StreamError,
    TransportError,
    UsageError,
)
from gss_exchange.core.interfaces import (
    AuthenticationMechanism,
    CredentialProvider,
    InMemoryCredentialStore,
    MechanismContext,
)
from gss_exchange.core.types import (
    ContextOptions,
    ContextRole,
    ContextState,
    Credential,
    MutualAuthPolicy,
    ProtectedMessage,
    ProtectionLevel,
    SessionAction,
    SessionResult,
    UnwrappedMessage,
)

# ---------------------------------------------------------------------------
# Collaborators -- reference mechanism
# ---------------------------------------------------------------------------
from gss_exchange.mechanism import KeyDirectoryCredentialStore, SignedDHMechanism

# ---------------------------------------------------------------------------
# Layer 3 -- Secure message exchange
# ---------------------------------------------------------------------------
from gss_exchange.messaging import SecureChannel, protect, unprotect

# ---------------------------------------------------------------------------
# Layer 4 -- Session driver
# ---------------------------------------------------------------------------
from gss_exchange.session import (
    AcceptorSession,
    InitiatorSession,
    SessionServer,
    echo_with_timestamp,
    run_client,
)

# ---------------------------------------------------------------------------
# Layer 1 -- Framing
# ---------------------------------------------------------------------------
from gss_exchange.wire import FramedStream, read_frame, write_frame

__all__ = [
    "__version__",
    # Core
    "SessionConfig",
    "AuthenticationFailed",
    "ContextNotEstablished",
    "ContextStateError",
    "CredentialUnavailable",
    "ExchangeError",
    "IntegrityViolation",
    "MutualAuthNotAchieved",
    "NegotiationTimeoutError",
    "ProtocolError",
    "SecurityError",
    "StreamError",
    "TransportError",
    "UsageError",
    "AuthenticationMechanism",
    "CredentialProvider",
    "InMemoryCredentialStore",
    "MechanismContext",
    "ContextOptions",
    "ContextRole",
    "ContextState",
    "Credential",
    "MutualAuthPolicy",
    "ProtectedMessage",
    "ProtectionLevel",
    "SessionAction",
    "SessionResult",
    "UnwrappedMessage",
    # Layers
    "FramedStream",
    "read_frame",
    "write_frame",
    "SecurityContext",
    "negotiate_acceptor",
    "negotiate_initiator",
    "SecureChannel",
    "protect",
    "unprotect",
    "AcceptorSession",
    "InitiatorSession",
    "SessionServer",
    "echo_with_timestamp",
    "run_client",
    # Mechanism
    "KeyDirectoryCredentialStore",
    "SignedDHMechanism",
]
