"""gss-exchange core -- types, errors, configuration, and collaborator interfaces."""
from __future__ import annotations

from gss_exchange.core.config import SessionConfig
from gss_exchange.core.errors import (
    AuthenticationFailed,
    ContextNotEstablished,
    ContextStateError,
    CredentialUnavailable,
    ExchangeError,
    FrameTooLarge,
    FrameTruncated,
    IntegrityViolation,
    MutualAuthNotAchieved,
    NegotiationTimeoutError,
    PeerRejected,
    ProtocolError,
    ReplayDetected,
    SecurityError,
    StreamError,
    StreamTimeout,
    TokenExpired,
    TokenReplayed,
    TransportError,
    UsageError,
    error_from_code,
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
    StepResult,
    UnwrappedMessage,
)

__all__ = [
    # Config
    "SessionConfig",
    # Errors
    "AuthenticationFailed",
    "ContextNotEstablished",
    "ContextStateError",
    "CredentialUnavailable",
    "ExchangeError",
    "FrameTooLarge",
    "FrameTruncated",
    "IntegrityViolation",
    "MutualAuthNotAchieved",
    "NegotiationTimeoutError",
    "PeerRejected",
    "ProtocolError",
    "ReplayDetected",
    "SecurityError",
    "StreamError",
    "StreamTimeout",
    "TokenExpired",
    "TokenReplayed",
    "TransportError",
    "UsageError",
    "error_from_code",
    # Interfaces
    "AuthenticationMechanism",
    "CredentialProvider",
    "InMemoryCredentialStore",
    "MechanismContext",
    # Types
    "ContextOptions",
    "ContextRole",
    "ContextState",
    "Credential",
    "MutualAuthPolicy",
    "ProtectedMessage",
    "ProtectionLevel",
    "SessionAction",
    "SessionResult",
    "StepResult",
    "UnwrappedMessage",
]
