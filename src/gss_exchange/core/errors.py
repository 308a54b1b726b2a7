"""gss-exchange error-code hierarchy.

Every failure the package can surface is a concrete exception class with a
stable error code, so that operators can tell a network problem from an
authentication rejection from a tamper event.

Hierarchy
---------
::

    ExchangeError
    +-- TransportError        (GX-E1xx)
    +-- SecurityError         (GX-E2xx)
    +-- UsageError            (GX-E3xx)

Usage
-----
Raise concrete subclasses directly::

    raise FrameTruncated(details={"expected": 4, "received": 2})

Catch by category::

    try:
        ...
    except SecurityError:
        # handles AuthenticationFailed, IntegrityViolation, etc.
        ...
"""
from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class ExchangeError(Exception):
    """Base exception for all gss-exchange errors.

    Attributes
    ----------
    code : str
        Error code, e.g. ``"GX-E200"``.
    message : str
        Human-readable description (MUST NOT contain token or key bytes).
    details : dict[str, Any]
        Machine-readable context specific to the error instance.
    resolution : str
        Suggested action for the caller.
    """

    code: str = "GX-E000"
    message: str = "Unknown gss-exchange error"
    resolution: str = ""

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        resolution: str | None = None,
    ) -> None:
        self.details: dict[str, Any] = details or {}
        if message is not None:
            self.message = message
        if resolution is not None:
            self.resolution = resolution
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the error to a JSON-compatible dict for structured reporting."""
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["detail"] = self.details
        if self.resolution:
            payload["resolution"] = self.resolution
        return {"error": payload}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# ===================================================================
# Category base classes
# ===================================================================

class TransportError(ExchangeError):
    """GX-E1xx -- Stream and framing errors."""

    code = "GX-E1XX"


class SecurityError(ExchangeError):
    """GX-E2xx -- Authentication, negotiation and message-protection errors."""

    code = "GX-E2XX"


class UsageError(ExchangeError):
    """GX-E3xx -- Programming and call-ordering errors."""

    code = "GX-E3XX"


# ===================================================================
# GX-E1xx  Transport Errors
# ===================================================================

class StreamError(TransportError):
    """GX-E100 -- The underlying byte stream failed or was closed."""

    code = "GX-E100"
    message = "Stream read or write failed"
    resolution = "Check network connectivity and that the peer is running."


class StreamTimeout(StreamError):
    """GX-E101 -- A read did not complete within the configured timeout."""

    code = "GX-E101"
    message = "Timed out waiting for data from the peer"
    resolution = "Increase io_timeout or check that the peer is responsive."


class ProtocolError(TransportError):
    """GX-E110 -- A framing rule was violated.  Never recoverable."""

    code = "GX-E110"
    message = "Framing protocol violation"
    resolution = "The session must be aborted; open a new connection."


class FrameTruncated(ProtocolError):
    """GX-E111 -- The stream ended before a whole frame arrived."""

    code = "GX-E111"
    message = "truncated frame"


class FrameTooLarge(ProtocolError):
    """GX-E112 -- A frame length exceeds the configured maximum."""

    code = "GX-E112"
    message = "invalid length"
    resolution = (
        "Raise max_frame_size on both peers if larger tokens are expected."
    )


# ===================================================================
# GX-E2xx  Security Errors
# ===================================================================

class AuthenticationFailed(SecurityError):
    """GX-E200 -- The mechanism rejected a negotiation token.

    ``token`` optionally carries an error token that should be relayed to
    the peer before the session is torn down.
    """

    code = "GX-E200"
    message = "Authentication failed"
    resolution = (
        "Verify both principals are known to the credential provider. "
        "Retry with a fresh security context."
    )

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        resolution: str | None = None,
        token: bytes | None = None,
    ) -> None:
        super().__init__(message, details=details, resolution=resolution)
        self.token = token


class TokenExpired(AuthenticationFailed):
    """GX-E201 -- A negotiation token is outside its validity window."""

    code = "GX-E201"
    message = "Negotiation token has expired"
    resolution = "Synchronise clocks between peers and retry."


class TokenReplayed(AuthenticationFailed):
    """GX-E202 -- A negotiation token has already been accepted once."""

    code = "GX-E202"
    message = "Negotiation token has already been used"
    resolution = "Each session must start from a fresh security context."


class PeerRejected(AuthenticationFailed):
    """GX-E203 -- The peer reported that it rejected our token."""

    code = "GX-E203"
    message = "Peer rejected the negotiation token"


class CredentialUnavailable(SecurityError):
    """GX-E210 -- No credential is available for the requested identity."""

    code = "GX-E210"
    message = "Credential is not available"
    resolution = "Generate or install key material for the principal."


class NegotiationTimeoutError(SecurityError):
    """GX-E220 -- Negotiation exceeded its round or wall-clock bound."""

    code = "GX-E220"
    message = "Security context negotiation did not complete in time"
    resolution = "Check that both peers run compatible mechanisms."


class MutualAuthNotAchieved(SecurityError):
    """GX-E230 -- Mutual authentication was required but not achieved."""

    code = "GX-E230"
    message = "Mutual authentication was required but the peer did not prove its identity"
    resolution = (
        "Configure the acceptor to allow mutual authentication, or set "
        "mutual_auth_policy to 'warn'."
    )


class IntegrityViolation(SecurityError):
    """GX-E240 -- A protected message failed its integrity check."""

    code = "GX-E240"
    message = "Integrity check failed on protected message"
    resolution = (
        "The message was corrupted or tampered with. Abort the session."
    )


class ReplayDetected(IntegrityViolation):
    """GX-E241 -- A protected message arrived out of sequence."""

    code = "GX-E241"
    message = "Protected message replayed or out of sequence"


# ===================================================================
# GX-E3xx  Usage Errors
# ===================================================================

class ContextNotEstablished(UsageError):
    """GX-E300 -- An operation requires an established security context."""

    code = "GX-E300"
    message = "Security context is not established"
    resolution = "Complete negotiation before protecting messages."


class ContextStateError(UsageError):
    """GX-E301 -- The security context cannot perform this transition."""

    code = "GX-E301"
    message = "Security context is in the wrong state for this operation"
    resolution = "Create a new security context; failed contexts cannot be resumed."


# ---------------------------------------------------------------------------
# Lookup helper
# ---------------------------------------------------------------------------

_CODE_MAP: dict[str, type[ExchangeError]] = {
    cls.code: cls
    for cls in [
        # E1xx
        StreamError,
        StreamTimeout,
        ProtocolError,
        FrameTruncated,
        FrameTooLarge,
        # E2xx
        AuthenticationFailed,
        TokenExpired,
        TokenReplayed,
        PeerRejected,
        CredentialUnavailable,
        NegotiationTimeoutError,
        MutualAuthNotAchieved,
        IntegrityViolation,
        ReplayDetected,
        # E3xx
        ContextNotEstablished,
        ContextStateError,
    ]
}


def error_from_code(code: str, message: str | None = None) -> ExchangeError:
    """Instantiate the correct exception class for an error code.

    Raises
    ------
    KeyError
        If *code* is not a recognised error code.
    """
    cls = _CODE_MAP[code]
    return cls(message) if message else cls()
