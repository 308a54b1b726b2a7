"""gss-exchange shared domain types.

This module defines the enums, value objects and Pydantic models shared
across the package.  All public symbols are re-exported from
``gss_exchange.core``.

Key design decisions:
* ``Credential`` is a plain Python class (not Pydantic) that prevents
  accidental serialisation of key material via ``str()`` or ``repr()``.
* Message values that carry raw bytes (``ProtectedMessage``,
  ``UnwrappedMessage``, ``StepResult``) are frozen dataclasses; the
  negotiation request (``ContextOptions``) and the session summary
  (``SessionResult``) are Pydantic v2 models.
* Enums use *string* values so they log and serialise cleanly.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Credential -- opaque wrapper that prevents accidental exposure
# ---------------------------------------------------------------------------

class Credential:
    """Local identity material for one principal.

    ``material`` is mechanism-specific (the reference mechanism stores an
    Ed25519 private key) and is only reachable through :meth:`expose`.
    ``str()`` and ``repr()`` never include it.
    """

    __slots__ = ("_material", "name")

    def __init__(self, name: str, material: Any) -> None:
        self.name = name
        self._material = material

    def expose(self) -> Any:
        """Explicitly reveal the key material.  Use with caution."""
        return self._material

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Credential(name={self.name!r}, material=[REDACTED])"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ProtectionLevel(enum.StrEnum):
    """Protection actually applied to a message.

    Integrity protection is always applied; confidentiality is optional.
    """

    INTEGRITY = "integrity"
    CONFIDENTIALITY = "integrity+confidentiality"

    @property
    def confidential(self) -> bool:
        return self is ProtectionLevel.CONFIDENTIALITY


class ContextState(enum.StrEnum):
    """Negotiation states of a :class:`~gss_exchange.context.SecurityContext`."""

    UNINITIALIZED = "uninitialized"
    NEGOTIATING = "negotiating"
    ESTABLISHED = "established"
    FAILED = "failed"


class ContextRole(enum.StrEnum):
    """Which side of the token exchange a context plays."""

    INITIATOR = "initiator"
    ACCEPTOR = "acceptor"


class SessionAction(enum.StrEnum):
    """What an initiator session does after connecting."""

    NEGOTIATE_ONLY = "negotiate-only"
    EXCHANGE = "exchange"


class MutualAuthPolicy(enum.StrEnum):
    """How the session driver reacts when mutual auth was required but not achieved."""

    WARN = "warn"
    FAIL = "fail"


# ---------------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------------

class ContextOptions(BaseModel):
    """Per-context negotiation request handed to the mechanism."""

    model_config = ConfigDict(strict=True, frozen=True)

    role: ContextRole = ContextRole.INITIATOR
    mutual_auth: bool = Field(
        default=True,
        description=(
            "Initiator: request that the acceptor prove its identity. "
            "Acceptor: allow proving our identity when asked."
        ),
    )
    confidentiality: bool = Field(
        default=True,
        description="Offer confidentiality (encryption) for protected messages.",
    )
    token_lifetime: int = Field(
        default=300,
        ge=1,
        description="Validity of emitted negotiation tokens in seconds.",
    )
    clock_skew: int = Field(
        default=30,
        ge=0,
        description="Leeway in seconds when checking token timestamps.",
    )


@dataclass(frozen=True, slots=True)
class StepResult:
    """Outcome of one negotiation round."""

    token: bytes | None
    established: bool


# ---------------------------------------------------------------------------
# Protected messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ProtectedMessage:
    """An outbound payload after protection.

    ``data`` is the mechanism's opaque wire representation.  ``applied``
    is what the mechanism actually did, which may be weaker than
    ``confidentiality_requested`` asked for.
    """

    data: bytes
    applied: ProtectionLevel
    confidentiality_requested: bool

    @property
    def downgraded(self) -> bool:
        """``True`` if confidentiality was requested but not applied."""
        return self.confidentiality_requested and not self.applied.confidential


@dataclass(frozen=True, slots=True)
class UnwrappedMessage:
    """An inbound payload after its protection was verified and removed."""

    plaintext: bytes
    applied: ProtectionLevel


# ---------------------------------------------------------------------------
# Session summary
# ---------------------------------------------------------------------------

class SessionResult(BaseModel):
    """What one session negotiated and exchanged.

    For an initiator ``request`` is the payload sent and ``reply`` the
    payload received; for an acceptor it is the other way round.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    local_identity: str
    peer_identity: str
    mutual_auth_achieved: bool
    protection_capability: ProtectionLevel
    rounds: int
    request: bytes | None = None
    reply: bytes | None = None
    request_protection: ProtectionLevel | None = None
    reply_protection: ProtectionLevel | None = None
