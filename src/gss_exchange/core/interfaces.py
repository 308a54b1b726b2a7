"""gss-exchange collaborator interfaces and in-memory implementations.

This module defines the *structural* interfaces (``typing.Protocol``) for
the two external collaborators the negotiation core consumes:

* :class:`CredentialProvider` -- supplies local identity material and
  the public material of peers.
* :class:`AuthenticationMechanism` -- produces and consumes opaque
  negotiation tokens and performs the cryptographic wrap/unwrap.

Every Protocol class is decorated with ``@runtime_checkable`` so that
``isinstance`` checks work at run-time in addition to static analysis.

:class:`InMemoryCredentialStore` is suitable for testing and local
development.  A credential provider is shared read-only between
sessions; populate it before serving.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from cryptography.hazmat.primitives.asymmetric import ed25519

from gss_exchange.core.errors import CredentialUnavailable
from gss_exchange.core.types import ContextOptions, Credential, ProtectionLevel

# ===================================================================
# Protocol (interface) definitions
# ===================================================================

@runtime_checkable
class CredentialProvider(Protocol):
    """Source of local identity material and peer verification material."""

    def acquire(self, identity: str) -> Credential:
        """Return the credential for the local principal *identity*.

        Raises :class:`CredentialUnavailable` if no key material exists.
        """
        ...

    def lookup(self, identity: str) -> Any:
        """Return the public verification material for a peer principal.

        Raises :class:`CredentialUnavailable` if the peer is unknown.
        """
        ...


@runtime_checkable
class MechanismContext(Protocol):
    """Mechanism-side state for one security context.

    ``peer_name``, ``mutual_auth`` and ``confidentiality`` are only
    meaningful once ``established`` is ``True``.
    """

    established: bool
    local_name: str
    peer_name: str | None
    mutual_auth: bool
    confidentiality: bool


@runtime_checkable
class AuthenticationMechanism(Protocol):
    """Capability set of a pluggable authentication mechanism.

    Alternative mechanisms can be substituted without touching the
    negotiation state machine as long as they provide these operations.
    """

    name: str
    max_rounds: int

    def create_context(
        self,
        credential: Credential,
        peer_name: str | None,
        options: ContextOptions,
    ) -> MechanismContext:
        """Create fresh mechanism state.  No token is produced yet."""
        ...

    def step(self, context: MechanismContext, token: bytes | None) -> bytes | None:
        """Consume the peer's last token and return the next one, if any.

        Raises :class:`AuthenticationFailed` if the inbound token is
        malformed, expired, replayed or otherwise unacceptable.
        """
        ...

    def wrap(
        self,
        context: MechanismContext,
        data: bytes,
        confidential: bool,
    ) -> tuple[bytes, ProtectionLevel]:
        """Protect *data* and report the protection actually applied."""
        ...

    def unwrap(self, context: MechanismContext, data: bytes) -> tuple[bytes, ProtectionLevel]:
        """Verify and remove protection.  Raises :class:`IntegrityViolation`."""
        ...

    def dispose(self, context: MechanismContext) -> None:
        """Release any key material held by *context*."""
        ...


# ===================================================================
# In-memory implementations (testing / development)
# ===================================================================

class InMemoryCredentialStore:
    """In-memory Ed25519 credential store for testing and development.

    Private keys are held in a plain ``dict``.  This implementation is
    NOT suitable for production use.
    """

    def __init__(self) -> None:
        self._private: dict[str, ed25519.Ed25519PrivateKey] = {}
        self._public: dict[str, ed25519.Ed25519PublicKey] = {}

    # -- mutation helpers (not part of the Protocol) --------------------

    def register(self, identity: str) -> Credential:
        """Generate a key pair for *identity* and return its credential."""
        key = ed25519.Ed25519PrivateKey.generate()
        self.add(identity, key)
        return Credential(identity, key)

    def add(self, identity: str, private_key: ed25519.Ed25519PrivateKey) -> None:
        """Install a private key (and its public half) for *identity*."""
        self._private[identity] = private_key
        self._public[identity] = private_key.public_key()

    def add_public(self, identity: str, public_key: ed25519.Ed25519PublicKey) -> None:
        """Install only the public key of a remote principal."""
        self._public[identity] = public_key

    def remove(self, identity: str) -> None:
        """Forget everything about *identity*."""
        self._private.pop(identity, None)
        self._public.pop(identity, None)

    # -- Protocol implementation ---------------------------------------

    def acquire(self, identity: str) -> Credential:
        """Return the credential for *identity*."""
        key = self._private.get(identity)
        if key is None:
            raise CredentialUnavailable(
                f"No private key for principal: {identity}",
                details={"identity": identity},
            )
        return Credential(identity, key)

    def lookup(self, identity: str) -> ed25519.Ed25519PublicKey:
        """Return the public key of *identity*."""
        key = self._public.get(identity)
        if key is None:
            raise CredentialUnavailable(
                f"Unknown principal: {identity}",
                details={"identity": identity},
            )
        return key
