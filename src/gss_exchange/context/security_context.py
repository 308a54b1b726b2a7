"""Security context -- the negotiation state machine.

A :class:`SecurityContext` wraps one mechanism-side context and enforces
the state rules that every mechanism must obey::

    UNINITIALIZED --step--> NEGOTIATING --step--> ESTABLISHED
                                 |
                                 +--rejection / round bound--> FAILED

* Negotiated properties (peer identity, mutual-auth flag, protection
  capability) are only readable once ``ESTABLISHED``; reading them
  earlier raises :class:`ContextNotEstablished`.
* A ``FAILED`` context is disposed immediately and refuses further
  steps.  Retrying requires a fresh context.
* :meth:`SecurityContext.dispose` releases mechanism key material exactly
  once, whichever exit path triggers it.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gss_exchange.core.errors import (
    AuthenticationFailed,
    ContextNotEstablished,
    ContextStateError,
    NegotiationTimeoutError,
)
from gss_exchange.core.types import (
    ContextOptions,
    ContextRole,
    ContextState,
    ProtectionLevel,
    StepResult,
)

if TYPE_CHECKING:
    from types import TracebackType

    from gss_exchange.core.interfaces import AuthenticationMechanism, MechanismContext
    from gss_exchange.core.types import Credential

logger = logging.getLogger(__name__)


class SecurityContext:
    """One side of a security-context negotiation.

    Parameters
    ----------
    mechanism:
        The authentication mechanism that produces and consumes tokens.
    credential:
        Local identity material, typically from
        :meth:`CredentialProvider.acquire`.
    peer_name:
        The expected acceptor principal (initiators) or ``None``
        (acceptors, which learn the peer from the first token).
    options:
        Negotiation request; defaults to an initiator requesting mutual
        authentication and confidentiality.
    max_rounds:
        Upper bound on :meth:`step` calls.  Defaults to the mechanism's
        own bound.
    """

    def __init__(
        self,
        mechanism: AuthenticationMechanism,
        credential: Credential,
        peer_name: str | None = None,
        options: ContextOptions | None = None,
        *,
        max_rounds: int | None = None,
    ) -> None:
        self._mechanism = mechanism
        self._options = options or ContextOptions()
        self._max_rounds = max_rounds if max_rounds is not None else mechanism.max_rounds
        self._local_name = credential.name
        self._handle: MechanismContext = mechanism.create_context(
            credential, peer_name, self._options
        )
        self._state = ContextState.UNINITIALIZED
        self._rounds = 0
        self._disposed = False

    # ------------------------------------------------------------------
    # Always-readable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def role(self) -> ContextRole:
        return self._options.role

    @property
    def rounds(self) -> int:
        """Number of :meth:`step` calls made so far."""
        return self._rounds

    @property
    def is_established(self) -> bool:
        return self._state is ContextState.ESTABLISHED

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def local_identity(self) -> str:
        return self._local_name

    @property
    def mechanism_name(self) -> str:
        return self._mechanism.name

    # ------------------------------------------------------------------
    # Negotiated properties (ESTABLISHED only)
    # ------------------------------------------------------------------

    @property
    def peer_identity(self) -> str:
        self._require_established("peer_identity")
        peer_name = self._handle.peer_name
        if peer_name is None:
            raise ContextStateError(
                "Mechanism established a context without a peer name",
                details={"mechanism": self._mechanism.name},
            )
        return peer_name

    @property
    def mutual_auth_achieved(self) -> bool:
        self._require_established("mutual_auth_achieved")
        return self._handle.mutual_auth

    @property
    def protection_capability(self) -> ProtectionLevel:
        self._require_established("protection_capability")
        if self._handle.confidentiality:
            return ProtectionLevel.CONFIDENTIALITY
        return ProtectionLevel.INTEGRITY

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    def step(self, token: bytes | None = None) -> StepResult:
        """Run one negotiation round.

        Feeds the peer's previous token (``None`` on an initiator's first
        round) to the mechanism and returns the token to send back, if
        any, together with the establishment flag.  A returned token must
        be sent to the peer even when ``established`` is ``True``.

        Raises
        ------
        AuthenticationFailed
            The mechanism rejected *token*.  The context is now
            ``FAILED`` and disposed.
        NegotiationTimeoutError
            The round bound was exceeded.  The context is now ``FAILED``
            and disposed.
        ContextStateError
            The context is already established, failed or disposed.
        """
        if self._disposed or self._state in (ContextState.ESTABLISHED, ContextState.FAILED):
            raise ContextStateError(
                f"Cannot step a context in state {self._state.value!r}",
                details={"state": self._state.value, "disposed": self._disposed},
            )
        if self._rounds >= self._max_rounds:
            self.abort()
            raise NegotiationTimeoutError(
                f"Negotiation exceeded {self._max_rounds} rounds",
                details={"max_rounds": self._max_rounds},
            )

        self._rounds += 1
        self._state = ContextState.NEGOTIATING
        try:
            out_token = self._mechanism.step(self._handle, token)
        except AuthenticationFailed as exc:
            logger.info(
                "%s context for %s failed in round %d: %s",
                self.role.value, self._local_name, self._rounds, exc.code,
            )
            self.abort()
            raise
        except Exception:
            self.abort()
            raise

        logger.debug(
            "Round %d: consumed %s, produced %s",
            self._rounds,
            "no token" if token is None else f"{len(token)} bytes",
            "no token" if out_token is None else f"{len(out_token)} bytes",
        )

        if self._handle.established:
            self._state = ContextState.ESTABLISHED
            logger.info(
                "Context established after %d round(s): %s <-> %s (mutual=%s)",
                self._rounds,
                self._local_name,
                self._handle.peer_name,
                self._handle.mutual_auth,
            )
        return StepResult(token=out_token, established=self.is_established)

    # ------------------------------------------------------------------
    # Message protection primitives (used by gss_exchange.messaging)
    # ------------------------------------------------------------------

    def wrap(self, data: bytes, confidential: bool) -> tuple[bytes, ProtectionLevel]:
        self._require_established("wrap")
        return self._mechanism.wrap(self._handle, data, confidential)

    def unwrap(self, data: bytes) -> tuple[bytes, ProtectionLevel]:
        self._require_established("unwrap")
        return self._mechanism.unwrap(self._handle, data)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def abort(self) -> None:
        """Mark a not-yet-established context as failed and dispose it."""
        if self._state is not ContextState.ESTABLISHED:
            self._state = ContextState.FAILED
        self.dispose()

    def dispose(self) -> None:
        """Release mechanism key material.  Subsequent calls do nothing."""
        if self._disposed:
            return
        self._disposed = True
        self._mechanism.dispose(self._handle)
        logger.debug("Disposed %s context for %s", self.role.value, self._local_name)

    def __enter__(self) -> SecurityContext:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is not None and not self.is_established:
            self.abort()
        else:
            self.dispose()

    def __repr__(self) -> str:
        return (
            f"SecurityContext(local={self._local_name!r}, role={self.role.value!r}, "
            f"state={self._state.value!r}, rounds={self._rounds})"
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_established(self, operation: str) -> None:
        if self._state is not ContextState.ESTABLISHED or self._disposed:
            raise ContextNotEstablished(
                details={
                    "operation": operation,
                    "state": self._state.value,
                    "disposed": self._disposed,
                },
            )
