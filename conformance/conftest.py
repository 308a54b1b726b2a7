"""Shared fixtures for gss-exchange conformance tests.

Provides principals, credential stores, configured mechanisms and a
disposal-counting mechanism wrapper used to check teardown guarantees.
"""
from __future__ import annotations

import pytest

from gss_exchange.core.errors import AuthenticationFailed
from gss_exchange.core.interfaces import InMemoryCredentialStore
from gss_exchange.core.types import ContextRole, ProtectionLevel
from gss_exchange.mechanism.signed_dh import SignedDHContext, SignedDHMechanism

# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------
CLIENT = "client@EXAMPLE.COM"
SERVICE = "service@host.example.com"


# ---------------------------------------------------------------------------
# Credential fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def credentials() -> InMemoryCredentialStore:
    store = InMemoryCredentialStore()
    store.register(CLIENT)
    store.register(SERVICE)
    return store


@pytest.fixture()
def mechanism(credentials: InMemoryCredentialStore) -> SignedDHMechanism:
    return SignedDHMechanism(credentials)


# ---------------------------------------------------------------------------
# Disposal-counting mechanism
# ---------------------------------------------------------------------------
class CountingMechanism:
    """Delegates to :class:`SignedDHMechanism` and counts ``dispose`` calls.

    ``fail_initiator_round`` injects an :class:`AuthenticationFailed` into
    the initiator's step with that (1-based) number.
    """

    def __init__(
        self,
        inner: SignedDHMechanism,
        *,
        fail_initiator_round: int | None = None,
    ) -> None:
        self._inner = inner
        self.name = inner.name
        self.max_rounds = inner.max_rounds
        self.fail_initiator_round = fail_initiator_round
        self.disposals: dict[int, int] = {}
        self._steps: dict[int, int] = {}

    def create_context(self, credential, peer_name, options) -> SignedDHContext:
        context = self._inner.create_context(credential, peer_name, options)
        self.disposals[id(context)] = 0
        self._steps[id(context)] = 0
        return context

    def step(self, context: SignedDHContext, token: bytes | None) -> bytes | None:
        self._steps[id(context)] += 1
        if (
            context.role is ContextRole.INITIATOR
            and self._steps[id(context)] == self.fail_initiator_round
        ):
            raise AuthenticationFailed("injected rejection")
        return self._inner.step(context, token)

    def wrap(self, context, data: bytes, confidential: bool) -> tuple[bytes, ProtectionLevel]:
        return self._inner.wrap(context, data, confidential)

    def unwrap(self, context, data: bytes) -> tuple[bytes, ProtectionLevel]:
        return self._inner.unwrap(context, data)

    def dispose(self, context: SignedDHContext) -> None:
        self.disposals[id(context)] += 1
        self._inner.dispose(context)


@pytest.fixture()
def counting():
    """Factory: ``counting(credentials, **options) -> CountingMechanism``."""

    def factory(store: InMemoryCredentialStore, **kwargs) -> CountingMechanism:
        return CountingMechanism(SignedDHMechanism(store), **kwargs)

    return factory
