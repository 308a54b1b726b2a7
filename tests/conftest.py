"""Shared fixtures for gss-exchange unit tests.

Provides an in-process loopback stream pair, a deterministic scripted
mechanism for exercising the state machine without cryptography, and
in-memory credentials for the reference mechanism.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from gss_exchange.core.errors import AuthenticationFailed, IntegrityViolation
from gss_exchange.core.interfaces import InMemoryCredentialStore
from gss_exchange.core.types import ContextOptions, Credential, ProtectionLevel
from gss_exchange.mechanism.signed_dh import SignedDHMechanism
from gss_exchange.wire.framing import FramedStream

CLIENT = "alice@EXAMPLE.COM"
SERVICE = "echo@server.example.com"


# ---------------------------------------------------------------------------
# Loopback streams
# ---------------------------------------------------------------------------

class LoopbackWriter:
    """Minimal ``asyncio.StreamWriter`` stand-in feeding a peer reader."""

    def __init__(self, peer: asyncio.StreamReader) -> None:
        self._peer = peer
        self._closing = False
        self.close_calls = 0
        self.written = bytearray()

    def write(self, data: bytes) -> None:
        self.written.extend(data)
        self._peer.feed_data(data)

    async def drain(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self._closing

    def close(self) -> None:
        self.close_calls += 1
        if not self._closing:
            self._closing = True
            self._peer.feed_eof()

    async def wait_closed(self) -> None:
        return None

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        if name == "peername":
            return ("loopback", 0)
        return default


StreamPairFactory = Callable[..., tuple[FramedStream, FramedStream]]


@pytest.fixture()
def stream_pair() -> StreamPairFactory:
    """Factory for two connected :class:`FramedStream` objects.

    Must be called from inside a running event loop.
    """

    def factory(**kwargs: Any) -> tuple[FramedStream, FramedStream]:
        a_reader = asyncio.StreamReader()
        b_reader = asyncio.StreamReader()
        a_writer = LoopbackWriter(b_reader)
        b_writer = LoopbackWriter(a_reader)
        return (
            FramedStream(a_reader, a_writer, **kwargs),  # type: ignore[arg-type]
            FramedStream(b_reader, b_writer, **kwargs),  # type: ignore[arg-type]
        )

    return factory


# ---------------------------------------------------------------------------
# Scripted mechanism
# ---------------------------------------------------------------------------

class ScriptedContext:
    def __init__(self, credential: Credential, peer_name: str | None, options: ContextOptions) -> None:
        self.local_name = credential.name
        self.peer_name = peer_name
        self.options = options
        self.established = False
        self.mutual_auth = False
        self.confidentiality = False
        self.steps = 0
        self.inbound: list[bytes | None] = []


class ScriptedMechanism:
    """Deterministic mechanism for state-machine tests.

    Establishes after ``rounds`` steps, emitting ``b"token-<n>"`` on every
    step (including the establishing one when ``final_token`` is set).
    ``fail_on_step`` raises :class:`AuthenticationFailed` carrying an
    error token on that step.  ``wrap`` prefixes a marker byte; ``unwrap``
    rejects anything else.
    """

    name = "scripted"

    def __init__(
        self,
        *,
        rounds: int = 2,
        max_rounds: int = 10,
        fail_on_step: int | None = None,
        final_token: bool = True,
        mutual: bool = True,
        confidentiality: bool = True,
        peer_name: str = SERVICE,
    ) -> None:
        self.rounds = rounds
        self.max_rounds = max_rounds
        self.fail_on_step = fail_on_step
        self.final_token = final_token
        self.mutual = mutual
        self.confidentiality = confidentiality
        self.peer_name = peer_name
        self.dispose_calls = 0
        self.contexts: list[ScriptedContext] = []

    def create_context(
        self,
        credential: Credential,
        peer_name: str | None,
        options: ContextOptions,
    ) -> ScriptedContext:
        context = ScriptedContext(credential, peer_name, options)
        self.contexts.append(context)
        return context

    def step(self, context: ScriptedContext, token: bytes | None) -> bytes | None:
        context.steps += 1
        context.inbound.append(token)
        if context.steps == self.fail_on_step:
            raise AuthenticationFailed("scripted rejection", token=b"error-token")
        if context.steps >= self.rounds:
            context.established = True
            context.peer_name = context.peer_name or self.peer_name
            context.mutual_auth = self.mutual
            context.confidentiality = self.confidentiality
            return f"token-{context.steps}".encode() if self.final_token else None
        return f"token-{context.steps}".encode()

    def wrap(
        self,
        context: ScriptedContext,
        data: bytes,
        confidential: bool,
    ) -> tuple[bytes, ProtectionLevel]:
        if confidential and context.confidentiality:
            return b"C" + data, ProtectionLevel.CONFIDENTIALITY
        return b"I" + data, ProtectionLevel.INTEGRITY

    def unwrap(self, context: ScriptedContext, data: bytes) -> tuple[bytes, ProtectionLevel]:
        if data[:1] == b"C":
            return data[1:], ProtectionLevel.CONFIDENTIALITY
        if data[:1] == b"I":
            return data[1:], ProtectionLevel.INTEGRITY
        raise IntegrityViolation(details={"marker": data[:1].hex()})

    def dispose(self, context: ScriptedContext) -> None:
        self.dispose_calls += 1


@pytest.fixture()
def scripted() -> ScriptedMechanism:
    return ScriptedMechanism()


@pytest.fixture()
def client_credential() -> Credential:
    return Credential(CLIENT, object())


# ---------------------------------------------------------------------------
# Reference mechanism
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


@pytest.fixture()
def make_scripted() -> type[ScriptedMechanism]:
    """The :class:`ScriptedMechanism` class, for tests that need options."""
    return ScriptedMechanism
