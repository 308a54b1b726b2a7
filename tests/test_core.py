"""Tests for gss_exchange.core -- errors, types, config and interfaces."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from gss_exchange.core import errors
from gss_exchange.core.config import SessionConfig
from gss_exchange.core.errors import (
    AuthenticationFailed,
    ContextNotEstablished,
    CredentialUnavailable,
    ExchangeError,
    FrameTooLarge,
    FrameTruncated,
    IntegrityViolation,
    ProtocolError,
    ReplayDetected,
    SecurityError,
    StreamError,
    StreamTimeout,
    TokenExpired,
    TransportError,
    UsageError,
    error_from_code,
)
from gss_exchange.core.interfaces import (
    AuthenticationMechanism,
    CredentialProvider,
    InMemoryCredentialStore,
)
from gss_exchange.core.types import (
    ContextOptions,
    ContextRole,
    Credential,
    MutualAuthPolicy,
    ProtectedMessage,
    ProtectionLevel,
)
from gss_exchange.mechanism.signed_dh import SignedDHMechanism

# ===================================================================
# Errors
# ===================================================================

class TestErrors:
    """Error codes, categories and serialisation."""

    def test_codes_are_unique(self) -> None:
        codes = [cls.code for cls in errors._CODE_MAP.values()]
        assert len(codes) == len(set(codes))

    @pytest.mark.parametrize(
        ("cls", "category", "prefix"),
        [
            (StreamError, TransportError, "GX-E1"),
            (FrameTruncated, TransportError, "GX-E1"),
            (AuthenticationFailed, SecurityError, "GX-E2"),
            (IntegrityViolation, SecurityError, "GX-E2"),
            (ContextNotEstablished, UsageError, "GX-E3"),
        ],
    )
    def test_categories(self, cls, category, prefix: str) -> None:
        assert issubclass(cls, category)
        assert cls.code.startswith(prefix)

    def test_framing_errors_are_protocol_errors(self) -> None:
        assert issubclass(FrameTruncated, ProtocolError)
        assert issubclass(FrameTooLarge, ProtocolError)
        assert FrameTruncated().message == "truncated frame"
        assert FrameTooLarge().message == "invalid length"

    def test_subclass_relationships(self) -> None:
        assert issubclass(StreamTimeout, StreamError)
        assert issubclass(TokenExpired, AuthenticationFailed)
        assert issubclass(ReplayDetected, IntegrityViolation)

    def test_to_dict(self) -> None:
        exc = FrameTooLarge(details={"length": 5, "max_frame_size": 4})

        assert exc.to_dict() == {
            "error": {
                "code": "GX-E112",
                "message": "invalid length",
                "detail": {"length": 5, "max_frame_size": 4},
                "resolution": FrameTooLarge.resolution,
            }
        }

    def test_message_and_resolution_override(self) -> None:
        exc = StreamError("connection refused", resolution="start the server")

        assert str(exc) == "connection refused"
        assert exc.resolution == "start the server"
        assert repr(exc) == "StreamError(code='GX-E100', message='connection refused')"

    def test_authentication_failed_carries_token(self) -> None:
        assert AuthenticationFailed().token is None
        assert AuthenticationFailed(token=b"\x03{}").token == b"\x03{}"

    def test_error_from_code(self) -> None:
        exc = error_from_code("GX-E201", "too old")

        assert isinstance(exc, TokenExpired)
        assert exc.message == "too old"
        assert isinstance(error_from_code("GX-E241"), ReplayDetected)

    def test_error_from_unknown_code(self) -> None:
        with pytest.raises(KeyError):
            error_from_code("GX-E999")

    def test_all_errors_share_base(self) -> None:
        for cls in errors._CODE_MAP.values():
            assert issubclass(cls, ExchangeError)


# ===================================================================
# Types
# ===================================================================

class TestTypes:
    """Value objects and enums."""

    def test_credential_never_prints_material(self) -> None:
        credential = Credential("alice", b"private-key-bytes")

        assert str(credential) == "alice"
        assert "private-key-bytes" not in repr(credential)
        assert credential.expose() == b"private-key-bytes"

    def test_protection_level(self) -> None:
        assert ProtectionLevel.CONFIDENTIALITY.confidential
        assert not ProtectionLevel.INTEGRITY.confidential
        assert ProtectionLevel("integrity") is ProtectionLevel.INTEGRITY

    @pytest.mark.parametrize(
        ("applied", "requested", "downgraded"),
        [
            (ProtectionLevel.INTEGRITY, True, True),
            (ProtectionLevel.INTEGRITY, False, False),
            (ProtectionLevel.CONFIDENTIALITY, True, False),
        ],
    )
    def test_downgraded(self, applied, requested: bool, downgraded: bool) -> None:
        message = ProtectedMessage(data=b"", applied=applied, confidentiality_requested=requested)
        assert message.downgraded is downgraded

    def test_context_options_defaults(self) -> None:
        options = ContextOptions()

        assert options.role is ContextRole.INITIATOR
        assert options.mutual_auth and options.confidentiality
        assert (options.token_lifetime, options.clock_skew) == (300, 30)

    def test_context_options_validation(self) -> None:
        with pytest.raises(ValidationError):
            ContextOptions(token_lifetime=0)
        with pytest.raises(ValidationError):
            ContextOptions(mutual_auth="yes")


# ===================================================================
# Config
# ===================================================================

class TestSessionConfig:
    """Validated endpoint configuration."""

    def test_defaults(self) -> None:
        config = SessionConfig(local_name="alice")

        assert config.peer_name is None
        assert (config.host, config.port) == ("127.0.0.1", 4567)
        assert config.max_frame_size == 1_048_576
        assert config.max_rounds == 10
        assert config.negotiation_timeout == 30.0
        assert config.mutual_auth_policy is MutualAuthPolicy.WARN
        assert config.request_confidentiality and config.allow_confidentiality

    @pytest.mark.parametrize(
        "overrides",
        [
            {"port": 70000},
            {"max_frame_size": 0},
            {"max_rounds": 0},
            {"negotiation_timeout": 0.0},
            {"port": "4567"},
            {"mutual_auth_policy": "ignore"},
        ],
    )
    def test_rejects_invalid_values(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            SessionConfig(local_name="alice", **overrides)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("warn", MutualAuthPolicy.WARN), ("fail", MutualAuthPolicy.FAIL)],
    )
    def test_policy_accepts_names(self, value: str, expected: MutualAuthPolicy) -> None:
        config = SessionConfig(local_name="alice", mutual_auth_policy=value)

        assert config.mutual_auth_policy is expected

    def test_local_name_required(self) -> None:
        with pytest.raises(ValidationError):
            SessionConfig()  # type: ignore[call-arg]

    def test_context_options(self) -> None:
        config = SessionConfig(
            local_name="svc",
            request_mutual_auth=False,
            allow_confidentiality=False,
            token_lifetime=60,
        )

        options = config.context_options(ContextRole.ACCEPTOR)

        assert options.role is ContextRole.ACCEPTOR
        assert options.mutual_auth is False
        assert options.confidentiality is False
        assert options.token_lifetime == 60


# ===================================================================
# Interfaces
# ===================================================================

class TestInterfaces:
    """Runtime-checkable protocols and the in-memory store."""

    def test_reference_implementations_satisfy_protocols(self) -> None:
        store = InMemoryCredentialStore()
        assert isinstance(store, CredentialProvider)
        assert isinstance(SignedDHMechanism(store), AuthenticationMechanism)

    def test_in_memory_store(self) -> None:
        store = InMemoryCredentialStore()
        credential = store.register("alice")

        assert store.acquire("alice").expose() is credential.expose()
        assert store.lookup("alice") is not None

        store.remove("alice")
        with pytest.raises(CredentialUnavailable):
            store.acquire("alice")
        with pytest.raises(CredentialUnavailable):
            store.lookup("alice")

    def test_public_only_principal(self) -> None:
        other = InMemoryCredentialStore()
        key = other.register("bob").expose()
        store = InMemoryCredentialStore()
        store.add_public("bob", key.public_key())

        assert store.lookup("bob") is not None
        with pytest.raises(CredentialUnavailable):
            store.acquire("bob")
