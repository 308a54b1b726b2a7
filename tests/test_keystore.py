"""Tests for the file-backed credential provider."""
from __future__ import annotations

import os
import stat

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, x25519

from gss_exchange.core.errors import CredentialUnavailable
from gss_exchange.core.interfaces import CredentialProvider
from gss_exchange.mechanism.keystore import KeyDirectoryCredentialStore

CLIENT = "alice@EXAMPLE.COM"


class TestKeyDirectoryCredentialStore:
    """generate / acquire / lookup against a temporary directory."""

    def test_satisfies_protocol(self, tmp_path) -> None:
        assert isinstance(KeyDirectoryCredentialStore(tmp_path), CredentialProvider)

    def test_generate_writes_both_files(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path / "keys")

        credential = store.generate(CLIENT)

        assert credential.name == CLIENT
        assert store.private_path(CLIENT).name == "alice%40EXAMPLE.COM.key"
        assert store.public_path(CLIENT).name == "alice%40EXAMPLE.COM.pub"
        assert store.private_path(CLIENT).exists()
        assert store.public_path(CLIENT).exists()

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_private_key_mode(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)
        store.generate(CLIENT)

        mode = stat.S_IMODE(store.private_path(CLIENT).stat().st_mode)
        assert mode == 0o600

    def test_acquire_round_trip(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)
        generated = store.generate(CLIENT)

        acquired = store.acquire(CLIENT)

        assert isinstance(acquired.expose(), ed25519.Ed25519PrivateKey)
        raw = serialization.Encoding.Raw, serialization.PublicFormat.Raw
        assert acquired.expose().public_key().public_bytes(*raw) == (
            generated.expose().public_key().public_bytes(*raw)
        )
        assert "REDACTED" in repr(acquired)

    def test_lookup_reads_public_key(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)
        store.generate(CLIENT)
        store.private_path(CLIENT).unlink()

        assert isinstance(store.lookup(CLIENT), ed25519.Ed25519PublicKey)
        with pytest.raises(CredentialUnavailable):
            store.acquire(CLIENT)

    def test_lookup_falls_back_to_private_key(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)
        store.generate(CLIENT)
        store.public_path(CLIENT).unlink()

        assert isinstance(store.lookup(CLIENT), ed25519.Ed25519PublicKey)

    def test_missing_principal(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)

        with pytest.raises(CredentialUnavailable) as exc_info:
            store.acquire("nobody")
        assert exc_info.value.details["identity"] == "nobody"
        with pytest.raises(CredentialUnavailable):
            store.lookup("nobody")

    def test_corrupt_private_key(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)
        store.private_path(CLIENT).write_bytes(b"-----BEGIN GARBAGE-----")

        with pytest.raises(CredentialUnavailable, match="Unreadable private key"):
            store.acquire(CLIENT)

    def test_wrong_key_type(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)
        wrong = x25519.X25519PrivateKey.generate()
        store.private_path(CLIENT).write_bytes(
            wrong.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )

        with pytest.raises(CredentialUnavailable, match="not an Ed25519 key"):
            store.acquire(CLIENT)

    def test_generate_refuses_overwrite(self, tmp_path) -> None:
        store = KeyDirectoryCredentialStore(tmp_path)
        first = store.generate(CLIENT)

        with pytest.raises(FileExistsError):
            store.generate(CLIENT)
        second = store.generate(CLIENT, overwrite=True)

        raw = serialization.Encoding.Raw, serialization.PublicFormat.Raw
        assert first.expose().public_key().public_bytes(*raw) != (
            second.expose().public_key().public_bytes(*raw)
        )

    def test_empty_principal(self, tmp_path) -> None:
        with pytest.raises(CredentialUnavailable):
            KeyDirectoryCredentialStore(tmp_path).acquire("")
