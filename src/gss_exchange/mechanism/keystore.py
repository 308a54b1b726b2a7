"""File-backed Ed25519 credential provider.

Layout of a key directory::

    <quoted principal>.key   PKCS#8 PEM private key (mode 0600)
    <quoted principal>.pub   SubjectPublicKeyInfo PEM public key

Principal names are percent-quoted (``alice@EXAMPLE`` becomes
``alice%40EXAMPLE``) so that any principal maps to exactly one file name.
A peer only needs the ``.pub`` file of the principals it talks to.
"""
from __future__ import annotations

import logging
import os
import urllib.parse
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from gss_exchange.core.errors import CredentialUnavailable
from gss_exchange.core.types import Credential

logger = logging.getLogger(__name__)

PRIVATE_SUFFIX = ".key"
PUBLIC_SUFFIX = ".pub"


class KeyDirectoryCredentialStore:
    """Credential provider reading Ed25519 keys from a directory.

    Parameters
    ----------
    path:
        Directory holding the key files.  Created by :meth:`generate`
        when missing.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def private_path(self, identity: str) -> Path:
        return self._path / (self._stem(identity) + PRIVATE_SUFFIX)

    def public_path(self, identity: str) -> Path:
        return self._path / (self._stem(identity) + PUBLIC_SUFFIX)

    # -- Protocol implementation ---------------------------------------

    def acquire(self, identity: str) -> Credential:
        """Load the private key of *identity*."""
        path = self.private_path(identity)
        try:
            key = serialization.load_pem_private_key(path.read_bytes(), password=None)
        except FileNotFoundError as exc:
            raise CredentialUnavailable(
                f"No private key for principal: {identity}",
                details={"identity": identity, "path": str(path)},
            ) from exc
        except (OSError, ValueError, TypeError) as exc:
            raise CredentialUnavailable(
                f"Unreadable private key for principal: {identity}",
                details={"identity": identity, "path": str(path)},
            ) from exc
        if not isinstance(key, ed25519.Ed25519PrivateKey):
            raise CredentialUnavailable(
                f"Private key for {identity} is not an Ed25519 key",
                details={"identity": identity, "path": str(path)},
            )
        return Credential(identity, key)

    def lookup(self, identity: str) -> ed25519.Ed25519PublicKey:
        """Load the public key of *identity*.

        Falls back to deriving it from the private key when only that is
        present.
        """
        path = self.public_path(identity)
        if not path.exists():
            if self.private_path(identity).exists():
                return self.acquire(identity).expose().public_key()
            raise CredentialUnavailable(
                f"Unknown principal: {identity}",
                details={"identity": identity, "path": str(path)},
            )
        try:
            key = serialization.load_pem_public_key(path.read_bytes())
        except (OSError, ValueError) as exc:
            raise CredentialUnavailable(
                f"Unreadable public key for principal: {identity}",
                details={"identity": identity, "path": str(path)},
            ) from exc
        if not isinstance(key, ed25519.Ed25519PublicKey):
            raise CredentialUnavailable(
                f"Public key for {identity} is not an Ed25519 key",
                details={"identity": identity, "path": str(path)},
            )
        return key

    # -- key management helpers (not part of the Protocol) -------------

    def generate(self, identity: str, *, overwrite: bool = False) -> Credential:
        """Create a new key pair for *identity* and write both files.

        Raises :class:`FileExistsError` if a private key already exists
        and *overwrite* is false.
        """
        private_path = self.private_path(identity)
        if private_path.exists() and not overwrite:
            raise FileExistsError(f"Key already exists for {identity}: {private_path}")

        self._path.mkdir(parents=True, exist_ok=True)
        key = ed25519.Ed25519PrivateKey.generate()
        private_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

        fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(private_pem)
        self.public_path(identity).write_bytes(public_pem)
        logger.info("Generated Ed25519 key pair for %s in %s", identity, self._path)
        return Credential(identity, key)

    @staticmethod
    def _stem(identity: str) -> str:
        if not identity:
            raise CredentialUnavailable("Principal name must not be empty")
        return urllib.parse.quote(identity, safe="")
