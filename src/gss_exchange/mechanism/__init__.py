"""gss-exchange mechanism subpackage -- the reference authentication mechanism.

* :class:`SignedDHMechanism` -- two-round Ed25519/X25519 negotiation with
  AES-GCM / HMAC-SHA256 message protection
  (:mod:`~gss_exchange.mechanism.signed_dh`).
* :class:`KeyDirectoryCredentialStore` -- PEM key files on disk
  (:mod:`~gss_exchange.mechanism.keystore`).
"""
from __future__ import annotations

from gss_exchange.mechanism.keystore import KeyDirectoryCredentialStore
from gss_exchange.mechanism.signed_dh import (
    MECHANISM_NAME,
    TOKEN_ACCEPT,
    TOKEN_ERROR,
    TOKEN_INIT,
    SignedDHContext,
    SignedDHMechanism,
)

__all__ = [
    "MECHANISM_NAME",
    "TOKEN_ACCEPT",
    "TOKEN_ERROR",
    "TOKEN_INIT",
    "KeyDirectoryCredentialStore",
    "SignedDHContext",
    "SignedDHMechanism",
]
