"""gss-exchange messaging subpackage -- protect/unprotect application payloads."""
from __future__ import annotations

from gss_exchange.messaging.exchange import SecureChannel, protect, unprotect

__all__ = [
    "SecureChannel",
    "protect",
    "unprotect",
]
