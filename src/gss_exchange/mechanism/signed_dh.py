"""Reference authentication mechanism: signed ephemeral Diffie-Hellman.

A two-round mechanism in the style of a Kerberos AP-REQ / AP-REP exchange,
built from Ed25519 identity keys and X25519 ephemeral keys.

Tokens
------
Every token is one type byte followed by a body:

* ``0x01`` **INIT** (initiator -> acceptor): an EdDSA-signed JWT carrying
  ``iss``, ``aud``, ``iat``, ``exp``, ``jti`` (nonce), ``epk`` (X25519
  public key) and the ``mutual`` / ``conf`` request flags.
* ``0x02`` **ACCEPT** (acceptor -> initiator): a JWT echoing the nonce
  (``nonce``) with the acceptor's own ``anonce``, ``epk``, the negotiated
  ``conf`` flag and a key-confirmation MAC (``kc``).  It is EdDSA-signed
  when mutual authentication was requested and the acceptor allows it,
  and unsigned (``alg: none``) otherwise.
* ``0x03`` **ERROR**: JSON ``{"code": ..., "message": ...}`` sent by an
  acceptor that rejected the INIT token.

Keys
----
``HKDF-SHA256(X25519 shared secret, salt = jti ":" anonce)`` yields 128
bytes: an AES-256-GCM key and an HMAC-SHA256 key for each direction.

Wrap tokens
-----------
``>BBQ`` header (version, flags, sequence number) followed by either the
AES-GCM ciphertext (header as associated data) or the plaintext plus an
HMAC-SHA256 over header and plaintext.  Receivers accept only the next
expected sequence number.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import struct
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jwt
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, x25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from gss_exchange.core.errors import (
    AuthenticationFailed,
    ContextNotEstablished,
    ContextStateError,
    CredentialUnavailable,
    IntegrityViolation,
    PeerRejected,
    ReplayDetected,
    TokenExpired,
    TokenReplayed,
    error_from_code,
)
from gss_exchange.core.types import ContextOptions, ContextRole, ProtectionLevel

if TYPE_CHECKING:
    from gss_exchange.core.interfaces import CredentialProvider
    from gss_exchange.core.types import Credential

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MECHANISM_NAME = "signed-dh-ed25519"

TOKEN_INIT = 0x01
TOKEN_ACCEPT = 0x02
TOKEN_ERROR = 0x03

WRAP_VERSION = 1
FLAG_CONFIDENTIAL = 0x01
WRAP_HEADER = struct.Struct(">BBQ")
MAC_SIZE = hashlib.sha256().digest_size

KDF_INFO = b"gss-exchange/v1"
KEY_CONFIRMATION_LABEL = b"key-confirmation:"
MAX_NONCE_LENGTH = 64

_INIT_CLAIMS = ["iss", "aud", "iat", "exp", "jti", "epk"]
_ACCEPT_CLAIMS = ["iss", "aud", "iat", "exp", "nonce", "anonce", "epk", "kc"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    pad_len = (-len(data)) % 4
    return base64.urlsafe_b64decode(data + "=" * pad_len)


def _public_bytes(key: x25519.X25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _gcm_nonce(seq: int) -> bytes:
    return b"\x00\x00\x00\x00" + struct.pack(">Q", seq)


@dataclass(slots=True)
class _DirectionKeys:
    enc: bytearray
    mac: bytearray

    def wipe(self) -> None:
        self.enc[:] = bytes(len(self.enc))
        self.mac[:] = bytes(len(self.mac))


def _derive_keys(
    shared_secret: bytes,
    initiator_nonce: str,
    acceptor_nonce: str,
) -> tuple[_DirectionKeys, _DirectionKeys]:
    """Return ``(initiator->acceptor, acceptor->initiator)`` key sets."""
    material = HKDF(
        algorithm=hashes.SHA256(),
        length=128,
        salt=f"{initiator_nonce}:{acceptor_nonce}".encode("ascii"),
        info=KDF_INFO,
    ).derive(shared_secret)
    return (
        _DirectionKeys(bytearray(material[0:32]), bytearray(material[32:64])),
        _DirectionKeys(bytearray(material[64:96]), bytearray(material[96:128])),
    )


def _key_confirmation(keys: _DirectionKeys, nonce: str) -> str:
    mac = hmac.new(keys.mac, KEY_CONFIRMATION_LABEL + nonce.encode("ascii"), hashlib.sha256)
    return _b64url_encode(mac.digest())


def _nonce_claim(value: object) -> str | None:
    """Return *value* if it is a usable nonce: a short, non-empty ASCII string."""
    if not isinstance(value, str) or not 0 < len(value) <= MAX_NONCE_LENGTH:
        return None
    if not value.isascii():
        return None
    return value


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

class SignedDHContext:
    """Mechanism-side state of one :class:`SignedDHMechanism` context."""

    def __init__(
        self,
        credential: Credential,
        peer_name: str | None,
        options: ContextOptions,
    ) -> None:
        self.options = options
        self.local_name = credential.name
        self.peer_name = peer_name
        self.established = False
        self.mutual_auth = False
        self.confidentiality = False
        self._signing_key: ed25519.Ed25519PrivateKey | None = credential.expose()
        self._ephemeral: x25519.X25519PrivateKey | None = None
        self._nonce: str | None = None
        self._send: _DirectionKeys | None = None
        self._recv: _DirectionKeys | None = None
        self._send_seq = 0
        self._recv_seq = 0

    @property
    def role(self) -> ContextRole:
        return self.options.role


# ---------------------------------------------------------------------------
# Mechanism
# ---------------------------------------------------------------------------

class SignedDHMechanism:
    """Two-round Ed25519/X25519 mechanism with AES-GCM and HMAC protection.

    Parameters
    ----------
    credentials:
        Resolves peer principal names to Ed25519 public keys.
    max_rounds:
        Round bound advertised to the security context.

    The acceptor-side replay cache is the only state shared between the
    contexts one mechanism instance creates.
    """

    name = MECHANISM_NAME

    def __init__(self, credentials: CredentialProvider, *, max_rounds: int = 10) -> None:
        self._credentials = credentials
        self.max_rounds = max_rounds
        self._seen_nonces: dict[str, float] = {}  # jti -> expires_at

    # ------------------------------------------------------------------
    # Context lifecycle
    # ------------------------------------------------------------------

    def create_context(
        self,
        credential: Credential,
        peer_name: str | None,
        options: ContextOptions,
    ) -> SignedDHContext:
        if not isinstance(credential.expose(), ed25519.Ed25519PrivateKey):
            raise CredentialUnavailable(
                f"Credential for {credential.name} is not an Ed25519 key",
                details={"identity": credential.name, "mechanism": MECHANISM_NAME},
            )
        if options.role is ContextRole.INITIATOR and not peer_name:
            raise ValueError("An initiator context needs the acceptor's principal name")
        return SignedDHContext(credential, peer_name, options)

    def dispose(self, context: SignedDHContext) -> None:
        for keys in (context._send, context._recv):
            if keys is not None:
                keys.wipe()
        context._send = None
        context._recv = None
        context._ephemeral = None
        context._signing_key = None

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    def step(self, context: SignedDHContext, token: bytes | None) -> bytes | None:
        if context.established:
            raise ContextStateError("Context is already established")
        if context._signing_key is None:
            raise ContextStateError("Context has been disposed")

        if context.role is ContextRole.ACCEPTOR:
            if token is None:
                raise AuthenticationFailed("Acceptor requires the initiator's token")
            return self._accept(context, token)

        if context._ephemeral is None:
            if token is not None:
                raise AuthenticationFailed("Unexpected token before the first initiator round")
            return self._initiate(context)
        if token is None:
            raise AuthenticationFailed("Initiator requires the acceptor's token")
        self._complete(context, token)
        return None

    def _initiate(self, context: SignedDHContext) -> bytes:
        context._ephemeral = x25519.X25519PrivateKey.generate()
        context._nonce = secrets.token_urlsafe(16)
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": context.local_name,
            "aud": context.peer_name,
            "iat": now,
            "exp": now + context.options.token_lifetime,
            "jti": context._nonce,
            "epk": _b64url_encode(_public_bytes(context._ephemeral)),
            "mutual": context.options.mutual_auth,
            "conf": context.options.confidentiality,
            "mech": MECHANISM_NAME,
        }
        body: str = jwt.encode(claims, context._signing_key, algorithm="EdDSA")
        return bytes([TOKEN_INIT]) + body.encode("ascii")

    def _accept(self, context: SignedDHContext, token: bytes) -> bytes:
        kind, body = self._split(token)
        if kind != TOKEN_INIT:
            raise self._reject(AuthenticationFailed(
                "Expected an INIT token", details={"token_type": kind},
            ))

        try:
            unverified = jwt.decode(body, options={"verify_signature": False})
        except jwt.InvalidTokenError as exc:
            raise self._reject(AuthenticationFailed(f"Malformed INIT token: {exc}")) from exc
        issuer = unverified.get("iss")
        if not isinstance(issuer, str):
            raise self._reject(AuthenticationFailed("INIT token has no issuer"))

        try:
            public_key = self._credentials.lookup(issuer)
        except CredentialUnavailable as exc:
            raise self._reject(AuthenticationFailed(
                f"Unknown initiator principal: {issuer}",
                details={"identity": issuer},
            )) from exc

        options = context.options
        try:
            claims = jwt.decode(
                body,
                public_key,
                algorithms=["EdDSA"],
                audience=context.local_name,
                issuer=issuer,
                leeway=options.clock_skew,
                options={"require": _INIT_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise self._reject(TokenExpired(details={"identity": issuer})) from exc
        except jwt.InvalidTokenError as exc:
            raise self._reject(AuthenticationFailed(
                f"INIT token rejected: {exc}", details={"identity": issuer},
            )) from exc

        initiator_nonce = _nonce_claim(claims["jti"])
        if initiator_nonce is None:
            raise self._reject(AuthenticationFailed(
                "INIT token carries an invalid nonce", details={"identity": issuer},
            ))
        if not self._remember_nonce(initiator_nonce, float(claims["exp"]), options.clock_skew):
            raise self._reject(TokenReplayed(details={"identity": issuer}))

        peer_epk = self._load_epk(claims["epk"], reject=True)
        ephemeral = x25519.X25519PrivateKey.generate()
        acceptor_nonce = secrets.token_urlsafe(16)
        to_acceptor, to_initiator = _derive_keys(
            ephemeral.exchange(peer_epk), initiator_nonce, acceptor_nonce
        )

        mutual = bool(claims.get("mutual")) and options.mutual_auth
        conf = bool(claims.get("conf")) and options.confidentiality
        now = int(time.time())
        reply: dict[str, Any] = {
            "iss": context.local_name,
            "aud": issuer,
            "iat": now,
            "exp": now + options.token_lifetime,
            "nonce": initiator_nonce,
            "anonce": acceptor_nonce,
            "epk": _b64url_encode(_public_bytes(ephemeral)),
            "conf": conf,
            "kc": _key_confirmation(to_initiator, initiator_nonce),
        }
        if mutual:
            reply_body: str = jwt.encode(reply, context._signing_key, algorithm="EdDSA")
        else:
            reply_body = jwt.encode(reply, "", algorithm="none")

        context.peer_name = issuer
        context.mutual_auth = mutual
        context.confidentiality = conf
        context._recv = to_acceptor
        context._send = to_initiator
        context.established = True
        return bytes([TOKEN_ACCEPT]) + reply_body.encode("ascii")

    def _complete(self, context: SignedDHContext, token: bytes) -> None:
        kind, body = self._split(token)
        if kind == TOKEN_ERROR:
            raise self._peer_error(body)
        if kind != TOKEN_ACCEPT:
            raise AuthenticationFailed("Expected an ACCEPT token", details={"token_type": kind})

        if context.peer_name is None or context._ephemeral is None or context._nonce is None:
            raise ContextStateError(
                "Initiator context has no outstanding INIT token",
                details={"mechanism": MECHANISM_NAME},
            )
        try:
            algorithm = jwt.get_unverified_header(body).get("alg")
        except jwt.InvalidTokenError as exc:
            raise AuthenticationFailed(f"Malformed ACCEPT token: {exc}") from exc

        options = context.options
        try:
            if algorithm == "EdDSA":
                public_key = self._credentials.lookup(context.peer_name)
                claims = jwt.decode(
                    body,
                    public_key,
                    algorithms=["EdDSA"],
                    audience=context.local_name,
                    issuer=context.peer_name,
                    leeway=options.clock_skew,
                    options={"require": _ACCEPT_CLAIMS},
                )
                signed = True
            elif algorithm == "none":
                claims = jwt.decode(
                    body,
                    audience=context.local_name,
                    issuer=context.peer_name,
                    leeway=options.clock_skew,
                    options={
                        "verify_signature": False,
                        "verify_exp": True,
                        "verify_aud": True,
                        "verify_iss": True,
                        "require": _ACCEPT_CLAIMS,
                    },
                )
                signed = False
            else:
                raise AuthenticationFailed(
                    "Unsupported ACCEPT token algorithm",
                    details={"alg": algorithm},
                )
        except CredentialUnavailable as exc:
            raise AuthenticationFailed(
                f"Unknown acceptor principal: {context.peer_name}",
                details={"identity": context.peer_name},
            ) from exc
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired(details={"identity": context.peer_name}) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationFailed(f"ACCEPT token rejected: {exc}") from exc

        if claims["nonce"] != context._nonce:
            raise AuthenticationFailed("ACCEPT token answers a different INIT token")

        acceptor_nonce = _nonce_claim(claims["anonce"])
        if acceptor_nonce is None:
            raise AuthenticationFailed("ACCEPT token carries an invalid nonce")
        peer_epk = self._load_epk(claims["epk"], reject=False)
        to_acceptor, to_initiator = _derive_keys(
            context._ephemeral.exchange(peer_epk), context._nonce, acceptor_nonce
        )
        expected_kc = _key_confirmation(to_initiator, context._nonce)
        if not hmac.compare_digest(expected_kc, str(claims["kc"])):
            raise AuthenticationFailed("Key confirmation failed")

        context._ephemeral = None
        context.mutual_auth = signed
        context.confidentiality = bool(claims.get("conf")) and options.confidentiality
        context._send = to_acceptor
        context._recv = to_initiator
        context.established = True

    # ------------------------------------------------------------------
    # Message protection
    # ------------------------------------------------------------------

    def wrap(
        self,
        context: SignedDHContext,
        data: bytes,
        confidential: bool,
    ) -> tuple[bytes, ProtectionLevel]:
        keys = context._send
        if not context.established or keys is None:
            raise ContextNotEstablished(details={"operation": "wrap"})

        apply_conf = confidential and context.confidentiality
        seq = context._send_seq
        context._send_seq += 1
        header = WRAP_HEADER.pack(WRAP_VERSION, FLAG_CONFIDENTIAL if apply_conf else 0, seq)
        if apply_conf:
            body = AESGCM(keys.enc).encrypt(_gcm_nonce(seq), data, header)
            return header + body, ProtectionLevel.CONFIDENTIALITY
        tag = hmac.new(keys.mac, header + data, hashlib.sha256).digest()
        return header + data + tag, ProtectionLevel.INTEGRITY

    def unwrap(self, context: SignedDHContext, data: bytes) -> tuple[bytes, ProtectionLevel]:
        keys = context._recv
        if not context.established or keys is None:
            raise ContextNotEstablished(details={"operation": "unwrap"})
        if len(data) < WRAP_HEADER.size:
            raise IntegrityViolation(
                "Protected message is shorter than its header",
                details={"length": len(data)},
            )

        header, body = data[: WRAP_HEADER.size], data[WRAP_HEADER.size :]
        version, flags, seq = WRAP_HEADER.unpack(header)
        if version != WRAP_VERSION or flags & ~FLAG_CONFIDENTIAL:
            raise IntegrityViolation(
                "Protected message header is malformed",
                details={"version": version, "flags": flags},
            )

        if flags & FLAG_CONFIDENTIAL:
            try:
                plaintext = AESGCM(keys.enc).decrypt(_gcm_nonce(seq), body, header)
            except InvalidTag as exc:
                raise IntegrityViolation(details={"sequence": seq}) from exc
            level = ProtectionLevel.CONFIDENTIALITY
        else:
            if len(body) < MAC_SIZE:
                raise IntegrityViolation(
                    "Protected message is missing its integrity tag",
                    details={"length": len(data)},
                )
            plaintext, tag = body[:-MAC_SIZE], body[-MAC_SIZE:]
            expected = hmac.new(keys.mac, header + plaintext, hashlib.sha256).digest()
            if not hmac.compare_digest(expected, tag):
                raise IntegrityViolation(details={"sequence": seq})
            level = ProtectionLevel.INTEGRITY

        if seq != context._recv_seq:
            raise ReplayDetected(
                details={"expected_sequence": context._recv_seq, "sequence": seq},
            )
        context._recv_seq += 1
        return plaintext, level

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _split(token: bytes) -> tuple[int, str]:
        if not token:
            raise AuthenticationFailed("Empty negotiation token")
        try:
            return token[0], token[1:].decode("ascii")
        except UnicodeDecodeError as exc:
            raise AuthenticationFailed("Negotiation token body is not ASCII") from exc

    @staticmethod
    def _reject(exc: AuthenticationFailed) -> AuthenticationFailed:
        """Attach an ERROR token for the initiator to *exc*."""
        body = json.dumps({"code": exc.code, "message": exc.message}, separators=(",", ":"))
        exc.token = bytes([TOKEN_ERROR]) + body.encode("ascii")
        return exc

    @staticmethod
    def _peer_error(body: str) -> PeerRejected:
        try:
            error = json.loads(body)
            peer_exc = error_from_code(str(error["code"]), str(error["message"]))
        except (ValueError, KeyError, TypeError):
            return PeerRejected(details={"peer_code": "unknown"})
        return PeerRejected(
            f"Peer rejected our token: {peer_exc.message}",
            details={"peer_code": peer_exc.code},
        )

    def _load_epk(self, value: object, *, reject: bool) -> x25519.X25519PublicKey:
        try:
            if not isinstance(value, str):
                raise ValueError("epk must be a string")
            return x25519.X25519PublicKey.from_public_bytes(_b64url_decode(value))
        except ValueError as exc:
            failure = AuthenticationFailed("Token carries an invalid ephemeral key")
            raise (self._reject(failure) if reject else failure) from exc

    def _remember_nonce(self, nonce: str, expires_at: float, clock_skew: int) -> bool:
        """Return ``True`` if *nonce* is novel; ``False`` on replay."""
        now = time.time()
        expired = [n for n, exp in self._seen_nonces.items() if exp + clock_skew < now]
        for n in expired:
            del self._seen_nonces[n]
        if nonce in self._seen_nonces:
            logger.warning("Replayed INIT token nonce rejected")
            return False
        self._seen_nonces[nonce] = expires_at
        return True
