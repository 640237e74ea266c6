# idp_gateway/jose.py
#
# -----------------------------------------------------------------------------
# Architectural notes
# -----------------------------------------------------------------------------
# This module is the *key material adapter* for wallet binding.
#
# Responsibilities:
#   - Parse the wallet's public key (PEM / certificate / base64 DER)
#   - Express it as a public JWK (RFC 7517 / RFC 7518 / RFC 8037)
#   - Derive stable identifiers from that JWK (RFC 7638 thumbprint)
#   - Add those identifiers to the backend's binding response
#
# What this module is NOT:
#   - Not a signer/verifier (no private keys ever pass through here)
#   - Not a policy engine (which key types the backend accepts is its call)
#
# Identifiers derived from one JWK:
#
#     canonical  = JSON of the required members, sorted keys, no whitespace
#     thumbprint = hex( SHA-256(canonical) )
#     kid        = base64url( SHA-256(canonical) )        (RFC 7638 §1)
#
# Both are pure functions of the key: same key => same values, on every call.
# -----------------------------------------------------------------------------

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from typing import Any, Dict, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa

from .errors import KeyConversionError, KeyEnrichmentError


# kty -> members that define the key (RFC 7638 §3.2)
REQUIRED_MEMBERS = {
    "RSA": ("e", "kty", "n"),
    "EC": ("crv", "kty", "x", "y"),
    "OKP": ("crv", "kty", "x"),
}

# cryptography curve name -> JWK crv
EC_CURVES = {
    "secp256r1": "P-256",
    "secp384r1": "P-384",
    "secp521r1": "P-521",
}

THUMBPRINT_FIELD = "thumbprint"
KID_FIELD = "kid"


# -----------------------------------------------------------------------------
# Base64 helpers
# -----------------------------------------------------------------------------
def b64url_encode(b: bytes) -> str:
    """URL-safe Base64 WITHOUT padding (JOSE encoding)."""
    return base64.urlsafe_b64encode(b).decode("ascii").rstrip("=")


def _b64decode_loose(s: str) -> bytes:
    """
    Decode standard or URL-safe Base64 with optional padding.

    Line breaks and spaces are tolerated (keys pasted from PEM bodies),
    but any other non-alphabet character is rejected.
    """
    s = "".join(str(s).split())
    s += "=" * (-len(s) % 4)
    if "-" in s or "_" in s:
        s = s.replace("-", "+").replace("_", "/")
    return base64.b64decode(s, validate=True)


def _int_to_b64url(i: int) -> str:
    length = (i.bit_length() + 7) // 8 or 1
    return b64url_encode(i.to_bytes(length, "big"))


def _canonical_json_bytes(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


# -----------------------------------------------------------------------------
# Key loading
# -----------------------------------------------------------------------------
def load_public_key(raw: str):
    """
    Load a public key from the encodings wallets send:

      - PEM "PUBLIC KEY" (SubjectPublicKeyInfo) or "RSA PUBLIC KEY" (PKCS#1)
      - PEM "CERTIFICATE" (the certified subject key is used)
      - bare Base64 / Base64url of DER SubjectPublicKeyInfo

    Raises KeyConversionError for anything else.
    """
    if raw is None or not str(raw).strip():
        raise KeyConversionError("public key is empty")

    text = str(raw).strip()
    try:
        if text.startswith("-----BEGIN CERTIFICATE"):
            return x509.load_pem_x509_certificate(text.encode("ascii")).public_key()
        if text.startswith("-----BEGIN"):
            return serialization.load_pem_public_key(text.encode("ascii"))
        return serialization.load_der_public_key(_b64decode_loose(text))
    except (ValueError, TypeError, UnsupportedAlgorithm, binascii.Error) as e:
        raise KeyConversionError(f"invalid public key: {e!s}"[:200]) from e


# -----------------------------------------------------------------------------
# JWK conversion
# -----------------------------------------------------------------------------
def key_to_jwk(key) -> Dict[str, str]:
    """Public JWK holding only the members that define the key."""
    if isinstance(key, rsa.RSAPublicKey):
        nums = key.public_numbers()
        return {"kty": "RSA", "n": _int_to_b64url(nums.n), "e": _int_to_b64url(nums.e)}

    if isinstance(key, ec.EllipticCurvePublicKey):
        crv = EC_CURVES.get(key.curve.name)
        if crv is None:
            raise KeyConversionError(f"unsupported EC curve: {key.curve.name}")
        # coordinates are fixed-length, left padded (RFC 7518 §6.2.1.2)
        size = (key.curve.key_size + 7) // 8
        nums = key.public_numbers()
        return {
            "kty": "EC",
            "crv": crv,
            "x": b64url_encode(nums.x.to_bytes(size, "big")),
            "y": b64url_encode(nums.y.to_bytes(size, "big")),
        }

    if isinstance(key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
        crv = "Ed25519" if isinstance(key, ed25519.Ed25519PublicKey) else "Ed448"
        raw = key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        return {"kty": "OKP", "crv": crv, "x": b64url_encode(raw)}

    raise KeyConversionError(f"unsupported key type: {type(key).__name__}")


def public_key_to_jwk(raw: str) -> Dict[str, str]:
    return key_to_jwk(load_public_key(raw))


# -----------------------------------------------------------------------------
# Thumbprint / kid
# -----------------------------------------------------------------------------
def _thumbprint_digest(jwk: Dict[str, Any]) -> bytes:
    members = REQUIRED_MEMBERS.get(str(jwk.get("kty", "")))
    if members is None:
        raise KeyEnrichmentError(f"unsupported kty for thumbprint: {jwk.get('kty')!r}")

    missing = [m for m in members if not jwk.get(m)]
    if missing:
        raise KeyEnrichmentError(f"JWK is missing members: {', '.join(missing)}")

    canonical = _canonical_json_bytes({m: jwk[m] for m in members})
    return hashlib.sha256(canonical).digest()


def derive_key_ids(jwk: Dict[str, Any]) -> Tuple[str, str]:
    """Return (thumbprint, kid) for a JWK."""
    digest = _thumbprint_digest(jwk)
    return digest.hex(), b64url_encode(digest)


def add_thumbprint_and_key_id(response: Dict[str, Any], jwk: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of the backend's binding response with `thumbprint` and
    `kid` added.

    Backend fields are never changed: a backend value under either name
    that differs from the derived one is an error, not an overwrite.
    """
    if not isinstance(response, dict):
        raise KeyEnrichmentError("backend binding response is not an object")

    thumbprint, kid = derive_key_ids(jwk)

    enriched = dict(response)
    for field, value in ((THUMBPRINT_FIELD, thumbprint), (KID_FIELD, kid)):
        existing = enriched.get(field)
        if existing is not None and existing != value:
            raise KeyEnrichmentError(f"backend response already carries a different {field}")
        enriched[field] = value

    return enriched
