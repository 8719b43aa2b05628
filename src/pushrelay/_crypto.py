"""Internal signing helpers for publisher credentials."""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Callable

from Crypto.Hash import SHA256
from Crypto.PublicKey import ECC, RSA
from Crypto.Signature import DSS, pkcs1_15

_PEM_ARMOR = re.compile(r"-----(BEGIN|END)[A-Z ]*-----")


def b64url(data: bytes) -> str:
    """Base64url encoding without ``=`` padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def strip_pem(pem: str) -> bytes:
    """Return the DER bytes inside a PEM block.

    Armor lines, literal ``\\n`` escapes (service-account JSON pasted into an
    environment variable) and all whitespace are removed before decoding.
    Raises :class:`ValueError` on invalid base64.
    """
    body = _PEM_ARMOR.sub("", pem).replace("\\n", "")
    body = "".join(body.split())
    return base64.b64decode(body, validate=True)


def sign_es256(signing_input: bytes, pem: str) -> bytes:
    """ECDSA P-256 / SHA-256 signature in raw ``r || s`` form (JWS ES256)."""
    key = ECC.import_key(strip_pem(pem))
    if key.curve not in ("NIST P-256", "p256", "P-256", "prime256v1", "secp256r1"):
        raise ValueError(f"Expected a P-256 key, got {key.curve}.")
    signer = DSS.new(key, "fips-186-3")
    result: bytes = signer.sign(SHA256.new(signing_input))
    return result


def sign_rs256(signing_input: bytes, pem: str) -> bytes:
    """RSA PKCS#1 v1.5 / SHA-256 signature (JWS RS256)."""
    key = RSA.import_key(strip_pem(pem))
    result: bytes = pkcs1_15.new(key).sign(SHA256.new(signing_input))
    return result


def encode_segment(obj: dict[str, object]) -> str:
    """Compact JSON, base64url encoded."""
    return b64url(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def compact_jwt(
    header: dict[str, object],
    claims: dict[str, object],
    sign: Callable[[bytes], bytes],
) -> str:
    """Build ``header.claims.signature`` using *sign* over the signing input."""
    signing_input = f"{encode_segment(header)}.{encode_segment(claims)}"
    signature = sign(signing_input.encode("utf-8"))
    return f"{signing_input}.{b64url(signature)}"
