"""HMAC-SHA256 signing of webhook request bodies.

Contract for endpoint consumers:

    The ``X-Webhook-Signature`` header carries the lowercase hex
    HMAC-SHA256 digest of the *exact* request body bytes, keyed by the
    endpoint's signing secret. Verify against the raw body as received.
    Never parse the JSON and re-serialize it before verifying: key order,
    whitespace and float formatting are not guaranteed to survive a round
    trip, and the digest will not match.

The sender side follows the same rule: the body is encoded once with
``canonical_bytes`` and those bytes are both signed and transmitted.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="


@dataclass(frozen=True)
class SignatureResult:
    """Outcome of signing a payload.

    Attributes:
        ok: Whether a digest was produced.
        digest: Hex digest when ok.
        error: Reason when not ok.
    """

    ok: bool
    digest: str | None = None
    error: str | None = None


def canonical_bytes(payload: Any) -> bytes:
    """Encode a JSON-serializable payload as the bytes that go on the wire.

    Compact separators and sorted keys; non-ASCII characters are kept as
    UTF-8 rather than escaped.
    """
    return json.dumps(
        payload,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")


def _secret_bytes(secret: str | bytes) -> bytes | None:
    if isinstance(secret, bytes):
        return secret or None
    if isinstance(secret, str):
        return secret.encode("utf-8") if secret else None
    return None


def sign(secret: str | bytes, payload: bytes) -> SignatureResult:
    """Compute the hex HMAC-SHA256 digest of payload bytes.

    Never raises. An empty payload is signed as empty bytes; an empty or
    non-string secret, or a payload that is not bytes, yields a failed
    result.

    Args:
        secret: Endpoint signing secret.
        payload: Exact bytes to be transmitted.

    Returns:
        SignatureResult with the digest or the failure reason.
    """
    key = _secret_bytes(secret)
    if key is None:
        return SignatureResult(ok=False, error="signing secret is empty or malformed")
    if payload is None:
        payload = b""
    if not isinstance(payload, bytes | bytearray | memoryview):
        return SignatureResult(ok=False, error="payload must be bytes")

    digest = hmac.new(key, bytes(payload), hashlib.sha256).hexdigest()
    return SignatureResult(ok=True, digest=digest)


def verify(secret: str | bytes, payload: bytes, supplied_digest: str) -> bool:
    """Check a supplied signature against payload bytes in constant time.

    Accepts the bare hex digest or one prefixed with ``sha256=``.
    Malformed inputs verify as False.
    """
    if not isinstance(supplied_digest, str) or not supplied_digest:
        return False
    if supplied_digest.startswith(SIGNATURE_PREFIX):
        supplied_digest = supplied_digest[len(SIGNATURE_PREFIX) :]

    result = sign(secret, payload)
    if not result.ok or result.digest is None:
        return False
    # bytes on both sides: compare_digest rejects non-ASCII str
    return hmac.compare_digest(
        result.digest.encode("ascii"),
        supplied_digest.lower().encode("utf-8"),
    )


__all__ = [
    "SIGNATURE_HEADER",
    "SIGNATURE_PREFIX",
    "SignatureResult",
    "canonical_bytes",
    "sign",
    "verify",
]
