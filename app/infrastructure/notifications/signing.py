"""HMAC-SHA256 signing for webhooks and provider callbacks.

Signatures are sent and accepted as ``sha256=<hex digest>``; a bare hex
digest is also accepted on verification. Comparison is constant-time.
"""

import hashlib
import hmac
from typing import Optional

from infrastructure.notifications.errors import SignatureVerificationError

SIGNATURE_PREFIX = "sha256="


def sign(secret: str, body: bytes) -> str:
    """Signature header value for ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify(secret: Optional[str], body: bytes, signature: Optional[str]) -> None:
    """Verify a signature header against ``body``.

    Raises:
        SignatureVerificationError: No secret configured, missing header or
            mismatching signature
    """
    if not secret:
        raise SignatureVerificationError("No signing secret configured")
    if not signature:
        raise SignatureVerificationError("Missing signature")
    expected = sign(secret, body)
    provided = signature.strip()
    if not provided.startswith(SIGNATURE_PREFIX):
        provided = f"{SIGNATURE_PREFIX}{provided}"
    if not hmac.compare_digest(expected, provided):
        raise SignatureVerificationError("Signature mismatch")
