"""Webhook signature verification.

GitHub signs each delivery with HMAC-SHA256 over the raw request body and
sends the result in ``X-Hub-Signature-256`` as ``sha256=<hex>``.
"""

import hashlib
import hmac

from .models import SignatureVerification

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: str | bytes, secret: str) -> str:
    """Compute the ``sha256=<hex>`` signature of a payload.

    Args:
        payload: Raw request body.
        secret: Shared webhook secret.

    Returns:
        Signature header value.
    """
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    payload: str | bytes | None,
    signature_header: str | None,
    secret: str,
) -> SignatureVerification:
    """Verify a webhook signature header against the raw payload.

    Cheap structural checks run first and fail fast; only a well-formed
    header of the right length reaches the constant-time comparison.

    Args:
        payload: Raw request body, exactly as received.
        signature_header: Value of the signature header.
        secret: Shared webhook secret.

    Returns:
        SignatureVerification with ``valid`` and, on failure, one of
        ``missing header``, ``invalid payload``, ``length mismatch`` or
        ``verification failed``.
    """
    if not signature_header:
        return SignatureVerification(valid=False, error="missing header")

    if not isinstance(payload, (str, bytes)) or len(payload) == 0:
        return SignatureVerification(valid=False, error="invalid payload")

    expected = compute_signature(payload, secret).encode("utf-8")
    received = signature_header.encode("utf-8")

    if len(expected) != len(received):
        return SignatureVerification(valid=False, error="length mismatch")

    if not hmac.compare_digest(expected, received):
        return SignatureVerification(valid=False, error="verification failed")

    return SignatureVerification(valid=True)
