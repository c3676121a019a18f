"""SalesPro webhook signature verification.

When a shared secret is configured the `x-salespro-signature` header must be
the hex HMAC-SHA256 of the raw request body, optionally prefixed `sha256=`.
Without a secret the endpoint is unauthenticated and every request passes.
"""

import hashlib
import hmac
from typing import Optional

from loguru import logger

SIGNATURE_HEADER = "x-salespro-signature"


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify a SalesPro webhook signature.

    Args:
        body: Raw request body bytes
        signature: Value of the x-salespro-signature header
        secret: Shared webhook secret, None when not configured

    Returns:
        True if the request should be accepted
    """
    if not secret:
        return True
    if not signature:
        logger.warning("Missing webhook signature")
        return False

    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]

    expected = compute_signature(body, secret).encode("ascii")
    return hmac.compare_digest(expected, provided.lower().encode("utf-8", "surrogateescape"))
