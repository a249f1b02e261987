"""
Webhook Security Module

Signature verification for payment gateway webhooks:
- Constant-time signature comparison (prevents timing attacks)
- Timestamp validation (prevents replay of old deliveries)
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(
    timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[float] = None
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.
    Accepts seconds or milliseconds since the epoch.
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
        if webhook_time > 10**12:
            webhook_time //= 1000
        current_time = int(now if now is not None else time.time())
        age = abs(current_time - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


def parse_signature_header(header: Optional[str]) -> dict[str, str]:
    """Split "ts=<ts>,v1=<hash>" into {"ts": ..., "v1": ...}"""
    parts = {}
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def build_mercadopago_manifest(data_id: Optional[str], request_id: Optional[str], ts: str) -> str:
    """Signed template: id:<data.id>;request-id:<x-request-id>;ts:<ts>; (absent parts omitted)"""
    manifest = ""
    if data_id:
        # Alphanumeric ids are signed lowercased
        manifest += f"id:{str(data_id).lower()};"
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"
    return manifest


def sign_mercadopago(secret: str, data_id: Optional[str], request_id: Optional[str], ts: str) -> str:
    manifest = build_mercadopago_manifest(data_id, request_id, ts)
    return compute_hmac_sha256(secret, manifest.encode("utf-8"))


def verify_mercadopago_signature(
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
    secret: Optional[str],
    now: Optional[float] = None,
) -> bool:
    """
    Verify a MercadoPago x-signature header.

    Fails closed when no secret is configured.
    """

    def fail(reason: str) -> bool:
        logger.error(f"❌ MercadoPago webhook signature rejected: {reason}")
        return False

    if not secret:
        return fail("MERCADOPAGO_WEBHOOK_SECRET not configured")

    parts = parse_signature_header(signature_header)
    ts = parts.get("ts")
    received = parts.get("v1")
    if not ts or not received:
        return fail("missing ts or v1 in x-signature")

    if not verify_timestamp(ts, now=now):
        return fail("timestamp expired or invalid")

    expected = sign_mercadopago(secret, data_id, request_id, ts)
    if not constant_time_compare(expected, received):
        return fail(f"signature mismatch for data.id={data_id}")

    logger.info(f"✅ MercadoPago webhook signature verified: data.id={data_id}")
    return True
