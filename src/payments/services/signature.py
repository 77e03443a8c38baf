"""Stripe webhook signature verification.

Header format::

    Stripe-Signature: t=1700000000,v1=5257a869...,v1=9b0c...,v0=...

The signed payload is ``f"{t}."`` followed by the exact request body bytes.
Several ``v1`` entries may be present while a signing secret is being
rolled; any one of them matching is enough. ``v0`` and unknown schemes are
ignored.
"""

import hashlib
import hmac
import logging
import time

from pydantic import ValidationError

from payments.models.errors import ErrorCode, InvalidPayload, VerificationError
from payments.models.events import IncomingEvent

logger = logging.getLogger(__name__)

SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE_SECONDS = 300


def compute_signature(raw_body: bytes, secret: str, timestamp: int) -> str:
    """Hex HMAC-SHA256 of ``{timestamp}.{raw_body}`` keyed with ``secret``."""
    signed_payload = f"{timestamp}.".encode() + raw_body
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def generate_signature_header(
    raw_body: bytes,
    secret: str,
    timestamp: int | None = None,
) -> str:
    """Build a valid ``Stripe-Signature`` header for ``raw_body``.

    Used to sign test deliveries against a running endpoint.
    """
    ts = int(time.time()) if timestamp is None else int(timestamp)
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(raw_body, secret, ts)}"


def parse_signature_header(header: str) -> tuple[int, list[str]]:
    """Split a signature header into its timestamp and ``v1`` signatures.

    Raises:
        VerificationError: malformed_header if ``t`` is missing or not an
            integer, or no ``v1`` signature is present
    """
    timestamp: int | None = None
    signatures: list[str] = []

    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise VerificationError(ErrorCode.MALFORMED_HEADER) from None
        elif key == SIGNATURE_SCHEME and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise VerificationError(ErrorCode.MALFORMED_HEADER)
    return timestamp, signatures


def verify_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> IncomingEvent:
    """Verify a webhook delivery and parse its event envelope.

    The signature is checked before freshness, so a forged request with an
    old timestamp reports ``signature_mismatch``.

    Args:
        raw_body: Request body exactly as received
        signature_header: Value of the Stripe-Signature header
        secret: Endpoint signing secret (whsec_...)
        tolerance_seconds: Maximum accepted age of the signed timestamp
        now: Current epoch seconds, defaults to the wall clock

    Returns:
        The verified event

    Raises:
        VerificationError: missing_header, malformed_header,
            signature_mismatch or stale_timestamp
        InvalidPayload: The body is authentic but not an event envelope
    """
    if not signature_header or not signature_header.strip():
        raise VerificationError(ErrorCode.MISSING_HEADER)

    timestamp, signatures = parse_signature_header(signature_header)

    expected = compute_signature(raw_body, secret, timestamp)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise VerificationError(ErrorCode.SIGNATURE_MISMATCH)

    current = time.time() if now is None else now
    if current - timestamp > tolerance_seconds:
        raise VerificationError(ErrorCode.STALE_TIMESTAMP)

    try:
        event = IncomingEvent.model_validate_json(raw_body)
    except ValidationError as e:
        logger.warning("Verified webhook body is not an event envelope (%d errors)", e.error_count())
        raise InvalidPayload("body is not a valid event envelope") from e

    return event
