"""Unit tests for webhook signature verification.

Tests verify the t=/v1= header scheme, constant-time comparison over the
exact body bytes, the freshness window, and the reported failure reasons.
"""

import json

import pytest

from payments.models import ErrorCode, InvalidPayload, VerificationError
from payments.services.signature import (
    compute_signature,
    generate_signature_header,
    parse_signature_header,
    verify_signature,
)

SECRET = "whsec_test_secret123"
NOW = 1_704_067_500


@pytest.fixture
def body() -> bytes:
    return json.dumps(
        {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "created": NOW - 10,
            "livemode": False,
            "data": {"object": {"id": "pi_1", "amount": 5000, "metadata": {"order_id": "ord_1"}}},
        }
    ).encode()


class TestValidSignatures:
    def test_valid_signature_returns_event(self, body: bytes):
        header = generate_signature_header(body, SECRET, timestamp=NOW)

        event = verify_signature(body, header, SECRET, now=NOW)

        assert event.id == "evt_1"
        assert event.type == "payment_intent.succeeded"
        assert event.metadata == {"order_id": "ord_1"}

    def test_timestamp_exactly_at_tolerance_is_accepted(self, body: bytes):
        header = generate_signature_header(body, SECRET, timestamp=NOW - 300)

        assert verify_signature(body, header, SECRET, tolerance_seconds=300, now=NOW).id == "evt_1"

    def test_any_matching_v1_signature_passes(self, body: bytes):
        good = compute_signature(body, SECRET, NOW)
        header = f"t={NOW},v1={'0' * 64},v1={good},v0=legacy"

        assert verify_signature(body, header, SECRET, now=NOW).id == "evt_1"

    def test_header_whitespace_is_tolerated(self, body: bytes):
        good = compute_signature(body, SECRET, NOW)

        assert verify_signature(body, f"t={NOW}, v1={good}", SECRET, now=NOW).id == "evt_1"


class TestRejectedSignatures:
    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing_header(self, body: bytes, header):
        with pytest.raises(VerificationError) as exc_info:
            verify_signature(body, header, SECRET, now=NOW)

        assert exc_info.value.reason == "missing_header"
        assert exc_info.value.code == ErrorCode.MISSING_HEADER

    @pytest.mark.parametrize(
        "header",
        [
            "v1=abcdef",
            f"t={NOW}",
            f"t=notanumber,v1=abcdef",
            f"t={NOW},v0=abcdef",
            "garbage",
        ],
    )
    def test_malformed_header(self, body: bytes, header: str):
        with pytest.raises(VerificationError) as exc_info:
            verify_signature(body, header, SECRET, now=NOW)

        assert exc_info.value.reason == "malformed_header"

    def test_mutated_body_fails(self, body: bytes):
        header = generate_signature_header(body, SECRET, timestamp=NOW)
        tampered = body.replace(b"5000", b"5001")

        with pytest.raises(VerificationError) as exc_info:
            verify_signature(tampered, header, SECRET, now=NOW)

        assert exc_info.value.reason == "signature_mismatch"

    def test_every_single_byte_mutation_fails(self, body: bytes):
        header = generate_signature_header(body, SECRET, timestamp=NOW)

        for index in range(0, len(body), 7):
            mutated = bytearray(body)
            mutated[index] ^= 0x01
            with pytest.raises(VerificationError):
                verify_signature(bytes(mutated), header, SECRET, now=NOW)

    def test_reserialized_json_fails(self, body: bytes):
        header = generate_signature_header(body, SECRET, timestamp=NOW)
        reserialized = json.dumps(json.loads(body), separators=(",", ":")).encode()

        with pytest.raises(VerificationError):
            verify_signature(reserialized, header, SECRET, now=NOW)

    def test_wrong_secret_fails(self, body: bytes):
        header = generate_signature_header(body, "whsec_other", timestamp=NOW)

        with pytest.raises(VerificationError) as exc_info:
            verify_signature(body, header, SECRET, now=NOW)

        assert exc_info.value.reason == "signature_mismatch"

    def test_stale_timestamp(self, body: bytes):
        header = generate_signature_header(body, SECRET, timestamp=NOW - 301)

        with pytest.raises(VerificationError) as exc_info:
            verify_signature(body, header, SECRET, tolerance_seconds=300, now=NOW)

        assert exc_info.value.reason == "stale_timestamp"

    def test_signature_checked_before_freshness(self, body: bytes):
        header = f"t={NOW - 3600},v1={'a' * 64}"

        with pytest.raises(VerificationError) as exc_info:
            verify_signature(body, header, SECRET, now=NOW)

        assert exc_info.value.reason == "signature_mismatch"

    def test_authentic_non_event_body_is_invalid_payload(self):
        body = b"not json at all"
        header = generate_signature_header(body, SECRET, timestamp=NOW)

        with pytest.raises(InvalidPayload) as exc_info:
            verify_signature(body, header, SECRET, now=NOW)

        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD
        assert not exc_info.value.retryable

    def test_authentic_json_missing_envelope_fields_is_invalid_payload(self):
        body = json.dumps({"id": "evt_1"}).encode()
        header = generate_signature_header(body, SECRET, timestamp=NOW)

        with pytest.raises(InvalidPayload):
            verify_signature(body, header, SECRET, now=NOW)


class TestHeaderParsing:
    def test_parse_collects_all_v1_entries(self):
        timestamp, signatures = parse_signature_header("t=12,v1=aa,v1=bb,v0=cc")

        assert timestamp == 12
        assert signatures == ["aa", "bb"]

    def test_generated_header_round_trips(self, body: bytes):
        header = generate_signature_header(body, SECRET, timestamp=NOW)

        timestamp, signatures = parse_signature_header(header)

        assert timestamp == NOW
        assert signatures == [compute_signature(body, SECRET, NOW)]
