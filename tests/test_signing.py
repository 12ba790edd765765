"""Unit tests for integrity signatures, minor-unit conversion and event checksums."""

import re
from decimal import Decimal

import pytest

from tiendapay.services.payments.signing import (
    EventSignatureVerifier,
    IntegritySigner,
    compute_event_checksum,
    sign,
    to_minor_units,
)


pytestmark = pytest.mark.unit

HEX64 = re.compile(r"^[0-9a-f]{64}$")


class TestSign:
    def test_known_vector(self):
        # sha256("ORD-1" + "5000000" + "COP" + "test_integrity_secret")
        assert sign("ORD-1", 5_000_000, "COP", "test_integrity_secret") == (
            "c6eb92c25004cffff52040fcf7c1212e3250da7afa710d1a2432fcf228d611d7"
        )

    def test_gateway_documentation_example(self):
        digest = sign("sk8-438k4-xmxm392-sn2m2", 2_490_000, "COP", "prod_integrity_Z5mMke9x0k8gpErbDqwrJXMqsI6SFli6")
        assert digest == "37c8407747e595535433ef8f6a811d853cd943046624a0ec04662b17bbf33bf5"

    def test_deterministic(self):
        assert sign("ORD-9", 1000, "COP", "s") == sign("ORD-9", 1000, "COP", "s")

    def test_output_is_lowercase_hex(self):
        assert HEX64.match(sign("ORD-1", 1, "COP", "secret"))

    @pytest.mark.parametrize(
        "args",
        [
            ("ORD-2", 5_000_000, "COP", "test_integrity_secret"),
            ("ORD-1", 5_000_001, "COP", "test_integrity_secret"),
            ("ORD-1", 5_000_000, "USD", "test_integrity_secret"),
            ("ORD-1", 5_000_000, "COP", "another_secret"),
        ],
    )
    def test_changing_any_argument_changes_digest(self, args):
        baseline = sign("ORD-1", 5_000_000, "COP", "test_integrity_secret")
        assert sign(*args) != baseline

    def test_zero_amount_is_allowed(self):
        assert HEX64.match(sign("ORD-1", 0, "COP", "secret"))

    @pytest.mark.parametrize("amount", [-1, 10.5, "100", True])
    def test_rejects_non_integer_or_negative_amount(self, amount):
        with pytest.raises(ValueError):
            sign("ORD-1", amount, "COP", "secret")

    def test_rejects_empty_reference_or_currency(self):
        with pytest.raises(ValueError):
            sign("", 100, "COP", "secret")
        with pytest.raises(ValueError):
            sign("ORD-1", 100, "", "secret")

    def test_signer_uses_its_secret(self):
        signer = IntegritySigner("test_integrity_secret")
        assert signer.sign("ORD-1", 5_000_000, "COP") == sign("ORD-1", 5_000_000, "COP", "test_integrity_secret")


class TestToMinorUnits:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("19999.5"), 1_999_950),
            (19999.5, 1_999_950),
            ("19999.5", 1_999_950),
            (50000, 5_000_000),
            (Decimal("0.01"), 1),
        ],
    )
    def test_converts_major_to_minor_units(self, amount, expected):
        assert to_minor_units(amount) == expected

    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("10.005"), 1001),
            (Decimal("10.004"), 1000),
            (Decimal("0.015"), 2),
            (Decimal("0.025"), 3),
        ],
    )
    def test_fractional_cents_round_half_up(self, amount, expected):
        assert to_minor_units(amount) == expected


class TestEventChecksum:
    def _event(self, **overrides):
        event = {
            "event": "transaction.updated",
            "data": {
                "transaction": {
                    "id": "1234-1610641025-49201",
                    "status": "APPROVED",
                    "amount_in_cents": 4_490_000,
                    "reference": "ORD-1",
                }
            },
            "signature": {
                "properties": ["transaction.id", "transaction.status", "transaction.amount_in_cents"],
                "checksum": "",
            },
            "timestamp": 1530291411,
        }
        event.update(overrides)
        return event

    def test_known_vector(self):
        assert compute_event_checksum(self._event(), "test_events_secret") == (
            "82d7b6fae35f0de10bb9186be459d13d54d3752c4def83a41fb8ceea85b53633"
        )

    def test_verify_accepts_matching_checksum(self):
        verifier = EventSignatureVerifier("test_events_secret")
        event = self._event()
        assert verifier.verify(event, verifier.checksum(event)) is True

    def test_verify_is_case_insensitive_on_hex(self):
        verifier = EventSignatureVerifier("test_events_secret")
        event = self._event()
        assert verifier.verify(event, verifier.checksum(event).upper()) is True

    def test_verify_rejects_tampered_status(self):
        verifier = EventSignatureVerifier("test_events_secret")
        event = self._event()
        checksum = verifier.checksum(event)
        event["data"]["transaction"]["status"] = "DECLINED"
        assert verifier.verify(event, checksum) is False

    def test_verify_rejects_wrong_secret(self):
        event = self._event()
        checksum = compute_event_checksum(event, "wrong-secret")
        assert EventSignatureVerifier("test_events_secret").verify(event, checksum) is False

    @pytest.mark.parametrize("checksum", [None, "", "not-a-checksum", "ñ" * 64])
    def test_verify_rejects_missing_or_garbage_checksum(self, checksum):
        assert EventSignatureVerifier("test_events_secret").verify(self._event(), checksum) is False

    def test_verify_rejects_event_without_signature_block(self):
        event = self._event()
        checksum = compute_event_checksum(event, "test_events_secret")
        del event["signature"]
        assert EventSignatureVerifier("test_events_secret").verify(event, checksum) is False

    def test_verify_rejects_property_missing_from_data(self):
        event = self._event()
        event["signature"]["properties"] = ["transaction.nope"]
        assert EventSignatureVerifier("test_events_secret").verify(event, "0" * 64) is False

    @pytest.mark.parametrize(
        "signature, data",
        [
            ({"properties": [1], "checksum": ""}, {}),
            ({"properties": [None], "checksum": ""}, {"transaction": {}}),
            ({"properties": "transaction.id", "checksum": ""}, {"transaction": {"id": "1"}}),
            ({"properties": ["transaction.id"], "checksum": ""}, ["transaction"]),
            ("not-an-object", {}),
        ],
    )
    def test_verify_rejects_malformed_signature_block(self, signature, data):
        event = self._event(signature=signature, data=data)
        assert EventSignatureVerifier("test_events_secret").verify(event, "ab") is False
