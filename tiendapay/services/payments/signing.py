"""Integrity signatures for outgoing transactions and checksums for incoming events.

Both are SHA-256 digests over plain concatenations, rendered as lowercase hex:

* integrity: ``reference + amount_in_cents + currency + integrity_secret``
* event checksum: ``values of signature.properties (read from data) + timestamp + event_secret``
"""

import hashlib
import hmac
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a major-unit amount to integer minor units, rounding half-up.

    Floats go through ``str`` so ``19999.5`` is read as written rather than as
    its binary approximation.
    """

    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sign(reference: str, amount_in_cents: int, currency: str, secret: str) -> str:
    """Compute the integrity signature the gateway expects in `signature.integrity`."""

    if isinstance(amount_in_cents, bool) or not isinstance(amount_in_cents, int) or amount_in_cents < 0:
        raise ValueError(f"amount_in_cents must be a non-negative integer, got {amount_in_cents!r}")
    if not reference:
        raise ValueError("reference must not be empty")
    if not currency:
        raise ValueError("currency must not be empty")
    message = f"{reference}{amount_in_cents}{currency}{secret}"
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


class IntegritySigner:
    """Signs reference/amount/currency triples with the merchant integrity secret."""

    def __init__(self, secret: str):
        self.secret = secret

    def sign(self, reference: str, amount_in_cents: int, currency: str) -> str:
        return sign(reference, amount_in_cents, currency, self.secret)


def _lookup(data: dict, path: str) -> Any:
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(path)
        node = node[part]
    return node


def compute_event_checksum(event: dict, secret: str) -> str:
    """Recompute the checksum of a webhook event body.

    Raises KeyError/TypeError when the body lacks the fields the scheme needs.
    """

    properties = event["signature"]["properties"]
    data = event["data"]
    if not isinstance(properties, list) or not all(isinstance(prop, str) for prop in properties):
        raise TypeError("signature.properties must be a list of strings")
    if not isinstance(data, dict):
        raise TypeError("data must be an object")
    values = "".join(str(_lookup(data, prop)) for prop in properties)
    message = f"{values}{event['timestamp']}{secret}"
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


class EventSignatureVerifier:
    """Verifies webhook event checksums with the merchant event secret."""

    def __init__(self, secret: str):
        self.secret = secret

    def checksum(self, event: dict) -> str:
        return compute_event_checksum(event, self.secret)

    def verify(self, event: dict, checksum: str | None) -> bool:
        if not checksum:
            return False
        try:
            expected = compute_event_checksum(event, self.secret)
        except (KeyError, TypeError):
            return False
        return hmac.compare_digest(expected.encode("utf-8"), checksum.lower().encode("utf-8"))
