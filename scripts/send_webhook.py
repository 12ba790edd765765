"""Sign and POST a `transaction.updated` event to a running payments service.

Useful for exercising the webhook path locally without the gateway.
"""

import argparse
import json
import time

import httpx

from tiendapay.services.payments.signing import compute_event_checksum


def build_event(transaction_id: str, reference: str, status: str, amount_in_cents: int) -> dict:
    """Event body in the gateway's shape, without the checksum filled in."""

    return {
        "event": "transaction.updated",
        "data": {
            "transaction": {
                "id": transaction_id,
                "status": status,
                "reference": reference,
                "amount_in_cents": amount_in_cents,
                "currency": "COP",
                "payment_method_type": "PSE",
            }
        },
        "environment": "test",
        "signature": {
            "properties": ["transaction.id", "transaction.status", "transaction.amount_in_cents"],
            "checksum": "",
        },
        "timestamp": int(time.time()),
        "sent_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    }


def main() -> None:
    """Parse CLI args, sign one event and print the service response."""

    parser = argparse.ArgumentParser(description="Send a signed transaction.updated webhook.")
    parser.add_argument("--url", default="http://localhost:3000/api/pagos/webhook")
    parser.add_argument("--event-secret", required=True)
    parser.add_argument("--transaction-id", required=True)
    parser.add_argument("--reference", required=True)
    parser.add_argument("--status", default="APPROVED")
    parser.add_argument("--amount-in-cents", type=int, required=True)
    parser.add_argument("--bad-checksum", action="store_true", help="Send a wrong checksum")
    args = parser.parse_args()

    event = build_event(args.transaction_id, args.reference, args.status, args.amount_in_cents)
    checksum = compute_event_checksum(event, args.event_secret)
    event["signature"]["checksum"] = checksum
    if args.bad_checksum:
        checksum = "0" * 64

    resp = httpx.post(
        args.url,
        content=json.dumps(event),
        headers={"Content-Type": "application/json", "X-Event-Checksum": checksum},
        timeout=10.0,
    )
    print(f"status={resp.status_code}")
    print(resp.text)


if __name__ == "__main__":
    main()
