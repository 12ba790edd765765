"""Compare locally PENDING transactions against the gateway and print drift.

The gateway is the source of truth; a row that is still PENDING here but
settled there usually means a webhook was lost.
"""

import argparse
import asyncio
import json

from tiendapay.common.config import get_settings
from tiendapay.common.db import build_session_factory
from tiendapay.services.payments.errors import PaymentError
from tiendapay.services.payments.gateway import WompiClient
from tiendapay.services.payments.service import PaymentRecords


async def reconcile(limit: int) -> list[dict]:
    """Return one drift entry per local row whose gateway status differs."""

    settings = get_settings()
    records = PaymentRecords(build_session_factory(settings.postgres_dsn))
    gateway = WompiClient(settings)
    drift = []
    try:
        for row in records.pending(limit):
            if row.gateway_transaction_id is None:
                # Reserved, but the create call never returned a transaction.
                drift.append({"reference": row.reference, "error": "no gateway transaction attached"})
                continue
            try:
                remote = await gateway.get_transaction(row.gateway_transaction_id)
            except PaymentError as exc:
                drift.append({"reference": row.reference, "error": exc.message, "details": exc.details})
                continue
            if remote.status.value != row.status:
                drift.append(
                    {
                        "reference": row.reference,
                        "transaction_id": row.gateway_transaction_id,
                        "local_status": row.status,
                        "gateway_status": remote.status.value,
                    }
                )
    finally:
        await gateway.aclose()
    return drift


def main() -> None:
    """CLI entrypoint for reconciliation checks."""

    parser = argparse.ArgumentParser(description="Report local/gateway transaction status drift.")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    print(json.dumps(asyncio.run(reconcile(args.limit)), indent=2))


if __name__ == "__main__":
    main()
