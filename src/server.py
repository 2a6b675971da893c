"""Protean Engine runner for the custody domain.

Starts the workers that run outside the request path:
- Engine: outbox processor and stream subscriptions (quorum handler, projector)
- AnchorReconciler: polls the chain and applies lock records to the ledger

Usage:
    python src/server.py                     # Run engine and reconciler
    python src/server.py --only engine       # Run only the Protean engine
    python src/server.py --only reconciler   # Run only the anchor reconciler
"""

import argparse
import asyncio
import os

from protean.server.engine import Engine


def _get_domain():
    from custody.domain import custody

    custody.init()
    return custody


async def _run_reconciler(domain, interval, confirmations):
    from custody.anchoring.reconciler import AnchorReconciler

    with domain.domain_context():
        await AnchorReconciler(confirmations=confirmations).run_forever(interval=interval)


async def run(components, interval, confirmations):
    domain = _get_domain()
    tasks = []
    if "engine" in components:
        tasks.append(Engine(domain).run())
    if "reconciler" in components:
        tasks.append(_run_reconciler(domain, interval, confirmations))

    await asyncio.gather(*tasks)


def main():
    from custody.utils.logging import configure_logging

    parser = argparse.ArgumentParser(description="Custody Engine runner")
    parser.add_argument(
        "--only",
        choices=["engine", "reconciler"],
        help="Run a single component (default: run both)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=float(os.environ.get("RECONCILE_INTERVAL", "5")),
        help="Seconds between reconciliation passes",
    )
    parser.add_argument(
        "--confirmations",
        type=int,
        default=int(os.environ.get("RECONCILE_CONFIRMATIONS", "0")),
        help="Blocks to wait before a lock record is applied",
    )
    args = parser.parse_args()

    configure_logging(log_file_prefix="custody_server")
    components = [args.only] if args.only else ["engine", "reconciler"]

    asyncio.run(run(components, args.interval, args.confirmations))


if __name__ == "__main__":
    main()
