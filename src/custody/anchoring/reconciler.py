"""Anchor reconciler — polls the chain and upserts lock records into the ledger.

Each pass reads lock events from the block after the persisted cursor up to
the current head (bounded by ``batch_size``), applies them one by one through
``ReconcileAnchor`` and only then moves the cursor. Chain or store failures
mark the sync state ERROR and leave the cursor where it was, so the next pass
retries the same range; records that were already applied are no-ops.
"""

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from custody.anchoring.reconciliation import command_from_record
from custody.anchoring.sync_state import DEFAULT_SYNC_ID, SyncState, SyncStatus, load_sync_state
from custody.chain import get_chain
from custody.chain.port import ChainLedger
from custody.errors import CustodyError, RetryableError, StoreUnavailable

logger = structlog.get_logger(__name__)

# Failures raised by the database and cache providers
STORE_ERRORS = (SQLAlchemyError, RedisError)


@contextmanager
def store_errors():
    """Re-raise provider failures as StoreUnavailable."""
    try:
        yield
    except STORE_ERRORS as exc:
        raise StoreUnavailable("Custody store unavailable", error=str(exc)) from exc


@dataclass
class ReconcileReport:
    from_block: int = 0
    to_block: int = 0
    processed: int = 0
    outcomes: dict = field(default_factory=dict)
    skipped: list = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AnchorReconciler:
    def __init__(
        self,
        chain: ChainLedger | None = None,
        sync_id: str = DEFAULT_SYNC_ID,
        batch_size: int = 500,
        confirmations: int = 0,
    ):
        self._chain = chain
        self.sync_id = sync_id
        self.batch_size = batch_size
        self.confirmations = confirmations

    @property
    def chain(self) -> ChainLedger:
        return self._chain or get_chain()

    def _save(self, state: SyncState) -> None:
        current_domain.repository_for(SyncState).add(state)

    def run_once(self) -> ReconcileReport:
        """Run a single reconciliation pass."""
        state = load_sync_state(self.sync_id)
        report = ReconcileReport(from_block=(state.last_synced_block or 0) + 1)
        if state.status == SyncStatus.STOPPED.value:
            report.to_block = state.last_synced_block or 0
            return report

        try:
            with store_errors():
                head = self.chain.latest_block() - self.confirmations
                report.to_block = min(head, report.from_block + self.batch_size - 1)
                if report.to_block < report.from_block:
                    report.to_block = state.last_synced_block or 0
                    if state.status != SyncStatus.IDLE.value:
                        state.advance(report.to_block, 0)
                        self._save(state)
                    return report

                state.start()
                self._save(state)
                state = load_sync_state(self.sync_id)

                for record in self.chain.locked_between(report.from_block, report.to_block):
                    try:
                        outcome = current_domain.process(command_from_record(record), asynchronous=False)
                    except RetryableError:
                        raise
                    except (CustodyError, ValidationError) as exc:
                        # A record the ledger refuses (e.g. a blockchain mismatch) is reported, not retried
                        logger.warning(
                            "Chain record rejected",
                            shipment_id=record.shipment_id,
                            tx_ref=record.tx_ref,
                            error=str(exc),
                        )
                        report.skipped.append(
                            {"shipment_id": record.shipment_id, "tx_ref": record.tx_ref, "error": str(exc)}
                        )
                        continue
                    report.processed += 1
                    report.outcomes[outcome] = report.outcomes.get(outcome, 0) + 1

                state.advance(report.to_block, report.processed)
                self._save(state)
        except RetryableError as exc:
            report.error = exc.message
            try:
                with store_errors():
                    state = load_sync_state(self.sync_id)
                    state.fail(exc.message)
                    self._save(state)
            except StoreUnavailable:
                logger.error("Could not record reconciliation failure", sync_id=self.sync_id, error=exc.message)
            logger.warning(
                "Anchor reconciliation failed; will retry",
                from_block=report.from_block,
                to_block=report.to_block,
                error=exc.message,
            )
            return report

        logger.info(
            "Anchor reconciliation pass complete",
            from_block=report.from_block,
            to_block=report.to_block,
            processed=report.processed,
            skipped=len(report.skipped),
        )
        return report

    def reconcile_shipment(self, shipment_id: str) -> str:
        """Apply the chain record of one shipment, outside the polling cursor."""
        record = self.chain.get_shipment(shipment_id)
        if record is None:
            raise ObjectNotFoundError(f"Shipment {shipment_id} is not locked on-chain")
        return current_domain.process(command_from_record(record), asynchronous=False)

    def stop(self) -> None:
        state = load_sync_state(self.sync_id)
        state.stop()
        self._save(state)

    def resume(self) -> None:
        state = load_sync_state(self.sync_id)
        state.resume()
        self._save(state)

    async def run_forever(self, interval: float = 5.0, stop: asyncio.Event | None = None) -> None:
        """Poll until ``stop`` is set. A failed pass is logged and retried on the next tick."""
        stop = stop or asyncio.Event()
        logger.info("Anchor reconciler started", sync_id=self.sync_id, interval=interval)
        while not stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Anchor reconciliation pass crashed", sync_id=self.sync_id)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                pass
        logger.info("Anchor reconciler stopped", sync_id=self.sync_id)
