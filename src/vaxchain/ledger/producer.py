"""
Chain producer: extends one lineage with a new block on a fixed interval.

Lifecycle::

    ColdStart -> Resuming -> Producing (until stop())

The running ``(prev_hash, next_index)`` pair lives in an immutable
``ProducerState`` that every iteration takes and returns, so a single
iteration can be exercised on its own.
"""

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

import structlog

from vaxchain.core.config import Settings
from vaxchain.core.errors import ResumeError, StoreError
from vaxchain.core.retry import RetryPolicy, retry_async
from vaxchain.ledger.hash_chain import GENESIS_HASH, block_hash, compute_hash
from vaxchain.ledger.records import ChainRecord
from vaxchain.ledger.sensor import SafeRange, TemperatureSensor
from vaxchain.ledger.store import LedgerStore

logger = structlog.get_logger(__name__)


class ProducerPhase(str, Enum):
    COLD_START = "cold_start"
    RESUMING = "resuming"
    PRODUCING = "producing"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class ProducerState:
    lineage_id: str
    prev_hash: str = GENESIS_HASH
    next_index: int = 1

    def advance(self, record_digest: str) -> "ProducerState":
        return replace(self, prev_hash=record_digest, next_index=self.next_index + 1)


class LookupStatus(str, Enum):
    EMPTY = "empty"
    FOUND = "found"
    FAILED = "failed"


@dataclass(frozen=True)
class ResumeLookup:
    """Outcome of looking up where a lineage left off.

    ``FAILED`` is kept apart from ``EMPTY`` so that a store outage is never
    mistaken for a brand new lineage.
    """

    status: LookupStatus
    state: Optional[ProducerState] = None
    error: Optional[StoreError] = None


async def lookup_resume_point(
    store: LedgerStore, lineage_id: str, policy: RetryPolicy = RetryPolicy()
) -> ResumeLookup:
    try:
        last = await retry_async(lambda: store.last_record(lineage_id), policy, name="last_record")
    except StoreError as exc:
        logger.error("resume_lookup_failed", batch_no=lineage_id, error=str(exc))
        return ResumeLookup(status=LookupStatus.FAILED, error=exc)

    if last is None:
        return ResumeLookup(status=LookupStatus.EMPTY, state=ProducerState(lineage_id=lineage_id))
    return ResumeLookup(
        status=LookupStatus.FOUND,
        state=ProducerState(
            lineage_id=lineage_id,
            prev_hash=last.record_digest,
            next_index=last.sequence_index + 1,
        ),
    )


class StepOutcome(str, Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StepResult:
    state: ProducerState
    outcome: StepOutcome
    record: ChainRecord


async def produce_step(
    state: ProducerState,
    store: LedgerStore,
    sensor: TemperatureSensor,
    safe_range: SafeRange,
) -> StepResult:
    """Build the block for ``state.next_index`` and append it unless present.

    The returned state always points past this index. When the position is
    already occupied, the stored block's hash becomes the new ``prev_hash`` so
    the next block links to what is actually persisted.
    """
    index = state.next_index
    data = sensor.read(state.lineage_id, index)
    payload = data.serialize()
    payload_hash = compute_hash(payload)
    digest = block_hash(index, payload_hash, state.prev_hash)

    record = ChainRecord(
        sequence_index=index,
        lineage_id=state.lineage_id,
        container_no=data.container_no,
        payload_digest=payload_hash,
        previous_digest=state.prev_hash,
        record_digest=digest,
        flag=safe_range.is_alert(data.temperature),
        payload=payload,
    )

    if not await store.exists(state.lineage_id, index):
        if await store.append_if_absent(record):
            logger.info(
                "block_inserted",
                batch_no=state.lineage_id,
                index_num=index,
                temperature=data.temperature,
                alert=record.flag,
            )
            return StepResult(state=state.advance(digest), outcome=StepOutcome.INSERTED, record=record)

    stored = await store.digest_at(state.lineage_id, index)
    if stored is None:
        # Insert was refused but nothing occupies the position
        raise StoreError(
            f"block {index} of batch {state.lineage_id} was rejected but is not stored",
            operation="append",
        )
    logger.info("block_skipped", batch_no=state.lineage_id, index_num=index, reason="already exists")
    return StepResult(
        state=state.advance(stored),
        outcome=StepOutcome.SKIPPED,
        record=record,
    )


class ChainProducer:
    """Long-running producer for a single lineage."""

    def __init__(
        self,
        store: LedgerStore,
        lineage_id: str,
        sensor: Optional[TemperatureSensor] = None,
        safe_range: Optional[SafeRange] = None,
        interval_seconds: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.store = store
        self.lineage_id = lineage_id
        self.sensor = sensor or TemperatureSensor()
        self.safe_range = safe_range or SafeRange()
        self.interval_seconds = interval_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self.phase = ProducerPhase.COLD_START
        self.iterations = 0
        self._state: Optional[ProducerState] = None
        self._stopping = asyncio.Event()

    @classmethod
    def from_settings(cls, store: LedgerStore, settings: Settings, lineage_id: Optional[str] = None) -> "ChainProducer":
        return cls(
            store,
            lineage_id=lineage_id or settings.LINEAGE_ID,
            sensor=TemperatureSensor.from_settings(settings),
            safe_range=SafeRange.from_settings(settings),
            interval_seconds=settings.PRODUCER_INTERVAL_SECONDS,
            retry_policy=RetryPolicy.from_settings(settings),
        )

    @property
    def state(self) -> Optional[ProducerState]:
        return self._state

    async def resume(self) -> ProducerState:
        """Find the resume point and prune duplicates before producing."""
        self.phase = ProducerPhase.RESUMING
        lookup = await lookup_resume_point(self.store, self.lineage_id, self.retry_policy)
        if lookup.status is LookupStatus.FAILED:
            self.phase = ProducerPhase.FAILED
            raise ResumeError(self.lineage_id, lookup.error)

        state = lookup.state
        if lookup.status is LookupStatus.FOUND:
            logger.info(
                "chain_resumed",
                batch_no=self.lineage_id,
                next_index=state.next_index,
                prev_hash=state.prev_hash[:16],
            )
        else:
            logger.info("chain_genesis", batch_no=self.lineage_id)

        try:
            await retry_async(
                lambda: self.store.prune_duplicates(self.lineage_id),
                self.retry_policy,
                name="prune_duplicates",
            )
        except StoreError as exc:
            # Duplicates are also blocked by the unique constraint; keep going
            logger.warning("duplicate_cleanup_failed", batch_no=self.lineage_id, error=str(exc))

        self._state = state
        return state

    async def step(self) -> Optional[StepResult]:
        """Run one iteration; store failures are logged and leave state untouched."""
        state = self._state
        if state is None:
            raise RuntimeError("resume() must run before the first step")
        try:
            result = await retry_async(
                lambda: produce_step(state, self.store, self.sensor, self.safe_range),
                self.retry_policy,
                name="produce_step",
            )
        except StoreError as exc:
            logger.error(
                "producer_iteration_failed",
                batch_no=self.lineage_id,
                index_num=state.next_index,
                error=str(exc),
            )
            return None
        self._state = result.state
        return result

    async def run(self, max_iterations: Optional[int] = None) -> None:
        """Resume, then produce until ``stop()`` or ``max_iterations``."""
        if self._state is None:
            await self.resume()
        self.phase = ProducerPhase.PRODUCING
        logger.info("producer_started", batch_no=self.lineage_id, interval_seconds=self.interval_seconds)

        while not self._stopping.is_set():
            if max_iterations is not None and self.iterations >= max_iterations:
                break
            await self.step()
            self.iterations += 1
            if max_iterations is not None and self.iterations >= max_iterations:
                break
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

        self.phase = ProducerPhase.STOPPED
        logger.info("producer_stopped", batch_no=self.lineage_id, iterations=self.iterations)

    def stop(self) -> None:
        """Stop after the in-flight iteration; no new iteration is started."""
        self._stopping.set()
