import asyncio
from itertools import count
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vaxchain.core.async_db import build_sessionmaker, init_models
from vaxchain.core.errors import ResumeError, StoreError
from vaxchain.core.retry import RetryPolicy
from vaxchain.ledger.hash_chain import GENESIS_HASH
from vaxchain.ledger.producer import (
    ChainProducer,
    LookupStatus,
    ProducerPhase,
    ProducerState,
    StepOutcome,
    lookup_resume_point,
    produce_step,
)
from vaxchain.ledger.sensor import TemperatureSensor
from vaxchain.ledger.store import LedgerStore
from vaxchain.ledger.verifier import verify

from conftest import LINEAGE, create_legacy_table

pytestmark = pytest.mark.asyncio

NO_WAIT = RetryPolicy(attempts=3, base_delay=0.0, max_delay=0.0)


def _ticking_sensor() -> TemperatureSensor:
    ticks = count()
    return TemperatureSensor(clock=lambda: f"2025-01-01T00:00:{next(ticks):02d}+00:00")


class _FixedTemperatureSensor(TemperatureSensor):
    def __init__(self, temperatures):
        super().__init__(clock=lambda: "2025-01-01T00:00:00+00:00")
        self.temperatures = temperatures

    def temperature_for(self, lineage_id, index):
        return self.temperatures[index]


def _producer(store, sensor, safe_range, **kwargs) -> ChainProducer:
    kwargs.setdefault("interval_seconds", 0.01)
    kwargs.setdefault("retry_policy", NO_WAIT)
    return ChainProducer(store, LINEAGE, sensor=sensor, safe_range=safe_range, **kwargs)


async def test_first_step_links_to_genesis(store, sensor, safe_range):
    result = await produce_step(ProducerState(LINEAGE), store, sensor, safe_range)

    assert result.outcome is StepOutcome.INSERTED
    assert result.record.sequence_index == 1
    assert result.record.previous_digest == GENESIS_HASH
    assert result.state == ProducerState(LINEAGE, prev_hash=result.record.record_digest, next_index=2)

    stored = await store.list_ordered(LINEAGE)
    assert len(stored) == 1
    assert stored[0].record_digest == result.record.record_digest


async def test_repeated_step_stores_one_block(store, safe_range):
    sensor = _ticking_sensor()
    state = ProducerState(LINEAGE)

    first = await produce_step(state, store, sensor, safe_range)
    second = await produce_step(state, store, sensor, safe_range)

    assert first.outcome is StepOutcome.INSERTED
    assert second.outcome is StepOutcome.SKIPPED
    assert len(await store.list_ordered(LINEAGE)) == 1
    # A later timestamp gives a different hash; the stored one wins
    assert second.record.record_digest != first.record.record_digest
    assert second.state.prev_hash == first.record.record_digest
    assert second.state.next_index == 2


async def test_insert_race_is_treated_as_skip(store, sensor, safe_range):
    state = ProducerState(LINEAGE)
    first = await produce_step(state, store, sensor, safe_range)

    # Another writer took the slot between the existence check and the insert
    store.exists = AsyncMock(return_value=False)
    second = await produce_step(state, store, sensor, safe_range)

    assert second.outcome is StepOutcome.SKIPPED
    assert second.state.prev_hash == first.record.record_digest


async def test_refused_insert_with_nothing_stored_is_an_error(store, sensor, safe_range):
    store.exists = AsyncMock(return_value=False)
    store.append_if_absent = AsyncMock(return_value=False)

    with pytest.raises(StoreError):
        await produce_step(ProducerState(LINEAGE), store, sensor, safe_range)

    producer = _producer(store, sensor, safe_range, retry_policy=RetryPolicy(attempts=1))
    await producer.resume()
    assert await producer.step() is None
    assert producer.state == ProducerState(LINEAGE)
    assert await store.list_ordered(LINEAGE) == []


async def test_flag_follows_safe_range(store, safe_range):
    sensor = _FixedTemperatureSensor({1: 8.5, 2: 5.0})

    first = await produce_step(ProducerState(LINEAGE), store, sensor, safe_range)
    second = await produce_step(first.state, store, sensor, safe_range)

    assert first.record.flag is True
    assert second.record.flag is False


async def test_lookup_resume_point_statuses(store, chain_factory):
    empty = await lookup_resume_point(store, LINEAGE, NO_WAIT)
    assert empty.status is LookupStatus.EMPTY
    assert empty.state == ProducerState(LINEAGE)

    chain = chain_factory(2)
    for record in chain:
        await store.append(record)
    found = await lookup_resume_point(store, LINEAGE, NO_WAIT)
    assert found.status is LookupStatus.FOUND
    assert found.state == ProducerState(LINEAGE, prev_hash=chain[1].record_digest, next_index=3)

    failing = MagicMock()
    failing.last_record = AsyncMock(side_effect=StoreError("connection refused"))
    failed = await lookup_resume_point(failing, LINEAGE, NO_WAIT)
    assert failed.status is LookupStatus.FAILED
    assert failed.state is None
    assert failing.last_record.await_count == NO_WAIT.attempts


async def test_resume_failure_never_falls_back_to_genesis(sensor, safe_range):
    store = MagicMock()
    store.last_record = AsyncMock(side_effect=StoreError("connection refused"))
    store.append = AsyncMock()
    producer = _producer(store, sensor, safe_range)

    with pytest.raises(ResumeError):
        await producer.run(max_iterations=1)

    assert producer.phase is ProducerPhase.FAILED
    assert producer.state is None
    store.append.assert_not_awaited()


async def test_restart_continues_the_same_chain(store, sensor, safe_range):
    first = _producer(store, sensor, safe_range)
    await first.run(max_iterations=3)
    stored = await store.list_ordered(LINEAGE)
    assert len(stored) == 3

    second = _producer(store, sensor, safe_range)
    state = await second.resume()
    assert state.next_index == 4
    assert state.prev_hash == stored[-1].record_digest

    await second.run(max_iterations=2)
    chain = await store.list_ordered(LINEAGE)
    assert [r.sequence_index for r in chain] == [1, 2, 3, 4, 5]
    assert verify(chain).ok


async def test_resume_prunes_duplicates(legacy_store, chain_factory, sensor, safe_range):
    chain = chain_factory(2)
    for record in chain + [chain[1]]:
        await legacy_store.append(record)

    producer = _producer(legacy_store, sensor, safe_range)
    state = await producer.resume()

    assert state.next_index == 3
    assert len(await legacy_store.list_ordered(LINEAGE)) == 2


async def test_failed_iteration_keeps_state_and_logs(store, sensor, safe_range):
    producer = _producer(store, sensor, safe_range, retry_policy=RetryPolicy(attempts=1))
    await producer.resume()
    before = producer.state

    store.exists = AsyncMock(side_effect=StoreError("disk I/O error"))
    with patch("vaxchain.ledger.producer.logger") as mock_logger:
        assert await producer.step() is None

    assert producer.state == before
    mock_logger.error.assert_called_once()
    assert mock_logger.error.call_args.args[0] == "producer_iteration_failed"


async def test_transient_failure_is_retried(store, sensor, safe_range):
    producer = _producer(store, sensor, safe_range)
    await producer.resume()

    real_exists = store.exists
    calls = {"n": 0}

    async def flaky_exists(lineage_id, index):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StoreError("database is locked")
        return await real_exists(lineage_id, index)

    store.exists = flaky_exists
    result = await producer.step()

    assert result is not None
    assert result.outcome is StepOutcome.INSERTED
    assert calls["n"] == 2


async def test_loop_survives_store_errors(store, sensor, safe_range):
    producer = _producer(store, sensor, safe_range, retry_policy=RetryPolicy(attempts=1))
    await producer.resume()

    real_exists = store.exists
    calls = {"n": 0}

    async def exists_failing_once(lineage_id, index):
        calls["n"] += 1
        if calls["n"] == 2:
            raise StoreError("connection reset")
        return await real_exists(lineage_id, index)

    store.exists = exists_failing_once
    await producer.run(max_iterations=4)

    chain = await store.list_ordered(LINEAGE)
    assert [r.sequence_index for r in chain] == [1, 2, 3]
    assert verify(chain).ok


async def test_stop_ends_the_loop_without_waiting_for_the_interval(store, sensor, safe_range):
    producer = _producer(store, sensor, safe_range, interval_seconds=60)
    task = asyncio.create_task(producer.run())

    for _ in range(200):
        if producer.iterations >= 1:
            break
        await asyncio.sleep(0.01)
    producer.stop()
    await asyncio.wait_for(task, timeout=2)

    assert producer.phase is ProducerPhase.STOPPED
    assert len(await store.list_ordered(LINEAGE)) == 1


async def test_zero_iterations_writes_nothing(store, sensor, safe_range):
    producer = _producer(store, sensor, safe_range)
    await producer.run(max_iterations=0)

    assert producer.iterations == 0
    assert producer.phase is ProducerPhase.STOPPED
    assert await store.list_ordered(LINEAGE) == []


async def test_producer_extends_a_chain_from_the_old_table_layout(engine, chain_factory, sensor, safe_range):
    old_blocks = chain_factory(2)
    await create_legacy_table(engine, old_blocks)
    await init_models(engine)
    store = LedgerStore(build_sessionmaker(engine))

    producer = _producer(store, sensor, safe_range)
    state = await producer.resume()
    assert state == ProducerState(LINEAGE, prev_hash=old_blocks[-1].record_digest, next_index=3)

    await producer.run(max_iterations=2)
    chain = await store.list_ordered(LINEAGE)
    assert [r.sequence_index for r in chain] == [1, 2, 3, 4]
    assert [r.payload is None for r in chain] == [True, True, False, False]
    assert verify(chain, check_payload=True, safe_range=safe_range).ok
