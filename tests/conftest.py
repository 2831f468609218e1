"""
Shared fixtures for the VaxChain test-suite.

Storage tests run against a real SQLite database (aiosqlite) created in
``tmp_path``; nothing is mocked below the ``LedgerStore`` interface unless a
test is specifically about failure handling.
"""

import sys
from pathlib import Path
from typing import Callable, Iterable, List

import pytest
import pytest_asyncio
from sqlalchemy import text

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vaxchain.core.async_db import build_engine, build_sessionmaker, init_models
from vaxchain.core.config import Settings
from vaxchain.ledger.hash_chain import GENESIS_HASH, block_hash, compute_hash
from vaxchain.ledger.records import ChainRecord
from vaxchain.ledger.sensor import SafeRange, TemperatureSensor
from vaxchain.ledger.store import LedgerStore

FIXED_TIMESTAMP = "2025-01-01T00:00:00+00:00"
LINEAGE = "VAC-TEST-1"

# Table as written by deployments that predate stored payloads and the
# (batch_no, index_num) unique constraint.
LEGACY_DDL = """
CREATE TABLE vaccine_blocks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    index_num BIGINT NOT NULL,
    batch_no VARCHAR NOT NULL,
    container_no VARCHAR NOT NULL,
    payload_hash VARCHAR(64) NOT NULL,
    prev_hash VARCHAR(64) NOT NULL,
    hash VARCHAR(64) NOT NULL,
    alert BOOLEAN NOT NULL,
    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

LEGACY_INSERT = """
INSERT INTO vaccine_blocks (index_num, batch_no, container_no, payload_hash, prev_hash, hash, alert)
VALUES (:index_num, :batch_no, :container_no, :payload_hash, :prev_hash, :hash, :alert)
"""


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(
        DATABASE_URL=database_url,
        PRODUCER_ENABLED=False,
        PRODUCER_INTERVAL_SECONDS=0.05,
        LINEAGE_ID=LINEAGE,
        STORE_RETRY_ATTEMPTS=2,
        STORE_RETRY_BASE_DELAY=0.0,
    )


@pytest_asyncio.fixture
async def engine(database_url):
    eng = build_engine(database_url)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def store(engine) -> LedgerStore:
    await init_models(engine)
    return LedgerStore(build_sessionmaker(engine))


async def create_legacy_table(engine, records: Iterable[ChainRecord] = ()) -> None:
    """Create the old table layout, optionally holding ``records`` without payloads."""
    async with engine.begin() as conn:
        await conn.execute(text(LEGACY_DDL))
        for record in records:
            await conn.execute(
                text(LEGACY_INSERT),
                {
                    "index_num": record.sequence_index,
                    "batch_no": record.lineage_id,
                    "container_no": record.container_no,
                    "payload_hash": record.payload_digest,
                    "prev_hash": record.previous_digest,
                    "hash": record.record_digest,
                    "alert": record.flag,
                },
            )


@pytest_asyncio.fixture
async def legacy_store(engine) -> LedgerStore:
    """Store over an upgraded old table, still without the uniqueness constraint."""
    await create_legacy_table(engine)
    await init_models(engine)
    return LedgerStore(build_sessionmaker(engine))


@pytest.fixture
def sensor() -> TemperatureSensor:
    return TemperatureSensor(clock=lambda: FIXED_TIMESTAMP)


@pytest.fixture
def safe_range() -> SafeRange:
    return SafeRange(low=2.0, high=8.0)


@pytest.fixture
def chain_factory(sensor, safe_range) -> Callable[..., List[ChainRecord]]:
    """Build a correctly linked chain without touching storage."""

    def _build(length: int, lineage_id: str = LINEAGE) -> List[ChainRecord]:
        records = []
        prev = GENESIS_HASH
        for index in range(1, length + 1):
            data = sensor.read(lineage_id, index)
            payload = data.serialize()
            payload_hash = compute_hash(payload)
            digest = block_hash(index, payload_hash, prev)
            records.append(
                ChainRecord(
                    sequence_index=index,
                    lineage_id=lineage_id,
                    container_no=data.container_no,
                    payload_digest=payload_hash,
                    previous_digest=prev,
                    record_digest=digest,
                    flag=safe_range.is_alert(data.temperature),
                    payload=payload,
                )
            )
            prev = digest
        return records

    return _build
