from contextlib import asynccontextmanager
from typing import AsyncIterator, List, NamedTuple, Optional

import structlog
from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vaxchain.core.errors import DuplicateRecordError, StoreError
from vaxchain.core.models import VaccineBlock
from vaxchain.ledger.records import ChainRecord

logger = structlog.get_logger(__name__)


class LastRecord(NamedTuple):
    sequence_index: int
    record_digest: str


def _to_record(row: VaccineBlock) -> ChainRecord:
    return ChainRecord(
        id=row.id,
        sequence_index=row.index_num,
        lineage_id=row.batch_no,
        container_no=row.container_no,
        payload_digest=row.payload_hash,
        previous_digest=row.prev_hash,
        record_digest=row.hash,
        flag=bool(row.alert),
        payload=row.payload,
        created_at=row.created_at,
    )


class LedgerStore:
    """Durable storage for chain records, one call per round-trip.

    No transaction spans more than one method call; ``exists`` followed by
    ``append`` is not atomic. The ``(batch_no, index_num)`` unique constraint
    turns a racing second insert into ``DuplicateRecordError``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except StoreError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"{operation} failed: {exc}", operation=operation) from exc

    async def append(self, record: ChainRecord) -> int:
        """Insert ``record``; returns its storage id."""
        row = VaccineBlock(
            index_num=record.sequence_index,
            batch_no=record.lineage_id,
            container_no=record.container_no,
            payload_hash=record.payload_digest,
            prev_hash=record.previous_digest,
            hash=record.record_digest,
            alert=record.flag,
            payload=record.payload,
        )
        if record.created_at is not None:
            row.created_at = record.created_at
        async with self._session("append") as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateRecordError(record.lineage_id, record.sequence_index) from exc
            return row.id

    async def append_if_absent(self, record: ChainRecord) -> bool:
        """Conditional insert; ``False`` when the position is already taken."""
        try:
            await self.append(record)
        except DuplicateRecordError:
            return False
        return True

    async def last_record(self, lineage_id: str) -> Optional[LastRecord]:
        stmt = (
            select(VaccineBlock.index_num, VaccineBlock.hash)
            .where(VaccineBlock.batch_no == lineage_id)
            .order_by(VaccineBlock.index_num.desc(), VaccineBlock.id.asc())
            .limit(1)
        )
        async with self._session("last_record") as session:
            res = await session.execute(stmt)
            row = res.first()
        if row is None:
            return None
        return LastRecord(sequence_index=row.index_num, record_digest=row.hash)

    async def exists(self, lineage_id: str, sequence_index: int) -> bool:
        stmt = select(func.count()).select_from(VaccineBlock).where(
            VaccineBlock.batch_no == lineage_id,
            VaccineBlock.index_num == sequence_index,
        )
        async with self._session("exists") as session:
            count = (await session.execute(stmt)).scalar_one()
        return count > 0

    async def digest_at(self, lineage_id: str, sequence_index: int) -> Optional[str]:
        """Hash of the earliest-inserted block at a position, if any."""
        stmt = (
            select(VaccineBlock.hash)
            .where(
                VaccineBlock.batch_no == lineage_id,
                VaccineBlock.index_num == sequence_index,
            )
            .order_by(VaccineBlock.id.asc())
            .limit(1)
        )
        async with self._session("digest_at") as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def prune_duplicates(self, lineage_id: str) -> int:
        """Delete all but the earliest-inserted block of each index; returns the count."""
        keep = (
            select(func.min(VaccineBlock.id))
            .where(VaccineBlock.batch_no == lineage_id)
            .group_by(VaccineBlock.index_num)
        )
        stmt = (
            delete(VaccineBlock)
            .where(VaccineBlock.batch_no == lineage_id, VaccineBlock.id.not_in(keep))
            .execution_options(synchronize_session=False)
        )
        async with self._session("prune_duplicates") as session:
            res = await session.execute(stmt)
            await session.commit()
        removed = res.rowcount or 0
        if removed > 0:
            logger.info("duplicates_pruned", batch_no=lineage_id, removed=removed)
        return removed

    async def list_ordered(self, lineage_id: str) -> List[ChainRecord]:
        stmt = (
            select(VaccineBlock)
            .where(VaccineBlock.batch_no == lineage_id)
            .order_by(VaccineBlock.index_num.asc(), VaccineBlock.id.asc())
        )
        async with self._session("list_ordered") as session:
            res = await session.execute(stmt)
            return [_to_record(row) for row in res.scalars().all()]

    async def ping(self) -> None:
        async with self._session("ping") as session:
            await session.execute(text("SELECT 1"))
