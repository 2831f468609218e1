import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    pass


class VaccineBlock(Base):
    __tablename__ = "vaccine_blocks"
    __table_args__ = (
        UniqueConstraint("batch_no", "index_num", name="uq_vaccine_blocks_batch_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    index_num: Mapped[int] = mapped_column(BigInteger, nullable=False)
    batch_no: Mapped[str] = mapped_column(String, nullable=False, index=True)
    container_no: Mapped[str] = mapped_column(String, nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)
    alert: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payload: Mapped[Optional[str]] = mapped_column(Text)  # JSON, NULL for legacy rows
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self):
        return f"<VaccineBlock(batch_no='{self.batch_no}', index_num={self.index_num}, hash='{self.hash[:16]}')>"
