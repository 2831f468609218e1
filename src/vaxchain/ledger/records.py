import datetime
from dataclasses import dataclass, replace
from typing import Optional

from vaxchain.core.schemas import VaccineData


@dataclass(frozen=True)
class ChainRecord:
    """One link of a lineage's hash chain.

    ``payload`` is the serialized ``VaccineData`` exactly as it was hashed;
    rows written before payloads were persisted carry ``None``.
    """

    sequence_index: int
    lineage_id: str
    container_no: str
    payload_digest: str
    previous_digest: str
    record_digest: str
    flag: bool
    payload: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    id: Optional[int] = None

    def decoded_payload(self) -> Optional[VaccineData]:
        if self.payload is None:
            return None
        return VaccineData.deserialize(self.payload)

    def with_changes(self, **changes) -> "ChainRecord":
        return replace(self, **changes)
