from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class VaccineData(BaseModel):
    """One sensor reading, the payload hashed into a block.

    Field order is part of the serialized form and therefore of the payload
    hash; do not reorder.
    """

    model_config = ConfigDict(frozen=True)

    temperature: float
    container_no: str
    batch_no: str
    vaccine_name: str
    manufacture_name: str
    shipment_name: str
    current_location: str
    timestamp: str

    def serialize(self) -> str:
        """Compact JSON used both for hashing and for storage."""
        return self.model_dump_json()

    @classmethod
    def deserialize(cls, raw: str) -> "VaccineData":
        return cls.model_validate_json(raw)


class BlockRead(BaseModel):
    id: Optional[int]
    index_num: int
    batch_no: str
    container_no: str
    payload_hash: str
    prev_hash: str
    hash: str
    alert: bool
    created_at: Optional[str]
    temperature: Optional[float]
    vaccine_name: Optional[str] = None
    manufacture_name: Optional[str] = None
    shipment_name: Optional[str] = None
    current_location: Optional[str] = None
    payload_data: Optional[Dict[str, Any]] = None


class ChainVerification(BaseModel):
    batch_no: str
    count: int
    valid: bool
    at_index: Optional[int] = None
    reason: Optional[str] = None
    detail: Optional[str] = None
