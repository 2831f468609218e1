from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from vaxchain.ledger.records import ChainRecord
from vaxchain.ledger.sensor import SafeRange
from vaxchain.ledger.store import LedgerStore
from vaxchain.ledger.verifier import VerificationResult, verify

logger = structlog.get_logger(__name__)


class ChainService:
    """Read-side facade over the ledger store."""

    def __init__(self, store: LedgerStore, safe_range: Optional[SafeRange] = None):
        self.store = store
        self.safe_range = safe_range or SafeRange()

    async def fetch_lineage(self, lineage_id: str) -> List[ChainRecord]:
        """Blocks of a lineage in ascending index; empty for an unknown lineage."""
        return await self.store.list_ordered(lineage_id)

    async def verify_lineage(self, lineage_id: str, check_payload: bool = False) -> VerificationResult:
        records = await self.fetch_lineage(lineage_id)
        result = verify(records, check_payload=check_payload, safe_range=self.safe_range)
        if not result.ok:
            logger.warning(
                "chain_verification_failed",
                batch_no=lineage_id,
                at_index=result.at_index,
                reason=result.reason.value,
            )
        return result


def block_to_api(record: ChainRecord) -> Dict[str, Any]:
    """JSON shape served by the read API, built from the stored payload."""
    data = None
    if record.payload is not None:
        try:
            data = record.decoded_payload()
        except ValidationError:
            logger.warning(
                "payload_decode_failed",
                batch_no=record.lineage_id,
                index_num=record.sequence_index,
            )

    payload_data = None
    if data is not None:
        payload_data = {**data.model_dump(), "alert": record.flag}

    return {
        "id": record.id,
        "index_num": record.sequence_index,
        "batch_no": record.lineage_id,
        "container_no": record.container_no,
        "payload_hash": record.payload_digest,
        "prev_hash": record.previous_digest,
        "hash": record.record_digest,
        "alert": record.flag,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "temperature": data.temperature if data else None,
        "vaccine_name": data.vaccine_name if data else None,
        "manufacture_name": data.manufacture_name if data else None,
        "shipment_name": data.shipment_name if data else None,
        "current_location": data.current_location if data else None,
        "payload_data": payload_data,
    }
