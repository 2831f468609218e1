"""Read-only integrity check of a stored chain."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

from pydantic import ValidationError

from vaxchain.core.errors import VerificationFailure
from vaxchain.ledger.hash_chain import GENESIS_HASH, block_hash, compute_hash
from vaxchain.ledger.records import ChainRecord
from vaxchain.ledger.sensor import SafeRange


class BreakReason(str, Enum):
    DIGEST_MISMATCH = "digest_mismatch"
    SEQUENCE_GAP = "sequence_gap"
    PREVIOUS_LINK_MISMATCH = "previous_link_mismatch"
    # Only reported when payload checks are requested
    PAYLOAD_MISMATCH = "payload_mismatch"
    FLAG_MISMATCH = "flag_mismatch"


@dataclass(frozen=True)
class Valid:
    count: int

    ok = True

    def raise_for_break(self, lineage_id: Optional[str] = None) -> None:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "valid": True, "at_index": None, "reason": None, "detail": None}


@dataclass(frozen=True)
class Broken:
    count: int
    at_index: int
    reason: BreakReason
    detail: Optional[str] = None

    ok = False

    def raise_for_break(self, lineage_id: Optional[str] = None) -> None:
        raise VerificationFailure(lineage_id, self.at_index, self.reason.value, self.detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "valid": False,
            "at_index": self.at_index,
            "reason": self.reason.value,
            "detail": self.detail,
        }


VerificationResult = Union[Valid, Broken]


def _payload_problem(record: ChainRecord, safe_range: Optional[SafeRange]) -> Optional[Broken]:
    if record.payload is None:
        return None
    if compute_hash(record.payload) != record.payload_digest:
        return Broken(0, record.sequence_index, BreakReason.PAYLOAD_MISMATCH, "stored payload does not hash to payload_hash")
    if safe_range is None:
        return None
    try:
        temperature = record.decoded_payload().temperature
    except ValidationError as exc:
        return Broken(0, record.sequence_index, BreakReason.PAYLOAD_MISMATCH, f"payload not decodable: {exc.error_count()} errors")
    expected = safe_range.is_alert(temperature)
    if expected != record.flag:
        return Broken(
            0,
            record.sequence_index,
            BreakReason.FLAG_MISMATCH,
            f"stored alert={record.flag}, temperature {temperature} gives alert={expected}",
        )
    return None


def verify(
    records: Iterable[ChainRecord],
    check_payload: bool = False,
    safe_range: Optional[SafeRange] = None,
) -> VerificationResult:
    """Walk ``records`` in ascending index and stop at the first break.

    Per block, in order: the index must be the next contiguous one, the
    previous hash must be the genesis sentinel (block 1) or the stored hash of
    the block before, and the stored hash must recompute from the stored
    fields. With ``check_payload`` the stored payload must also hash to
    ``payload_digest`` and, given ``safe_range``, reproduce the stored alert.
    """
    chain = sorted(records, key=lambda r: r.sequence_index)
    count = len(chain)
    expected_index = 1
    prev_hash = GENESIS_HASH

    for record in chain:
        index = record.sequence_index
        if index != expected_index:
            return Broken(count, index, BreakReason.SEQUENCE_GAP, f"expected block {expected_index}")
        if record.previous_digest != prev_hash:
            return Broken(count, index, BreakReason.PREVIOUS_LINK_MISMATCH)
        try:
            recomputed = block_hash(index, record.payload_digest, record.previous_digest)
        except ValueError as exc:
            return Broken(count, index, BreakReason.DIGEST_MISMATCH, str(exc))
        if recomputed != record.record_digest:
            return Broken(count, index, BreakReason.DIGEST_MISMATCH)
        if check_payload:
            problem = _payload_problem(record, safe_range)
            if problem is not None:
                return Broken(count, problem.at_index, problem.reason, problem.detail)

        prev_hash = record.record_digest
        expected_index += 1

    return Valid(count)
