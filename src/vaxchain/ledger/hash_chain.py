import hashlib
import re
from typing import Union

GENESIS_HASH = "0"
FIELD_SEPARATOR = "|"

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def compute_hash(data: Union[str, bytes]) -> str:
    """SHA-256 hex digest of ``data`` (strings are UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def is_digest(value: str) -> bool:
    return isinstance(value, str) and bool(_HEX_DIGEST.match(value))


def block_hash(index: int, payload_hash: str, prev_hash: str) -> str:
    """Hash binding a block's position, payload and predecessor.

    The preimage is ``"{index}|{payload_hash}|{prev_hash}"``. Inputs are
    restricted to a positive integer and lowercase hex digests (or the genesis
    sentinel for ``prev_hash``) so the separator can never appear inside a
    field and two different field tuples cannot share a preimage.
    """
    if isinstance(index, bool) or not isinstance(index, int) or index < 1:
        raise ValueError(f"index must be a positive integer, got {index!r}")
    if not is_digest(payload_hash):
        raise ValueError(f"payload_hash is not a hex digest: {payload_hash!r}")
    if prev_hash != GENESIS_HASH and not is_digest(prev_hash):
        raise ValueError(f"prev_hash is neither genesis nor a hex digest: {prev_hash!r}")
    return compute_hash(FIELD_SEPARATOR.join((str(index), payload_hash, prev_hash)))
