"""Exception taxonomy for the ledger."""

from typing import Optional


class VaxChainError(Exception):
    """Base class for every error raised by this package."""


class StoreError(VaxChainError):
    """The ledger store could not complete an operation.

    Covers connection failures, constraint violations and query failures.
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class DuplicateRecordError(StoreError):
    """A record already occupies ``(lineage_id, sequence_index)``."""

    def __init__(self, lineage_id: str, sequence_index: int):
        super().__init__(
            f"Block {sequence_index} already exists for batch {lineage_id}",
            operation="append",
        )
        self.lineage_id = lineage_id
        self.sequence_index = sequence_index


class ResumeError(VaxChainError):
    """The last record of a lineage could not be looked up on startup.

    Raised instead of restarting from genesis, which would reuse sequence
    numbers that may already exist in storage.
    """

    def __init__(self, lineage_id: str, cause: Optional[BaseException] = None):
        super().__init__(f"Could not determine resume point for batch {lineage_id}: {cause}")
        self.lineage_id = lineage_id
        self.cause = cause


class VerificationFailure(VaxChainError):
    """A chain failed verification at ``at_index``."""

    def __init__(self, lineage_id: Optional[str], at_index: int, reason: str, detail: Optional[str] = None):
        where = f"batch {lineage_id}" if lineage_id else "chain"
        message = f"{where} broken at block {at_index}: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.lineage_id = lineage_id
        self.at_index = at_index
        self.reason = reason
        self.detail = detail
