"""
vaxchain.ledger
Hash-chain ledger: hashing, storage adapter, producer and verifier.
"""
from vaxchain.ledger.hash_chain import GENESIS_HASH, block_hash, compute_hash
from vaxchain.ledger.producer import ChainProducer, ProducerState, produce_step
from vaxchain.ledger.records import ChainRecord
from vaxchain.ledger.sensor import SafeRange, TemperatureSensor
from vaxchain.ledger.store import LastRecord, LedgerStore
from vaxchain.ledger.verifier import BreakReason, Broken, Valid, verify

__all__ = [
    "GENESIS_HASH",
    "BreakReason",
    "Broken",
    "ChainProducer",
    "ChainRecord",
    "LastRecord",
    "LedgerStore",
    "ProducerState",
    "SafeRange",
    "TemperatureSensor",
    "Valid",
    "block_hash",
    "compute_hash",
    "produce_step",
    "verify",
]
