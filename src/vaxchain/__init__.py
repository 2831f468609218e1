"""
vaxchain
Tamper-evident cold-chain sensor ledger.
"""

__version__ = "1.0.0"
