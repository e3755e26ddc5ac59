"""
Token Ledger

A fixed-supply fungible token ledger with balances, delegated-spending
allowances, change notifications and a hash-chained audit trail.
"""

__version__ = "1.0.0"
