"""
Vault Ledger

Savings vaults (micro-savings, emergency, pension) with withdrawal fees,
pension time-locks, vesting bonuses, parking incentives and savings goals.
All money is Decimal, every balance change is an append-only, hash-chained
transaction.
"""

__version__ = "1.0.0"
