"""
Reward Ledger for points-based reward claims

This module provides:
- Durable balances, reward stock and an append-only claim log (SQLite)
- Atomic claims: points debit + stock debit + claim record, or nothing
- Tagged claim outcomes: committed / rejected / failed
- Read-only queries for reward lists, balances and claim history
"""

from .models import (
    ClaimRecord,
    RejectionReason,
    Reward,
    UserBalance,
)
from .queries import RewardQueries
from .service import ClaimCoordinator, ClaimPolicy
from .store import LedgerStore

__all__ = [
    "ClaimRecord",
    "RejectionReason",
    "Reward",
    "UserBalance",
    "RewardQueries",
    "ClaimCoordinator",
    "ClaimPolicy",
    "LedgerStore",
]
