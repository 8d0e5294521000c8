from uuid import UUID

from .models import ClaimRecord, Reward, UserBalance
from .store import LedgerStore


class RewardQueries:
    """Read-only views of the ledger for rendering. Never writes."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def list_rewards(self, available_only: bool = False) -> list[Reward]:
        rewards = self.store.list_rewards()
        if available_only:
            return [r for r in rewards if r.is_available()]
        return rewards

    def get_reward(self, reward_id: UUID) -> Reward:
        return self.store.get_reward(reward_id)

    def get_balance(self, user_id: UUID) -> int:
        return self.store.get_balance(user_id)

    def get_account(self, user_id: UUID) -> UserBalance:
        return self.store.get_account(user_id)

    def claim_history(self, user_id: UUID) -> list[ClaimRecord]:
        # 404 for unknown users rather than an empty list
        self.store.get_account(user_id)
        return self.store.list_claims(user_id=user_id)
