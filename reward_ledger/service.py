import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from .errors import ClaimRejectedError, StorageFailureError
from .models import ClaimRecord, RejectionReason
from .store import ClaimCheckFailed, LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimPolicy:
    # Repeat claims of one reward by one user are allowed unless set.
    once_per_user: bool = False


@dataclass(frozen=True)
class Committed:
    claim: ClaimRecord


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason


@dataclass(frozen=True)
class Failed:
    error: StorageFailureError


ClaimOutcome = Union[Committed, Rejected, Failed]


class ClaimCoordinator:
    """Business-rule gate in front of the ledger store.

    A claim is validated (reward and user exist), then evaluated and committed
    by the store in a single transaction. Rejections carry no side effects and
    nothing is retried here; a retry is a new claim decided by the caller.
    """

    def __init__(self, store: LedgerStore, policy: Optional[ClaimPolicy] = None):
        self.store = store
        self.policy = policy or ClaimPolicy()

    def claim(self, user_id: UUID, reward_id: UUID) -> ClaimRecord:
        """Redeem a reward for a user.

        Raises RewardNotFoundError / UserNotFoundError for unknown ids,
        InsufficientPointsError / OutOfStockError / AlreadyClaimedError when
        the claim is rejected, and StorageFailureError when the transaction
        could not be committed.
        """
        self.store.get_reward(reward_id)
        self.store.get_balance(user_id)

        try:
            record = self.store.apply_claim(
                user_id, reward_id, once_per_user=self.policy.once_per_user
            )
        except ClaimCheckFailed as e:
            logger.info(f"Claim of reward {reward_id} by user {user_id} rejected: {e.reason.value}")
            raise ClaimRejectedError.for_reason(e.reason) from None
        except StorageFailureError as e:
            logger.error(f"Claim of reward {reward_id} by user {user_id} failed: {e}")
            raise

        logger.info(
            f"User {user_id} claimed reward {reward_id} for {record.points_spent} pts "
            f"(balance {record.balance_after}, stock {record.stock_after})"
        )
        return record

    def attempt(self, user_id: UUID, reward_id: UUID) -> ClaimOutcome:
        """Same as claim(), with rejections and storage failures as values.

        NotFound errors are caller mistakes and still raise.
        """
        try:
            return Committed(self.claim(user_id, reward_id))
        except ClaimRejectedError as e:
            return Rejected(e.reason)
        except StorageFailureError as e:
            return Failed(e)
