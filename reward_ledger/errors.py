from uuid import UUID

from .models import RejectionReason


class LedgerServiceError(Exception):
    pass


class NotFoundError(LedgerServiceError):
    pass


class RewardNotFoundError(NotFoundError):
    def __init__(self, reward_id: UUID):
        super().__init__(f"Reward {reward_id} not found")
        self.reward_id = reward_id


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: UUID):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class AccountExistsError(LedgerServiceError):
    pass


class StorageFailureError(LedgerServiceError):
    """The transaction was rolled back; nothing was written."""


class ClaimRejectedError(LedgerServiceError):
    reason: RejectionReason

    def __init__(self, message: str = ""):
        super().__init__(message or self.reason.value)

    @classmethod
    def for_reason(cls, reason: RejectionReason) -> "ClaimRejectedError":
        return _REJECTIONS[reason]()


class InsufficientPointsError(ClaimRejectedError):
    reason = RejectionReason.INSUFFICIENT_POINTS


class OutOfStockError(ClaimRejectedError):
    reason = RejectionReason.OUT_OF_STOCK


class AlreadyClaimedError(ClaimRejectedError):
    reason = RejectionReason.ALREADY_CLAIMED


_REJECTIONS = {
    RejectionReason.INSUFFICIENT_POINTS: InsufficientPointsError,
    RejectionReason.OUT_OF_STOCK: OutOfStockError,
    RejectionReason.ALREADY_CLAIMED: AlreadyClaimedError,
}
