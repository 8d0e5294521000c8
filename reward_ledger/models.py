from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


UNLIMITED_STOCK = -1
# Largest value an SQLite INTEGER column holds
MAX_POINTS = 2**63 - 1


class RejectionReason(str, Enum):
    INSUFFICIENT_POINTS = "Insufficient points"
    OUT_OF_STOCK = "Reward out of stock"
    ALREADY_CLAIMED = "Reward already claimed"


class CreateRewardRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    points_required: int = Field(..., gt=0, le=MAX_POINTS, description="Points debited per claim")
    stock: int = Field(default=UNLIMITED_STOCK, ge=UNLIMITED_STOCK, le=MAX_POINTS, description="-1 means unlimited")

    model_config = ConfigDict(str_strip_whitespace=True, json_schema_extra={
        "example": {
            "title": "Team jersey",
            "description": "Official tournament jersey",
            "points_required": 80,
            "stock": 10
        }
    })


class OpenAccountRequest(BaseModel):
    user_id: Optional[UUID] = None
    points: int = Field(default=0, ge=0, le=MAX_POINTS)


class UserBalance(BaseModel):
    user_id: UUID
    points: int = Field(..., ge=0)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Reward(BaseModel):
    id: UUID
    title: str
    description: str = ""
    points_required: int = Field(..., gt=0)
    stock: int = Field(..., ge=UNLIMITED_STOCK)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_unlimited(self) -> bool:
        return self.stock == UNLIMITED_STOCK

    def is_available(self) -> bool:
        return self.stock != 0


class ClaimRecord(BaseModel):
    id: UUID
    user_id: UUID
    reward_id: UUID
    points_spent: int
    balance_after: int
    stock_after: int
    claimed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClaimResponse(BaseModel):
    claim: ClaimRecord
    message: str


class ErrorResponse(BaseModel):
    error: str
