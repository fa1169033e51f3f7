from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID

class GrantRequest(BaseModel):
    account_id: UUID
    local_amount: int
    reason: str
    store_id: str = Field(min_length=1, max_length=64)
    idempotency_key: str | None = Field(default=None, max_length=100)

class RedeemRequest(BaseModel):
    account_id: UUID
    local_amount: int = Field(gt=0)
    description: str = Field(min_length=1, max_length=200)

class PointsResult(BaseModel):
    account_id: UUID
    transaction_id: UUID
    points: int
    new_balance: int
    honor_balance: int
