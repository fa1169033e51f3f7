from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID

class FanoutResult(BaseModel):
    account_id: UUID
    recipients: list[UUID] = Field(default_factory=list)
    dispatched: list[UUID] = Field(default_factory=list)
    failed: list[UUID] = Field(default_factory=list)
