from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

class TransactionPublic(BaseModel):
    id: UUID
    kind: str
    honor_amount: int
    local_amount: int
    honor_after: int
    local_after: int
    description: str | None = None
    match_id: UUID | None = None
    store_id: str | None = None
    operator_id: UUID | None = None
    evidence_url: str | None = None
    created_at: datetime

class WalletSnapshot(BaseModel):
    account_id: UUID
    honor_balance: int
    local_balance: int
    transactions: list[TransactionPublic]

class ReconcileReport(BaseModel):
    account_id: UUID
    honor_balance: int
    local_balance: int
    honor_ledger_sum: int
    local_ledger_sum: int
    transaction_count: int
    consistent: bool
