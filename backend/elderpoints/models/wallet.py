from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, DateTime, ForeignKey, CheckConstraint, Uuid, func
from elderpoints.db import Base
from elderpoints.models.account import utcnow

class Wallet(Base):
    """
    One wallet per participant account, created lazily, never deleted.
      - honor_balance: non-redeemable, only increased by match settlement
      - local_balance: redeemable, increased by settlement and grants, decreased by redemption
    Both balances are mutated only through a conditional UPDATE (see services.wallet.adjust_wallet).
    """
    __tablename__ = "wallets"

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    honor_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    local_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("honor_balance >= 0", name="ck_wallet_honor_non_negative"),
        CheckConstraint("local_balance >= 0", name="ck_wallet_local_non_negative"),
    )
