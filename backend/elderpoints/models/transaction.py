from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from elderpoints.db import Base
from elderpoints.models.account import utcnow

KINDS = ("earned", "spent", "local_grant", "match_adjustment")

class Transaction(Base):
    """
    Append-only audit trail of every wallet mutation.
    Sign convention (per currency column):
      - earned            => +award on both honor and local (match settlement)
      - local_grant       => +amount on local only (operator grant)
      - spent             => -amount on local only (redemption)
      - match_adjustment  => +/- on both (audited ends edit)

    Σ(honor_amount) == wallet.honor_balance and Σ(local_amount) == wallet.local_balance.
    Idempotency: external_id is unique (e.g. match:<match_id>:<account_id>).
    """
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("wallets.account_id", ondelete="CASCADE"), index=True, nullable=False)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    honor_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    local_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    honor_after: Mapped[int] = mapped_column(Integer, nullable=False)
    local_after: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    match_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("matches.id", ondelete="SET NULL"), index=True, nullable=True)
    store_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    operator_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    evidence_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_transaction_external_id"),
    )
