from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from elderpoints.db import Base
from elderpoints.models.account import utcnow

class Match(Base):
    __tablename__ = "matches"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    store_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")  # in_progress|completed|deleted
    winner: Mapped[str | None] = mapped_column(String(8), nullable=True)  # red|yellow|None (draw)
    red_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    yellow_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

class MatchParticipant(Base):
    __tablename__ = "match_participants"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("matches.id", ondelete="CASCADE"), index=True, nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False)
    team: Mapped[str] = mapped_column(String(8), nullable=False)     # red|yellow
    result: Mapped[str] = mapped_column(String(8), nullable=False)   # win|draw|loss

    __table_args__ = (
        # an account plays on one team per match
        UniqueConstraint("match_id", "account_id", name="uq_match_participant_once"),
    )

class MatchEnd(Base):
    """Round record. Denormalized projection of the submitted payload; totals live on Match."""
    __tablename__ = "match_ends"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("matches.id", ondelete="CASCADE"), index=True, nullable=False)
    end_number: Mapped[int] = mapped_column(Integer, nullable=False)
    red_score: Mapped[int] = mapped_column(Integer, nullable=False)
    yellow_score: Mapped[int] = mapped_column(Integer, nullable=False)
    evidence_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    vibe_video_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
