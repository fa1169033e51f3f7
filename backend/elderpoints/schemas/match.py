from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime

Team = Literal["red", "yellow"]
Result = Literal["win", "draw", "loss"]
MatchStatus = Literal["in_progress", "completed", "deleted"]

class RoundIn(BaseModel):
    end_number: int | None = Field(default=None, ge=1, description="Defaults to position in the list")
    red_score: int = Field(ge=0, le=10)
    yellow_score: int = Field(ge=0, le=10)
    # Checked by the settlement engine so a missing photo yields EVIDENCE_REQUIRED, not a schema error
    evidence_url: str | None = Field(default=None, max_length=1024, description="House snapshot (proof cam)")
    vibe_video_url: str | None = Field(default=None, max_length=1024)

class SettleMatchRequest(BaseModel):
    store_id: str = Field(min_length=1, max_length=64)
    rounds: list[RoundIn]
    red_team_ids: list[UUID]
    yellow_team_ids: list[UUID]

class ReplaceEndsRequest(BaseModel):
    rounds: list[RoundIn]

class ParticipantOutcome(BaseModel):
    account_id: UUID
    team: Team
    result: Result
    award: int
    credited: bool = False
    already_credited: bool = False
    transaction_id: UUID | None = None
    error: str | None = None

class SettlementReport(BaseModel):
    match_id: UUID
    store_id: str
    winner: Team | None
    red_total: int
    yellow_total: int
    revision: int = 0
    rounds_persisted: bool = True
    results: list[ParticipantOutcome]
    failures: list[ParticipantOutcome] = Field(default_factory=list)

class MatchEndPublic(BaseModel):
    end_number: int
    red_score: int
    yellow_score: int
    evidence_url: str
    vibe_video_url: str | None = None

class MatchParticipantPublic(BaseModel):
    account_id: UUID
    team: Team
    result: Result

class MatchDetail(BaseModel):
    id: UUID
    store_id: str
    status: MatchStatus
    winner: Team | None
    red_total: int
    yellow_total: int
    revision: int
    created_by: UUID | None = None
    created_at: datetime
    completed_at: datetime | None = None
    ends: list[MatchEndPublic]
    participants: list[MatchParticipantPublic]
