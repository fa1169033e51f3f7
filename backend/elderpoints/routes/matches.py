from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from elderpoints.db import get_session, get_sessionmaker
from elderpoints.auth_deps import get_current_account, require_staff
from elderpoints.errors import PermissionDeniedError
from elderpoints.models.account import Account, STAFF_ROLES
from elderpoints.schemas.match import SettleMatchRequest, ReplaceEndsRequest, SettlementReport, MatchDetail
from elderpoints.services.links import is_linked
from elderpoints.services.notifications import NotificationChannel, get_notification_channel
from elderpoints.services.settlement import (
    settle_match, credit_missing_participants, replace_match_ends, soft_delete_match, get_match_detail,
)

router = APIRouter(prefix="/matches", tags=["matches"])

@router.post("", response_model=SettlementReport, status_code=201)
async def create_match(
    payload: SettleMatchRequest,
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    channel: NotificationChannel = Depends(get_notification_channel),
    operator: Account = Depends(require_staff),
):
    """Finalize a match. Per-participant credit failures come back in `failures`, not as an error."""
    return await settle_match(
        sessionmaker,
        store_id=payload.store_id,
        rounds=payload.rounds,
        red_team_ids=payload.red_team_ids,
        yellow_team_ids=payload.yellow_team_ids,
        operator=operator,
        channel=channel,
    )

@router.get("/{match_id}", response_model=MatchDetail)
async def read_match(
    match_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
):
    detail = await get_match_detail(session, match_id)
    if account.role == "administrator":
        return detail
    if account.role in STAFF_ROLES and account.store_id == detail.store_id:
        return detail
    player_ids = {p.account_id for p in detail.participants}
    if account.id in player_ids:
        return detail
    if account.role == "caregiver":
        for pid in player_ids:
            if await is_linked(session, account.id, pid):
                return detail
    raise PermissionDeniedError("Not allowed to view this match")

@router.put("/{match_id}/ends", response_model=SettlementReport)
async def edit_match_ends(
    payload: ReplaceEndsRequest,
    match_id: UUID = Path(...),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    channel: NotificationChannel = Depends(get_notification_channel),
    operator: Account = Depends(require_staff),
):
    return await replace_match_ends(sessionmaker, match_id, rounds=payload.rounds, operator=operator, channel=channel)

@router.post("/{match_id}/recredit", response_model=SettlementReport)
async def recredit_match(
    match_id: UUID = Path(...),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    channel: NotificationChannel = Depends(get_notification_channel),
    operator: Account = Depends(require_staff),
):
    return await credit_missing_participants(sessionmaker, match_id, operator=operator, channel=channel)

@router.delete("/{match_id}", status_code=204)
async def delete_match(
    match_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    operator: Account = Depends(require_staff),
):
    await soft_delete_match(session, match_id, operator=operator)
