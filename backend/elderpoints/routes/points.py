from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from elderpoints.db import get_session
from elderpoints.auth_deps import require_staff
from elderpoints.models.account import Account
from elderpoints.schemas.points import GrantRequest, RedeemRequest, PointsResult
from elderpoints.services.grants import grant_points, redeem_points
from elderpoints.services.notifications import NotificationChannel, get_notification_channel

router = APIRouter(prefix="/points", tags=["points"])

@router.post("/grant", response_model=PointsResult)
async def grant(
    payload: GrantRequest,
    session: AsyncSession = Depends(get_session),
    channel: NotificationChannel = Depends(get_notification_channel),
    operator: Account = Depends(require_staff),
):
    return await grant_points(
        session,
        account_id=payload.account_id,
        local_amount=payload.local_amount,
        reason=payload.reason,
        store_id=payload.store_id,
        operator=operator,
        channel=channel,
        external_id=payload.idempotency_key,
    )

@router.post("/redeem", response_model=PointsResult)
async def redeem(
    payload: RedeemRequest,
    session: AsyncSession = Depends(get_session),
    operator: Account = Depends(require_staff),
):
    return await redeem_points(
        session,
        account_id=payload.account_id,
        local_amount=payload.local_amount,
        description=payload.description,
        operator=operator,
    )
