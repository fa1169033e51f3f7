from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from elderpoints.db import get_session
from elderpoints.auth_deps import get_current_account, require_staff
from elderpoints.errors import PermissionDeniedError, NotFoundError
from elderpoints.models.account import Account, STAFF_ROLES
from elderpoints.schemas.wallet import WalletSnapshot, ReconcileReport
from elderpoints.services.ledger import wallet_snapshot, reconcile_wallet
from elderpoints.services.links import is_linked

router = APIRouter(prefix="/wallet", tags=["wallet"])

async def _load_visible(session: AsyncSession, viewer: Account, account_id: UUID) -> Account:
    target = await session.get(Account, account_id)
    if not target:
        raise NotFoundError("Account not found")
    if viewer.id == target.id or viewer.role == "administrator":
        return target
    if viewer.role in STAFF_ROLES and viewer.store_id == target.store_id:
        return target
    if viewer.role == "caregiver" and await is_linked(session, viewer.id, target.id):
        return target
    raise PermissionDeniedError("Not allowed to view this wallet")

@router.get("", response_model=WalletSnapshot)
async def get_wallet(
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
):
    return await wallet_snapshot(session, account.id, limit=limit)

@router.get("/{account_id}", response_model=WalletSnapshot)
async def get_account_wallet(
    account_id: UUID = Path(...),
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
):
    target = await _load_visible(session, account, account_id)
    return await wallet_snapshot(session, target.id, limit=limit)

@router.get("/{account_id}/reconcile", response_model=ReconcileReport)
async def reconcile(
    account_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    operator: Account = Depends(require_staff),
):
    target = await _load_visible(session, operator, account_id)
    return await reconcile_wallet(session, target.id)
