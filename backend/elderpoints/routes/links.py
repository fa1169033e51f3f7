from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from elderpoints.db import get_session
from elderpoints.auth_deps import get_current_account
from elderpoints.errors import PermissionDeniedError
from elderpoints.models.account import Account, CaregiverLink
from elderpoints.schemas.link import LinkCreate, LinkPublic
from elderpoints.services.links import link_caregiver, unlink_caregiver, linked_participants

router = APIRouter(prefix="/links", tags=["links"])

def _caregiver_for(account: Account, caregiver_id: UUID | None) -> UUID:
    # caregivers manage their own links; administrators may act for anyone
    if caregiver_id is None or caregiver_id == account.id:
        return account.id
    if account.role != "administrator":
        raise PermissionDeniedError("Cannot manage another caregiver's links")
    return caregiver_id

def to_public(link: CaregiverLink) -> LinkPublic:
    return LinkPublic(
        caregiver_id=link.caregiver_id, participant_id=link.participant_id,
        is_primary=link.is_primary, created_at=link.created_at,
    )

@router.get("", response_model=list[LinkPublic])
async def list_links(
    caregiver_id: UUID | None = Query(None, alias="caregiverId"),
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
):
    rows = await linked_participants(session, _caregiver_for(account, caregiver_id))
    return [to_public(r) for r in rows]

@router.post("", response_model=LinkPublic, status_code=201)
async def create_link(
    payload: LinkCreate,
    caregiver_id: UUID | None = Query(None, alias="caregiverId"),
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
):
    link = await link_caregiver(session, _caregiver_for(account, caregiver_id), payload.participant_id, is_primary=payload.is_primary)
    return to_public(link)

@router.delete("/{participant_id}", status_code=204)
async def delete_link(
    participant_id: UUID = Path(...),
    caregiver_id: UUID | None = Query(None, alias="caregiverId"),
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
):
    await unlink_caregiver(session, _caregiver_for(account, caregiver_id), participant_id)
