from __future__ import annotations
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from elderpoints.errors import ValidationError, NotFoundError
from elderpoints.models.account import Account, CaregiverLink

log = structlog.get_logger()

# caregiver_links is authoritative. accounts.linked_participant_id is a cache of
# "the caregiver's primary (else oldest) link", rewritten on every link change.


async def _sync_legacy_link(session: AsyncSession, caregiver_id: UUID) -> UUID | None:
    primary = await session.scalar(
        select(CaregiverLink.participant_id)
        .where(CaregiverLink.caregiver_id == caregiver_id)
        .order_by(CaregiverLink.is_primary.desc(), CaregiverLink.created_at.asc())
        .limit(1)
    )
    await session.execute(
        update(Account).where(Account.id == caregiver_id).values(linked_participant_id=primary)
        .execution_options(synchronize_session=False)
    )
    return primary


async def link_caregiver(session: AsyncSession, caregiver_id: UUID, participant_id: UUID, *, is_primary: bool = True) -> CaregiverLink:
    caregiver = await session.get(Account, caregiver_id)
    participant = await session.get(Account, participant_id)
    if not caregiver or not participant:
        raise NotFoundError("account not found")
    if caregiver.role != "caregiver":
        raise ValidationError("only caregivers can link to participants")
    if participant.role != "participant":
        raise ValidationError("can only link to a participant account")

    link = await session.scalar(
        select(CaregiverLink).where(CaregiverLink.caregiver_id == caregiver_id, CaregiverLink.participant_id == participant_id)
    )
    if is_primary:
        await session.execute(
            update(CaregiverLink)
            .where(CaregiverLink.caregiver_id == caregiver_id, CaregiverLink.participant_id != participant_id)
            .values(is_primary=False)
            .execution_options(synchronize_session=False)
        )
    if link is None:
        link = CaregiverLink(caregiver_id=caregiver_id, participant_id=participant_id, is_primary=is_primary)
        session.add(link)
    else:
        link.is_primary = is_primary
    await session.flush()

    legacy = await _sync_legacy_link(session, caregiver_id)
    await session.commit()
    await session.refresh(caregiver)
    log.info("caregiver_linked", caregiver_id=str(caregiver_id), participant_id=str(participant_id), legacy_link=str(legacy))
    return link


async def unlink_caregiver(session: AsyncSession, caregiver_id: UUID, participant_id: UUID) -> None:
    link = await session.scalar(
        select(CaregiverLink).where(CaregiverLink.caregiver_id == caregiver_id, CaregiverLink.participant_id == participant_id)
    )
    if link is None:
        raise NotFoundError("link not found")
    await session.delete(link)
    await session.flush()
    legacy = await _sync_legacy_link(session, caregiver_id)
    await session.commit()
    log.info("caregiver_unlinked", caregiver_id=str(caregiver_id), participant_id=str(participant_id), legacy_link=str(legacy))


async def linked_participants(session: AsyncSession, caregiver_id: UUID) -> list[CaregiverLink]:
    return (await session.execute(
        select(CaregiverLink)
        .where(CaregiverLink.caregiver_id == caregiver_id)
        .order_by(CaregiverLink.is_primary.desc(), CaregiverLink.created_at.asc())
        .execution_options(populate_existing=True)
    )).scalars().all()


async def is_linked(session: AsyncSession, caregiver_id: UUID, participant_id: UUID) -> bool:
    """Join table or legacy field; either grants a caregiver read access."""
    link = await session.scalar(
        select(CaregiverLink.id).where(CaregiverLink.caregiver_id == caregiver_id, CaregiverLink.participant_id == participant_id)
    )
    if link:
        return True
    legacy = await session.scalar(select(Account.linked_participant_id).where(Account.id == caregiver_id))
    return legacy == participant_id
