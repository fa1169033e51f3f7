import pytest

from elderpoints.db import SessionLocal
from elderpoints.errors import ValidationError, NotFoundError
from elderpoints.models.account import Account
from elderpoints.services.links import link_caregiver, unlink_caregiver, linked_participants, is_linked


async def _legacy(caregiver_id):
    async with SessionLocal() as s:
        return (await s.get(Account, caregiver_id)).linked_participant_id


@pytest.mark.asyncio
async def test_legacy_field_follows_join_table(make_account):
    cg = await make_account(role="caregiver")
    mom, dad = await make_account(), await make_account()
    async with SessionLocal() as s:
        await link_caregiver(s, cg.id, mom.id)
    assert await _legacy(cg.id) == mom.id

    async with SessionLocal() as s:
        await link_caregiver(s, cg.id, dad.id, is_primary=True)
        links = await linked_participants(s, cg.id)
    assert [(l.participant_id, l.is_primary) for l in links] == [(dad.id, True), (mom.id, False)]
    assert await _legacy(cg.id) == dad.id

    async with SessionLocal() as s:
        await unlink_caregiver(s, cg.id, dad.id)
    assert await _legacy(cg.id) == mom.id

    async with SessionLocal() as s:
        await unlink_caregiver(s, cg.id, mom.id)
        assert await linked_participants(s, cg.id) == []
    assert await _legacy(cg.id) is None


@pytest.mark.asyncio
async def test_non_primary_link_keeps_existing_primary(make_account):
    cg = await make_account(role="caregiver")
    mom, dad = await make_account(), await make_account()
    async with SessionLocal() as s:
        await link_caregiver(s, cg.id, mom.id)
        await link_caregiver(s, cg.id, dad.id, is_primary=False)
    assert await _legacy(cg.id) == mom.id
    async with SessionLocal() as s:
        assert await is_linked(s, cg.id, dad.id)


@pytest.mark.asyncio
async def test_link_roles_are_enforced(make_account):
    cg = await make_account(role="caregiver")
    p = await make_account()
    op = await make_account(role="operator")
    async with SessionLocal() as s:
        with pytest.raises(ValidationError):
            await link_caregiver(s, p.id, cg.id)
        with pytest.raises(ValidationError):
            await link_caregiver(s, cg.id, op.id)
        with pytest.raises(NotFoundError):
            await unlink_caregiver(s, cg.id, p.id)


@pytest.mark.asyncio
async def test_legacy_only_link_still_counts(make_account):
    p, stranger = await make_account(), await make_account()
    cg = await make_account(role="caregiver", linked_participant_id=p.id)
    async with SessionLocal() as s:
        assert await is_linked(s, cg.id, p.id)
        assert not await is_linked(s, cg.id, stranger.id)
