import uuid
import httpx
import pytest
from sqlalchemy import select, func
from rq import Retry

from conftest import RecordingChannel, FailingChannel
from elderpoints.config import settings
from elderpoints.db import SessionLocal
from elderpoints.jobs import deliver_notification as job
from elderpoints.models.notification import Notification
from elderpoints.services import notifications as notifications_service
from elderpoints.services.links import link_caregiver
from elderpoints.services.notifications import (
    resolve_interested_parties, notify_interested_parties, QueueChannel, LogChannel, DELIVER_JOB,
)


@pytest.mark.asyncio
async def test_recipients_are_union_of_both_link_stores(make_account):
    p = await make_account()
    via_table = await make_account(role="caregiver")
    via_legacy = await make_account(role="caregiver", linked_participant_id=p.id)
    async with SessionLocal() as s:
        await link_caregiver(s, via_table.id, p.id)
        recipients = await resolve_interested_parties(s, p.id)
    assert recipients == [via_table.id, via_legacy.id]


@pytest.mark.asyncio
async def test_caregiver_in_both_stores_is_notified_once(make_account):
    p = await make_account()
    cg = await make_account(role="caregiver")
    async with SessionLocal() as s:
        await link_caregiver(s, cg.id, p.id)  # also writes the legacy field
        channel = RecordingChannel()
        res = await notify_interested_parties(s, p.id, "t", "m", {"type": "info"}, channel=channel)
    assert res.recipients == [cg.id]
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_no_recipients_is_a_no_op(make_account):
    p = await make_account()
    channel = RecordingChannel()
    async with SessionLocal() as s:
        res = await notify_interested_parties(s, p.id, "t", "m", channel=channel)
    assert res.recipients == [] and res.dispatched == [] and res.failed == []
    assert channel.sent == []


@pytest.mark.asyncio
async def test_one_failing_recipient_does_not_block_others(make_account):
    p = await make_account()
    cgs = [await make_account(role="caregiver") for _ in range(3)]
    async with SessionLocal() as s:
        for cg in cgs:
            await link_caregiver(s, cg.id, p.id, is_primary=False)
        channel = FailingChannel(fail_for=[cgs[1].id])
        res = await notify_interested_parties(s, p.id, "t", "m", channel=channel)
    assert res.failed == [cgs[1].id]
    assert set(res.dispatched) == {cgs[0].id, cgs[2].id}
    assert {m["recipient_id"] for m in channel.sent} == {cgs[0].id, cgs[2].id}


def test_channel_follows_notify_backend(monkeypatch):
    monkeypatch.setattr(notifications_service, "_channel", None)
    monkeypatch.setattr(settings, "notify_backend", "log")
    assert isinstance(notifications_service.get_notification_channel(), LogChannel)
    monkeypatch.setattr(notifications_service, "_channel", None)
    monkeypatch.setattr(settings, "notify_backend", "queue")
    assert isinstance(notifications_service.get_notification_channel(), QueueChannel)


class FakeQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, func, *args, **kwargs):
        self.jobs.append((func, args, kwargs))


@pytest.mark.asyncio
async def test_queue_channel_enqueues_delivery_with_retry():
    q = FakeQueue()
    recipient = uuid.uuid4()
    await QueueChannel(queue=q).dispatch(recipient, "Victory!", "won", {"type": "match_result"})
    func, args, kwargs = q.jobs[0]
    assert func == DELIVER_JOB
    assert args[1:] == (str(recipient), "Victory!", "won", {"type": "match_result"})
    assert kwargs["job_id"] == f"notify:{args[0]}"
    assert isinstance(kwargs["retry"], Retry)


async def _rows(recipient_id):
    async with SessionLocal() as s:
        return (await s.execute(select(Notification).where(Notification.recipient_id == recipient_id))).scalars().all()


@pytest.mark.asyncio
async def test_delivery_job_writes_inbox_once(make_account):
    cg = await make_account(role="caregiver")
    nid = str(uuid.uuid4())
    for _ in range(2):
        await job._run(nid, str(cg.id), "Victory!", "won", {"type": "match_result"})
    rows = await _rows(cg.id)
    assert len(rows) == 1
    assert rows[0].status == "sent" and rows[0].sent_at is not None
    assert rows[0].type == "match_result"


@pytest.mark.asyncio
async def test_delivery_job_marks_failed_and_reraises_for_retry(make_account, monkeypatch):
    cg = await make_account(role="caregiver", line_user_id="U123")
    monkeypatch.setattr(settings, "line_channel_access_token", "token")

    async def boom(*a, **kw):
        raise httpx.ConnectError("line down")

    monkeypatch.setattr(job, "_push_line", boom)
    nid = str(uuid.uuid4())
    with pytest.raises(httpx.HTTPError):
        await job._run(nid, str(cg.id), "t", "m", {})
    assert [r.status for r in await _rows(cg.id)] == ["failed"]

    pushed = []

    async def ok(line_user_id, title, message):
        pushed.append(line_user_id)

    monkeypatch.setattr(job, "_push_line", ok)
    await job._run(nid, str(cg.id), "t", "m", {})
    assert pushed == ["U123"]
    rows = await _rows(cg.id)
    assert [r.status for r in rows] == ["sent"]
    async with SessionLocal() as s:
        assert await s.scalar(select(func.count()).select_from(Notification)) == 1
