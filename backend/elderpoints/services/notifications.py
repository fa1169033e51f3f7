from __future__ import annotations
import asyncio
import uuid
from typing import Any, Protocol
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from redis import Redis
from rq import Queue, Retry
import structlog

from elderpoints.config import settings
from elderpoints.models.account import Account, CaregiverLink
from elderpoints.schemas.notification import FanoutResult

log = structlog.get_logger()

DELIVER_JOB = "elderpoints.jobs.deliver_notification.deliver_notification"


class NotificationChannel(Protocol):
    async def dispatch(self, recipient_id: UUID, title: str, message: str, metadata: dict[str, Any]) -> None: ...


class QueueChannel:
    """Hands each notification to an RQ worker; delivery retries with backoff happen there."""

    def __init__(self, queue: Queue | None = None):
        self._queue = queue

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(settings.notify_queue, connection=Redis.from_url(settings.redis_url))
        return self._queue

    async def dispatch(self, recipient_id: UUID, title: str, message: str, metadata: dict[str, Any]) -> None:
        notification_id = str(uuid.uuid4())
        retry = Retry(max=settings.notify_retry_max, interval=settings.notify_retry_intervals or 0) \
            if settings.notify_retry_max > 0 else None
        await asyncio.to_thread(
            self.queue.enqueue,
            DELIVER_JOB,
            notification_id,
            str(recipient_id),
            title,
            message,
            metadata,
            job_id=f"notify:{notification_id}",
            retry=retry,
        )
        log.info("notification_enqueued", notification_id=notification_id, recipient_id=str(recipient_id))


class LogChannel:
    """Development channel: records the notification in the log only."""

    async def dispatch(self, recipient_id: UUID, title: str, message: str, metadata: dict[str, Any]) -> None:
        log.info("notification_simulated", recipient_id=str(recipient_id), title=title, message=message, metadata=metadata)


_channel: NotificationChannel | None = None

def get_notification_channel() -> NotificationChannel:
    global _channel
    if _channel is None:
        _channel = LogChannel() if settings.notify_backend == "log" else QueueChannel()
    return _channel

# ---------- fan-out ----------

async def resolve_interested_parties(session: AsyncSession, account_id: UUID) -> list[UUID]:
    """Caregivers from the link table first, then legacy single links; de-duplicated, order kept."""
    linked = (await session.execute(
        select(CaregiverLink.caregiver_id)
        .where(CaregiverLink.participant_id == account_id)
        .order_by(CaregiverLink.is_primary.desc(), CaregiverLink.created_at.asc())
    )).scalars().all()
    legacy = (await session.execute(
        select(Account.id)
        .where(Account.linked_participant_id == account_id, Account.role == "caregiver")
    )).scalars().all()

    seen: set[UUID] = set()
    recipients: list[UUID] = []
    for rid in [*linked, *legacy]:
        if rid in seen:
            continue
        seen.add(rid)
        recipients.append(rid)
    return recipients


async def notify_interested_parties(
    session: AsyncSession,
    account_id: UUID,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
    *,
    channel: NotificationChannel,
) -> FanoutResult:
    """
    One dispatch per interested party. No recipients is a no-op.
    A failing recipient is logged and skipped; the others still go out.
    """
    result = FanoutResult(account_id=account_id)
    result.recipients = await resolve_interested_parties(session, account_id)
    if not result.recipients:
        log.info("notification_no_recipients", account_id=str(account_id))
        return result

    payload = {"account_id": str(account_id), **(metadata or {})}
    for rid in result.recipients:
        try:
            await channel.dispatch(rid, title, message, payload)
        except Exception as e:
            result.failed.append(rid)
            log.warning("notification_dispatch_failed", account_id=str(account_id), recipient_id=str(rid), error=str(e))
        else:
            result.dispatched.append(rid)
    return result
