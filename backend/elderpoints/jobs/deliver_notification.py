from __future__ import annotations
import asyncio
from uuid import UUID
import httpx
import structlog
from elderpoints.config import settings
from elderpoints.db import SessionLocal
from elderpoints.models.account import Account, utcnow
from elderpoints.models.notification import Notification

log = structlog.get_logger()

async def _push_line(line_user_id: str, title: str, message: str) -> None:
    async with httpx.AsyncClient(timeout=settings.line_timeout_seconds) as client:
        r = await client.post(
            settings.line_push_url,
            headers={"Authorization": f"Bearer {settings.line_channel_access_token}"},
            json={"to": line_user_id, "messages": [{"type": "text", "text": f"{title}\n\n{message}"}]},
        )
        r.raise_for_status()

async def _run(notification_id: str, recipient_id: str, title: str, message: str, metadata: dict):
    async with SessionLocal() as session:
        n = await session.get(Notification, UUID(notification_id))
        if n and n.status == "sent":
            return  # retried after a successful push
        if n is None:
            n = Notification(
                id=UUID(notification_id),
                recipient_id=UUID(recipient_id),
                title=title[:120],
                message=message,
                type=str(metadata.get("type") or "info"),
                meta_json=metadata,
                status="pending",
            )
            session.add(n)
            await session.commit()

        recipient = await session.get(Account, UUID(recipient_id))
        line_user_id = recipient.line_user_id if recipient else None
        if line_user_id and settings.line_channel_access_token:
            try:
                await _push_line(line_user_id, title, message)
            except httpx.HTTPError as e:
                n.status = "failed"
                await session.commit()
                log.warning("notification_push_failed", notification_id=notification_id, error=str(e))
                raise  # let RQ retry with backoff
        else:
            log.info("notification_inbox_only", notification_id=notification_id, recipient_id=recipient_id)

        n.status = "sent"
        n.sent_at = utcnow()
        await session.commit()

def deliver_notification(notification_id: str, recipient_id: str, title: str, message: str, metadata: dict | None = None):
    # RQ entry point (sync); run the async coroutine
    asyncio.run(_run(notification_id, recipient_id, title, message, metadata or {}))
