from __future__ import annotations
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from elderpoints.config import settings
from elderpoints.errors import ValidationError, PermissionDeniedError, NotFoundError
from elderpoints.models.account import Account, STAFF_ROLES
from elderpoints.schemas.points import PointsResult
from elderpoints.services.ledger import post_entry
from elderpoints.services.notifications import NotificationChannel, notify_interested_parties

log = structlog.get_logger()


def check_store_access(operator: Account, store_id: str) -> None:
    """Operators act only within their own store; administrators act anywhere."""
    if operator.role not in STAFF_ROLES:
        raise PermissionDeniedError("only operators or administrators can do this")
    if operator.role == "operator" and operator.store_id != store_id:
        raise PermissionDeniedError("operator is not affiliated with this store")


async def _load_participant(session: AsyncSession, account_id: UUID, store_id: str) -> Account:
    target = await session.get(Account, account_id)
    if not target:
        raise NotFoundError(f"account {account_id} not found")
    if target.role != "participant":
        raise ValidationError("points can only be granted to participants", code="not_participant")
    if target.store_id != store_id:
        raise PermissionDeniedError("participant belongs to another store")
    return target


async def grant_points(
    session: AsyncSession,
    *,
    account_id: UUID,
    local_amount: int,
    reason: str,
    store_id: str,
    operator: Account,
    channel: NotificationChannel | None = None,
    external_id: str | None = None,
) -> PointsResult:
    """
    Operator-initiated credit of the local balance only; honor is never touched.
    Validation and permission checks all run before any write.
    """
    if isinstance(local_amount, bool) or not isinstance(local_amount, int):
        raise ValidationError("local_amount must be an integer", code="invalid_amount")
    if not 1 <= local_amount <= settings.grant_max_points:
        raise ValidationError(f"local_amount must be between 1 and {settings.grant_max_points}", code="invalid_amount")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required", code="invalid_reason")
    if len(reason) > settings.grant_reason_max_len:
        raise ValidationError(f"reason must be at most {settings.grant_reason_max_len} characters", code="invalid_reason")

    check_store_access(operator, store_id)
    target = await _load_participant(session, account_id, store_id)

    entry, created = await post_entry(
        session,
        account_id=target.id,
        kind="local_grant",
        local_amount=local_amount,
        description=reason,
        store_id=store_id,
        operator_id=operator.id,
        external_id=f"grant:{operator.id}:{external_id}" if external_id else None,
    )
    if not created and (entry.account_id != target.id or entry.local_amount != local_amount):
        raise ValidationError(
            "idempotency key was already used for a different grant",
            code="idempotency_conflict",
            details={"account_id": str(entry.account_id), "local_amount": int(entry.local_amount)},
        )
    await session.commit()
    log.info(
        "points_granted",
        account_id=str(target.id), operator_id=str(operator.id), store_id=store_id,
        local_amount=local_amount, new_balance=entry.local_after, duplicate=not created,
    )

    if channel is not None and created:
        name = target.display_name or "Your family member"
        try:
            await notify_interested_parties(
                session, target.id,
                "Points received",
                f"{name} received {local_amount} points: {reason}",
                {"type": "points_update", "transaction_id": str(entry.id), "points": local_amount},
                channel=channel,
            )
        except Exception as e:
            log.warning("grant_notification_failed", account_id=str(target.id), error=str(e))

    return PointsResult(
        account_id=target.id,
        transaction_id=entry.id,
        points=local_amount,
        new_balance=entry.local_after,
        honor_balance=entry.honor_after,
    )


async def redeem_points(
    session: AsyncSession,
    *,
    account_id: UUID,
    local_amount: int,
    description: str,
    operator: Account,
) -> PointsResult:
    """Debit the local balance (shop redemption). Raises InsufficientFunds without mutating."""
    if local_amount <= 0:
        raise ValidationError("local_amount must be > 0", code="invalid_amount")
    if operator.role not in STAFF_ROLES:
        raise PermissionDeniedError("only operators or administrators can do this")
    target = await session.get(Account, account_id)
    if not target:
        raise NotFoundError(f"account {account_id} not found")
    if target.role != "participant":
        raise ValidationError("only participants hold redeemable points", code="not_participant")
    check_store_access(operator, target.store_id)

    entry, _ = await post_entry(
        session,
        account_id=target.id,
        kind="spent",
        local_amount=-int(local_amount),
        description=description,
        store_id=target.store_id,
        operator_id=operator.id,
    )
    await session.commit()
    log.info("points_redeemed", account_id=str(target.id), operator_id=str(operator.id), local_amount=local_amount, new_balance=entry.local_after)
    return PointsResult(
        account_id=target.id,
        transaction_id=entry.id,
        points=-int(local_amount),
        new_balance=entry.local_after,
        honor_balance=entry.honor_after,
    )
