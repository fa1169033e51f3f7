from __future__ import annotations
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from elderpoints.errors import InsufficientFunds, NotFoundError
from elderpoints.models.account import Account, utcnow
from elderpoints.models.wallet import Wallet

# Mutating functions here are only called from services.ledger.post_entry,
# which settlement and grants go through. Routes read via services.ledger.

log = structlog.get_logger()


async def get_or_create_wallet(session: AsyncSession, account_id: UUID) -> Wallet:
    """Return the account's wallet, creating an empty one on first need (race-safe)."""
    wallet = await session.get(Wallet, account_id)
    if wallet:
        return wallet

    exists = await session.scalar(select(Account.id).where(Account.id == account_id))
    if not exists:
        raise NotFoundError(f"account {account_id} not found")

    try:
        async with session.begin_nested():
            wallet = Wallet(account_id=account_id, honor_balance=0, local_balance=0)
            session.add(wallet)
            await session.flush()
    except IntegrityError:
        # Concurrent creator won; use theirs
        wallet = await session.get(Wallet, account_id, populate_existing=True)
    else:
        log.info("wallet_created", account_id=str(account_id))
    return wallet


async def adjust_wallet(
    session: AsyncSession,
    account_id: UUID,
    *,
    honor_delta: int = 0,
    local_delta: int = 0,
) -> Wallet:
    """
    Atomically apply signed deltas to both balances in a single conditional UPDATE.
    Raises InsufficientFunds (and changes nothing) if either balance would go negative.
    """
    await get_or_create_wallet(session, account_id)

    stmt = (
        update(Wallet)
        .where(
            Wallet.account_id == account_id,
            Wallet.honor_balance + honor_delta >= 0,
            Wallet.local_balance + local_delta >= 0,
        )
        .values(
            honor_balance=Wallet.honor_balance + honor_delta,
            local_balance=Wallet.local_balance + local_delta,
            updated_at=utcnow(),
        )
        .returning(Wallet)
        .execution_options(synchronize_session=False)
    )
    wallet = (await session.scalars(stmt, execution_options={"populate_existing": True})).one_or_none()
    if wallet is None:
        current = await session.get(Wallet, account_id, populate_existing=True)
        raise InsufficientFunds(
            f"adjustment honor {honor_delta:+d}/local {local_delta:+d} exceeds "
            f"balance honor {current.honor_balance}/local {current.local_balance}",
            details={"honor_balance": current.honor_balance, "local_balance": current.local_balance},
        )
    return wallet
