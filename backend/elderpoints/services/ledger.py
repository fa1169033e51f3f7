from __future__ import annotations
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from elderpoints.models.transaction import Transaction
from elderpoints.models.wallet import Wallet
from elderpoints.schemas.wallet import TransactionPublic, WalletSnapshot, ReconcileReport
from elderpoints.services.wallet import get_or_create_wallet, adjust_wallet

log = structlog.get_logger()

# ---------- idempotency keys ----------

def match_credit_key(match_id: UUID, account_id: UUID) -> str:
    return f"match:{match_id}:{account_id}"

def match_adjustment_key(match_id: UUID, revision: int, account_id: UUID) -> str:
    return f"match:{match_id}:rev{revision}:{account_id}"

# ---------- writes ----------

async def entry_exists(session: AsyncSession, external_id: str) -> Transaction | None:
    return await session.scalar(select(Transaction).where(Transaction.external_id == external_id))


async def post_entry(
    session: AsyncSession,
    *,
    account_id: UUID,
    kind: str,
    honor_amount: int = 0,
    local_amount: int = 0,
    description: str | None = None,
    match_id: UUID | None = None,
    store_id: str | None = None,
    operator_id: UUID | None = None,
    evidence_url: str | None = None,
    external_id: str | None = None,
) -> tuple[Transaction, bool]:
    """
    Mutate the wallet and append the matching transaction in one savepoint.
    Idempotent by external_id: returns (existing, False) if the key was already posted,
    otherwise (new_entry, True). The caller owns the commit.
    """
    if external_id:
        exists = await entry_exists(session, external_id)
        if exists:
            return exists, False

    await get_or_create_wallet(session, account_id)

    try:
        async with session.begin_nested():
            wallet = await adjust_wallet(session, account_id, honor_delta=honor_amount, local_delta=local_amount)
            entry = Transaction(
                account_id=account_id,
                kind=kind,
                honor_amount=int(honor_amount),
                local_amount=int(local_amount),
                honor_after=wallet.honor_balance,
                local_after=wallet.local_balance,
                description=description,
                match_id=match_id,
                store_id=store_id,
                operator_id=operator_id,
                evidence_url=evidence_url,
                external_id=external_id,
            )
            session.add(entry)
            await session.flush()
    except IntegrityError:
        if not external_id:
            raise
        # Same key posted concurrently; the savepoint undid our wallet change
        exists = await entry_exists(session, external_id)
        if exists is None:
            raise
        return exists, False

    log.info(
        "ledger_entry_posted",
        account_id=str(account_id), kind=kind,
        honor_amount=honor_amount, local_amount=local_amount,
        external_id=external_id,
    )
    return entry, True

# ---------- reads ----------

def to_public(e: Transaction) -> TransactionPublic:
    return TransactionPublic(
        id=e.id, kind=e.kind,
        honor_amount=int(e.honor_amount), local_amount=int(e.local_amount),
        honor_after=int(e.honor_after), local_after=int(e.local_after),
        description=e.description, match_id=e.match_id, store_id=e.store_id,
        operator_id=e.operator_id, evidence_url=e.evidence_url, created_at=e.created_at,
    )


async def list_transactions(session: AsyncSession, account_id: UUID, limit: int = 100) -> list[Transaction]:
    return (await session.execute(
        select(Transaction)
        .where(Transaction.account_id == account_id)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
    )).scalars().all()


async def wallet_snapshot(session: AsyncSession, account_id: UUID, limit: int = 100) -> WalletSnapshot:
    """Balances plus recent history. A missing wallet reads as zero balances (no lazy create on read)."""
    wallet = await session.get(Wallet, account_id, populate_existing=True)
    rows = await list_transactions(session, account_id, limit=limit)
    return WalletSnapshot(
        account_id=account_id,
        honor_balance=int(wallet.honor_balance) if wallet else 0,
        local_balance=int(wallet.local_balance) if wallet else 0,
        transactions=[to_public(r) for r in rows],
    )


async def reconcile_wallet(session: AsyncSession, account_id: UUID) -> ReconcileReport:
    """Check Σ(amount) per currency against the stored balance."""
    wallet = await session.get(Wallet, account_id, populate_existing=True)
    honor_sum, local_sum, count = (await session.execute(
        select(
            func.coalesce(func.sum(Transaction.honor_amount), 0),
            func.coalesce(func.sum(Transaction.local_amount), 0),
            func.count(Transaction.id),
        ).where(Transaction.account_id == account_id)
    )).one()

    honor_balance = int(wallet.honor_balance) if wallet else 0
    local_balance = int(wallet.local_balance) if wallet else 0
    consistent = honor_balance == int(honor_sum) and local_balance == int(local_sum)
    if not consistent:
        log.warning(
            "wallet_reconcile_mismatch",
            account_id=str(account_id),
            honor_balance=honor_balance, honor_ledger_sum=int(honor_sum),
            local_balance=local_balance, local_ledger_sum=int(local_sum),
        )
    return ReconcileReport(
        account_id=account_id,
        honor_balance=honor_balance,
        local_balance=local_balance,
        honor_ledger_sum=int(honor_sum),
        local_ledger_sum=int(local_sum),
        transaction_count=int(count),
        consistent=consistent,
    )
