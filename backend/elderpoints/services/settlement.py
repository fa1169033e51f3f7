from __future__ import annotations
import asyncio
from typing import Iterable, Sequence
from uuid import UUID
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from elderpoints.config import settings
from elderpoints.errors import ValidationError, NotFoundError, PartialSettlementFailure
from elderpoints.models.account import Account, utcnow
from elderpoints.models.match import Match, MatchParticipant, MatchEnd
from elderpoints.schemas.match import (
    RoundIn, ParticipantOutcome, SettlementReport, MatchDetail, MatchEndPublic, MatchParticipantPublic,
)
from elderpoints.services.grants import check_store_access
from elderpoints.services.ledger import post_entry, entry_exists, match_credit_key, match_adjustment_key
from elderpoints.services.notifications import NotificationChannel, notify_interested_parties

log = structlog.get_logger()

# ---------- pure helpers ----------

def validate_rosters(red_team_ids: Sequence[UUID], yellow_team_ids: Sequence[UUID]) -> None:
    max_size = settings.max_team_size
    for team, ids in (("red", red_team_ids), ("yellow", yellow_team_ids)):
        if not ids:
            raise ValidationError(f"{team} team must have at least one member", code="empty_roster")
        if len(ids) > max_size:
            raise ValidationError(f"{team} team has {len(ids)} members, max is {max_size}", code="roster_too_large")
        if len(set(ids)) != len(ids):
            raise ValidationError(f"{team} team lists the same account twice", code="duplicate_participant")
    both = set(red_team_ids) & set(yellow_team_ids)
    if both:
        raise ValidationError(
            "an account cannot play on both teams",
            code="duplicate_participant",
            details=sorted(str(a) for a in both),
        )


def validate_rounds(rounds: Sequence[RoundIn]) -> None:
    if not rounds:
        raise ValidationError("at least one round is required", code="no_rounds")
    missing = [i + 1 for i, r in enumerate(rounds) if not (r.evidence_url or "").strip()]
    if missing:
        # Every end needs its house snapshot before any points are written
        raise ValidationError(
            "evidence photo missing for round(s) " + ", ".join(str(n) for n in missing),
            code="EVIDENCE_REQUIRED",
            details=missing,
        )
    for r in rounds:
        if r.red_score < 0 or r.yellow_score < 0:
            raise ValidationError("round scores must be non-negative", code="invalid_score")


def team_totals(rounds: Iterable[RoundIn]) -> tuple[int, int]:
    red = yellow = 0
    for r in rounds:
        red += int(r.red_score)
        yellow += int(r.yellow_score)
    return red, yellow


def decide_winner(red_total: int, yellow_total: int) -> str | None:
    if red_total > yellow_total:
        return "red"
    if yellow_total > red_total:
        return "yellow"
    return None


def participant_result(team: str, winner: str | None) -> str:
    if winner is None:
        return "draw"
    return "win" if team == winner else "loss"


def award_for(result: str) -> int:
    return {"win": settings.award_win, "draw": settings.award_draw, "loss": settings.award_loss}[result]


def result_message(name: str, result: str, match_id: UUID, red_total: int, yellow_total: int, award: int) -> tuple[str, str]:
    score = f"{red_total}:{yellow_total}"
    if result == "win":
        return "Victory! 🏆", f"{name} won match {match_id} ({score}) and earned {award} points."
    if result == "draw":
        return "Match drawn 🥌", f"{name} drew match {match_id} ({score}) and earned {award} points."
    return "Match complete 🥌", f"{name} finished match {match_id} ({score}) and earned {award} participation points."

# ---------- persistence helpers ----------

async def _load_roster_accounts(session: AsyncSession, ids: Sequence[UUID]) -> dict[UUID, Account]:
    rows = (await session.execute(select(Account).where(Account.id.in_(list(ids))))).scalars().all()
    accounts = {a.id: a for a in rows}
    missing = [str(i) for i in ids if i not in accounts]
    if missing:
        raise NotFoundError("unknown account(s) in roster", details=missing)
    wrong = [str(a.id) for a in rows if a.role != "participant"]
    if wrong:
        raise ValidationError("only participants can play in a match", code="not_participant", details=wrong)
    return accounts


async def _persist_rounds(session: AsyncSession, match_id: UUID, rounds: Sequence[RoundIn]) -> bool:
    """Round records sit in a savepoint: losing them is logged, not fatal (totals live on Match)."""
    try:
        async with session.begin_nested():
            session.add_all([
                MatchEnd(
                    match_id=match_id,
                    end_number=r.end_number or idx + 1,
                    red_score=int(r.red_score),
                    yellow_score=int(r.yellow_score),
                    evidence_url=r.evidence_url.strip(),
                    vibe_video_url=r.vibe_video_url or None,
                ) for idx, r in enumerate(rounds)
            ])
            await session.flush()
    except SQLAlchemyError as e:
        log.warning("match_rounds_persist_failed", match_id=str(match_id), error=str(e))
        return False
    return True


async def _get_live_match(session: AsyncSession, match_id: UUID) -> Match:
    match = await session.get(Match, match_id, populate_existing=True)
    if not match or match.status == "deleted":
        raise NotFoundError(f"match {match_id} not found")
    return match


async def _match_participants(session: AsyncSession, match_id: UUID) -> list[MatchParticipant]:
    return (await session.execute(
        select(MatchParticipant).where(MatchParticipant.match_id == match_id).order_by(MatchParticipant.team, MatchParticipant.id)
    )).scalars().all()

# ---------- per-participant phase ----------

async def _credit_participant(
    sessionmaker: async_sessionmaker[AsyncSession],
    *,
    match: Match,
    participant: MatchParticipant,
    name: str,
    evidence_url: str | None,
    channel: NotificationChannel | None,
) -> ParticipantOutcome:
    """
    Own session, own commit: one participant's failure never touches another's credit.
    Interested parties hear about the result even if the credit failed; only a
    participant credited by an earlier run is not notified again.
    """
    award = award_for(participant.result)
    outcome = ParticipantOutcome(account_id=participant.account_id, team=participant.team, result=participant.result, award=award)
    try:
        async with sessionmaker() as session:
            entry, created = await post_entry(
                session,
                account_id=participant.account_id,
                kind="earned",
                honor_amount=award,
                local_amount=award,
                description=f"match {participant.result} ({match.red_total}:{match.yellow_total})",
                match_id=match.id,
                store_id=match.store_id,
                evidence_url=evidence_url,
                external_id=match_credit_key(match.id, participant.account_id),
            )
            await session.commit()
        outcome.transaction_id = entry.id
        outcome.credited = created
        outcome.already_credited = not created
    except Exception as e:
        outcome.error = f"{type(e).__name__}: {e}"
        log.error("wallet_credit_failed", match_id=str(match.id), account_id=str(participant.account_id), error=outcome.error)

    if channel is not None and not outcome.already_credited:
        title, message = result_message(name, participant.result, match.id, match.red_total, match.yellow_total, award)
        try:
            async with sessionmaker() as session:
                await notify_interested_parties(
                    session, participant.account_id, title, message,
                    {"type": "match_result", "match_id": str(match.id), "result": participant.result, "award": award},
                    channel=channel,
                )
        except Exception as e:
            log.warning("match_notification_failed", match_id=str(match.id), account_id=str(participant.account_id), error=str(e))
    return outcome


async def _credit_all(
    sessionmaker: async_sessionmaker[AsyncSession],
    match: Match,
    participants: Sequence[MatchParticipant],
    names: dict[UUID, str],
    evidence_url: str | None,
    channel: NotificationChannel | None,
) -> list[ParticipantOutcome]:
    sem = asyncio.Semaphore(max(1, settings.settlement_parallelism))

    async def one(p: MatchParticipant) -> ParticipantOutcome:
        async with sem:
            return await _credit_participant(
                sessionmaker, match=match, participant=p,
                name=names.get(p.account_id) or "Your family member",
                evidence_url=evidence_url, channel=channel,
            )

    return list(await asyncio.gather(*(one(p) for p in participants)))


def _report(match: Match, outcomes: list[ParticipantOutcome], rounds_persisted: bool = True) -> SettlementReport:
    failures = [o for o in outcomes if o.error]
    report = SettlementReport(
        match_id=match.id,
        store_id=match.store_id,
        winner=match.winner,
        red_total=match.red_total,
        yellow_total=match.yellow_total,
        revision=match.revision,
        rounds_persisted=rounds_persisted,
        results=outcomes,
        failures=failures,
    )
    if failures:
        partial = PartialSettlementFailure(match.id, failures)
        log.warning("settlement_partial_failure", match_id=str(match.id), message=partial.message, failures=partial.details)
    return report

# ---------- operations ----------

async def settle_match(
    sessionmaker: async_sessionmaker[AsyncSession],
    *,
    store_id: str,
    rounds: Sequence[RoundIn],
    red_team_ids: Sequence[UUID],
    yellow_team_ids: Sequence[UUID],
    operator: Account | None = None,
    channel: NotificationChannel | None = None,
) -> SettlementReport:
    """
    Finalize a match and apply its point consequences.

    1. validate rosters, rounds and evidence (nothing is written on failure)
    2. match + participants (+ rounds in a savepoint) committed as one write, status completed
    3. each participant credited in its own unit of work, concurrently, idempotent by (match, account)
    4. interested parties notified per participant, best-effort

    Failures in 3/4 are reported on the returned report; the match stays completed.
    """
    red_team_ids, yellow_team_ids = list(red_team_ids), list(yellow_team_ids)
    validate_rosters(red_team_ids, yellow_team_ids)
    validate_rounds(rounds)
    if operator is not None:
        check_store_access(operator, store_id)

    red_total, yellow_total = team_totals(rounds)
    winner = decide_winner(red_total, yellow_total)

    async with sessionmaker() as session:
        accounts = await _load_roster_accounts(session, red_team_ids + yellow_team_ids)
        now = utcnow()
        match = Match(
            store_id=store_id,
            status="completed",
            winner=winner,
            red_total=red_total,
            yellow_total=yellow_total,
            revision=0,
            created_by=operator.id if operator else None,
            completed_at=now,
            updated_at=now,
        )
        session.add(match)
        await session.flush()

        participants = [
            MatchParticipant(match_id=match.id, account_id=aid, team=team, result=participant_result(team, winner))
            for team, ids in (("red", red_team_ids), ("yellow", yellow_team_ids))
            for aid in ids
        ]
        session.add_all(participants)
        await session.flush()

        rounds_persisted = await _persist_rounds(session, match.id, rounds)
        await session.commit()

    log.info(
        "match_settled",
        match_id=str(match.id), store_id=store_id, winner=winner,
        red_total=red_total, yellow_total=yellow_total,
        participants=len(participants), rounds_persisted=rounds_persisted,
    )

    names = {aid: a.display_name for aid, a in accounts.items()}
    outcomes = await _credit_all(sessionmaker, match, participants, names, rounds[0].evidence_url, channel)
    return _report(match, outcomes, rounds_persisted)


async def credit_missing_participants(
    sessionmaker: async_sessionmaker[AsyncSession],
    match_id: UUID,
    *,
    operator: Account | None = None,
    channel: NotificationChannel | None = None,
) -> SettlementReport:
    """Re-run the credit phase for a completed match. Already-credited participants are skipped."""
    async with sessionmaker() as session:
        match = await _get_live_match(session, match_id)
        if operator is not None:
            check_store_access(operator, match.store_id)
        if match.status != "completed":
            raise ValidationError("match is not completed", code="match_not_completed")
        participants = await _match_participants(session, match.id)
        pending = []
        for p in participants:
            if await entry_exists(session, match_credit_key(match.id, p.account_id)) is None:
                pending.append(p)
        first_end = await session.scalar(
            select(MatchEnd.evidence_url).where(MatchEnd.match_id == match.id).order_by(MatchEnd.end_number).limit(1)
        )
        accounts = (await session.execute(
            select(Account.id, Account.display_name).where(Account.id.in_([p.account_id for p in pending]))
        )).all() if pending else []

    log.info("match_recredit", match_id=str(match_id), pending=len(pending), participants=len(participants))
    names = {aid: name for aid, name in accounts}
    outcomes = await _credit_all(sessionmaker, match, pending, names, first_end, channel)
    done = {o.account_id for o in outcomes}
    skipped = [
        ParticipantOutcome(
            account_id=p.account_id, team=p.team, result=p.result,
            award=award_for(p.result), already_credited=True,
        ) for p in participants if p.account_id not in done
    ]
    return _report(match, outcomes + skipped)


async def replace_match_ends(
    sessionmaker: async_sessionmaker[AsyncSession],
    match_id: UUID,
    *,
    rounds: Sequence[RoundIn],
    operator: Account,
    channel: NotificationChannel | None = None,
) -> SettlementReport:
    """
    Audited edit of a completed match: replace every end, recompute totals, winner and
    results, bump revision, and post a match_adjustment for each changed award.
    Participants whose original credit never landed get no adjustment; their result
    row is updated and credit_missing_participants pays the new award in full.
    """
    validate_rounds(rounds)
    red_total, yellow_total = team_totals(rounds)
    winner = decide_winner(red_total, yellow_total)

    async with sessionmaker() as session:
        match = await _get_live_match(session, match_id)
        check_store_access(operator, match.store_id)
        if match.status != "completed":
            raise ValidationError("only completed matches can be edited", code="match_not_completed")

        previous = {"winner": match.winner, "red_total": match.red_total, "yellow_total": match.yellow_total}
        participants = await _match_participants(session, match.id)
        changes: list[tuple[MatchParticipant, int]] = []
        uncredited: set[UUID] = set()
        for p in participants:
            old_award = award_for(p.result)
            p.result = participant_result(p.team, winner)
            if await entry_exists(session, match_credit_key(match.id, p.account_id)) is None:
                uncredited.add(p.account_id)
                continue
            delta = award_for(p.result) - old_award
            if delta:
                changes.append((p, delta))

        await session.execute(delete(MatchEnd).where(MatchEnd.match_id == match.id))
        match.red_total = red_total
        match.yellow_total = yellow_total
        match.winner = winner
        match.revision = (match.revision or 0) + 1
        match.updated_at = utcnow()
        await session.flush()
        rounds_persisted = await _persist_rounds(session, match.id, rounds)
        await session.commit()

    log.info(
        "match_ends_replaced",
        match_id=str(match.id), operator_id=str(operator.id), revision=match.revision,
        previous=previous, winner=winner, red_total=red_total, yellow_total=yellow_total,
        rounds=len(rounds), adjustments=len(changes), uncredited=len(uncredited),
    )

    sem = asyncio.Semaphore(max(1, settings.settlement_parallelism))

    async def adjust(p: MatchParticipant, delta: int) -> ParticipantOutcome:
        outcome = ParticipantOutcome(account_id=p.account_id, team=p.team, result=p.result, award=award_for(p.result))
        async with sem:
            try:
                async with sessionmaker() as s:
                    entry, created = await post_entry(
                        s,
                        account_id=p.account_id,
                        kind="match_adjustment",
                        honor_amount=delta,
                        local_amount=delta,
                        description=f"match edit rev{match.revision}: {p.result} ({red_total}:{yellow_total})",
                        match_id=match.id,
                        store_id=match.store_id,
                        operator_id=operator.id,
                        external_id=match_adjustment_key(match.id, match.revision, p.account_id),
                    )
                    await s.commit()
                outcome.transaction_id = entry.id
                outcome.credited = created
            except Exception as e:
                outcome.error = f"{type(e).__name__}: {e}"
                log.error("match_adjustment_failed", match_id=str(match.id), account_id=str(p.account_id), error=outcome.error)
        return outcome

    outcomes = list(await asyncio.gather(*(adjust(p, d) for p, d in changes)))
    changed = {o.account_id for o in outcomes}
    unchanged = [
        ParticipantOutcome(
            account_id=p.account_id, team=p.team, result=p.result, award=award_for(p.result),
            already_credited=p.account_id not in uncredited,
        ) for p in participants if p.account_id not in changed
    ]

    if channel is not None:
        for o in outcomes:
            if not o.credited:
                continue
            try:
                async with sessionmaker() as s:
                    await notify_interested_parties(
                        s, o.account_id, "Match result corrected",
                        f"Match {match.id} was corrected to {red_total}:{yellow_total}; result is now {o.result}.",
                        {"type": "match_result", "match_id": str(match.id), "result": o.result, "revision": match.revision},
                        channel=channel,
                    )
            except Exception as e:
                log.warning("match_notification_failed", match_id=str(match.id), account_id=str(o.account_id), error=str(e))

    return _report(match, outcomes + unchanged, rounds_persisted)


async def soft_delete_match(session: AsyncSession, match_id: UUID, *, operator: Account) -> Match:
    """Mark a match deleted. Credited points stay; corrections go through replace_match_ends."""
    match = await _get_live_match(session, match_id)
    check_store_access(operator, match.store_id)
    match.status = "deleted"
    match.updated_at = utcnow()
    await session.commit()
    log.info("match_deleted", match_id=str(match_id), operator_id=str(operator.id))
    return match


async def get_match_detail(session: AsyncSession, match_id: UUID) -> MatchDetail:
    match = await _get_live_match(session, match_id)
    ends = (await session.execute(
        select(MatchEnd).where(MatchEnd.match_id == match.id).order_by(MatchEnd.end_number)
    )).scalars().all()
    participants = await _match_participants(session, match.id)
    return MatchDetail(
        id=match.id, store_id=match.store_id, status=match.status, winner=match.winner,
        red_total=match.red_total, yellow_total=match.yellow_total, revision=match.revision,
        created_by=match.created_by, created_at=match.created_at, completed_at=match.completed_at,
        ends=[
            MatchEndPublic(
                end_number=e.end_number, red_score=e.red_score, yellow_score=e.yellow_score,
                evidence_url=e.evidence_url, vibe_video_url=e.vibe_video_url,
            ) for e in ends
        ],
        participants=[MatchParticipantPublic(account_id=p.account_id, team=p.team, result=p.result) for p in participants],
    )
