"""
Single-elimination bracket construction.

Seeding: seed 1 is the first registrant. Entrants are laid out in standard
bracket-fold order so that, if chalk holds, seed 1 meets seed 2 in the
final. The bracket is padded to the next power of two; padding seeds are
byes, so the highest seeds receive the byes.

Byes never become Match rows. A bye recipient is written straight into its
round-2 slot, which keeps the real match count at N - 1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, update
from sqlmodel import Session, select

from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.event import Event
from dojo_tournaments.models.match import SLOT_A, SLOT_B, Match, MatchStatus
from dojo_tournaments.models.participant import ApprovalStatus, Participant
from dojo_tournaments.models.result import Result
from dojo_tournaments.services.bracket_lock import registry as bracket_locks
from dojo_tournaments.services.category_classifier import (
    CategoryKey,
    ExcludedParticipant,
    categorize_roster,
)
from dojo_tournaments.services.errors import InsufficientParticipants, InvalidTransition, NotFound

logger = logging.getLogger(__name__)


@dataclass
class PlannedMatch:
    round_number: int
    match_number: int  # 1-based position within the round
    fighter_a: Optional[int] = None
    fighter_b: Optional[int] = None
    next_index: Optional[int] = None  # index into BracketPlan.matches
    next_slot: Optional[str] = None


@dataclass
class BracketPlan:
    entrant_count: int
    bracket_size: int
    total_rounds: int
    matches: List[PlannedMatch]
    bye_recipients: List[int] = field(default_factory=list)

    @property
    def final(self) -> PlannedMatch:
        return self.matches[-1]

    def adjacency(self) -> Dict[int, Optional[int]]:
        """matchIndex -> nextMatchIndex (None for the final)."""
        return {i: m.next_index for i, m in enumerate(self.matches)}


def next_power_of_two(n: int) -> int:
    size = 1
    while size < n:
        size *= 2
    return size


def round_name(round_number: int, total_rounds: int) -> str:
    rounds_from_end = total_rounds - round_number
    if rounds_from_end == 0:
        return "Final"
    if rounds_from_end == 1:
        return "Semi Finals"
    if rounds_from_end == 2:
        return "Quarter Finals"
    return f"Round {round_number}"


def bracket_fold_positions(n: int) -> List[int]:
    """Standard bracket-fold positions for *n* entries (n a power of two).

    Returns a flat list of seed numbers in bracket position order.
    Consecutive pairs indicate which seeds meet in round 1:
      4-entry  -> [1, 4, 2, 3]
      8-entry  -> [1, 8, 4, 5, 3, 6, 2, 7]
    """
    if n == 1:
        return [1]
    if n == 2:
        return [1, 2]

    half = bracket_fold_positions(n // 2)

    expanded: List[int] = []
    for s in half:
        expanded.append(s)
        expanded.append(n + 1 - s)

    mid = len(expanded) // 2
    top = expanded[:mid]
    bot = expanded[mid:]
    if len(bot) >= 4:
        bot = bot[:-4] + bot[-2:] + bot[-4:-2]

    return top + bot


def plan_bracket(entrant_ids: Sequence[int]) -> BracketPlan:
    """Lay out a single-elimination bracket for entrants in seed order."""
    n = len(entrant_ids)
    if n < 2:
        raise InsufficientParticipants(f"a bracket needs at least 2 participants, got {n}")

    size = next_power_of_two(n)
    total_rounds = size.bit_length() - 1

    def seed_to_entrant(seed: int) -> Optional[int]:
        return entrant_ids[seed - 1] if seed <= n else None

    slots = [seed_to_entrant(seed) for seed in bracket_fold_positions(size)]

    # Rounds 2..R are always real: a round-1 pair can never be bye-vs-bye
    # because fewer than half the slots are byes.
    index_by_position: Dict[Tuple[int, int], int] = {}
    matches: List[PlannedMatch] = []
    bye_recipients: List[int] = []
    pending_r2: Dict[Tuple[int, str], int] = {}

    for pos in range(size // 2):
        a, b = slots[2 * pos], slots[2 * pos + 1]
        if a is not None and b is not None:
            index_by_position[(1, pos + 1)] = len(matches)
            matches.append(PlannedMatch(round_number=1, match_number=pos + 1, fighter_a=a, fighter_b=b))
        else:
            recipient = a if a is not None else b
            bye_recipients.append(recipient)
            pending_r2[(pos // 2 + 1, SLOT_A if pos % 2 == 0 else SLOT_B)] = recipient

    for rnd in range(2, total_rounds + 1):
        for pos in range(size >> rnd):
            planned = PlannedMatch(round_number=rnd, match_number=pos + 1)
            if rnd == 2:
                planned.fighter_a = pending_r2.get((pos + 1, SLOT_A))
                planned.fighter_b = pending_r2.get((pos + 1, SLOT_B))
            index_by_position[(rnd, pos + 1)] = len(matches)
            matches.append(planned)

    # Forward links: (round r, position p) feeds (round r+1, ceil(p/2)), odd positions into slot A
    for planned in matches:
        if planned.round_number == total_rounds:
            continue
        target = index_by_position[(planned.round_number + 1, (planned.match_number + 1) // 2)]
        planned.next_index = target
        planned.next_slot = SLOT_A if planned.match_number % 2 == 1 else SLOT_B

    return BracketPlan(
        entrant_count=n,
        bracket_size=size,
        total_rounds=total_rounds,
        matches=matches,
        bye_recipients=bye_recipients,
    )


def build_bracket(
    session: Session,
    event_id: int,
    category: CategoryKey,
    participants: Sequence[Participant],
    commit: bool = True,
) -> Bracket:
    """
    Persist a PENDING bracket and its SCHEDULED matches for one category.

    Participants are taken in the given (registration) order. All rows are
    written in the caller's transaction; with commit=False the caller owns
    the commit.
    """
    plan = plan_bracket([p.id for p in participants])

    bracket = Bracket(
        event_id=event_id,
        category_age=category.age,
        category_weight=category.weight,
        category_belt=category.belt,
        category_name=category.name,
        total_participants=plan.entrant_count,
        bracket_size=plan.bracket_size,
        total_rounds=plan.total_rounds,
        status=BracketStatus.PENDING,
    )
    session.add(bracket)
    session.flush()

    rows: List[Match] = []
    for planned in plan.matches:
        row = Match(
            bracket_id=bracket.id,
            round_number=planned.round_number,
            round_name=round_name(planned.round_number, plan.total_rounds),
            match_number=planned.match_number,
            fighter_a_id=planned.fighter_a,
            fighter_b_id=planned.fighter_b,
            status=MatchStatus.SCHEDULED,
            next_match_slot=planned.next_slot,
        )
        session.add(row)
        rows.append(row)
    session.flush()

    for planned, row in zip(plan.matches, rows):
        if planned.next_index is not None:
            row.next_match_id = rows[planned.next_index].id
            session.add(row)

    if commit:
        session.commit()
        session.refresh(bracket)
    else:
        session.flush()

    logger.info(
        "Built bracket %s '%s': %d entrants, size %d, %d rounds, %d matches, %d byes",
        bracket.id,
        bracket.category_name,
        plan.entrant_count,
        plan.bracket_size,
        plan.total_rounds,
        len(rows),
        len(plan.bye_recipients),
    )
    return bracket


# ============================================================================
# Event-wide generation
# ============================================================================


@dataclass
class SkippedCategory:
    category_name: str
    participant_ids: List[int]
    reason: str


@dataclass
class GenerationReport:
    event_id: int
    brackets: List[Bracket] = field(default_factory=list)
    excluded: List[ExcludedParticipant] = field(default_factory=list)
    skipped: List[SkippedCategory] = field(default_factory=list)


def approved_roster(session: Session, event_id: int) -> List[Participant]:
    """Approved participants in registration order."""
    return session.exec(
        select(Participant)
        .where(
            Participant.event_id == event_id,
            Participant.approval_status == ApprovalStatus.APPROVED,
        )
        .order_by(Participant.registered_at, Participant.id)
    ).all()


def delete_event_brackets(session: Session, event_id: int) -> List[int]:
    """Remove results, matches and brackets of an event. Returns the removed ids. Caller commits."""
    bracket_ids = list(session.exec(select(Bracket.id).where(Bracket.event_id == event_id)).all())
    if not bracket_ids:
        return []
    session.execute(delete(Result).where(Result.bracket_id.in_(bracket_ids)))
    session.execute(update(Match).where(Match.bracket_id.in_(bracket_ids)).values(next_match_id=None))
    session.execute(delete(Match).where(Match.bracket_id.in_(bracket_ids)))
    session.execute(delete(Bracket).where(Bracket.id.in_(bracket_ids)))
    return bracket_ids


def generate_event_brackets(session: Session, event_id: int) -> GenerationReport:
    """
    Categorise the approved roster and build one bracket per category.

    Regeneration replaces every bracket of the event and is refused once
    any bracket has left PENDING. Single-entrant categories are reported
    as skipped. Everything is written in one transaction.
    """
    event = session.get(Event, event_id)
    if not event:
        raise NotFound("Event not found", event_id=event_id)

    started = session.exec(
        select(Bracket).where(Bracket.event_id == event_id, Bracket.status != BracketStatus.PENDING)
    ).first()
    if started:
        raise InvalidTransition(
            f"bracket '{started.category_name}' is {BracketStatus(started.status).value}; brackets cannot be regenerated",
            event_id=event_id,
            bracket_id=started.id,
        )

    participants = approved_roster(session, event_id)
    if not participants:
        raise InsufficientParticipants("No approved participants found", event_id=event_id)

    report = GenerationReport(event_id=event_id)
    try:
        removed = delete_event_brackets(session, event_id)
        if removed:
            logger.info("Removed %d existing bracket(s) for event %s", len(removed), event_id)

        roster = categorize_roster(participants, event.start_date, event.split_by_belt)
        report.excluded = roster.excluded

        excluded_ids = {e.participant_id for e in roster.excluded}
        for participant in participants:
            if participant.id in excluded_ids and not participant.category_override:
                participant.category_age = None
                participant.category_weight = None
                participant.category_belt = None
                session.add(participant)

        for key, members in roster.groups.items():
            for participant in members:
                participant.category_age = key.age
                participant.category_weight = key.weight
                participant.category_belt = key.belt
                session.add(participant)

            if len(members) < 2:
                report.skipped.append(
                    SkippedCategory(
                        category_name=key.name,
                        participant_ids=[p.id for p in members],
                        reason="single entrant",
                    )
                )
                logger.warning("Skipping category '%s' for event %s: single entrant", key.name, event_id)
                continue

            report.brackets.append(build_bracket(session, event_id, key, members, commit=False))

        session.commit()
    except Exception:
        session.rollback()
        raise

    for bracket in report.brackets:
        session.refresh(bracket)

    rebuilt_ids = {b.id for b in report.brackets}
    for bracket_id in removed:
        if bracket_id not in rebuilt_ids:
            bracket_locks.discard(bracket_id)

    logger.info(
        "Generated %d bracket(s) for event %s (%d excluded, %d skipped)",
        len(report.brackets),
        event_id,
        len(report.excluded),
        len(report.skipped),
    )
    return report


def mark_started(bracket: Bracket) -> None:
    if bracket.status == BracketStatus.PENDING:
        bracket.status = BracketStatus.IN_PROGRESS
        bracket.started_at = datetime.utcnow()
