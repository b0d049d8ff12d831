"""
Result derivation for completed brackets.

Runs exactly once per bracket, inside the bracket's critical section, when
the last match completes. Ranks follow elimination round:

  champion                  -> 1, GOLD
  final loser               -> 2, SILVER
  semifinal losers          -> 3, BRONZE (shared; no third-place playoff)
  losers k rounds from end  -> 2^k + 1 (band "2^k+1 - 2^(k+1)"), no medal

Results are never updated in place; a corrected bracket is regenerated
(delete and recreate).
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete
from sqlmodel import Session, select

from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.match import Match, MatchStatus
from dojo_tournaments.models.result import Medal, Result
from dojo_tournaments.services.bracket_lock import bracket_transaction
from dojo_tournaments.services.errors import DuplicateDerivation, InvalidTransition

logger = logging.getLogger(__name__)

CHAMPION_LABEL = "Champion"


@dataclass
class ParticipantRecord:
    participant_id: int
    total_matches: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    eliminated_round_number: Optional[int] = None
    eliminated_in_round: Optional[str] = None
    eliminated_by_id: Optional[int] = None


def placement_for(rounds_from_end: int) -> Tuple[int, str, Optional[Medal]]:
    """(final_rank, placement label, medal) for a loser `rounds_from_end` rounds before the final."""
    if rounds_from_end == 0:
        return 2, "2", Medal.SILVER
    if rounds_from_end == 1:
        return 3, "3", Medal.BRONZE
    low = 2**rounds_from_end + 1
    high = 2 ** (rounds_from_end + 1)
    return low, f"{low}-{high}", None


def bracket_matches(session: Session, bracket_id: int) -> List[Match]:
    return session.exec(
        select(Match)
        .where(Match.bracket_id == bracket_id)
        .order_by(Match.round_number, Match.match_number)
        .execution_options(populate_existing=True)
    ).all()


def has_results(session: Session, bracket_id: int) -> bool:
    return session.exec(select(Result.id).where(Result.bracket_id == bracket_id)).first() is not None


def bracket_results(session: Session, bracket_id: int) -> List[Result]:
    return session.exec(
        select(Result).where(Result.bracket_id == bracket_id).order_by(Result.final_rank, Result.participant_id)
    ).all()


def tally_records(matches: Sequence[Match]) -> Dict[int, ParticipantRecord]:
    """Per-participant win/loss record over every match that references them."""
    records: Dict[int, ParticipantRecord] = {}
    for match in matches:
        for fighter_id in match.fighter_ids():
            record = records.setdefault(fighter_id, ParticipantRecord(participant_id=fighter_id))
            if match.status != MatchStatus.COMPLETED:
                continue
            record.total_matches += 1
            if match.winner_id == fighter_id:
                record.matches_won += 1
            else:
                record.matches_lost += 1
                record.eliminated_round_number = match.round_number
                record.eliminated_in_round = match.round_name
                record.eliminated_by_id = match.winner_id
    return records


def derive_results(session: Session, bracket: Bracket, matches: Optional[Sequence[Match]] = None) -> List[Result]:
    """
    Create Result rows for every participant who appeared in a match.

    Flushes but does not commit; call inside `bracket_transaction`.
    Raises DuplicateDerivation when the bracket already has results.
    """
    if has_results(session, bracket.id):
        raise DuplicateDerivation("results already exist for bracket", bracket_id=bracket.id)

    if matches is None:
        matches = bracket_matches(session, bracket.id)
    if not matches:
        raise InvalidTransition("bracket has no matches", bracket_id=bracket.id)
    incomplete = [m for m in matches if m.status != MatchStatus.COMPLETED]
    if incomplete:
        raise InvalidTransition(
            f"Cannot calculate results until all matches are completed ({len(incomplete)} remaining)",
            bracket_id=bracket.id,
        )

    total_rounds = max(m.round_number for m in matches)
    finals = [m for m in matches if m.round_number == total_rounds]
    if len(finals) != 1 or finals[0].winner_id is None:
        raise InvalidTransition("bracket has no decided final", bracket_id=bracket.id)
    champion_id = finals[0].winner_id

    records = tally_records(matches)
    results: List[Result] = []
    for participant_id, record in records.items():
        if participant_id == champion_id:
            rank, placement, medal = 1, "1", Medal.GOLD
            eliminated_in_round, eliminated_by = CHAMPION_LABEL, None
        else:
            rank, placement, medal = placement_for(total_rounds - record.eliminated_round_number)
            eliminated_in_round, eliminated_by = record.eliminated_in_round, record.eliminated_by_id
        results.append(
            Result(
                event_id=bracket.event_id,
                bracket_id=bracket.id,
                participant_id=participant_id,
                category_name=bracket.category_name,
                final_rank=rank,
                placement=placement,
                medal=medal,
                total_matches=record.total_matches,
                matches_won=record.matches_won,
                matches_lost=record.matches_lost,
                eliminated_in_round=eliminated_in_round,
                eliminated_by_id=eliminated_by,
            )
        )

    results.sort(key=lambda r: (r.final_rank, r.participant_id))
    session.add_all(results)
    session.flush()
    logger.info(
        "Derived %d result(s) for bracket %s '%s' (champion participant %s)",
        len(results),
        bracket.id,
        bracket.category_name,
        champion_id,
    )
    return results


def complete_bracket_if_finished(session: Session, bracket: Bracket) -> List[Result]:
    """
    Mark the bracket COMPLETED and derive results once every match is done.

    Idempotent: returns [] when matches remain or results already exist.
    Must run inside `bracket_transaction` for the bracket.
    """
    matches = bracket_matches(session, bracket.id)
    if not matches or any(m.status != MatchStatus.COMPLETED for m in matches):
        return []

    if bracket.status != BracketStatus.COMPLETED:
        bracket.status = BracketStatus.COMPLETED
        bracket.completed_at = datetime.utcnow()
        if bracket.started_at is None:
            bracket.started_at = bracket.completed_at
        session.add(bracket)
        logger.info("Bracket %s '%s' completed", bracket.id, bracket.category_name)

    try:
        return derive_results(session, bracket, matches)
    except DuplicateDerivation:
        logger.debug("Results already exist for bracket %s; skipping derivation", bracket.id)
        return []


def ensure_results(session: Session, bracket_id: int) -> Tuple[List[Result], bool]:
    """Results for a completed bracket, deriving them if missing. Returns (results, created)."""
    with bracket_transaction(session, bracket_id) as bracket:
        created = complete_bracket_if_finished(session, bracket)
        if not created and not has_results(session, bracket_id):
            # Not finished: surface why
            derive_results(session, bracket)
    return bracket_results(session, bracket_id), bool(created)


def regenerate_results(session: Session, bracket_id: int) -> List[Result]:
    """Delete and recreate results for a completed bracket after a correction."""
    with bracket_transaction(session, bracket_id) as bracket:
        if bracket.status != BracketStatus.COMPLETED:
            raise InvalidTransition(
                f"results can only be regenerated for a COMPLETED bracket, not {BracketStatus(bracket.status).value}",
                bracket_id=bracket_id,
            )
        removed = session.execute(delete(Result).where(Result.bracket_id == bracket_id)).rowcount
        session.flush()
        derive_results(session, bracket)
        logger.info("Regenerated results for bracket %s (%s removed)", bracket_id, removed)
    return bracket_results(session, bracket_id)
