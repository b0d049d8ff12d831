"""
Match progression: start matches, record outcomes, advance winners.

Match state machine:   SCHEDULED -> LIVE -> COMPLETED  (LIVE is skippable)
Bracket state machine: PENDING -> IN_PROGRESS -> COMPLETED

Every mutation runs inside the bracket's critical section. Recording the
last outcome of a bracket completes it and derives results in the same
transaction, so concurrent score reports cannot derive twice or skip it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.match import SLOT_A, SLOT_B, Match, MatchStatus
from dojo_tournaments.models.result import Result
from dojo_tournaments.services.bracket_builder import mark_started
from dojo_tournaments.services.bracket_lock import bracket_transaction
from dojo_tournaments.services.errors import InvalidTransition, InvalidWinner, NotFound
from dojo_tournaments.services.result_deriver import complete_bracket_if_finished

logger = logging.getLogger(__name__)


@dataclass
class OutcomeReport:
    match: Match
    bracket_status: str
    advanced_to_match_id: Optional[int] = None
    results: List[Result] = field(default_factory=list)


def _status_label(status) -> str:
    return MatchStatus(status).value


def get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise NotFound("Match not found", match_id=match_id)
    return match


def _reload(session: Session, match_id: int) -> Match:
    return session.exec(
        select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
    ).one()


def _require_both_fighters(match: Match, action: str) -> None:
    if match.fighter_a_id is None or match.fighter_b_id is None:
        raise InvalidTransition(
            f"cannot {action}: a fighter slot is still empty (awaiting an earlier round)",
            match_id=match.id,
            bracket_id=match.bracket_id,
        )


def start_match(session: Session, match_id: int) -> Match:
    """SCHEDULED -> LIVE. Moves a PENDING bracket to IN_PROGRESS."""
    bracket_id = get_match(session, match_id).bracket_id
    with bracket_transaction(session, bracket_id) as bracket:
        match = _reload(session, match_id)
        if match.status != MatchStatus.SCHEDULED:
            raise InvalidTransition(
                f"match is {_status_label(match.status)}; only SCHEDULED matches can start",
                match_id=match_id,
                bracket_id=bracket_id,
            )
        _require_both_fighters(match, "start match")

        match.status = MatchStatus.LIVE
        match.started_at = datetime.utcnow()
        session.add(match)
        mark_started(bracket)
        session.add(bracket)

    session.refresh(match)
    logger.info("Match %s (bracket %s, %s) started", match_id, bracket_id, match.round_name)
    return match


def _advance_winner(session: Session, match: Match) -> Optional[int]:
    """Place the winner in the consuming match. Returns that match's id."""
    if match.next_match_id is None:
        return None

    nxt = _reload(session, match.next_match_id)
    if nxt.status == MatchStatus.COMPLETED:
        raise InvalidTransition(
            f"next match {nxt.id} is already COMPLETED",
            match_id=match.id,
            bracket_id=match.bracket_id,
        )

    winner_id = match.winner_id
    if winner_id in (nxt.fighter_a_id, nxt.fighter_b_id):
        return nxt.id

    if match.next_match_slot == SLOT_A and nxt.fighter_a_id is None:
        nxt.fighter_a_id = winner_id
    elif match.next_match_slot == SLOT_B and nxt.fighter_b_id is None:
        nxt.fighter_b_id = winner_id
    elif match.next_match_slot is None and nxt.fighter_a_id is None:
        nxt.fighter_a_id = winner_id
    elif match.next_match_slot is None and nxt.fighter_b_id is None:
        nxt.fighter_b_id = winner_id
    else:
        raise InvalidTransition(
            f"no open slot in next match {nxt.id} for the winner",
            match_id=match.id,
            bracket_id=match.bracket_id,
            participant_id=winner_id,
        )

    session.add(nxt)
    logger.debug("Advanced participant %s from match %s into match %s", winner_id, match.id, nxt.id)
    return nxt.id


def record_outcome(
    session: Session,
    match_id: int,
    winner_id: int,
    score: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> OutcomeReport:
    """
    Complete a match with a winner (from LIVE, or directly from SCHEDULED).

    The winner moves into the next match; if this was the last open match
    the bracket completes and results are derived. A second report for a
    COMPLETED match is rejected with InvalidTransition, and the winner must
    be one of the two fighters (InvalidWinner). On any error nothing changes.
    """
    bracket_id = get_match(session, match_id).bracket_id
    with bracket_transaction(session, bracket_id) as bracket:
        match = _reload(session, match_id)
        if match.status == MatchStatus.COMPLETED:
            raise InvalidTransition(
                "match is already COMPLETED; the winner cannot change",
                match_id=match_id,
                bracket_id=bracket_id,
            )
        _require_both_fighters(match, "record outcome")
        if winner_id not in (match.fighter_a_id, match.fighter_b_id):
            logger.warning(
                "Rejected winner %s for match %s (bracket %s): fighters are %s and %s",
                winner_id,
                match_id,
                bracket_id,
                match.fighter_a_id,
                match.fighter_b_id,
            )
            raise InvalidWinner(
                "winner must be one of the match's two fighters",
                match_id=match_id,
                bracket_id=bracket_id,
                participant_id=winner_id,
            )

        match.winner_id = winner_id
        match.status = MatchStatus.COMPLETED
        match.completed_at = datetime.utcnow()
        if score is not None:
            match.score_json = score
        if notes is not None:
            match.notes = notes
        session.add(match)

        advanced_to = _advance_winner(session, match)
        mark_started(bracket)
        session.add(bracket)
        session.flush()

        results = complete_bracket_if_finished(session, bracket)
        bracket_status = BracketStatus(bracket.status).value

    session.refresh(match)
    logger.info(
        "Match %s (bracket %s, %s) won by participant %s",
        match_id,
        bracket_id,
        match.round_name,
        winner_id,
    )
    return OutcomeReport(
        match=match,
        bracket_status=bracket_status,
        advanced_to_match_id=advanced_to,
        results=results,
    )


def update_live_score(
    session: Session,
    match_id: int,
    score: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> Match:
    """Running score for a LIVE match. Does not decide the match."""
    bracket_id = get_match(session, match_id).bracket_id
    with bracket_transaction(session, bracket_id):
        match = _reload(session, match_id)
        if match.status != MatchStatus.LIVE:
            raise InvalidTransition(
                f"match is {_status_label(match.status)}; scores can only be updated while LIVE",
                match_id=match_id,
                bracket_id=bracket_id,
            )
        if score is not None:
            match.score_json = score
        if notes is not None:
            match.notes = notes
        session.add(match)
    session.refresh(match)
    return match


def list_live_matches(session: Session, event_id: Optional[int] = None) -> List[Match]:
    stmt = select(Match).where(Match.status == MatchStatus.LIVE)
    if event_id is not None:
        stmt = stmt.join(Bracket, Bracket.id == Match.bracket_id).where(Bracket.event_id == event_id)
    return session.exec(stmt.order_by(Match.started_at, Match.id)).all()


def ready_matches(session: Session, bracket_id: int) -> List[Match]:
    """SCHEDULED matches with both fighters known (eligible to start)."""
    return session.exec(
        select(Match)
        .where(
            Match.bracket_id == bracket_id,
            Match.status == MatchStatus.SCHEDULED,
            Match.fighter_a_id.is_not(None),
            Match.fighter_b_id.is_not(None),
        )
        .order_by(Match.round_number, Match.match_number)
    ).all()
