"""
Event-level statistics: category podiums, dojo medal table, performance highlights.

Read-only. Podiums come from derived Results, so only COMPLETED brackets
contribute medals.
"""
from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlmodel import Session, func, select

from dojo_tournaments.models.bracket import Bracket
from dojo_tournaments.models.event import Event
from dojo_tournaments.models.match import Match, MatchStatus
from dojo_tournaments.models.participant import ApprovalStatus, Participant
from dojo_tournaments.models.result import Medal, Result
from dojo_tournaments.services.errors import NotFound
from dojo_tournaments.services.score_parser import parse_score

UNAFFILIATED = "Unaffiliated"


def _summary(p: Optional[Participant]) -> Optional[Dict[str, Any]]:
    if p is None:
        return None
    return {"id": p.id, "name": p.name, "dojo_name": p.dojo_name, "belt_rank": p.belt_rank}


def dojo_leaderboard(results: List[Result], participants: Dict[int, Participant]) -> List[Dict[str, Any]]:
    """Medal table by dojo, ordered by gold, silver, bronze, then total."""
    table: Dict[str, Dict[str, int]] = defaultdict(lambda: {"gold": 0, "silver": 0, "bronze": 0, "total": 0})
    for r in results:
        if r.medal is None:
            continue
        p = participants.get(r.participant_id)
        dojo = (p.dojo_name if p else None) or UNAFFILIATED
        table[dojo][Medal(r.medal).value.lower()] += 1
        table[dojo]["total"] += 1

    rows = [{"dojo_name": name, **counts} for name, counts in table.items()]
    rows.sort(key=lambda r: (-r["gold"], -r["silver"], -r["bronze"], -r["total"], r["dojo_name"]))
    return rows


def performance_highlights(matches: List[Match], participants: Dict[int, Participant]) -> Dict[str, Any]:
    fastest = None
    highest = None
    dominant = None

    for m in matches:
        if m.status != MatchStatus.COMPLETED or m.winner_id is None:
            continue
        winner = _summary(participants.get(m.winner_id))

        if m.started_at and m.completed_at:
            minutes = (m.completed_at - m.started_at).total_seconds() / 60
            if fastest is None or minutes < fastest["duration_minutes"]:
                fastest = {"duration_minutes": round(minutes, 1), "match_id": m.id, "winner": winner}

        score = parse_score(m.score_json)
        if score is None:
            continue
        if highest is None or score.high > highest["score"]:
            highest = {"score": score.high, "match_id": m.id, "winner": winner}
        if dominant is None or score.margin > dominant["score_difference"]:
            dominant = {
                "score_difference": score.margin,
                "final_score": f"{score.high}-{score.low}",
                "match_id": m.id,
                "winner": winner,
            }

    return {"fastest_win": fastest, "highest_score": highest, "most_dominant": dominant}


def get_tournament_statistics(session: Session, event_id: int) -> Dict[str, Any]:
    event = session.get(Event, event_id)
    if not event:
        raise NotFound("Event not found", event_id=event_id)

    brackets = session.exec(
        select(Bracket).where(Bracket.event_id == event_id).order_by(Bracket.category_name)
    ).all()
    bracket_ids = [b.id for b in brackets]
    matches = (
        session.exec(select(Match).where(Match.bracket_id.in_(bracket_ids))).all() if bracket_ids else []
    )
    results = session.exec(
        select(Result).where(Result.event_id == event_id).order_by(Result.bracket_id, Result.final_rank)
    ).all()
    participants = {
        p.id: p for p in session.exec(select(Participant).where(Participant.event_id == event_id)).all()
    }
    approved_count = session.exec(
        select(func.count(Participant.id)).where(
            Participant.event_id == event_id,
            Participant.approval_status == ApprovalStatus.APPROVED,
        )
    ).one()

    results_by_bracket: Dict[int, List[Result]] = defaultdict(list)
    for r in results:
        results_by_bracket[r.bracket_id].append(r)

    category_winners = []
    for b in brackets:
        podium = results_by_bracket.get(b.id, [])
        by_medal: Dict[str, List[Result]] = defaultdict(list)
        for r in podium:
            if r.medal is not None:
                by_medal[Medal(r.medal).value].append(r)
        gold = by_medal.get(Medal.GOLD.value, [])
        silver = by_medal.get(Medal.SILVER.value, [])
        category_winners.append(
            {
                "category_name": b.category_name,
                "bracket_id": b.id,
                "status": b.status,
                "first_place": _summary(participants.get(gold[0].participant_id)) if gold else None,
                "second_place": _summary(participants.get(silver[0].participant_id)) if silver else None,
                "third_place": [
                    _summary(participants.get(r.participant_id)) for r in by_medal.get(Medal.BRONZE.value, [])
                ],
            }
        )

    completed = [m for m in matches if m.status == MatchStatus.COMPLETED]
    return {
        "tournament": {
            "id": event.id,
            "name": event.name,
            "date": event.start_date.isoformat(),
            "location": event.location,
            "total_participants": approved_count,
            "total_categories": len(brackets),
            "completed_matches": len(completed),
            "total_matches": len(matches),
        },
        "category_winners": category_winners,
        "dojo_leaderboard": dojo_leaderboard(results, participants),
        "performance_stats": performance_highlights(completed, participants),
    }
