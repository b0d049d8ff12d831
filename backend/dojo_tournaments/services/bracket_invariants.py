"""
Bracket Invariant Verifier
==========================
Read-only checks over a persisted bracket, its matches and its results.

Invariants:
  A) Bracket is COMPLETED iff every match is COMPLETED
  B) A bracket of N entrants holds exactly N - 1 matches
  C) Every decided winner is one of the match's fighters
  D) Every match except the single final links to a round+1 match
  E) Completed brackets have results: one GOLD at rank 1, one SILVER at
     rank 2, one BRONZE per semifinal
  F) Per result: won + lost == total, total >= 1, one result per participant
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.match import Match, MatchStatus
from dojo_tournaments.models.result import Medal, Result
from dojo_tournaments.services.errors import NotFound


# ─── Data structures ─────────────────────────────────────────────────────

@dataclass
class Violation:
    code: str
    message: str
    bracket_id: Optional[int] = None
    match_id: Optional[int] = None
    participant_id: Optional[int] = None
    context: Optional[Dict[str, Any]] = None


@dataclass
class InvariantReport:
    bracket_id: int
    category_name: str
    violations: List[Violation] = field(default_factory=list)
    matches_checked: int = 0
    results_checked: int = 0

    @property
    def ok(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "bracket_id": self.bracket_id,
            "category_name": self.category_name,
            "matches_checked": self.matches_checked,
            "results_checked": self.results_checked,
            "violations": [
                {
                    "code": v.code,
                    "message": v.message,
                    "bracket_id": v.bracket_id,
                    "match_id": v.match_id,
                    "participant_id": v.participant_id,
                    "context": v.context,
                }
                for v in self.violations
            ],
        }


# ─── Invariants A-D: structure ───────────────────────────────────────────

def _check_structure(bracket: Bracket, matches: List[Match]) -> List[Violation]:
    violations: List[Violation] = []
    all_done = bool(matches) and all(m.status == MatchStatus.COMPLETED for m in matches)
    if (bracket.status == BracketStatus.COMPLETED) != all_done:
        violations.append(Violation(
            code="STATUS_MISMATCH",
            message=f"Bracket status {BracketStatus(bracket.status).value} but all_matches_completed={all_done}",
            bracket_id=bracket.id,
        ))

    expected = bracket.total_participants - 1
    if len(matches) != expected:
        violations.append(Violation(
            code="MATCH_COUNT",
            message=f"Expected {expected} matches for {bracket.total_participants} entrants, found {len(matches)}",
            bracket_id=bracket.id,
            context={"expected": expected, "found": len(matches)},
        ))

    by_id = {m.id: m for m in matches}
    finals = [m for m in matches if m.next_match_id is None]
    if len(finals) != 1:
        violations.append(Violation(
            code="FINAL_COUNT",
            message=f"Expected exactly one unlinked final, found {len(finals)}",
            bracket_id=bracket.id,
            context={"match_ids": [m.id for m in finals]},
        ))

    for m in matches:
        if m.winner_id is not None and m.winner_id not in (m.fighter_a_id, m.fighter_b_id):
            violations.append(Violation(
                code="WINNER_NOT_FIGHTER",
                message=f"Match {m.id} winner {m.winner_id} is not one of its fighters",
                bracket_id=bracket.id,
                match_id=m.id,
                participant_id=m.winner_id,
            ))
        if m.status == MatchStatus.COMPLETED and m.winner_id is None:
            violations.append(Violation(
                code="COMPLETED_WITHOUT_WINNER",
                message=f"Match {m.id} is COMPLETED without a winner",
                bracket_id=bracket.id,
                match_id=m.id,
            ))
        if m.next_match_id is not None:
            nxt = by_id.get(m.next_match_id)
            if nxt is None or nxt.round_number != m.round_number + 1:
                violations.append(Violation(
                    code="BROKEN_NEXT_LINK",
                    message=f"Match {m.id} links to {m.next_match_id}, which is not a round {m.round_number + 1} match of this bracket",
                    bracket_id=bracket.id,
                    match_id=m.id,
                ))
    return violations


# ─── Invariants E-F: results ─────────────────────────────────────────────

def _check_results(bracket: Bracket, matches: List[Match], results: List[Result]) -> List[Violation]:
    violations: List[Violation] = []
    if bracket.status != BracketStatus.COMPLETED:
        if results:
            violations.append(Violation(
                code="RESULTS_BEFORE_COMPLETION",
                message=f"{len(results)} result(s) exist for an unfinished bracket",
                bracket_id=bracket.id,
            ))
        return violations

    if not results:
        violations.append(Violation(
            code="RESULTS_MISSING",
            message="Completed bracket has no results",
            bracket_id=bracket.id,
        ))
        return violations

    medals = Counter(Medal(r.medal).value if r.medal else None for r in results)
    rank_one = [r for r in results if r.final_rank == 1]
    rank_two = [r for r in results if r.final_rank == 2]
    if medals[Medal.GOLD.value] != 1 or len(rank_one) != 1:
        violations.append(Violation(
            code="GOLD_COUNT",
            message=f"Expected one GOLD at rank 1, found {medals[Medal.GOLD.value]} gold / {len(rank_one)} rank-1",
            bracket_id=bracket.id,
        ))
    if medals[Medal.SILVER.value] != 1 or len(rank_two) != 1:
        violations.append(Violation(
            code="SILVER_COUNT",
            message=f"Expected one SILVER at rank 2, found {medals[Medal.SILVER.value]} silver / {len(rank_two)} rank-2",
            bracket_id=bracket.id,
        ))

    total_rounds = max((m.round_number for m in matches), default=0)
    expected_bronze = sum(1 for m in matches if m.round_number == total_rounds - 1) if total_rounds >= 2 else 0
    if medals[Medal.BRONZE.value] != expected_bronze:
        violations.append(Violation(
            code="BRONZE_COUNT",
            message=f"Expected {expected_bronze} BRONZE, found {medals[Medal.BRONZE.value]}",
            bracket_id=bracket.id,
        ))

    seen = Counter(r.participant_id for r in results)
    for pid, count in seen.items():
        if count > 1:
            violations.append(Violation(
                code="DUPLICATE_RESULT",
                message=f"Participant {pid} has {count} results",
                bracket_id=bracket.id,
                participant_id=pid,
            ))

    fighters = {fid for m in matches for fid in m.fighter_ids()}
    for pid in sorted(fighters - set(seen)):
        violations.append(Violation(
            code="RESULT_MISSING_FOR_PARTICIPANT",
            message=f"Participant {pid} fought but has no result",
            bracket_id=bracket.id,
            participant_id=pid,
        ))

    for r in results:
        if r.matches_won + r.matches_lost != r.total_matches or r.total_matches < 1:
            violations.append(Violation(
                code="STATS_MISMATCH",
                message=(
                    f"Participant {r.participant_id}: won {r.matches_won} + lost {r.matches_lost} "
                    f"vs total {r.total_matches}"
                ),
                bracket_id=bracket.id,
                participant_id=r.participant_id,
            ))
    return violations


def verify_bracket(session: Session, bracket_id: int) -> InvariantReport:
    bracket = session.get(Bracket, bracket_id)
    if not bracket:
        raise NotFound("Bracket not found", bracket_id=bracket_id)

    matches = session.exec(
        select(Match).where(Match.bracket_id == bracket_id).order_by(Match.round_number, Match.match_number)
    ).all()
    results = session.exec(select(Result).where(Result.bracket_id == bracket_id)).all()

    report = InvariantReport(
        bracket_id=bracket.id,
        category_name=bracket.category_name,
        matches_checked=len(matches),
        results_checked=len(results),
    )
    report.violations.extend(_check_structure(bracket, matches))
    report.violations.extend(_check_results(bracket, matches, results))
    return report
