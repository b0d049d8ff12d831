"""
Match runtime: start, running score, outcome.

Outcomes advance the winner and, for the last match of a bracket, complete
it and derive results. Errors come back as the engine's JSON error body.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from dojo_tournaments.database import get_session
from dojo_tournaments.models.bracket import BracketStatus
from dojo_tournaments.routes.brackets import MatchResponse, ResultResponse
from dojo_tournaments.services.match_progression import (
    list_live_matches,
    record_outcome,
    start_match,
    update_live_score,
)

router = APIRouter()


class OutcomeRequest(BaseModel):
    winner_id: int
    score: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


class ScoreUpdate(BaseModel):
    score: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


class OutcomeResponse(BaseModel):
    match: MatchResponse
    bracket_status: str
    advanced_to_match_id: Optional[int] = None
    bracket_completed: bool = False
    results: List[ResultResponse] = []


class LiveMatchResponse(MatchResponse):
    live_for_minutes: Optional[float] = None


@router.post("/matches/{match_id}/start", response_model=MatchResponse)
def start(match_id: int, session: Session = Depends(get_session)):
    return start_match(session, match_id)


@router.post("/matches/{match_id}/outcome", response_model=OutcomeResponse)
def report_outcome(match_id: int, payload: OutcomeRequest, session: Session = Depends(get_session)):
    """Record the winner of a match and advance them"""
    report = record_outcome(session, match_id, payload.winner_id, score=payload.score, notes=payload.notes)
    return OutcomeResponse(
        match=MatchResponse.model_validate(report.match),
        bracket_status=report.bracket_status,
        advanced_to_match_id=report.advanced_to_match_id,
        bracket_completed=report.bracket_status == BracketStatus.COMPLETED.value,
        results=[ResultResponse.model_validate(r) for r in report.results],
    )


@router.patch("/matches/{match_id}/score", response_model=MatchResponse)
def update_score(match_id: int, payload: ScoreUpdate, session: Session = Depends(get_session)):
    return update_live_score(session, match_id, score=payload.score, notes=payload.notes)


@router.get("/matches/live", response_model=List[LiveMatchResponse])
def live_matches(event_id: Optional[int] = None, session: Session = Depends(get_session)):
    now = datetime.utcnow()
    out = []
    for m in list_live_matches(session, event_id):
        row = LiveMatchResponse.model_validate(m)
        if m.started_at:
            row.live_for_minutes = round((now - m.started_at).total_seconds() / 60, 1)
        out.append(row)
    return out
