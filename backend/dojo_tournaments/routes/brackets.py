"""
Bracket generation, bracket views, results and verification.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from dojo_tournaments.database import get_session
from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.event import Event
from dojo_tournaments.models.match import Match, MatchStatus
from dojo_tournaments.models.participant import Participant
from dojo_tournaments.models.result import Medal, Result
from dojo_tournaments.services.bracket_builder import generate_event_brackets
from dojo_tournaments.services.bracket_invariants import verify_bracket
from dojo_tournaments.services.result_deriver import ensure_results, regenerate_results
from dojo_tournaments.services.tournament_stats import get_tournament_statistics

router = APIRouter()


class MatchResponse(BaseModel):
    id: int
    bracket_id: int
    round_number: int
    round_name: str
    match_number: int
    fighter_a_id: Optional[int] = None
    fighter_b_id: Optional[int] = None
    status: MatchStatus
    winner_id: Optional[int] = None
    next_match_id: Optional[int] = None
    next_match_slot: Optional[str] = None
    score_json: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BracketResponse(BaseModel):
    id: int
    event_id: int
    category_age: str
    category_weight: str
    category_belt: str
    category_name: str
    total_participants: int
    bracket_size: int
    total_rounds: int
    status: BracketStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BracketDetailResponse(BracketResponse):
    matches: List[MatchResponse] = []


class ResultResponse(BaseModel):
    id: int
    event_id: int
    bracket_id: int
    participant_id: int
    category_name: str
    final_rank: int
    placement: str
    medal: Optional[Medal] = None
    total_matches: int
    matches_won: int
    matches_lost: int
    eliminated_in_round: Optional[str] = None
    eliminated_by_id: Optional[int] = None
    participant_name: Optional[str] = None
    dojo_name: Optional[str] = None

    class Config:
        from_attributes = True


class ResultsResponse(BaseModel):
    bracket_id: int
    created: bool
    results: List[ResultResponse]


class SkippedCategoryResponse(BaseModel):
    category_name: str
    participant_ids: List[int]
    reason: str


class ExcludedResponse(BaseModel):
    participant_id: Optional[int] = None
    name: str
    attribute: str
    reason: str


class GenerationResponse(BaseModel):
    event_id: int
    brackets_created: int
    matches_created: int
    brackets: List[BracketResponse]
    excluded: List[ExcludedResponse]
    skipped: List[SkippedCategoryResponse]


def _bracket_or_404(session: Session, bracket_id: int) -> Bracket:
    bracket = session.get(Bracket, bracket_id)
    if not bracket:
        raise HTTPException(status_code=404, detail="Bracket not found")
    return bracket


def _with_names(session: Session, results: List[Result]) -> List[ResultResponse]:
    ids = [r.participant_id for r in results]
    people = {p.id: p for p in session.exec(select(Participant).where(Participant.id.in_(ids))).all()} if ids else {}
    out = []
    for r in results:
        row = ResultResponse.model_validate(r)
        p = people.get(r.participant_id)
        if p:
            row.participant_name = p.name
            row.dojo_name = p.dojo_name
        out.append(row)
    return out


@router.post("/events/{event_id}/brackets/generate", response_model=GenerationResponse, status_code=201)
def generate_brackets(event_id: int, session: Session = Depends(get_session)):
    """Categorise approved participants and build one bracket per category"""
    report = generate_event_brackets(session, event_id)
    matches_created = sum(b.total_participants - 1 for b in report.brackets)
    return GenerationResponse(
        event_id=event_id,
        brackets_created=len(report.brackets),
        matches_created=matches_created,
        brackets=[BracketResponse.model_validate(b) for b in report.brackets],
        excluded=[ExcludedResponse(**vars(e)) for e in report.excluded],
        skipped=[SkippedCategoryResponse(**vars(s)) for s in report.skipped],
    )


@router.get("/events/{event_id}/brackets", response_model=List[BracketResponse])
def list_brackets(event_id: int, session: Session = Depends(get_session)):
    if not session.get(Event, event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return session.exec(select(Bracket).where(Bracket.event_id == event_id).order_by(Bracket.category_name)).all()


@router.get("/brackets/{bracket_id}", response_model=BracketDetailResponse)
def get_bracket(bracket_id: int, session: Session = Depends(get_session)):
    """Bracket with its matches in round order"""
    bracket = _bracket_or_404(session, bracket_id)
    matches = session.exec(
        select(Match).where(Match.bracket_id == bracket_id).order_by(Match.round_number, Match.match_number)
    ).all()
    detail = BracketDetailResponse.model_validate(bracket)
    detail.matches = [MatchResponse.model_validate(m) for m in matches]
    return detail


@router.post("/brackets/{bracket_id}/results", response_model=ResultsResponse)
def derive_bracket_results(bracket_id: int, session: Session = Depends(get_session)):
    """Results for a finished bracket. Safe to call repeatedly."""
    _bracket_or_404(session, bracket_id)
    results, created = ensure_results(session, bracket_id)
    return ResultsResponse(bracket_id=bracket_id, created=created, results=_with_names(session, results))


@router.post("/brackets/{bracket_id}/results/regenerate", response_model=ResultsResponse)
def regenerate_bracket_results(bracket_id: int, session: Session = Depends(get_session)):
    _bracket_or_404(session, bracket_id)
    results = regenerate_results(session, bracket_id)
    return ResultsResponse(bracket_id=bracket_id, created=True, results=_with_names(session, results))


@router.get("/brackets/{bracket_id}/verify")
def verify(bracket_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return verify_bracket(session, bracket_id).to_dict()


@router.get("/events/{event_id}/results", response_model=List[ResultResponse])
def list_event_results(event_id: int, session: Session = Depends(get_session)):
    if not session.get(Event, event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    results = session.exec(
        select(Result)
        .where(Result.event_id == event_id)
        .order_by(Result.category_name, Result.final_rank, Result.participant_id)
    ).all()
    return _with_names(session, results)


@router.get("/events/{event_id}/statistics")
def event_statistics(event_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return get_tournament_statistics(session, event_id)
