"""
Event roster: participants as supplied by registration, plus category
preview and manual category moves. Approval and payment happen upstream;
only APPROVED participants are bracketed.
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from dojo_tournaments.database import get_session
from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.event import Event
from dojo_tournaments.models.participant import ApprovalStatus, Participant
from dojo_tournaments.services.bracket_builder import approved_roster
from dojo_tournaments.services.category_classifier import categorize_roster
from dojo_tournaments.services.errors import InvalidTransition

logger = logging.getLogger(__name__)

router = APIRouter()


class ParticipantCreate(BaseModel):
    user_id: str
    name: str
    dojo_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    weight_kg: Optional[float] = None
    belt_rank: Optional[str] = None
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED
    registered_at: Optional[datetime] = None

    @field_validator("name", "user_id")
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("cannot be empty")
        return v.strip()


class ParticipantResponse(BaseModel):
    id: int
    event_id: int
    user_id: str
    name: str
    dojo_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    weight_kg: Optional[float] = None
    belt_rank: Optional[str] = None
    approval_status: ApprovalStatus
    registered_at: datetime
    category_age: Optional[str] = None
    category_weight: Optional[str] = None
    category_belt: Optional[str] = None
    category_override: bool = False

    class Config:
        from_attributes = True


class CategoryMove(BaseModel):
    category_age: str
    category_weight: str
    category_belt: str = "Open"


class ExcludedParticipantResponse(BaseModel):
    participant_id: Optional[int] = None
    name: str
    attribute: str
    reason: str


class CategoryGroupResponse(BaseModel):
    category_name: str
    category_age: str
    category_weight: str
    category_belt: str
    participant_ids: List[int]
    participant_count: int


class CategoryPreviewResponse(BaseModel):
    categories: List[CategoryGroupResponse]
    excluded: List[ExcludedParticipantResponse]


def _get_event_or_404(session: Session, event_id: int) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _add_participant(session: Session, event_id: int, data: ParticipantCreate) -> Participant:
    payload = data.model_dump(exclude_none=True)
    participant = Participant(event_id=event_id, **payload)
    session.add(participant)
    return participant


@router.get("/events/{event_id}/participants", response_model=List[ParticipantResponse])
def list_participants(event_id: int, session: Session = Depends(get_session)):
    """Roster in registration order"""
    _get_event_or_404(session, event_id)
    return session.exec(
        select(Participant)
        .where(Participant.event_id == event_id)
        .order_by(Participant.registered_at, Participant.id)
    ).all()


@router.post("/events/{event_id}/participants", response_model=ParticipantResponse, status_code=201)
def create_participant(event_id: int, data: ParticipantCreate, session: Session = Depends(get_session)):
    _get_event_or_404(session, event_id)
    participant = _add_participant(session, event_id, data)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=409, detail=f"Participant '{data.user_id}' is already registered for this event"
        )
    session.refresh(participant)
    return participant


@router.post("/events/{event_id}/participants/bulk", response_model=List[ParticipantResponse], status_code=201)
def import_participants(event_id: int, data: List[ParticipantCreate], session: Session = Depends(get_session)):
    """Import a roster in registration order. All-or-nothing."""
    _get_event_or_404(session, event_id)
    created = [_add_participant(session, event_id, item) for item in data]
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Roster contains participants already registered for this event")
    for participant in created:
        session.refresh(participant)
    logger.info("Imported %d participant(s) into event %s", len(created), event_id)
    return created


@router.get("/events/{event_id}/categories", response_model=CategoryPreviewResponse)
def preview_categories(event_id: int, session: Session = Depends(get_session)):
    """Classify the approved roster without writing anything"""
    event = _get_event_or_404(session, event_id)
    roster = categorize_roster(approved_roster(session, event_id), event.start_date, event.split_by_belt)
    return CategoryPreviewResponse(
        categories=[
            CategoryGroupResponse(
                category_name=key.name,
                category_age=key.age,
                category_weight=key.weight,
                category_belt=key.belt,
                participant_ids=[p.id for p in members],
                participant_count=len(members),
            )
            for key, members in roster.groups.items()
        ],
        excluded=[ExcludedParticipantResponse(**vars(e)) for e in roster.excluded],
    )


@router.patch("/participants/{participant_id}/category", response_model=ParticipantResponse)
def move_participant_category(participant_id: int, move: CategoryMove, session: Session = Depends(get_session)):
    """
    Manually assign a category. Only allowed while no bracket of the event
    has started; brackets must be regenerated for the move to take effect.
    """
    participant = session.get(Participant, participant_id)
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")

    started = session.exec(
        select(Bracket).where(
            Bracket.event_id == participant.event_id,
            Bracket.status != BracketStatus.PENDING,
        )
    ).first()
    if started:
        raise InvalidTransition(
            f"bracket '{started.category_name}' has started; categories are frozen",
            event_id=participant.event_id,
            bracket_id=started.id,
            participant_id=participant_id,
        )

    participant.category_age = move.category_age
    participant.category_weight = move.category_weight
    participant.category_belt = move.category_belt
    participant.category_override = True
    session.add(participant)
    session.commit()
    session.refresh(participant)
    logger.info(
        "Participant %s moved to '%s, %s, %s'; rebracketing required",
        participant_id,
        move.category_age,
        move.category_weight,
        move.category_belt,
    )
    return participant
