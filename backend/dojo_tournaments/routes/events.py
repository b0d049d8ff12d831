from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy import delete
from sqlmodel import Session, select

from dojo_tournaments.database import get_session
from dojo_tournaments.models.event import Event
from dojo_tournaments.models.participant import Participant
from dojo_tournaments.services.bracket_builder import delete_event_brackets
from dojo_tournaments.services.bracket_lock import registry as bracket_locks

router = APIRouter()


class EventCreate(BaseModel):
    name: str
    location: str = ""
    start_date: date
    end_date: date
    notes: Optional[str] = None
    split_by_belt: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class EventUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
    split_by_belt: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None and (not v or not v.strip()):
            raise ValueError("name cannot be empty")
        return v.strip() if v else v

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class EventResponse(BaseModel):
    id: int
    name: str
    location: str
    start_date: date
    end_date: date
    notes: Optional[str] = None
    split_by_belt: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("/events", response_model=List[EventResponse])
def list_events(session: Session = Depends(get_session)):
    """List events, most recent first"""
    return session.exec(select(Event).order_by(Event.start_date.desc(), Event.id.desc())).all()


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(event_data: EventCreate, session: Session = Depends(get_session)):
    """Create a new tournament event"""
    event = Event(**event_data.model_dump())
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: int, session: Session = Depends(get_session)):
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.put("/events/{event_id}", response_model=EventResponse)
def update_event(event_id: int, event_data: EventUpdate, session: Session = Depends(get_session)):
    """Update an event"""
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    update_data = event_data.model_dump(exclude_unset=True)
    start = update_data.get("start_date", event.start_date)
    end = update_data.get("end_date", event.end_date)
    if end < start:
        raise HTTPException(status_code=422, detail="end_date must be >= start_date")

    for field, value in update_data.items():
        setattr(event, field, value)

    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@router.delete("/events/{event_id}", status_code=204)
def delete_event(event_id: int, session: Session = Depends(get_session)):
    """Delete an event with its brackets, matches, results and roster"""
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    try:
        # Order matters: child records before parent records
        removed = delete_event_brackets(session, event_id)
        session.execute(delete(Participant).where(Participant.event_id == event_id))
        session.delete(event)
        session.commit()
    except Exception:
        session.rollback()
        raise

    for bracket_id in removed:
        bracket_locks.discard(bracket_id)

    return None
