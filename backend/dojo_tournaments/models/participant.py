from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_tournaments.models.event import Event


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Participant(SQLModel, table=True):
    """Roster entry for one event, as supplied by registration."""

    __table_args__ = (SAUniqueConstraint("event_id", "user_id", name="uq_event_participant_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id", index=True)
    user_id: str  # External member identity (membership number / account id)
    name: str
    dojo_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    weight_kg: Optional[float] = None
    belt_rank: Optional[str] = None
    approval_status: ApprovalStatus = Field(default=ApprovalStatus.APPROVED, sa_column=Column(String))
    registered_at: datetime = Field(default_factory=datetime.utcnow)

    # Category assignment (set by categorisation; changing it requires rebracketing)
    category_age: Optional[str] = Field(default=None)
    category_weight: Optional[str] = Field(default=None)
    category_belt: Optional[str] = Field(default=None)
    # Set by a manual category move; generation keeps the stored category instead of reclassifying
    category_override: bool = Field(default=False)

    # Relationships
    event: "Event" = Relationship(back_populates="participants")
