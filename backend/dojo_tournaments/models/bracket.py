from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_tournaments.models.event import Event
    from dojo_tournaments.models.match import Match
    from dojo_tournaments.models.result import Result


class BracketStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class Bracket(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint(
            "event_id", "category_age", "category_weight", "category_belt", name="uq_event_bracket_category"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id", index=True)
    category_age: str
    category_weight: str
    category_belt: str = Field(default="Open")
    category_name: str  # "18-35, 60-70kg, Open"
    total_participants: int
    bracket_size: int  # next power of two >= total_participants
    total_rounds: int
    status: BracketStatus = Field(default=BracketStatus.PENDING, sa_column=Column(String))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    event: "Event" = Relationship(back_populates="brackets")
    matches: List["Match"] = Relationship(back_populates="bracket")
    results: List["Result"] = Relationship(back_populates="bracket")
