from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_tournaments.models.bracket import Bracket
    from dojo_tournaments.models.participant import Participant


class Event(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    location: str = Field(default="")
    start_date: date
    end_date: date
    notes: Optional[str] = None
    # Adds a belt band (Kyu Grades / Brown-Black) to every category key
    split_by_belt: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    participants: List["Participant"] = Relationship(back_populates="event")
    brackets: List["Bracket"] = Relationship(back_populates="event")
