from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_tournaments.models.bracket import Bracket


class Medal(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"


class Result(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("participant_id", "bracket_id", name="uq_result_participant_bracket"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id", index=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    participant_id: int = Field(foreign_key="participant.id")
    category_name: str
    final_rank: int  # 1, 2, 3 (shared), then band lower bound: 5, 9, 17...
    placement: str  # "1" | "2" | "3" | "5-8" | "9-16" ...
    medal: Optional[Medal] = Field(default=None, sa_column=Column(String, nullable=True))
    total_matches: int = Field(default=0)
    matches_won: int = Field(default=0)
    matches_lost: int = Field(default=0)
    eliminated_in_round: Optional[str] = Field(default=None)  # "Champion" for rank 1
    eliminated_by_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    bracket: "Bracket" = Relationship(back_populates="results")
