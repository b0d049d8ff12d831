from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import JSON, String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_tournaments.models.bracket import Bracket


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"


SLOT_A = "A"
SLOT_B = "B"


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("bracket_id", "round_number", "match_number", name="uq_bracket_round_match"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    round_number: int  # 1..total_rounds
    round_name: str  # "Final" | "Semi Finals" | "Quarter Finals" | "Round N"
    match_number: int  # Position within round (1-based, bracket order)

    # Fighter slots (participant ids); empty until seeded, bye-placed or advanced into
    fighter_a_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    fighter_b_id: Optional[int] = Field(default=None, foreign_key="participant.id")

    status: MatchStatus = Field(default=MatchStatus.SCHEDULED, sa_column=Column(String))
    winner_id: Optional[int] = Field(default=None, foreign_key="participant.id")

    # Forward link to the round+1 match that consumes this winner (null for the final)
    next_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    next_match_slot: Optional[str] = Field(default=None)  # "A" | "B"

    score_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    bracket: "Bracket" = Relationship(back_populates="matches")

    def fighter_ids(self):
        return [fid for fid in (self.fighter_a_id, self.fighter_b_id) if fid is not None]

    def loser_id(self) -> Optional[int]:
        if self.winner_id is None:
            return None
        if self.winner_id == self.fighter_a_id:
            return self.fighter_b_id
        return self.fighter_a_id
