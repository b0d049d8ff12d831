from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.event import Event
from dojo_tournaments.models.match import Match, MatchStatus
from dojo_tournaments.models.participant import ApprovalStatus, Participant
from dojo_tournaments.models.result import Medal, Result

__all__ = [
    "Event",
    "Participant",
    "ApprovalStatus",
    "Bracket",
    "BracketStatus",
    "Match",
    "MatchStatus",
    "Result",
    "Medal",
]
