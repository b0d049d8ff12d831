"""
Category classification for tournament entrants.

Deterministic age/weight banding from fixed, ordered thresholds. Weight
tables differ for juniors (< 16), adults (16-35) and veterans (36+).
Participants whose age or weight cannot be computed are excluded and
reported, never defaulted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from dojo_tournaments.services.errors import MissingAttribute

logger = logging.getLogger(__name__)

OPEN_BAND = "Open"
VETERAN_MIN_AGE = 36

# (exclusive upper bound, label); the final entry has no bound
AGE_BANDS: List[Tuple[Optional[int], str]] = [
    (12, "Under 12"),
    (16, "12-15"),
    (18, "16-17"),
    (VETERAN_MIN_AGE, "18-35"),
    (None, "36+"),
]

JUNIOR_WEIGHT_BANDS: List[Tuple[Optional[float], str]] = [
    (35, "Under 35kg"),
    (45, "35-45kg"),
    (55, "45-55kg"),
    (None, "55kg+"),
]

ADULT_WEIGHT_BANDS: List[Tuple[Optional[float], str]] = [
    (60, "Under 60kg"),
    (70, "60-70kg"),
    (80, "70-80kg"),
    (None, "80kg+"),
]

VETERAN_WEIGHT_BANDS: List[Tuple[Optional[float], str]] = [
    (70, "Under 70kg"),
    (None, "70kg+"),
]

# Belt seniority, lowest first. Matching is by substring ("Black 2nd Dan" -> Black).
BELT_RANKS: Dict[str, int] = {
    "White": 1,
    "Orange": 2,
    "Blue": 3,
    "Yellow": 4,
    "Green": 5,
    "Brown": 6,
    "Black": 7,
}
KYU_BAND = "Kyu Grades"
SENIOR_BELT_BAND = "Brown-Black"


@dataclass(frozen=True)
class CategoryBands:
    age_band: str
    weight_band: str


@dataclass(frozen=True)
class CategoryKey:
    age: str
    weight: str
    belt: str = OPEN_BAND

    @property
    def name(self) -> str:
        return f"{self.age}, {self.weight}, {self.belt}"


@dataclass
class ExcludedParticipant:
    participant_id: Optional[int]
    name: str
    attribute: str
    reason: str


@dataclass
class CategorizedRoster:
    """Groups keep registration order; group order is first-seen order."""

    groups: Dict[CategoryKey, List] = field(default_factory=dict)
    excluded: List[ExcludedParticipant] = field(default_factory=list)


def _band(value, table) -> str:
    for upper, label in table:
        if upper is None or value < upper:
            return label
    raise AssertionError("band table must end with an open bound")


def compute_age(date_of_birth: Optional[date], on_date: date) -> int:
    """Whole years on *on_date*. Raises MissingAttribute without a date of birth."""
    if date_of_birth is None:
        raise MissingAttribute("date of birth is required to compute age", attribute="age")
    age = on_date.year - date_of_birth.year
    if (on_date.month, on_date.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    if age < 0:
        raise MissingAttribute("date of birth is after the event date", attribute="age")
    return age


def age_band(age: int) -> str:
    return _band(age, AGE_BANDS)


def weight_band(weight_kg: float, age: int) -> str:
    if age < 16:
        return _band(weight_kg, JUNIOR_WEIGHT_BANDS)
    if age >= VETERAN_MIN_AGE:
        return _band(weight_kg, VETERAN_WEIGHT_BANDS)
    return _band(weight_kg, ADULT_WEIGHT_BANDS)


def classify(age: Optional[int], weight_kg: Optional[float]) -> CategoryBands:
    """Return the (age band, weight band) pair for an entrant."""
    if age is None or age < 0:
        raise MissingAttribute("age cannot be computed", attribute="age")
    if weight_kg is None or weight_kg <= 0:
        raise MissingAttribute("weight is required for categorisation", attribute="weight")
    return CategoryBands(age_band=age_band(age), weight_band=weight_band(weight_kg, age))


def belt_value(belt_rank: Optional[str]) -> int:
    if not belt_rank:
        return 0
    for name, value in BELT_RANKS.items():
        if name.lower() in belt_rank.lower():
            return value
    return 1


def belt_band(belt_rank: Optional[str], split_by_belt: bool) -> str:
    if not split_by_belt:
        return OPEN_BAND
    return SENIOR_BELT_BAND if belt_value(belt_rank) >= BELT_RANKS["Brown"] else KYU_BAND


def category_for(participant, on_date: date, split_by_belt: bool = False) -> CategoryKey:
    """Category key for a participant-like object (date_of_birth, weight_kg, belt_rank)."""
    pid = getattr(participant, "id", None)
    if getattr(participant, "category_override", False) and participant.category_age and participant.category_weight:
        return CategoryKey(
            age=participant.category_age,
            weight=participant.category_weight,
            belt=participant.category_belt or OPEN_BAND,
        )
    try:
        age = compute_age(participant.date_of_birth, on_date)
        bands = classify(age, participant.weight_kg)
    except MissingAttribute as exc:
        exc.context["participant_id"] = pid
        raise
    return CategoryKey(
        age=bands.age_band,
        weight=bands.weight_band,
        belt=belt_band(participant.belt_rank, split_by_belt),
    )


def categorize_roster(
    participants: Sequence,
    on_date: date,
    split_by_belt: bool = False,
) -> CategorizedRoster:
    """
    Group an ordered roster by category.

    Input order is registration order and is preserved inside each group.
    Entrants with missing attributes land in `excluded` with the reason.
    """
    roster = CategorizedRoster()
    for participant in participants:
        try:
            key = category_for(participant, on_date, split_by_belt)
        except MissingAttribute as exc:
            roster.excluded.append(
                ExcludedParticipant(
                    participant_id=getattr(participant, "id", None),
                    name=getattr(participant, "name", ""),
                    attribute=exc.attribute,
                    reason=exc.message,
                )
            )
            continue
        roster.groups.setdefault(key, []).append(participant)

    if roster.excluded:
        logger.warning(
            "Excluded %d participant(s) from categorisation: %s",
            len(roster.excluded),
            ", ".join(f"{e.name} ({e.attribute})" for e in roster.excluded),
        )
    return roster
