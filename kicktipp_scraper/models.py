"""
Value objects shared by the extractors, the reconciler and the client.

Everything here is a plain (mostly frozen) dataclass so callers can hash,
compare and serialise it without knowing about the HTML it came from.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

MatchKey = Tuple[str, str]


@dataclass(frozen=True)
class Match:
    home_team: str
    away_team: str
    starts_at: datetime
    matchday: int = 1

    def __post_init__(self) -> None:
        if not self.home_team or not self.away_team:
            raise ValueError("Match braucht zwei nicht-leere Teamnamen.")

    @property
    def key(self) -> MatchKey:
        return self.home_team, self.away_team

    def __str__(self) -> str:
        return f"{self.home_team} vs {self.away_team}"


@dataclass(frozen=True)
class Prediction:
    home_goals: int
    away_goals: int

    def __post_init__(self) -> None:
        if self.home_goals < 0 or self.away_goals < 0:
            raise ValueError(f"Negative Toranzahl: {self.home_goals}:{self.away_goals}")

    @classmethod
    def parse(cls, text: str) -> "Prediction":
        m = re.fullmatch(r"\s*(\d+)\s*[:\-]\s*(\d+)\s*", text or "")
        if not m:
            raise ValueError(f"Kein gültiger Tipp: {text!r} (erwarte z.B. 2:1)")
        return cls(int(m.group(1)), int(m.group(2)))

    def __str__(self) -> str:
        return f"{self.home_goals}:{self.away_goals}"


@dataclass(frozen=True)
class TeamStanding:
    position: int
    team_name: str
    games_played: int
    points: int
    goals_for: int
    goals_against: int
    goal_difference: int
    wins: int
    draws: int
    losses: int

    @property
    def goals_formatted(self) -> str:
        return f"{self.goals_for}:{self.goals_against}"


class MatchOutcome(str, Enum):
    WIN = "win"
    DRAW = "draw"
    LOSS = "loss"
    PENDING = "pending"


@dataclass(frozen=True)
class MatchResult:
    """One row of a team's recent results, seen from that team's side."""
    competition: str
    home_team: str
    away_team: str
    home_goals: Optional[int]
    away_goals: Optional[int]
    outcome: MatchOutcome
    annotation: Optional[str] = None

    @property
    def score(self) -> str:
        if self.home_goals is None or self.away_goals is None:
            return ""
        return f"{self.home_goals}:{self.away_goals}"


@dataclass(frozen=True)
class MatchWithHistory:
    match: Match
    home_team_history: List[MatchResult] = field(default_factory=list)
    away_team_history: List[MatchResult] = field(default_factory=list)


@dataclass(frozen=True)
class HeadToHeadResult:
    league: str
    matchday: str
    played_at: str
    home_team: str
    away_team: str
    score: str
    annotation: Optional[str] = None


@dataclass(frozen=True)
class FormField:
    name: str
    value: str


@dataclass(frozen=True)
class BonusOption:
    id: str
    text: str


@dataclass(frozen=True)
class BonusQuestion:
    """
    An open bonus question ("Wer wird Meister?").

    Each answer slot is its own ``<select>``; a question that wants three
    teams has three of them sharing one option list. ``form_field_name`` (the
    first slot) identifies the question when placing predictions.
    """
    text: str
    deadline: datetime
    options: Tuple[BonusOption, ...]
    field_names: Tuple[str, ...]

    @property
    def form_field_name(self) -> str:
        return self.field_names[0]

    @property
    def max_selections(self) -> int:
        return len(self.field_names)

    def option_ids(self) -> List[str]:
        return [o.id for o in self.options]


@dataclass(frozen=True)
class BonusPrediction:
    selected_option_ids: Tuple[str, ...]

    def __post_init__(self) -> None:
        ids = tuple(str(i).strip() for i in self.selected_option_ids)
        if not ids or not all(ids):
            raise ValueError("Bonustipp braucht mindestens eine Antwort.")
        if len(set(ids)) != len(ids):
            raise ValueError(f"Bonustipp mit doppelter Antwort: {ids}")
        object.__setattr__(self, "selected_option_ids", ids)
