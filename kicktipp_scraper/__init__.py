"""kicktipp.de scraping and Tippabgabe form reconciliation (match bets and bonus questions)."""

from .cache import ExpiringCache
from .client import BetSubmission, KicktippClient, SubmissionState
from .errors import CredentialsError, IssueKind, KicktippError, LoginError, ScrapeIssue, ScrapeResult
from .models import (
    BonusOption,
    BonusPrediction,
    BonusQuestion,
    FormField,
    HeadToHeadResult,
    Match,
    MatchOutcome,
    MatchResult,
    MatchWithHistory,
    Prediction,
    TeamStanding,
)
from .session import KicktippSession, PageResponse

__version__ = "0.1.0"

__all__ = [
    "BetSubmission",
    "BonusOption",
    "BonusPrediction",
    "BonusQuestion",
    "CredentialsError",
    "ExpiringCache",
    "FormField",
    "HeadToHeadResult",
    "IssueKind",
    "KicktippClient",
    "KicktippError",
    "KicktippSession",
    "LoginError",
    "Match",
    "MatchOutcome",
    "MatchResult",
    "MatchWithHistory",
    "PageResponse",
    "Prediction",
    "ScrapeIssue",
    "ScrapeResult",
    "SubmissionState",
    "TeamStanding",
]
