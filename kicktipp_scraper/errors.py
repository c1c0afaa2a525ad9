"""Error taxonomy and the result wrapper returned by every extractor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class KicktippError(Exception):
    pass


class CredentialsError(KicktippError, ValueError):
    """Username or password missing; raised before any request is made."""


class LoginError(KicktippError):
    """kicktipp.de rejected the login or the login page looked unexpected."""


class IssueKind(str, Enum):
    TRANSPORT = "transport"   # non-2xx or network exception
    STRUCTURE = "structure"   # expected table/form/row not on the page
    FIELD = "field"           # a single row's numbers or time did not parse


@dataclass(frozen=True)
class ScrapeIssue:
    kind: IssueKind
    message: str
    row: Optional[int] = None

    def __str__(self) -> str:
        where = f" (Zeile {self.row})" if self.row is not None else ""
        return f"[{self.kind.value}] {self.message}{where}"


@dataclass
class ScrapeResult(Generic[T]):
    """
    Value plus everything that went wrong while producing it.

    The value is always usable (an empty list/dict or None on structural
    failure), so callers that only want the data can ignore ``issues``;
    callers that need to tell "nothing there" from "page changed" can check
    ``structure_missing``.
    """
    value: T
    issues: List[ScrapeIssue] = field(default_factory=list)

    @property
    def structure_missing(self) -> bool:
        return any(i.kind is IssueKind.STRUCTURE for i in self.issues)

    @property
    def ok(self) -> bool:
        return not any(i.kind in (IssueKind.STRUCTURE, IssueKind.TRANSPORT) for i in self.issues)

    def count(self, kind: IssueKind) -> int:
        return sum(1 for i in self.issues if i.kind is kind)

    def add(self, kind: IssueKind, message: str, row: Optional[int] = None) -> None:
        self.issues.append(ScrapeIssue(kind, message, row))
