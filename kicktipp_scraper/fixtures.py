"""
Tippabgabe page -> open matches / placed predictions.

kicktipp prints the kickoff only on the first row of a day; the following
rows of that day leave the date cell blank. ``walk_fixture_rows`` folds the
last seen kickoff through the rows so every row carries its own copy.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from .dom import Cell, FormInput, TableRow, read_rows, soup_of
from .errors import IssueKind, ScrapeResult
from .models import Match, Prediction

log = logging.getLogger(__name__)

KICKOFF_FORMAT = "%d.%m.%y %H:%M"
# kicktipp renders German local time; a fixed offset is good enough here (no DST).
SITE_TZ = timezone(timedelta(hours=1))
_ASCII_DIGITS = re.compile(r"\d+", re.ASCII)

Clock = Callable[[], datetime]


def site_now() -> datetime:
    return datetime.now(SITE_TZ)


# -----------------------------------------------------------------------------
# Kickoff parsing
# -----------------------------------------------------------------------------
def parse_kickoff(text: Optional[str], now: Clock = site_now) -> Tuple[datetime, bool]:
    """
    Parse "22.08.25 20:30" into an aware datetime at the site offset.

    Returns ``(value, ok)``. On failure ``value`` is ``now()`` so a single bad
    cell never sinks the whole page; ``ok`` tells the caller to count it.
    """
    s = (text or "").strip()
    if not s:
        return now(), False
    try:
        dt = datetime.strptime(s, KICKOFF_FORMAT)
    except ValueError:
        return now(), False
    return dt.replace(tzinfo=SITE_TZ), True


# -----------------------------------------------------------------------------
# Row walk
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class FixtureRow:
    index: int
    kickoff_text: str
    inherited: bool
    home_team: str
    away_team: str
    input_cell: Cell

    @property
    def key(self) -> Tuple[str, str]:
        return self.home_team, self.away_team

    @property
    def has_teams(self) -> bool:
        return bool(self.home_team and self.away_team)

    @property
    def text_inputs(self) -> List[FormInput]:
        return self.input_cell.text_inputs

    @property
    def is_open(self) -> bool:
        return len(self.text_inputs) == 2


def carry_kickoff(carried: str, own: str) -> Tuple[str, str]:
    """One fold step: returns ``(kickoff for this row, kickoff to carry on)``."""
    own = own.strip()
    if own:
        return own, own
    return carried, carried


def walk_fixture_rows(rows: Iterable[TableRow]) -> List[FixtureRow]:
    out: List[FixtureRow] = []
    carried = ""
    for idx, row in enumerate(rows, 1):
        if len(row) < 4:
            continue
        own = row.text(0)
        kickoff, carried = carry_kickoff(carried, own)
        out.append(FixtureRow(
            index=idx,
            kickoff_text=kickoff,
            inherited=not own.strip() and bool(kickoff),
            home_team=row.text(1).strip(),
            away_team=row.text(2).strip(),
            input_cell=row.cell(3),
        ))
    return out


def kickoff_of(row: FixtureRow, result: ScrapeResult, now: Clock = site_now) -> datetime:
    """Parse a row's kickoff and record a FIELD issue when it falls back to now()."""
    starts_at, ok = parse_kickoff(row.kickoff_text, now)
    if ok:
        if row.inherited:
            log.debug(f"Anstoß geerbt für {row.home_team} vs {row.away_team}: '{row.kickoff_text}'")
        return starts_at
    if not row.kickoff_text:
        msg = f"Keine Anstoßzeit (auch keine geerbte) für {row.home_team} vs {row.away_team}"
    else:
        msg = f"Anstoßzeit nicht lesbar für {row.home_team} vs {row.away_team}: '{row.kickoff_text}'"
    log.warning(f"{msg} – verwende aktuelle Zeit.")
    result.add(IssueKind.FIELD, msg, row.index)
    return starts_at


# -----------------------------------------------------------------------------
# Page helpers
# -----------------------------------------------------------------------------
def fixture_table(soup: BeautifulSoup) -> Optional[Tag]:
    return soup.select_one("#tippabgabeSpiele tbody") or soup.select_one("table#tippabgabeSpiele")


def read_matchday(soup: BeautifulSoup, default: int = 1) -> int:
    title = soup.select_one(".prevnextTitle a")
    if title is not None:
        m = re.search(r"(\d+)\.\s*Spieltag", title.get_text(" ", strip=True))
        if m:
            return int(m.group(1))
    hid = soup.select_one('input[name="spieltagIndex"]')
    if hid is not None:
        index = parse_count(hid.get("value"))
        if index is not None:
            return index
    return default


def parse_count(text: Optional[str]) -> Optional[int]:
    """Non-negative integer in plain ASCII digits, else None ("²" or "٣" are not goals)."""
    s = (text or "").strip()
    if _ASCII_DIGITS.fullmatch(s):
        return int(s)
    return None


def read_prediction(home_value: str, away_value: str) -> Optional[Prediction]:
    h, a = parse_count(home_value), parse_count(away_value)
    if h is None or a is None:
        return None
    return Prediction(h, a)


def _matches_from(html: str, now: Clock) -> Tuple[ScrapeResult, List[Tuple[FixtureRow, Match]]]:
    result: ScrapeResult = ScrapeResult(None)
    soup = soup_of(html)
    table = fixture_table(soup)
    if table is None:
        log.warning("Tippabgabe-Tabelle (#tippabgabeSpiele) nicht gefunden.")
        result.add(IssueKind.STRUCTURE, "Tippabgabe-Tabelle nicht gefunden")
        return result, []

    matchday = read_matchday(soup)
    rows = walk_fixture_rows(read_rows(table))
    log.debug(f"{len(rows)} mögliche Spielzeilen gefunden (Spieltag {matchday})")

    found: List[Tuple[FixtureRow, Match]] = []
    for fr in rows:
        if not fr.is_open:
            continue
        if not fr.has_teams:
            result.add(IssueKind.FIELD, "Zeile mit Tippfeldern aber ohne Teamnamen", fr.index)
            continue
        starts_at = kickoff_of(fr, result, now)
        found.append((fr, Match(fr.home_team, fr.away_team, starts_at, matchday)))
    return result, found


# -----------------------------------------------------------------------------
# Public extractors
# -----------------------------------------------------------------------------
def extract_open_matches(html: str, now: Clock = site_now) -> ScrapeResult[List[Match]]:
    result, found = _matches_from(html, now)
    result.value = [m for _, m in found]
    if found:
        log.info(f"{len(found)} offene Spiele gefunden.")
    return result


def extract_placed_predictions(html: str,
                               now: Clock = site_now) -> ScrapeResult[Dict[Match, Optional[Prediction]]]:
    result, found = _matches_from(html, now)
    placed: Dict[Match, Optional[Prediction]] = {}
    for fr, match in found:
        home_inp, away_inp = fr.text_inputs
        pred = read_prediction(home_inp.value, away_inp.value)
        if pred is None and (home_inp.filled or away_inp.filled):
            result.add(IssueKind.FIELD,
                       f"Tipp nicht lesbar für {match}: '{home_inp.value}':'{away_inp.value}'", fr.index)
        placed[match] = pred
    result.value = placed
    n_placed = sum(1 for p in placed.values() if p is not None)
    log.info(f"{len(placed)} Spiele gelesen, davon {n_placed} mit Tipp.")
    return result
