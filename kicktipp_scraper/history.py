"""
Spielinfo pages: one page per match, linked by a "next" arrow.

Each page repeats the match row of the Tippabgabe table and adds the recent
results of both teams (``ansicht=1``), their home/away-only results
(``ansicht=2``) or the head-to-head record (``ansicht=3``).
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from .dom import TableRow, read_rows, soup_of
from .errors import IssueKind, ScrapeResult
from .fixtures import Clock, FixtureRow, kickoff_of, parse_count, read_matchday, site_now, walk_fixture_rows
from .models import HeadToHeadResult, Match, MatchOutcome, MatchResult, MatchWithHistory

log = logging.getLogger(__name__)

VIEW_RESULTS = 1
VIEW_HOME_AWAY = 2
VIEW_HEAD_TO_HEAD = 3

HOME_HISTORY_CLASS = "spielinfoHeim"
AWAY_HISTORY_CLASS = "spielinfoGast"
HEAD_TO_HEAD_CLASS = "spielinfoDirekterVergleich"

_OUTCOME_MARKERS = ("sieg", "niederlage", "remis")
_ANNOTATIONS = {
    "verlaengerung": "nach Verlängerung",
    "elfmeter": "nach Elfmeterschießen",
}

Fetch = Callable[[str], Optional[str]]


# -----------------------------------------------------------------------------
# Links
# -----------------------------------------------------------------------------
def find_spielinfo_link(html: str) -> Optional[str]:
    a = soup_of(html).select_one("a[href*='spielinfo']")
    href = (a.get("href") or "").strip() if a is not None else ""
    return href or None


def with_view(url: str, view: Optional[int]) -> str:
    if view is None:
        return url
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "ansicht"]
    query.append(("ansicht", str(view)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def find_next_link(soup: BeautifulSoup) -> Optional[str]:
    nxt = soup.select_one(".prevnextNext a")
    if nxt is None:
        log.debug("Kein 'nächstes Spiel'-Link gefunden.")
        return None
    parent = nxt.parent
    if parent is not None and "disabled" in (parent.get("class") or []):
        log.debug("'Nächstes Spiel' deaktiviert – letztes Spiel erreicht.")
        return None
    href = (nxt.get("href") or "").strip()
    return href or None


# -----------------------------------------------------------------------------
# Scores & outcomes
# -----------------------------------------------------------------------------
def parse_score(tokens: Tuple[str, ...]) -> Tuple[Optional[int], Optional[int]]:
    if len(tokens) < 2:
        return None, None
    h, a = parse_count(tokens[0]), parse_count(tokens[1])
    if h is None or a is None:
        return None, None
    return h, a


def outcome_of(home_goals: int, away_goals: int, away_side: bool = False) -> MatchOutcome:
    ours, theirs = (away_goals, home_goals) if away_side else (home_goals, away_goals)
    if ours > theirs:
        return MatchOutcome.WIN
    if ours < theirs:
        return MatchOutcome.LOSS
    return MatchOutcome.DRAW


def _is_away_side(row: TableRow, home_idx: int, away_idx: int, team: Optional[str]) -> bool:
    """Whose result is this row? Class markers first, then the tracked name."""
    if row.cell(home_idx).has_class(*_OUTCOME_MARKERS):
        return False
    if row.cell(away_idx).has_class(*_OUTCOME_MARKERS):
        return True
    if team:
        return row.text(away_idx) == team and row.text(home_idx) != team
    return False


def history_from_rows(rows: Iterable[TableRow], team: Optional[str] = None) -> List[MatchResult]:
    out: List[MatchResult] = []
    for row in rows:
        if len(row) < 4:
            continue
        result_cell = row.cell(3)
        hg, ag = parse_score(result_cell.score_tokens)
        if hg is None or ag is None:
            outcome = MatchOutcome.PENDING
        else:
            outcome = outcome_of(hg, ag, _is_away_side(row, 1, 2, team))
        out.append(MatchResult(
            competition=row.text(0),
            home_team=row.text(1),
            away_team=row.text(2),
            home_goals=hg,
            away_goals=ag,
            outcome=outcome,
            annotation=_ANNOTATIONS.get(result_cell.score_phase or ""),
        ))
    return out


def extract_team_history(soup: BeautifulSoup, table_class: str, team: Optional[str] = None) -> List[MatchResult]:
    table = soup.select_one(f"table.{table_class}")
    if table is None:
        log.debug(f"Historientabelle .{table_class} nicht gefunden")
        return []
    return history_from_rows(read_rows(table), team)


def head_to_head_from_rows(rows: Iterable[TableRow]) -> List[HeadToHeadResult]:
    out: List[HeadToHeadResult] = []
    for row in rows:
        if len(row) >= 6:
            league, matchday, played_at, home, away = (row.text(i) for i in range(5))
            result_cell = row.cell(5)
        elif len(row) == 5:
            league, matchday, home, away = (row.text(i) for i in range(4))
            played_at = ""
            result_cell = row.cell(4)
        else:
            continue
        hg, ag = parse_score(result_cell.score_tokens)
        out.append(HeadToHeadResult(
            league=league,
            matchday=matchday,
            played_at=played_at,
            home_team=home,
            away_team=away,
            score=f"{hg}:{ag}" if hg is not None else "",
            annotation=_ANNOTATIONS.get(result_cell.score_phase or ""),
        ))
    return out


def extract_head_to_head(soup: BeautifulSoup) -> List[HeadToHeadResult]:
    table = soup.select_one(f"table.{HEAD_TO_HEAD_CLASS}")
    if table is None:
        log.debug("Tabelle 'Direkter Vergleich' nicht gefunden")
        return []
    return head_to_head_from_rows(read_rows(table))


def head_to_head_as_results(detailed: Iterable[HeadToHeadResult], team: str) -> List[MatchResult]:
    """Flatten the detailed record into MatchResults seen from ``team``."""
    out: List[MatchResult] = []
    for h in detailed:
        hg = ag = None
        outcome = MatchOutcome.PENDING
        if h.score:
            hg, ag = (int(x) for x in h.score.split(":"))
            outcome = outcome_of(hg, ag, away_side=(h.away_team == team and h.home_team != team))
        out.append(MatchResult(h.league, h.home_team, h.away_team, hg, ag, outcome, h.annotation))
    return out


# -----------------------------------------------------------------------------
# Detail page
# -----------------------------------------------------------------------------
def detail_match_row(soup: BeautifulSoup) -> Optional[FixtureRow]:
    """The row with the live bet inputs, ignoring decorative rows around it."""
    rows: List[TableRow] = []
    for table in soup.select("table.tippabgabe"):
        rows.extend(read_rows(table))
    for row in walk_fixture_rows(rows):
        if row.is_open and row.has_teams:
            return row
    return None


def parse_detail_soup(soup: BeautifulSoup, now: Clock = site_now) -> ScrapeResult[Optional[MatchWithHistory]]:
    result: ScrapeResult[Optional[MatchWithHistory]] = ScrapeResult(None)
    row = detail_match_row(soup)
    if row is None:
        log.warning("Keine Spielzeile mit Tippfeldern auf der Spielinfo-Seite gefunden")
        result.add(IssueKind.STRUCTURE, "Spielzeile auf Spielinfo-Seite nicht gefunden")
        return result
    match = Match(row.home_team, row.away_team, kickoff_of(row, result, now), read_matchday(soup))
    result.value = MatchWithHistory(
        match=match,
        home_team_history=extract_team_history(soup, HOME_HISTORY_CLASS, row.home_team),
        away_team_history=extract_team_history(soup, AWAY_HISTORY_CLASS, row.away_team),
    )
    return result


def parse_detail_page(html: str, now: Clock = site_now) -> ScrapeResult[Optional[MatchWithHistory]]:
    return parse_detail_soup(soup_of(html), now)


# -----------------------------------------------------------------------------
# Paginator
# -----------------------------------------------------------------------------
class HistoryPaginator:
    """
    Walks the spielinfo chain one page at a time.

    ``fetch`` returns the page HTML or ``None`` on any failure; the chain is
    trusted to be linear, so the walk ends when no enabled "next" link is
    offered or the first fetch fails.
    """

    def __init__(self, fetch: Fetch, now: Clock = site_now) -> None:
        self.fetch = fetch
        self.now = now
        self.failed_url: Optional[str] = None

    def pages(self, start_url: str, view: Optional[int] = None) -> Iterator[Tuple[str, BeautifulSoup]]:
        self.failed_url = None
        url: Optional[str] = start_url
        while url:
            target = with_view(url, view)
            html = self.fetch(target)
            if html is None:
                log.warning(f"Spielinfo-Seite nicht abrufbar: {target} – breche ab")
                self.failed_url = target
                return
            soup = soup_of(html)
            yield target, soup
            url = find_next_link(soup)

    def crawl(self, start_url: str) -> ScrapeResult[List[MatchWithHistory]]:
        result: ScrapeResult[List[MatchWithHistory]] = ScrapeResult([])
        for target, soup in self.pages(start_url):
            page = parse_detail_soup(soup, self.now)
            result.issues.extend(page.issues)
            if page.value is None:
                log.warning(f"Spielinfo-Seite nicht auswertbar: {target} – breche ab")
                break
            result.value.append(page.value)
            log.debug(f"Spiel {len(result.value)} gelesen: {page.value.match}")
        if self.failed_url:
            result.add(IssueKind.TRANSPORT, f"Abruf fehlgeschlagen: {self.failed_url}")
        log.info(f"{len(result.value)} Spiele mit Historie gelesen.")
        return result

    def find_page(self, start_url: str, home_team: str, away_team: str,
                  view: Optional[int] = None) -> Optional[BeautifulSoup]:
        for target, soup in self.pages(start_url, view):
            row = detail_match_row(soup)
            if row is not None and row.key == (home_team, away_team):
                log.debug(f"Spielinfo für {home_team} vs {away_team} gefunden: {target}")
                return soup
        log.info(f"Spielinfo für {home_team} vs {away_team} nicht gefunden")
        return None
