from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

import pytest

from kicktipp_scraper.cache import ExpiringCache
from kicktipp_scraper.client import KicktippClient
from kicktipp_scraper.fixtures import SITE_TZ
from kicktipp_scraper.session import BASE_URL, PageResponse

COMMUNITY = "test-community"
FIXED_NOW = datetime(2025, 8, 20, 12, 0, tzinfo=SITE_TZ)


# -----------------------------------------------------------------------------
# HTML builders
# -----------------------------------------------------------------------------
def bet_row(kickoff: str, home: str, away: str, home_val: str = "", away_val: str = "",
            idx: int = 0, disabled: bool = False, named: bool = True) -> str:
    dis = " disabled" if disabled else ""
    h_name = f' name="spieltippForms[{idx}].heimTipp"' if named else ""
    a_name = f' name="spieltippForms[{idx}].gastTipp"' if named else ""
    return f"""
      <tr class="datarow">
        <td class="nw kicktipp-time">{kickoff}</td>
        <td class="nw col1">{home}</td>
        <td class="nw col2">{away}</td>
        <td class="nw kicktipp-tippabgabe">
          <input type="hidden" name="spieltippForms[{idx}].tippAbgegeben" value="{'true' if home_val else 'false'}">
          <input type="text" id="spieltippForms_{idx}_heimTipp"{h_name} value="{home_val}" size="2"{dis}>
          <input type="text" id="spieltippForms_{idx}_gastTipp"{a_name} value="{away_val}" size="2"{dis}>
        </td>
        <td class="nw kicktipp-wettquote">1.85</td>
      </tr>"""


def closed_row(kickoff: str, home: str, away: str, tip: str = "2:1") -> str:
    return f"""
      <tr class="datarow">
        <td class="nw kicktipp-time">{kickoff}</td>
        <td class="nw col1">{home}</td>
        <td class="nw col2">{away}</td>
        <td class="nw kicktipp-tippabgabe">{tip}</td>
      </tr>"""


def tippabgabe_page(rows: str, matchday: int = 1, action: Optional[str] = "/test-community/tippabgabe",
                    extra: str = "", submit: str = '<input type="submit" name="submitbutton" value="Tipps speichern">',
                    spielinfo: str = "/test-community/spielinfo?tippsaisonId=3684392&tippspielId=101") -> str:
    action_attr = f' action="{action}"' if action is not None else ""
    link = f'<a class="spielinfo" href="{spielinfo}">Spielinfo</a>' if spielinfo else ""
    return f"""<!DOCTYPE html>
<html><body>
  <div class="prevnextTitle"><a href="/test-community/tippabgabe?spieltagIndex={matchday}">{matchday}. Spieltag</a></div>
  <div id="kicktipp-content">
    <form id="tippabgabeForm"{action_attr} method="post">
      <input type="hidden" name="_charset_" value="UTF-8">
      <input type="hidden" name="spieltagIndex" value="{matchday}">
      <input type="hidden" name="tippsaisonId" value="3684392">
      <table id="tippabgabeSpiele" class="tippabgabe">
        <thead><tr><th>Termin</th><th>Heim</th><th>Gast</th><th>Tipp</th><th>Quote</th></tr></thead>
        <tbody>{rows}
        </tbody>
      </table>
      {extra}
      {submit}
    </form>
    {link}
  </div>
</body></html>"""


def bonus_select(name: str, options: List[Tuple[str, str]], selected: str = "") -> str:
    opts = '<option value="">---</option>' + "".join(
        f'<option value="{v}"{" selected" if v == selected else ""}>{t}</option>' for v, t in options)
    return f'<select name="{name}">{opts}</select>'


def bonus_row(deadline: str, question: str, selects: str) -> str:
    return f"""
      <tr class="datarow">
        <td class="nw kicktipp-time">{deadline}</td>
        <td class="frage">{question}</td>
        <td class="nw kicktipp-tippabgabe">{selects}</td>
      </tr>"""


def locked_bonus_row(deadline: str, question: str, answer: str) -> str:
    return f"""
      <tr class="datarow">
        <td class="nw kicktipp-time">{deadline}</td>
        <td class="frage">{question}</td>
        <td class="nw kicktipp-tippabgabe nichttippbar"><div>{answer}</div></td>
      </tr>"""


def bonus_page(rows: str, extra: str = "") -> str:
    return f"""<!DOCTYPE html>
<html><body>
  <div id="kicktipp-content">
    <form id="tippabgabeForm" action="/test-community/tippabgabe?bonus=true" method="post">
      <input type="hidden" name="_charset_" value="UTF-8">
      <input type="hidden" name="tippsaisonId" value="3684392">
      <table id="tippabgabeFragen" class="tippabgabe">
        <thead><tr><th>Tippschluss</th><th>Frage</th><th>Tipp</th></tr></thead>
        <tbody>{rows}
        </tbody>
      </table>
      {extra}
      <input type="submit" name="submitbutton" value="Tipps speichern">
    </form>
  </div>
</body></html>"""


TEAMS = [("101", "Team A"), ("102", "Team B"), ("103", "Team C")]
RELEGATION = [("201", "Team X"), ("202", "Team Y"), ("203", "Team Z")]


def bonus_questions_page(champion: str = "", relegated: Tuple[str, str] = ("", ""), extra: str = "") -> str:
    """Meister (one slot), Absteiger (two slots), a locked question."""
    rows = (
        bonus_row("22.08.25 20:30", "Who will win the championship?",
                  bonus_select("bonusForms[1].antwortIds", TEAMS, champion))
        + bonus_row("22.08.25 20:30", "Which teams will be relegated?",
                    bonus_select("bonusForms[2].antwortIds[0]", RELEGATION, relegated[0])
                    + bonus_select("bonusForms[2].antwortIds[1]", RELEGATION, relegated[1]))
        + locked_bonus_row("01.08.25 18:00", "Top scorer team?", "FC Bayern München")
    )
    return bonus_page(rows, extra)


def history_row(competition: str, home: str, away: str, home_goals: str, away_goals: str,
                home_cls: str = "", away_cls: str = "", phase: str = "abpfiff") -> str:
    return f"""
      <tr>
        <td>{competition}</td>
        <td class="{home_cls}">{home}</td>
        <td class="{away_cls}">{away}</td>
        <td class="ergebnis"><span class="kicktipp-abschnitt kicktipp-{phase}"><span class="kicktipp-heim">{home_goals}</span><span class="kicktipp-tore-trenner">:</span><span class="kicktipp-gast">{away_goals}</span></span></td>
      </tr>"""


def h2h_row(league: str, matchday: str, played_at: str, home: str, away: str,
            home_goals: str, away_goals: str, phase: str = "abpfiff") -> str:
    return f"""
      <tr>
        <td>{league}</td><td>{matchday}</td><td>{played_at}</td><td>{home}</td><td>{away}</td>
        <td><span class="kicktipp-abschnitt kicktipp-{phase}"><span class="kicktipp-heim">{home_goals}</span>:<span class="kicktipp-gast">{away_goals}</span></span></td>
      </tr>"""


def spielinfo_page(home: str, away: str, kickoff: str = "22.08.25 20:30",
                   home_history: str = "", away_history: str = "", h2h: str = "",
                   next_href: Optional[str] = None, next_disabled: bool = False, matchday: int = 1) -> str:
    if next_href is None and not next_disabled:
        nav = ""
    else:
        cls = "prevnextNext disabled" if next_disabled else "prevnextNext"
        nav = f'<div class="{cls}"><a href="{next_href or "#"}">nächstes Spiel</a></div>'
    return f"""<!DOCTYPE html>
<html><body>
  <div class="prevnextTitle"><a href="#">{matchday}. Spieltag</a></div>
  <div id="kicktipp-content">
    <table class="tippabgabe">
      <tbody>
        <tr><td>Termin</td><td>Heim</td><td>Gast</td><td>Tipp</td></tr>
        {bet_row(kickoff, home, away)}
      </tbody>
    </table>
    <table class="spielinfoHeim"><tbody>{home_history}</tbody></table>
    <table class="spielinfoGast"><tbody>{away_history}</tbody></table>
    <table class="spielinfoDirekterVergleich"><tbody>{h2h}</tbody></table>
    {nav}
  </div>
</body></html>"""


def standings_row(pos: str, team: str, games: str, points: str, goals: str,
                  diff: str, wins: str, draws: str, losses: str) -> str:
    return f"""
      <tr>
        <td class="position">{pos}</td>
        <td class="team"><div>{team}</div><span class="kurz">{team[:3].upper()}</span></td>
        <td>{games}</td><td>{points}</td><td>{goals}</td><td>{diff}</td>
        <td>{wins}</td><td>{draws}</td><td>{losses}</td>
      </tr>"""


def standings_page(rows: str) -> str:
    return f"""<html><body><div id="kicktipp-content">
  <table class="sporttabelle">
    <thead><tr><th>Pl.</th><th>Team</th><th>Sp.</th><th>Pkt.</th><th>Tore</th><th>Diff.</th><th>S</th><th>U</th><th>N</th></tr></thead>
    <tbody>{rows}</tbody>
  </table>
</div></body></html>"""


# -----------------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------------
def normalize(url: str) -> str:
    if url.startswith(BASE_URL):
        url = url[len(BASE_URL):]
    parts = urlsplit(url)
    path = parts.path.lstrip("/")
    if not parts.query:
        return path
    return f"{path}?{urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))}"


class FakeTransport:
    """
    Serves canned pages keyed by path (query order is irrelevant). A page
    registered with a query string wins over the bare path when a GET sends
    those params.

    A page value may be an HTML string, a ``PageResponse``, an exception to
    raise, or a list of those served one after another (the last one sticks).
    """

    def __init__(self, pages: Optional[Dict[str, object]] = None, post_status: int = 200) -> None:
        self.pages: Dict[str, object] = {normalize(k): v for k, v in (pages or {}).items()}
        self.post_status = post_status
        self.calls: List[Tuple[str, str, object]] = []

    def set(self, path: str, value: object) -> None:
        self.pages[normalize(path)] = value

    def _respond(self, path: str, params: Optional[Dict[str, str]] = None) -> PageResponse:
        key = normalize(path)
        if params:
            with_params = normalize(f"{path}?{urlencode(params)}")
            if with_params in self.pages:
                key = with_params
        url = f"{BASE_URL}/{key}"
        value = self.pages.get(key)
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if value is None:
            return PageResponse(404, "Not Found", url)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, PageResponse):
            return value
        return PageResponse(200, value, url)

    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> PageResponse:
        self.calls.append(("GET", path, params))
        return self._respond(path, params)

    def post(self, path: str, data: List[Tuple[str, str]]) -> PageResponse:
        self.calls.append(("POST", path, list(data)))
        return PageResponse(self.post_status, "<html></html>", path)

    @property
    def gets(self) -> List[str]:
        return [normalize(p) for m, p, _ in self.calls if m == "GET"]

    @property
    def posts(self) -> List[Tuple[str, List[Tuple[str, str]]]]:
        return [(p, d) for m, p, d in self.calls if m == "POST"]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def now():
    return lambda: FIXED_NOW


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport, clock, now):
    return KicktippClient(transport, cache=ExpiringCache(clock), now=now)
