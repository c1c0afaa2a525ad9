"""
Rebuild the Tippabgabe form as a POST payload.

kicktipp stores every row of the form on submit, so the payload has to carry
the current value of every bet field, not just the ones we want to change.
Only rows the caller asked for are rewritten; everything else goes back
exactly as it came.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Hashable, List, Mapping, Optional, Set, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .dom import input_from_tag, read_rows, soup_of
from .errors import IssueKind, ScrapeResult
from .fixtures import FixtureRow, walk_fixture_rows
from .models import FormField, MatchKey, Prediction
from .session import BASE_URL

log = logging.getLogger(__name__)

HOME_SUFFIX = "_heimTipp"
AWAY_SUFFIX = "_gastTipp"
DEFAULT_SUBMIT = FormField("submitbutton", "Submit")

_SKIP_INPUT_TYPES = {"hidden", "submit", "button", "image", "reset", "file"}
_FREE_TEXT_TYPES = {"text", "number"}


@dataclass
class Reconciliation:
    """
    A ready-to-post payload plus what happened to each requested entry.

    Keys are ``(home, away)`` for match bets and form field names for bonus
    questions.
    """
    payload: List[FormField]
    action_url: str
    placed: int = 0
    skipped: int = 0
    placed_keys: List[Hashable] = field(default_factory=list)
    skipped_keys: List[Hashable] = field(default_factory=list)
    unmatched: List[Hashable] = field(default_factory=list)
    rejected: List[Hashable] = field(default_factory=list)

    @property
    def matched_all_requested(self) -> bool:
        return not self.unmatched

    @property
    def is_noop(self) -> bool:
        return self.placed == 0

    def pairs(self) -> List[Tuple[str, str]]:
        return [(f.name, f.value) for f in self.payload]

    def names(self) -> Set[str]:
        return {f.name for f in self.payload}

    def value_of(self, name: str) -> Optional[str]:
        for f in reversed(self.payload):
            if f.name == name:
                return f.value
        return None

    def values_of(self, name: str) -> List[str]:
        return [f.value for f in self.payload if f.name == name]


class FormPayload:
    def __init__(self) -> None:
        self.fields: List[FormField] = []

    def add(self, name: str, value: str) -> None:
        self.fields.append(FormField(name, value))

    def names(self) -> Set[str]:
        return {f.name for f in self.fields}


# -----------------------------------------------------------------------------
# Page structure
# -----------------------------------------------------------------------------
def find_bet_form(soup: BeautifulSoup) -> Optional[Tag]:
    form = soup.select_one("form#tippabgabeForm")
    if form is not None:
        return form
    for f in soup.find_all("form"):
        if f.select_one('input[name="tippsaisonId"]') or f.select_one('input[name="spieltagIndex"]'):
            return f
    return soup.find("form")


def find_bet_rows_container(soup: BeautifulSoup) -> Tuple[Optional[Tag], Optional[Tag]]:
    """Returns ``(content_area, tbody)``."""
    content = soup.select_one("#kicktipp-content")
    if content is None:
        return None, None
    tbody = content.select_one("#tippabgabeSpiele tbody") or content.find("tbody")
    return content, tbody


def resolve_action(action: Optional[str], page_url: str, community: str,
                   base_url: str = BASE_URL) -> str:
    action = (action or "").strip()
    if not action:
        return page_url
    if action.startswith(("http://", "https://")):
        return action
    if action.startswith("/"):
        return urljoin(base_url, action)
    return urljoin(f"{base_url.rstrip('/')}/{community.strip('/')}/", action)


def resolve_submit(form: Tag) -> FormField:
    for el in form.select("input[type=submit], button[type=submit], button:not([type])"):
        name = (el.get("name") or "").strip()
        if el.has_attr("disabled") or not name:
            continue
        return FormField(name, el.get("value") or "Submit")
    return DEFAULT_SUBMIT


# -----------------------------------------------------------------------------
# Payload building blocks
# -----------------------------------------------------------------------------
def selected_value(sel: Tag) -> Optional[str]:
    """What the browser sends for a ``<select>``: the selected option, else the first one."""
    opt = sel.find("option", selected=True) or sel.find("option")
    if opt is None:
        return None
    return opt.get("value", opt.get_text(strip=True))


def copy_hidden(form: Tag, payload: FormPayload) -> None:
    for inp in form.find_all("input", attrs={"type": "hidden"}):
        name = inp.get("name")
        if name:
            payload.add(name, inp.get("value") or "")


def copy_remaining(form: Tag, payload: FormPayload) -> None:
    """Carry over every other control the browser would send (tie-breakers, jokers, ...)."""
    captured = payload.names()
    for inp in form.find_all("input"):
        fi = input_from_tag(inp)
        if not fi.name or fi.disabled or fi.name in captured or fi.type in _SKIP_INPUT_TYPES:
            continue
        if fi.type in {"checkbox", "radio"}:
            if inp.has_attr("checked"):
                payload.add(fi.name, inp.get("value", "on"))
            continue
        if fi.type in _FREE_TEXT_TYPES:
            payload.add(fi.name, fi.value)
    for sel in form.find_all("select"):
        name = sel.get("name")
        if not name or sel.has_attr("disabled") or name in captured:
            continue
        value = selected_value(sel)
        if value is not None:
            payload.add(name, value)
    for ta in form.find_all("textarea"):
        name = ta.get("name")
        if not name or ta.has_attr("disabled") or name in captured:
            continue
        payload.add(name, ta.text or "")


def finish(form: Tag, payload: FormPayload, rec: Reconciliation, page_url: str,
           community: str, base_url: str) -> None:
    """Remaining controls, submit control and target."""
    copy_remaining(form, payload)
    submit = resolve_submit(form)
    payload.add(submit.name, submit.value)
    rec.action_url = resolve_action(form.get("action"), page_url, community, base_url)


def _bet_inputs(row: FixtureRow):
    return row.input_cell.input_with_id_suffix(HOME_SUFFIX), row.input_cell.input_with_id_suffix(AWAY_SUFFIX)


# -----------------------------------------------------------------------------
# Reconcile
# -----------------------------------------------------------------------------
def reconcile(html: str,
              desired: Mapping[MatchKey, Prediction],
              override: bool = False,
              page_url: Optional[str] = None,
              community: str = "",
              base_url: str = BASE_URL) -> ScrapeResult[Optional[Reconciliation]]:
    """
    Merge ``desired`` predictions into the current form state.

    Rows not in ``desired`` are copied through with their current values.
    Rows in ``desired`` that already hold a full prediction are left alone
    (and counted as skipped) unless ``override`` is set.
    """
    result: ScrapeResult[Optional[Reconciliation]] = ScrapeResult(None)
    page_url = page_url or f"{base_url.rstrip('/')}/{community.strip('/')}/tippabgabe"

    soup = soup_of(html)
    form = find_bet_form(soup)
    if form is None:
        log.warning("Tippabgabe-Formular nicht gefunden.")
        result.add(IssueKind.STRUCTURE, "Formular nicht gefunden")
        return result
    content, tbody = find_bet_rows_container(soup)
    if content is None:
        log.warning("Inhaltsbereich (#kicktipp-content) nicht gefunden.")
        result.add(IssueKind.STRUCTURE, "Inhaltsbereich nicht gefunden")
        return result
    if tbody is None:
        log.warning("Keine Tipp-Tabelle im Formular gefunden.")
        result.add(IssueKind.STRUCTURE, "Tipp-Tabelle nicht gefunden")
        return result

    payload = FormPayload()

    # 1) hidden fields, verbatim
    copy_hidden(form, payload)

    # 2) bet rows
    rec = Reconciliation(payload=payload.fields, action_url="")
    matched: Set[MatchKey] = set()
    for row in walk_fixture_rows(read_rows(tbody)):
        home_inp, away_inp = _bet_inputs(row)
        wanted = row.key in desired
        if home_inp is None or away_inp is None:
            if wanted:
                log.warning(f"{row.home_team} vs {row.away_team} - keine Tippfelder gefunden, überspringe")
                result.add(IssueKind.FIELD, f"Keine Tippfelder für {row.home_team} vs {row.away_team}", row.index)
            continue
        if not home_inp.name or not away_inp.name:
            log.warning(f"{row.home_team} vs {row.away_team} - Tippfelder ohne name-Attribut, überspringe")
            if wanted:
                result.add(IssueKind.FIELD, f"Tippfelder ohne Namen für {row.home_team} vs {row.away_team}", row.index)
            continue
        if home_inp.disabled or away_inp.disabled:
            if wanted:
                log.info(f"{row.home_team} vs {row.away_team} - Tippabgabe geschlossen")
            continue

        if not wanted or row.key in matched:
            payload.add(home_inp.name, home_inp.value)
            payload.add(away_inp.name, away_inp.value)
            continue

        matched.add(row.key)
        if home_inp.filled and away_inp.filled and not override:
            log.info(f"{row.home_team} vs {row.away_team} - übersprungen, bereits getippt "
                     f"{home_inp.value}:{away_inp.value}")
            payload.add(home_inp.name, home_inp.value)
            payload.add(away_inp.name, away_inp.value)
            rec.skipped += 1
            rec.skipped_keys.append(row.key)
            continue

        pred = desired[row.key]
        log.info(f"{row.home_team} vs {row.away_team} - tippe {pred}")
        payload.add(home_inp.name, str(pred.home_goals))
        payload.add(away_inp.name, str(pred.away_goals))
        rec.placed += 1
        rec.placed_keys.append(row.key)

    # 3) everything else the form would send, 4) submit control, 5) target
    finish(form, payload, rec, page_url, community, base_url)

    # 6) bookkeeping
    rec.unmatched = [k for k in desired if k not in matched]
    for home, away in rec.unmatched:
        log.warning(f"Spiel {home} vs {away} nicht im Tippformular gefunden")

    log.info(f"Zusammenfassung: {rec.placed} Tipps zu setzen, {rec.skipped} übersprungen, "
             f"{len(rec.unmatched)} nicht gefunden")
    result.value = rec
    return result
