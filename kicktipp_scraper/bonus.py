"""
Bonus questions (``/<community>/tippabgabe?bonus=true``).

The bonus view uses the same ``tippabgabeForm`` as the match bets, but each
row holds a question and one ``<select>`` per answer slot instead of two
score inputs. Questions whose deadline has passed are rendered as plain text
(``nichttippbar``) and carry no select at all; they are neither open nor
placeable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Set, Tuple

from bs4 import BeautifulSoup, Tag

from .dom import soup_of
from .errors import IssueKind, ScrapeResult
from .fixtures import Clock, parse_kickoff, site_now
from .models import BonusOption, BonusPrediction, BonusQuestion
from .reconcile import FormPayload, Reconciliation, copy_hidden, find_bet_form, finish, selected_value
from .session import BASE_URL

log = logging.getLogger(__name__)

BONUS_PARAMS = {"bonus": "true"}


@dataclass(frozen=True)
class QuestionRow:
    index: int
    deadline_text: str
    text: str
    selects: Tuple[Tag, ...]

    @property
    def key(self) -> str:
        return self.selects[0]["name"]

    @property
    def options(self) -> Tuple[BonusOption, ...]:
        out = []
        for opt in self.selects[0].find_all("option"):
            value = (opt.get("value") or "").strip()
            if value:
                out.append(BonusOption(value, opt.get_text(" ", strip=True)))
        return tuple(out)

    def current_ids(self) -> Tuple[str, ...]:
        """Explicitly selected answers; the empty placeholder option does not count."""
        ids = []
        for sel in self.selects:
            opt = sel.find("option", selected=True)
            value = (opt.get("value") or "").strip() if opt is not None else ""
            if value:
                ids.append(value)
        return tuple(dict.fromkeys(ids))


# -----------------------------------------------------------------------------
# Page structure
# -----------------------------------------------------------------------------
def bonus_table(soup: BeautifulSoup) -> Optional[Tag]:
    return soup.select_one("#tippabgabeFragen tbody") or soup.select_one("table#tippabgabeFragen")


def question_rows(table: Tag) -> List[QuestionRow]:
    """Open question rows; locked rows are logged and dropped."""
    out: List[QuestionRow] = []
    for idx, tr in enumerate(table.find_all("tr", recursive=False), 1):
        tds = tr.find_all("td", recursive=False)
        if len(tds) < 3:
            continue
        text = " ".join(tds[1].stripped_strings)
        selects = tuple(s for s in tr.find_all("select") if s.get("name") and not s.has_attr("disabled"))
        if not selects:
            log.debug(f"Bonusfrage gesperrt: {text!r}")
            continue
        out.append(QuestionRow(idx, tds[0].get_text(" ", strip=True), text, selects))
    return out


def _open_rows(html: str, result: ScrapeResult) -> List[QuestionRow]:
    table = bonus_table(soup_of(html))
    if table is None:
        log.warning("Bonusfragen-Tabelle (#tippabgabeFragen) nicht gefunden.")
        result.add(IssueKind.STRUCTURE, "Bonusfragen-Tabelle nicht gefunden")
        return []
    return question_rows(table)


# -----------------------------------------------------------------------------
# Public extractors
# -----------------------------------------------------------------------------
def extract_open_bonus_questions(html: str, now: Clock = site_now) -> ScrapeResult[List[BonusQuestion]]:
    result: ScrapeResult[List[BonusQuestion]] = ScrapeResult([])
    for row in _open_rows(html, result):
        if not row.text:
            result.add(IssueKind.FIELD, "Bonusfrage ohne Text", row.index)
            continue
        options = row.options
        if not options:
            log.warning(f"Bonusfrage ohne Antwortmöglichkeiten: {row.text!r}")
            result.add(IssueKind.FIELD, f"Keine Antwortmöglichkeiten für {row.text!r}", row.index)
            continue
        deadline, ok = parse_kickoff(row.deadline_text, now)
        if not ok:
            log.warning(f"Tippschluss nicht lesbar für {row.text!r}: '{row.deadline_text}' – verwende aktuelle Zeit.")
            result.add(IssueKind.FIELD, f"Tippschluss nicht lesbar für {row.text!r}", row.index)
        result.value.append(BonusQuestion(
            text=row.text,
            deadline=deadline,
            options=options,
            field_names=tuple(s["name"] for s in row.selects),
        ))
    if result.value:
        log.info(f"{len(result.value)} offene Bonusfragen gefunden.")
    return result


def extract_placed_bonus_predictions(html: str) -> ScrapeResult[Dict[str, Optional[BonusPrediction]]]:
    """Open questions keyed by form field name; ``None`` where nothing is selected yet."""
    result: ScrapeResult[Dict[str, Optional[BonusPrediction]]] = ScrapeResult({})
    for row in _open_rows(html, result):
        ids = row.current_ids()
        result.value[row.key] = BonusPrediction(ids) if ids else None
    n_placed = sum(1 for p in result.value.values() if p is not None)
    log.info(f"{len(result.value)} Bonusfragen gelesen, davon {n_placed} beantwortet.")
    return result


# -----------------------------------------------------------------------------
# Reconcile
# -----------------------------------------------------------------------------
def _keep_current(row: QuestionRow, payload: FormPayload) -> None:
    for sel in row.selects:
        value = selected_value(sel)
        if value is not None:
            payload.add(sel["name"], value)


def reconcile_bonus(html: str,
                    desired: Mapping[str, BonusPrediction],
                    override: bool = False,
                    page_url: Optional[str] = None,
                    community: str = "",
                    base_url: str = BASE_URL) -> ScrapeResult[Optional[Reconciliation]]:
    """
    Merge ``desired`` answers (keyed by form field name) into the bonus form.

    Same rules as the match bets: untouched questions keep their current
    selection, answered questions are only replaced with ``override``. An
    answer naming an unknown option or more options than the question has
    slots is rejected (FIELD issue) and the question keeps its selection.
    """
    result: ScrapeResult[Optional[Reconciliation]] = ScrapeResult(None)
    page_url = page_url or f"{base_url.rstrip('/')}/{community.strip('/')}/tippabgabe?bonus=true"

    soup = soup_of(html)
    form = find_bet_form(soup)
    if form is None:
        log.warning("Bonus-Formular nicht gefunden.")
        result.add(IssueKind.STRUCTURE, "Formular nicht gefunden")
        return result
    table = bonus_table(soup)
    if table is None:
        log.warning("Bonusfragen-Tabelle (#tippabgabeFragen) nicht gefunden.")
        result.add(IssueKind.STRUCTURE, "Bonusfragen-Tabelle nicht gefunden")
        return result

    payload = FormPayload()
    copy_hidden(form, payload)

    rec = Reconciliation(payload=payload.fields, action_url="")
    matched: Set[str] = set()
    for row in question_rows(table):
        key = row.key
        if key not in desired or key in matched:
            _keep_current(row, payload)
            continue
        matched.add(key)

        current = row.current_ids()
        if current and not override:
            log.info(f"{row.text} - übersprungen, bereits beantwortet {', '.join(current)}")
            _keep_current(row, payload)
            rec.skipped += 1
            rec.skipped_keys.append(key)
            continue

        wanted = desired[key].selected_option_ids
        known = {o.id for o in row.options}
        unknown = [i for i in wanted if i not in known]
        if unknown or len(wanted) > len(row.selects):
            msg = (f"Ungültige Antwort für {row.text!r}: {', '.join(wanted)} "
                   f"(max. {len(row.selects)}, unbekannt: {', '.join(unknown) or '-'})")
            log.warning(msg)
            result.add(IssueKind.FIELD, msg, row.index)
            _keep_current(row, payload)
            rec.rejected.append(key)
            continue

        log.info(f"{row.text} - beantworte mit {', '.join(wanted)}")
        for i, sel in enumerate(row.selects):
            payload.add(sel["name"], wanted[i] if i < len(wanted) else "")
        rec.placed += 1
        rec.placed_keys.append(key)

    finish(form, payload, rec, page_url, community, base_url)

    rec.unmatched = [k for k in desired if k not in matched]
    for key in rec.unmatched:
        log.warning(f"Bonusfrage {key} nicht offen oder nicht im Formular gefunden")

    log.info(f"Zusammenfassung: {rec.placed} Bonustipps zu setzen, {rec.skipped} übersprungen, "
             f"{len(rec.rejected)} ungültig, {len(rec.unmatched)} nicht gefunden")
    result.value = rec
    return result
