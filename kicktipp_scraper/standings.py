"""League table (``/<community>/tabellen``) -> TeamStanding rows."""

from __future__ import annotations

import logging
from typing import List, Optional

from .dom import TableRow, read_rows, soup_of
from .errors import IssueKind, ScrapeResult
from .models import TeamStanding

log = logging.getLogger(__name__)

MIN_CELLS = 9


def _int(text: str) -> Optional[int]:
    s = (text or "").strip().rstrip(".").replace("−", "-")
    try:
        return int(s)
    except ValueError:
        return None


def standing_from_row(row: TableRow) -> Optional[TeamStanding]:
    """None when any number in the row does not parse."""
    position = _int(row.text(0))
    team_name = (row.cell(1).label or row.text(1)).strip()
    numbers = [_int(row.text(i)) for i in (2, 3, 5, 6, 7, 8)]
    goals = row.text(4).split(":")
    if len(goals) != 2:
        return None
    goals_for, goals_against = _int(goals[0]), _int(goals[1])
    if position is None or None in numbers or goals_for is None or goals_against is None or not team_name:
        return None
    games_played, points, goal_difference, wins, draws, losses = numbers
    return TeamStanding(
        position=position,
        team_name=team_name,
        games_played=games_played,
        points=points,
        goals_for=goals_for,
        goals_against=goals_against,
        goal_difference=goal_difference,
        wins=wins,
        draws=draws,
        losses=losses,
    )


def standings_from_rows(rows: List[TableRow], result: ScrapeResult) -> List[TeamStanding]:
    out: List[TeamStanding] = []
    for idx, row in enumerate(rows, 1):
        if len(row) < MIN_CELLS:
            # single spanning cell: zone separator ("Abstiegszone")
            if len(row) > 1:
                log.warning(f"Tabellenzeile {idx} zu kurz ({len(row)} Spalten) – übersprungen.")
                result.add(IssueKind.FIELD, f"Tabellenzeile mit nur {len(row)} Spalten", idx)
            continue
        st = standing_from_row(row)
        if st is None:
            log.warning(f"Tabellenzeile {idx} nicht lesbar: {[c.text for c in row.cells[:MIN_CELLS]]}")
            result.add(IssueKind.FIELD, "Tabellenzeile mit ungültigen Zahlen", idx)
            continue
        log.debug(f"Tabellenplatz {st.position}. {st.team_name} – {st.points} Punkte")
        out.append(st)
    out.sort(key=lambda s: s.position)
    return out


def parse_standings(html: str) -> ScrapeResult[List[TeamStanding]]:
    result: ScrapeResult[List[TeamStanding]] = ScrapeResult([])
    table = soup_of(html).select_one("table.sporttabelle")
    if table is None:
        log.warning("Tabelle (table.sporttabelle) nicht gefunden.")
        result.add(IssueKind.STRUCTURE, "Tabelle nicht gefunden")
        return result
    result.value = standings_from_rows(read_rows(table), result)
    log.info(f"{len(result.value)} Tabellenplätze gelesen.")
    return result
