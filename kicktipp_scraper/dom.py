"""
Typed row/cell view over the kicktipp tables.

The extractors never run CSS selectors against table rows themselves; they
walk ``TableRow``/``Cell`` objects. ``read_rows`` builds those from a
BeautifulSoup table, tests can build them by hand.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

PARSER = "html.parser"


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", PARSER)


@dataclass(frozen=True)
class FormInput:
    name: Optional[str]
    id: str = ""
    type: str = "text"
    value: str = ""
    disabled: bool = False

    @property
    def is_text(self) -> bool:
        return self.type == "text"

    @property
    def filled(self) -> bool:
        return bool(self.value.strip())


@dataclass(frozen=True)
class Cell:
    text: str = ""
    classes: Tuple[str, ...] = ()
    inputs: Tuple[FormInput, ...] = ()
    label: str = ""
    score_tokens: Tuple[str, ...] = ()
    score_phase: Optional[str] = None

    def has_class(self, *names: str) -> bool:
        return any(n in self.classes for n in names)

    @property
    def text_inputs(self) -> List[FormInput]:
        return [i for i in self.inputs if i.is_text]

    def input_with_id_suffix(self, suffix: str) -> Optional[FormInput]:
        for inp in self.inputs:
            if inp.id.endswith(suffix):
                return inp
        return None


@dataclass(frozen=True)
class TableRow:
    cells: Tuple[Cell, ...]

    def __len__(self) -> int:
        return len(self.cells)

    def cell(self, i: int) -> Cell:
        return self.cells[i]

    def text(self, i: int) -> str:
        return self.cells[i].text if i < len(self.cells) else ""


# -----------------------------------------------------------------------------
# BeautifulSoup -> typed view
# -----------------------------------------------------------------------------
def input_from_tag(tag: Tag) -> FormInput:
    return FormInput(
        name=(tag.get("name") or None),
        id=tag.get("id") or "",
        type=(tag.get("type") or "text").lower(),
        value=tag.get("value") or "",
        disabled=tag.has_attr("disabled"),
    )


def _score_of(td: Tag) -> Tuple[Tuple[str, ...], Optional[str]]:
    sections = td.select(".kicktipp-abschnitt")
    section = sections[-1] if sections else td
    tokens = []
    for cls in ("kicktipp-heim", "kicktipp-gast"):
        node = section.select_one(f".{cls}")
        if node is not None:
            tokens.append(node.get_text(strip=True))
    phase = None
    if sections:
        for c in section.get("class", []):
            if c.startswith("kicktipp-") and c != "kicktipp-abschnitt":
                phase = c[len("kicktipp-"):]
                break
    return tuple(tokens), phase


def cell_from_tag(td: Tag) -> Cell:
    div = td.find("div")
    tokens, phase = _score_of(td)
    return Cell(
        text=" ".join(td.stripped_strings),
        classes=tuple(td.get("class", [])),
        inputs=tuple(input_from_tag(i) for i in td.find_all("input")),
        label=" ".join(div.stripped_strings) if div is not None else "",
        score_tokens=tokens,
        score_phase=phase,
    )


def read_rows(container: Optional[Tag]) -> List[TableRow]:
    """Rows of a ``<table>`` or ``<tbody>``; nested tables are not descended into."""
    if container is None:
        return []
    if container.name == "table":
        container = container.find("tbody") or container
    rows: List[TableRow] = []
    for tr in container.find_all("tr", recursive=False):
        cells = tuple(cell_from_tag(td) for td in tr.find_all("td", recursive=False))
        rows.append(TableRow(cells))
    return rows
