from __future__ import annotations

from enum import Enum
import re
from typing import Iterator

from utils.html_tree import Element


ROW_CLASSES = frozenset({"citytr", "countytr", "towntr", "villagetr"})

_DIGITS_RE = re.compile(r"[0-9]+")


class ExtractMode(str, Enum):
    # Province index: one anchor per province, code taken from the href.
    LINK = "link"
    # Every deeper listing: one table row per division.
    ROW = "row"


def _code_from_href(href: str, *, nested: bool) -> str | None:
    stem = href.strip().split(".", 1)[0]
    if nested:
        stem = stem.rsplit("/", 1)[-1]
    if not _DIGITS_RE.fullmatch(stem):
        return None
    return stem


def _cell_text(cell: Element) -> str | None:
    node = cell.first_child()
    if isinstance(node, Element) and node.tag == "a":
        node = node.first_child()
    if isinstance(node, str):
        return node
    return None


def _iter_links(document: Element, *, nested: bool) -> Iterator[tuple[str, str]]:
    for a in document.iter("a"):
        href = a.get("href")
        if not href:
            continue
        code = _code_from_href(href, nested=nested)
        if code is None:
            continue
        name = a.first_child()
        if not isinstance(name, str):
            continue
        yield code, name


def _iter_rows(document: Element) -> Iterator[tuple[str, str]]:
    for tr in document.iter("tr"):
        classes = set((tr.get("class") or "").split())
        if not classes & ROW_CLASSES:
            continue
        cells = tr.element_children("td", "th")
        if not cells:
            continue
        code = _cell_text(cells[0])
        name = _cell_text(cells[-1])
        if code is None or name is None:
            continue
        code = code.strip()
        if not _DIGITS_RE.fullmatch(code):
            continue
        yield code, name


def extract_entries(
    document: Element, mode: ExtractMode, *, nested: bool = False
) -> Iterator[tuple[str, str]]:
    """Yield ``(code, raw_name)`` pairs from one listing page in document order.

    Anchors and rows that do not have the expected shape are skipped. Names
    are returned undecoded.
    """
    if mode is ExtractMode.LINK:
        return _iter_links(document, nested=nested)
    return _iter_rows(document)
