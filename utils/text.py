from __future__ import annotations

import html


DEFAULT_PAGE_ENCODING = "gbk"


def clean_text(value: str | None) -> str:
    return " ".join((value or "").strip().split())


def decode_text(raw: str, encoding: str = DEFAULT_PAGE_ENCODING) -> str:
    """Decode a text node taken from a byte-preserving document tree.

    ``raw`` holds the page's original bytes one-to-one as latin-1 code points
    (see ``utils.html_tree.parse_document``), with character references left
    as written. They are resolved after decoding. Raises ``UnicodeError`` when
    the bytes are not valid in ``encoding``.
    """
    return clean_text(html.unescape(raw.encode("latin-1").decode(encoding)))
