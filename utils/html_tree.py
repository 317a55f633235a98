from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Iterator, Union


# Elements that never have children or an end tag.
_VOID_TAGS = {
    "area",
    "base",
    "br",
    "col",
    "embed",
    "hr",
    "img",
    "input",
    "link",
    "meta",
    "param",
    "source",
    "wbr",
}

# Opening one of these closes an unterminated sibling still on the stack.
_IMPLICIT_CLOSE: dict[str, set[str]] = {
    "tr": {"tr", "td", "th"},
    "td": {"td", "th"},
    "th": {"td", "th"},
    "li": {"li"},
    "p": {"p"},
}


@dataclass
class Element:
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attrs.get(name, default)

    def iter(self, tag: str | None = None) -> Iterator[Element]:
        """Yield this element and its descendants in document order."""
        if tag is None or self.tag == tag:
            yield self
        for child in self.children:
            if isinstance(child, Element):
                yield from child.iter(tag)

    def element_children(self, *tags: str) -> list[Element]:
        return [
            c
            for c in self.children
            if isinstance(c, Element) and (not tags or c.tag in tags)
        ]

    def first_child(self, *, skip_blank: bool = True) -> Node | None:
        for child in self.children:
            if skip_blank and isinstance(child, str) and not child.strip():
                continue
            return child
        return None


Node = Union[Element, str]


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self.root = Element(tag="#document")
        self._stack: list[Element] = [self.root]

    @staticmethod
    def _attrs_to_dict(attrs: list[tuple[str, str | None]]) -> dict[str, str]:
        out: dict[str, str] = {}
        for k, v in attrs:
            out[k.lower()] = v if v is not None else ""
        return out

    def _append(self, node: Node) -> None:
        self._stack[-1].children.append(node)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        tag = tag.lower()
        closes = _IMPLICIT_CLOSE.get(tag)
        if closes:
            while len(self._stack) > 1 and self._stack[-1].tag in closes:
                self._stack.pop()

        el = Element(tag=tag, attrs=self._attrs_to_dict(attrs))
        self._append(el)
        if tag not in _VOID_TAGS:
            self._stack.append(el)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._append(Element(tag=tag.lower(), attrs=self._attrs_to_dict(attrs)))

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        # Stray end tags with no matching open element are ignored.
        for depth in range(len(self._stack) - 1, 0, -1):
            if self._stack[depth].tag == tag:
                del self._stack[depth:]
                return

    # References stay as literal text so they survive the byte-preserving
    # decode; ``utils.text.decode_text`` unescapes them.
    def handle_entityref(self, name: str) -> None:
        self.handle_data(f"&{name};")

    def handle_charref(self, name: str) -> None:
        self.handle_data(f"&#{name};")

    def handle_data(self, data: str) -> None:
        if not data:
            return
        parent = self._stack[-1]
        if parent.children and isinstance(parent.children[-1], str):
            parent.children[-1] += data
        else:
            parent.children.append(data)


def parse_document(content: bytes) -> Element:
    """Parse raw page bytes into an element tree.

    The bytes are mapped one-to-one onto latin-1 code points before parsing,
    so text nodes still carry the page's original encoding; callers decode
    the pieces they keep with ``utils.text.decode_text``. Markup is ASCII in
    every encoding the listing pages use, so tags and attributes parse the
    same either way.
    """
    builder = _TreeBuilder()
    builder.feed(content.decode("latin-1"))
    builder.close()
    return builder.root
