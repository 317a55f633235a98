from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, Iterator, Mapping

from divisions.base import LEVELS, level_for_depth
from utils.jsonio import read_json, write_json
from utils.time import utc_now_iso

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Child-map keys of the older capitalized snapshot format.
_LEGACY_CHILD_KEYS = ("Cities", "Distincts", "Streets")


@dataclass
class Node:
    """One division. ``level`` is its depth: 0 for the root, 1 for provinces."""

    name: str
    level: int
    children: dict[str, Node] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        lvl = level_for_depth(self.level)
        return lvl.name if lvl is not None else "root"

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "children": {code: child.to_snapshot() for code, child in self.children.items()},
        }


class CacheTree:
    """Lazily populated division tree keyed by full code prefixes."""

    def __init__(self, root: Node | None = None) -> None:
        self.root = root if root is not None else Node(name="", level=0)
        self.dirty = False

    def get_or_missing(self, parent: Node, code: str) -> tuple[Node | None, bool]:
        node = parent.children.get(code)
        return node, node is not None

    def attach_children(self, parent: Node, entries: Mapping[str, str]) -> int:
        """Add one child per ``code -> name``; existing codes keep their name.

        Marks the tree dirty and returns how many nodes were new.
        """
        added = 0
        for code, name in entries.items():
            if code in parent.children:
                continue
            parent.children[code] = Node(name=name, level=parent.level + 1)
            added += 1
        self.dirty = True
        return added

    def walk(self) -> Iterator[tuple[str, Node]]:
        """Yield ``(code, node)`` for every node below the root, depth first."""
        stack = list(reversed(list(self.root.children.items())))
        while stack:
            code, node = stack.pop()
            yield code, node
            stack.extend(reversed(list(node.children.items())))

    def count_by_level(self) -> dict[str, int]:
        counts = {lvl.name: 0 for lvl in LEVELS}
        for _code, node in self.walk():
            counts[node.kind] = counts.get(node.kind, 0) + 1
        return counts

    def names_by_code(self) -> dict[str, str]:
        return {code: node.name for code, node in self.walk()}

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "saved_at_utc": utc_now_iso(),
            "divisions": self.root.to_snapshot()["children"],
        }

    @classmethod
    def from_snapshot(cls, data: Any) -> CacheTree:
        if not isinstance(data, dict):
            raise ValueError(f"snapshot must be an object, got {type(data).__name__}")

        if "divisions" in data:
            divisions = data["divisions"]
        else:
            # Bare province map from the legacy format.
            divisions = data

        tree = cls()
        _load_children(tree.root, divisions)
        return tree


def _load_children(parent: Node, children: Any) -> None:
    if children is None:
        return
    if not isinstance(children, dict):
        raise ValueError(f"children of level {parent.level} must be an object")
    if parent.level >= len(LEVELS):
        return

    for code, raw in children.items():
        if not isinstance(raw, dict):
            raise ValueError(f"node {code!r} must be an object")
        name = raw.get("name", raw.get("Name"))
        if not isinstance(name, str) or not name:
            raise ValueError(f"node {code!r} has no name")

        node = Node(name=name, level=parent.level + 1)
        parent.children[str(code)] = node

        sub = raw.get("children")
        if sub is None:
            for key in _LEGACY_CHILD_KEYS:
                if key in raw:
                    sub = raw[key]
                    break
        _load_children(node, sub)


class CacheStore:
    """Reads and writes a ``CacheTree`` snapshot at ``path``."""

    name = "cache_store"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> CacheTree:
        """Load the snapshot; a missing or unusable file gives an empty tree."""
        if not self.path.exists():
            logger.info(f"[{self.name}] No cache at {self.path}, starting empty")
            return CacheTree()

        try:
            tree = CacheTree.from_snapshot(read_json(self.path))
        except (OSError, ValueError) as exc:
            logger.warning(f"[{self.name}] Ignoring unusable cache {self.path}: {exc}")
            return CacheTree()

        logger.info(f"[{self.name}] Loaded cache {self.path}: {tree.count_by_level()}")
        return tree

    def save(self, tree: CacheTree) -> None:
        write_json(self.path, tree.to_snapshot())
        tree.dirty = False
        logger.info(f"[{self.name}] Saved cache {self.path}")
