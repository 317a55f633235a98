from __future__ import annotations

import logging
from pathlib import Path
import threading
from typing import Any

from divisions.base import LEVELS, Location, ResolverConfig, listing_suffix, split_code
from divisions.cache import CacheStore, CacheTree, Node
from divisions.errors import ErrorKind, ResolveError
from divisions.extract import ExtractMode
from divisions.fetch import LevelFetcher
from utils.settings import DEFAULT_SETTINGS_PATH, load_settings

logger = logging.getLogger(__name__)


class Resolver:
    """Resolves division codes against a lazily loaded, lazily filled cache.

    Each instance owns its ``CacheTree``. The tree is loaded from ``store`` on
    the first call to ``resolve`` and written back by any resolution that finds
    it holding unsaved entries. Not safe for concurrent use; callers sharing one
    instance across threads must serialize ``resolve``.
    """

    name = "resolver"

    def __init__(
        self,
        level_fetcher: LevelFetcher,
        store: CacheStore,
    ) -> None:
        self.level_fetcher = level_fetcher
        self.store = store
        self._tree: CacheTree | None = None
        self.last_persist_error: ResolveError | None = None

    @classmethod
    def from_config(cls, config: ResolverConfig) -> Resolver:
        return cls(LevelFetcher.from_config(config), CacheStore(config.cache_file))

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> Resolver:
        return cls.from_config(ResolverConfig.from_settings(settings))

    @property
    def tree(self) -> CacheTree:
        if self._tree is None:
            self._tree = self.store.load()
        return self._tree

    @property
    def dirty(self) -> bool:
        """True while fetched entries have not been written to the store."""
        return self._tree is not None and self._tree.dirty

    def reset(self) -> None:
        """Forget the in-memory tree; the next resolution reloads it from disk."""
        self._tree = None

    def resolve(self, code: str) -> Location:
        prefixes = split_code(code)
        tree = self.tree
        try:
            names = self._descend(tree, prefixes)
        finally:
            if tree.dirty:
                self._persist(tree)
        return Location.from_names(names)

    def _descend(self, tree: CacheTree, prefixes: list[str]) -> list[str]:
        parent: Node = tree.root
        names: list[str] = []
        for depth, (level, prefix) in enumerate(zip(LEVELS, prefixes)):
            node, present = tree.get_or_missing(parent, prefix)
            if not present:
                self._populate(tree, parent, prefixes[:depth], level.code_length, level.name)
                node, present = tree.get_or_missing(parent, prefix)
            if node is None:
                field = prefix[level.field_slice]
                under = prefixes[depth - 1] if depth else "index"
                raise ResolveError(
                    level.not_found,
                    f"{level.name} code {field} not found under {under}",
                    level=level.name,
                    code=field,
                )
            names.append(node.name)
            parent = node
        return names

    def _populate(
        self,
        tree: CacheTree,
        parent: Node,
        ancestors: list[str],
        code_length: int,
        level_name: str,
    ) -> None:
        suffix = listing_suffix(ancestors)
        mode = ExtractMode.ROW if ancestors else ExtractMode.LINK
        try:
            entries = self.level_fetcher.fetch_level(suffix, code_length, mode)
        except ResolveError as exc:
            code = ancestors[-1] if ancestors else ""
            raise ResolveError(
                exc.kind,
                f"{level_name} level under {code or 'index'}: {exc.args[0]}",
                level=level_name,
                code=code,
            ) from exc

        added = tree.attach_children(parent, entries)
        logger.info(
            f"[{self.name}] Attached {added} new {level_name} entries under {suffix or 'index'}"
        )

    def _persist(self, tree: CacheTree) -> None:
        try:
            self.store.save(tree)
        except OSError as exc:
            err = ResolveError(
                ErrorKind.PERSIST_FAILED,
                f"failed to write cache {self.store.path}: {exc}",
            )
            err.__cause__ = exc
            self.last_persist_error = err
            logger.error(f"[{self.name}] {err}")
        else:
            self.last_persist_error = None

    def flush(self) -> None:
        """Write the current tree to the store, raising on failure."""
        if self._tree is None:
            return
        try:
            self.store.save(self._tree)
        except OSError as exc:
            raise ResolveError(
                ErrorKind.PERSIST_FAILED,
                f"failed to write cache {self.store.path}: {exc}",
            ) from exc


_default_resolver: Resolver | None = None
_default_lock = threading.Lock()


def get_default_resolver(settings_path: str | Path = DEFAULT_SETTINGS_PATH) -> Resolver:
    """Return the process-wide resolver, building it on first use."""
    global _default_resolver
    with _default_lock:
        if _default_resolver is None:
            path = Path(settings_path)
            settings = load_settings(path) if path.exists() else {}
            _default_resolver = Resolver.from_settings(settings)
        return _default_resolver


def reset_default_resolver() -> None:
    global _default_resolver
    with _default_lock:
        _default_resolver = None


def resolve(code: str) -> Location:
    return get_default_resolver().resolve(code)
