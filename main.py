from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path

from divisions.base import ResolverConfig
from divisions.errors import ResolveError
from divisions.resolver import Resolver
from utils.settings import DEFAULT_SETTINGS_PATH, load_settings

logger = logging.getLogger(__name__)


def main() -> int:
    ap = argparse.ArgumentParser(
        description="Resolve administrative division codes to names"
    )
    ap.add_argument("codes", nargs="+", help="Division codes, e.g. 110101")
    ap.add_argument("--settings", default=str(DEFAULT_SETTINGS_PATH))
    ap.add_argument(
        "--cache", default="", help="Cache file (overrides divisions.cache_file)"
    )
    ap.add_argument("--json", action="store_true", help="Print one JSON object per code")
    ap.add_argument("--debug", action="store_true")

    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings_path = Path(args.settings)
    settings = load_settings(settings_path) if settings_path.exists() else {}
    config = ResolverConfig.from_settings(settings)
    if args.cache.strip():
        config = replace(config, cache_file=Path(args.cache.strip()))

    resolver = Resolver.from_config(config)

    failures = 0
    for code in args.codes:
        try:
            location = resolver.resolve(code)
        except ResolveError as e:
            failures += 1
            if args.json:
                err = {"code": code, "error": e.kind.value, "message": str(e)}
                print(json.dumps(err, ensure_ascii=False))
            else:
                print(f"{code}\tERROR\t{e}")
            continue

        if args.json:
            print(json.dumps({"code": code, **location.as_dict()}, ensure_ascii=False))
        else:
            names = [n for n in location.as_dict().values() if n]
            print(f"{code}\t{' '.join(names)}")

    # Entries fetched while the cache was unwritable get one more attempt.
    if resolver.dirty:
        try:
            resolver.flush()
        except ResolveError as e:
            logger.warning(f"cache not saved: {e}")

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
