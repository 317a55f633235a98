from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from divisions.base import LEVELS
from divisions.cache import CacheStore, CacheTree, Node
from utils.jsonio import write_json


@dataclass(frozen=True)
class _Anomaly:
    kind: str
    code: str
    detail: str


def _check_keys(parent_code: str, parent: Node, anomalies: list[_Anomaly]) -> None:
    for code, child in parent.children.items():
        lvl = LEVELS[child.level - 1]
        if len(code) != lvl.code_length:
            anomalies.append(
                _Anomaly("bad_length", code, f"{lvl.name} code should have {lvl.code_length} digits")
            )
        if not code.startswith(parent_code):
            anomalies.append(_Anomaly("bad_prefix", code, f"not under {parent_code}"))
        _check_keys(code, child, anomalies)


def build_report(tree: CacheTree) -> dict[str, Any]:
    anomalies: list[_Anomaly] = []
    _check_keys("", tree.root, anomalies)

    provinces = []
    for code, node in sorted(tree.root.children.items()):
        provinces.append(
            {
                "code": code,
                "name": node.name,
                "cities": len(node.children),
                "counties": sum(len(c.children) for c in node.children.values()),
            }
        )

    return {
        "nodes_by_level": tree.count_by_level(),
        "provinces": provinces,
        "anomalies": [a.__dict__ for a in anomalies],
    }


def _print_report(report: dict[str, Any]) -> None:
    print("Nodes by level")
    for level, count in report["nodes_by_level"].items():
        print(f"  {level:<10} {count}")

    if report["provinces"]:
        print("\nProvinces")
        for p in report["provinces"]:
            print(f"  {p['code']} {p['name']}: {p['cities']} cities, {p['counties']} counties")

    anomalies = report["anomalies"]
    print(f"\nAnomalies: {len(anomalies)}")
    for a in anomalies[:20]:
        print(f"  [{a['kind']}] {a['code']}: {a['detail']}")


def main() -> int:
    ap = argparse.ArgumentParser(description="Summarize a division code cache file")
    ap.add_argument(
        "--in",
        dest="input_path",
        default=".chinese_location_code.json",
        help="Path to the cache snapshot (default: .chinese_location_code.json)",
    )
    ap.add_argument(
        "--out-json",
        default="",
        help="Optional path to write machine-readable JSON report",
    )

    args = ap.parse_args()
    path = Path(args.input_path)
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")

    report = build_report(CacheStore(path).load())
    _print_report(report)

    out_json = (args.out_json or "").strip()
    if out_json:
        write_json(Path(out_json), report)
        print(f"\nWrote JSON report to: {out_json}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
