from divisions.cache import CacheStore, CacheTree, Node
from scripts.cache_stats import build_report


def test_report_counts_levels_and_provinces(tmp_path) -> None:
    tree = CacheTree()
    tree.attach_children(tree.root, {"11": "北京市", "12": "天津市"})
    tree.attach_children(tree.root.children["11"], {"1101": "市辖区", "1102": "县"})
    tree.attach_children(tree.root.children["11"].children["1101"], {"110101": "东城区"})
    path = tmp_path / "cache.json"
    CacheStore(path).save(tree)

    report = build_report(CacheStore(path).load())
    assert report["nodes_by_level"]["province"] == 2
    assert report["nodes_by_level"]["city"] == 2
    assert report["nodes_by_level"]["county"] == 1
    assert report["provinces"][0] == {
        "code": "11",
        "name": "北京市",
        "cities": 2,
        "counties": 1,
    }
    assert report["anomalies"] == []


def test_report_flags_keys_that_are_not_full_prefixes() -> None:
    tree = CacheTree()
    tree.root.children["11"] = Node(name="北京市", level=1)
    tree.root.children["11"].children["01"] = Node(name="市辖区", level=2)
    tree.root.children["11"].children["1201"] = Node(name="市辖区", level=2)

    kinds = {(a["kind"], a["code"]) for a in build_report(tree)["anomalies"]}
    assert ("bad_length", "01") in kinds
    assert ("bad_prefix", "01") in kinds
    assert ("bad_prefix", "1201") in kinds
