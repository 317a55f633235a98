from __future__ import annotations

from collections import Counter

import pytest
import requests

from divisions.cache import CacheStore
from divisions.fetch import LevelFetcher
from divisions.resolver import Resolver


BASE_URL = "http://listing.test/2015/"


def _page(body: str) -> bytes:
    return (
        "<html><head><meta http-equiv='Content-Type' content='text/html; charset=gb2312'/>"
        "<title>统计用区划代码</title></head><body><table class='x'>"
        + body
        + "</table></body></html>"
    ).encode("gbk")


def _province_index() -> bytes:
    return _page(
        "<tr class='provincetr'>"
        "<td><a href='11.html'>北京市<br/></a></td>"
        "<td><a href='12.html'>天津市<br/></a></td>"
        "<td><a href='13.html'>河北省<br/></a></td>"
        "</tr>"
        "<tr><td><a href='http://www.miibeian.gov.cn/'>京ICP备05034670号</a></td></tr>"
    )


def _row(cls: str, code: str, name: str, href: str | None = None) -> str:
    if href:
        return (
            f"<tr class='{cls}'><td><a href='{href}'>{code}</a></td>"
            f"<td><a href='{href}'>{name}</a></td></tr>"
        )
    return f"<tr class='{cls}'><td>{code}</td><td>{name}</td></tr>"


FIXTURE_PAGES: dict[str, bytes] = {
    "": _province_index(),
    "11": _page(
        "<tr class='cityhead'><td>统计用区划代码</td><td>名称</td></tr>"
        + _row("citytr", "110100000000", "市辖区", "11/1101.html")
        + _row("citytr", "110200000000", "县", "11/1102.html")
    ),
    "11/1101": _page(
        "<tr class='countyhead'><td>统计用区划代码</td><td>名称</td></tr>"
        + _row("countytr", "110101000000", "东城区", "01/110101.html")
        + _row("countytr", "110102000000", "西城区", "01/110102.html")
        + _row("countytr", "110105000000", "朝阳区", "01/110105.html")
    ),
    "11/1102": _page(
        _row("countytr", "110228000000", "密云县", "02/110228.html")
        + _row("countytr", "110229000000", "延庆县", "02/110229.html")
    ),
    "11/01/110101": _page(
        _row("towntr", "110101001000", "东华门街道办事处", "01/110101001.html")
        + _row("towntr", "110101002000", "景山街道办事处", "01/110101002.html")
    ),
    "11/01/01/110101001": _page(
        "<tr class='villagetr'><td>110101001001</td><td>111</td><td>多福巷社区居委会</td></tr>"
        "<tr class='villagetr'><td>110101001002</td><td>111</td><td>银闸社区居委会</td></tr>"
    ),
    "12": _page(_row("citytr", "120100000000", "市辖区", "12/1201.html")),
    "12/1201": _page(
        _row("countytr", "120101000000", "和平区", "01/120101.html")
        + _row("countytr", "120102000000", "河东区", "01/120102.html")
    ),
    "13": _page(_row("citytr", "130100000000", "石家庄市", "13/1301.html")),
    "13/1301": _page(
        _row("countytr", "130101000000", "市辖区")
        + _row("countytr", "130102000000", "长安区", "01/130102.html")
    ),
}


class FakeSite:
    """In-memory page fetcher serving the fixture pages by URL."""

    def __init__(self, pages: dict[str, bytes], base_url: str = BASE_URL) -> None:
        self.base_url = base_url
        self.pages = {self._url(suffix): body for suffix, body in pages.items()}
        self.calls: Counter[str] = Counter()
        self.failing: dict[str, Exception] = {}

    def _url(self, suffix: str) -> str:
        return self.base_url if not suffix else f"{self.base_url}{suffix}.html"

    def fail(self, suffix: str, exc: Exception | None = None) -> None:
        self.failing[self._url(suffix)] = exc or requests.ConnectionError("connection reset")

    def recover(self, suffix: str) -> None:
        self.failing.pop(self._url(suffix), None)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def __call__(self, url: str) -> bytes:
        self.calls[url] += 1
        if url in self.failing:
            raise self.failing[url]
        if url not in self.pages:
            resp = requests.Response()
            resp.status_code = 404
            resp.url = url
            raise requests.HTTPError(f"404 Not Found for url: {url}", response=resp)
        return self.pages[url]


@pytest.fixture
def site() -> FakeSite:
    return FakeSite(FIXTURE_PAGES)


@pytest.fixture
def level_fetcher(site: FakeSite) -> LevelFetcher:
    return LevelFetcher(site, base_url=BASE_URL, page_encoding="gbk")


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "cache.json"


@pytest.fixture
def resolver(level_fetcher: LevelFetcher, cache_path) -> Resolver:
    return Resolver(level_fetcher, CacheStore(cache_path))
