from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
import random
import time
from typing import Any

import requests

from divisions.errors import ErrorKind, ResolveError
from utils.settings import settings_section
from utils.text import DEFAULT_PAGE_ENCODING


DEFAULT_BASE_URL = "http://www.stats.gov.cn/tjsj/tjbz/tjyqhdmhcxhfdm/2015/"
DEFAULT_CACHE_FILE = ".chinese_location_code.json"


@dataclass(frozen=True)
class Level:
    index: int
    name: str
    field_width: int
    # Full-prefix length of codes at this level.
    code_length: int
    # Replacement for an all-zero field, or None to leave it as given.
    zero_default: str | None
    not_found: ErrorKind

    @property
    def field_slice(self) -> slice:
        return slice(self.code_length - self.field_width, self.code_length)


LEVELS: tuple[Level, ...] = (
    Level(1, "province", 2, 2, None, ErrorKind.PROVINCE_NOT_FOUND),
    Level(2, "city", 2, 4, "01", ErrorKind.CITY_NOT_FOUND),
    Level(3, "county", 2, 6, "01", ErrorKind.COUNTY_NOT_FOUND),
    Level(4, "town", 3, 9, None, ErrorKind.TOWN_NOT_FOUND),
    Level(5, "village", 3, 12, None, ErrorKind.VILLAGE_NOT_FOUND),
)

# Province, city and county are always resolved; deeper levels only on request.
REQUIRED_DEPTH = 3


def level_for_depth(depth: int) -> Level | None:
    if 1 <= depth <= len(LEVELS):
        return LEVELS[depth - 1]
    return None


@dataclass(frozen=True)
class Location:
    province: str | None = None
    city: str | None = None
    county: str | None = None
    town: str | None = None
    village: str | None = None

    @classmethod
    def from_names(cls, names: list[str]) -> Location:
        fields = [lvl.name for lvl in LEVELS]
        return cls(**dict(zip(fields, names)))

    def as_dict(self) -> dict[str, str | None]:
        return asdict(self)


def split_code(code: str) -> list[str]:
    """Decompose ``code`` into the full-prefix codes of every requested level.

    ``"110101"`` gives ``["11", "1101", "110101"]``. City and county fields
    that are missing or ``"00"`` become ``"01"``. A town field is used only
    when at least 9 digits are given and it is not all zeros; likewise the
    village field with 12 digits.
    """
    raw = (code or "").strip()
    if len(raw) < LEVELS[0].code_length:
        raise ResolveError(
            ErrorKind.INVALID_CODE,
            f"division code must have at least {LEVELS[0].code_length} digits: {code!r}",
            code=code,
        )
    if not (raw.isascii() and raw.isdigit()):
        raise ResolveError(
            ErrorKind.INVALID_CODE,
            f"division code must be digits only: {code!r}",
            code=code,
        )

    prefixes: list[str] = []
    prefix = ""
    for lvl in LEVELS:
        zero = "0" * lvl.field_width
        if len(raw) >= lvl.code_length:
            part = raw[lvl.field_slice]
        elif lvl.index <= REQUIRED_DEPTH:
            part = zero
        else:
            break

        if part == zero:
            if lvl.zero_default is not None:
                part = lvl.zero_default
            elif lvl.index > REQUIRED_DEPTH:
                break

        prefix += part
        prefixes.append(prefix)
    return prefixes


def listing_suffix(prefixes: list[str]) -> str:
    """URL suffix of the page that lists the children of ``prefixes[-1]``.

    The listing site nests pages by the raw fields of every ancestor:
    ``[]`` -> ``""``, ``["11"]`` -> ``"11"``, ``["11", "1101"]`` -> ``"11/1101"``,
    ``["11", "1101", "110101"]`` -> ``"11/01/110101"``.
    """
    if not prefixes:
        return ""
    dirs: list[str] = []
    previous = ""
    for prefix in prefixes[:-1]:
        dirs.append(prefix[len(previous):])
        previous = prefix
    dirs.append(prefixes[-1])
    return "/".join(dirs)


@dataclass(frozen=True)
class ResolverConfig:
    base_url: str = DEFAULT_BASE_URL
    cache_file: Path = Path(DEFAULT_CACHE_FILE)
    page_encoding: str = DEFAULT_PAGE_ENCODING
    timeout_seconds: int = 30
    user_agent: str = ""
    max_retries: int = 0
    backoff_base_seconds: float = 0.5
    backoff_jitter_seconds: float = 0.25
    request_delay_seconds: float = 0.0
    request_jitter_seconds: float = 0.0

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> ResolverConfig:
        cfg = settings_section(settings, "divisions")
        http_cfg = settings_section(settings, "http")

        base_url = str(cfg.get("base_url", DEFAULT_BASE_URL)).strip() or DEFAULT_BASE_URL
        if not base_url.endswith("/"):
            base_url += "/"

        return cls(
            base_url=base_url,
            cache_file=Path(str(cfg.get("cache_file", DEFAULT_CACHE_FILE)).strip()),
            page_encoding=str(cfg.get("page_encoding", DEFAULT_PAGE_ENCODING)).strip()
            or DEFAULT_PAGE_ENCODING,
            timeout_seconds=int(http_cfg.get("timeout_seconds", 30)),
            user_agent=str(http_cfg.get("user_agent", "") or "").strip(),
            max_retries=int(http_cfg.get("max_retries", 0)),
            backoff_base_seconds=float(http_cfg.get("backoff_base_seconds", 0.5)),
            backoff_jitter_seconds=float(http_cfg.get("backoff_jitter_seconds", 0.25)),
            request_delay_seconds=float(cfg.get("request_delay_seconds", 0.0)),
            request_jitter_seconds=float(cfg.get("request_jitter_seconds", 0.0)),
        )


def sleep_seconds(seconds: float) -> None:
    if seconds <= 0:
        return
    time.sleep(seconds)


def compute_backoff_seconds(
    attempt: int,
    *,
    base: float,
    jitter: float,
    max_backoff_seconds: float = 30.0,
) -> float:
    exp = base * (2**attempt)
    exp = min(exp, max_backoff_seconds)
    if jitter > 0:
        exp += random.uniform(0.0, jitter)
    return exp


def get_with_retries(
    session: requests.Session,
    url: str,
    *,
    timeout_seconds: int,
    max_retries: int,
    backoff_base_seconds: float,
    backoff_jitter_seconds: float,
    retry_statuses=(429, 500, 502, 503, 504),
) -> requests.Response:
    """GET ``url``; any status of 300 or above is raised as ``requests.HTTPError``.

    Transport errors and ``retry_statuses`` are retried up to ``max_retries``
    times with exponential backoff.
    """
    for attempt in range(max_retries + 1):
        try:
            resp = session.get(url, timeout=timeout_seconds)
        except requests.RequestException:
            if attempt >= max_retries:
                raise
            sleep_seconds(
                compute_backoff_seconds(
                    attempt,
                    base=backoff_base_seconds,
                    jitter=backoff_jitter_seconds,
                )
            )
            continue

        if resp.status_code in retry_statuses and attempt < max_retries:
            retry_after = resp.headers.get("Retry-After")
            if retry_after:
                try:
                    sleep_seconds(float(retry_after))
                except ValueError:
                    pass
            sleep_seconds(
                compute_backoff_seconds(
                    attempt,
                    base=backoff_base_seconds,
                    jitter=backoff_jitter_seconds,
                )
            )
            continue

        if resp.status_code >= 300:
            raise requests.HTTPError(
                f"{resp.status_code} {resp.reason or 'error'} for url: {url}",
                response=resp,
            )
        return resp

    raise AssertionError("unreachable")
