from __future__ import annotations

import logging
import random
from typing import Callable

import requests

from divisions.base import ResolverConfig, get_with_retries, sleep_seconds
from divisions.errors import ErrorKind, ResolveError
from divisions.extract import ExtractMode, extract_entries
from utils.html_tree import parse_document
from utils.text import DEFAULT_PAGE_ENCODING, decode_text

logger = logging.getLogger(__name__)

PageFetch = Callable[[str], bytes]


class PageFetcher:
    """HTTP transport for listing pages; returns the raw response body."""

    name = "page_fetcher"

    def __init__(
        self, config: ResolverConfig, session: requests.Session | None = None
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        if config.user_agent:
            self.session.headers.update({"User-Agent": config.user_agent})
        self._requests_made = 0

    def __call__(self, url: str) -> bytes:
        if self._requests_made and self.config.request_delay_seconds > 0:
            sleep_seconds(
                self.config.request_delay_seconds
                + random.uniform(0.0, self.config.request_jitter_seconds)
            )
        self._requests_made += 1

        logger.info(f"[{self.name}] Fetching {url}")
        resp = get_with_retries(
            self.session,
            url,
            timeout_seconds=self.config.timeout_seconds,
            max_retries=self.config.max_retries,
            backoff_base_seconds=self.config.backoff_base_seconds,
            backoff_jitter_seconds=self.config.backoff_jitter_seconds,
        )
        return resp.content


class LevelFetcher:
    """Answers "which divisions are listed under this page" for one level."""

    name = "level_fetcher"

    def __init__(
        self,
        page_fetcher: PageFetch,
        *,
        base_url: str,
        page_encoding: str = DEFAULT_PAGE_ENCODING,
    ) -> None:
        self.page_fetcher = page_fetcher
        self.base_url = base_url
        self.page_encoding = page_encoding

    @classmethod
    def from_config(cls, config: ResolverConfig) -> LevelFetcher:
        return cls(
            PageFetcher(config),
            base_url=config.base_url,
            page_encoding=config.page_encoding,
        )

    def page_url(self, url_suffix: str) -> str:
        if not url_suffix:
            return self.base_url
        return f"{self.base_url}{url_suffix}.html"

    def fetch_level(
        self, url_suffix: str, expected_code_length: int, mode: ExtractMode
    ) -> dict[str, str]:
        """Fetch one listing page and return every ``code -> name`` on it.

        Codes are cut to ``expected_code_length``. Rows whose name does not
        decode are dropped individually; only a failed fetch or parse raises.
        """
        url = self.page_url(url_suffix)
        try:
            content = self.page_fetcher(url)
        except (requests.RequestException, OSError) as exc:
            status = getattr(getattr(exc, "response", None), "status_code", None)
            detail = f"HTTP {status}" if status is not None else type(exc).__name__
            raise ResolveError(
                ErrorKind.FETCH_FAILED, f"failed to fetch {url} ({detail}): {exc}"
            ) from exc

        try:
            document = parse_document(content)
        except Exception as exc:
            raise ResolveError(
                ErrorKind.PARSE_FAILED, f"failed to parse {url}: {exc}"
            ) from exc

        out: dict[str, str] = {}
        skipped = 0
        for code, raw_name in extract_entries(document, mode, nested=bool(url_suffix)):
            if len(code) < expected_code_length:
                skipped += 1
                continue
            code = code[:expected_code_length]
            if code in out:
                continue
            try:
                name = decode_text(raw_name, self.page_encoding)
            except UnicodeError as exc:
                logger.debug(f"[{self.name}] Skipping row {code} on {url}: {exc}")
                skipped += 1
                continue
            if not name:
                skipped += 1
                continue
            out[code] = name

        logger.info(
            f"[{self.name}] Found {len(out)} entries on {url}"
            + (f" ({skipped} skipped)" if skipped else "")
        )
        return out
