from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_CODE = "invalid_code"
    PROVINCE_NOT_FOUND = "province_not_found"
    CITY_NOT_FOUND = "city_not_found"
    COUNTY_NOT_FOUND = "county_not_found"
    TOWN_NOT_FOUND = "town_not_found"
    VILLAGE_NOT_FOUND = "village_not_found"
    FETCH_FAILED = "fetch_failed"
    PARSE_FAILED = "parse_failed"
    PERSIST_FAILED = "persist_failed"


class ResolveError(Exception):
    """A division code could not be resolved.

    ``level`` is the hierarchy level being worked on when the failure happened
    (``None`` for input and persistence errors) and ``code`` the code or field
    that was being looked up. Lower-level causes are chained with
    ``raise ... from``.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        level: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.level = level
        self.code = code

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.args[0]}"
