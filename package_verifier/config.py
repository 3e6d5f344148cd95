"""Environment-driven settings for the verification runtime."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

_BOOL_WORDS = {
    "1": True,
    "true": True,
    "yes": True,
    "on": True,
    "0": False,
    "false": False,
    "no": False,
    "off": False,
}


def _env_value(name: str, parse: Callable[[str], T], default: T) -> T:
    """Parse ``name`` from the environment; unset, blank or bad values give ``default``."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return parse(raw)
    except (KeyError, ValueError):
        return default


def env_bool(name: str, *, default: bool = False) -> bool:
    return _env_value(name, lambda raw: _BOOL_WORDS[raw.lower()], default)


def env_int(name: str, *, default: int | None = None) -> int | None:
    return _env_value(name, int, default)


def env_float(name: str, *, default: float | None = None) -> float | None:
    return _env_value(name, float, default)


@dataclass(frozen=True)
class VerifierSettings:
    table_name: str | None
    aws_region: str
    max_retries: int
    request_delay: float
    request_timeout: float
    catalog_path: str | None
    store_results: bool
    log_level: str


def read_settings() -> VerifierSettings:
    max_retries = env_int("VERIFY_MAX_RETRIES", default=3) or 3
    return VerifierSettings(
        table_name=os.getenv("VERIFICATION_TABLE_NAME") or None,
        aws_region=os.getenv("AWS_REGION", "us-east-1"),
        max_retries=max(1, max_retries),
        request_delay=max(0.0, env_float("VERIFY_REQUEST_DELAY_SECONDS", default=0.1)),
        request_timeout=env_float("VERIFY_REQUEST_TIMEOUT_SECONDS", default=10.0),
        catalog_path=os.getenv("VERIFY_CATALOG_PATH") or None,
        store_results=env_bool("VERIFY_STORE_RESULTS", default=True),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
