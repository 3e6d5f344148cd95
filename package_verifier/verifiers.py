"""Existence checks against each verifiable package manager's public API.

Every verifier is an async function ``verify(session, package_name)`` that
returns a :class:`VerificationOutcome`. Definitive answers (found, not found,
malformed id, unexpected 4xx) come back as outcomes; transient conditions are
raised as :class:`RateLimitError` or :class:`NetworkError` so the retry
executor can try again.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Final

import aiohttp

from .errors import NetworkError, RateLimitError
from .models import VerificationOutcome

log = logging.getLogger(__name__)

HOMEBREW_FORMULA_API: Final = "https://formulae.brew.sh/api/formula"
HOMEBREW_CASK_API: Final = "https://formulae.brew.sh/api/cask"
CHOCOLATEY_API: Final = "https://community.chocolatey.org/api/v2/Packages()"
WINGET_MANIFESTS_API: Final = (
    "https://api.github.com/repos/microsoft/winget-pkgs/contents/manifests"
)
FLATHUB_API: Final = "https://flathub.org/api/v2/appstream"
SNAPCRAFT_API: Final = "https://api.snapcraft.io/v2/snaps/info"

CASK_MARKER: Final = "--cask "
NOT_FOUND: Final = "Package not found"

VerifyFn = Callable[[aiohttp.ClientSession, str], Awaitable[VerificationOutcome]]


@dataclass(slots=True)
class _Response:
    status: int
    reason: str
    headers: Mapping[str, str]
    body: str


def _parse_retry_after(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return max(0, int(value.strip()))
    except ValueError:
        # HTTP-date form is not worth supporting; fall back to backoff.
        return None


async def _fetch(
    session: aiohttp.ClientSession,
    url: str,
    *,
    source: str,
    package_name: str,
    headers: dict[str, str] | None = None,
) -> _Response:
    try:
        async with session.get(url, headers=headers) as response:
            body = await response.text()
            return _Response(
                status=response.status,
                reason=response.reason or "",
                headers=response.headers,
                body=body,
            )
    except (aiohttp.ClientError, TimeoutError) as exc:
        raise NetworkError(
            f"Network error while verifying {package_name} against {source}: "
            f"{str(exc) or type(exc).__name__}"
        ) from exc


def _check_status(response: _Response, *, source: str) -> VerificationOutcome | None:
    """Apply the shared HTTP status policy.

    Returns ``None`` for 2xx responses so the caller can inspect the body.
    """
    if 200 <= response.status < 300:
        return None
    if response.status == 404:
        return VerificationOutcome.failure(NOT_FOUND)
    if response.status == 429:
        retry_after = _parse_retry_after(response.headers.get("Retry-After"))
        suffix = f". Retry after {retry_after}s" if retry_after is not None else ""
        raise RateLimitError(f"Rate limited by {source}{suffix}", retry_after)
    if response.status >= 500:
        raise NetworkError(
            f"{source} server error: {response.status} {response.reason}".rstrip()
        )
    return VerificationOutcome.failure(
        f"HTTP error: {response.status} {response.reason}".rstrip()
    )


def _parse_json(response: _Response, *, source: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(response.body)
    except ValueError:
        log.debug("Unparseable body from %s: %.200s", source, response.body)
        return False, None


# ----- Homebrew -----


def parse_homebrew_name(package_name: str) -> tuple[bool, str]:
    """Return ``(is_cask, name)`` for a Homebrew target such as ``--cask firefox``."""
    if package_name.startswith(CASK_MARKER):
        return True, package_name[len(CASK_MARKER) :].strip()
    return False, package_name.strip()


def build_homebrew_url(package_name: str) -> str:
    is_cask, name = parse_homebrew_name(package_name)
    base = HOMEBREW_CASK_API if is_cask else HOMEBREW_FORMULA_API
    return f"{base}/{name}.json"


async def verify_homebrew(
    session: aiohttp.ClientSession, package_name: str
) -> VerificationOutcome:
    source = "Homebrew API"
    response = await _fetch(
        session,
        build_homebrew_url(package_name),
        source=source,
        package_name=package_name,
    )
    outcome = _check_status(response, source=source)
    if outcome is not None:
        return outcome
    parsed, _ = _parse_json(response, source=source)
    if not parsed:
        return VerificationOutcome.failure("Invalid JSON response from Homebrew API")
    return VerificationOutcome.verified()


# ----- Chocolatey -----


def escape_odata_string(value: str) -> str:
    return value.replace("'", "''")


def build_chocolatey_url(package_name: str) -> str:
    name = escape_odata_string(package_name.strip())
    return f"{CHOCOLATEY_API}?$filter=Id eq '{name}'"


async def verify_chocolatey(
    session: aiohttp.ClientSession, package_name: str
) -> VerificationOutcome:
    source = "Chocolatey API"
    response = await _fetch(
        session,
        build_chocolatey_url(package_name),
        source=source,
        package_name=package_name,
        headers={"Accept": "application/json"},
    )
    outcome = _check_status(response, source=source)
    if outcome is not None:
        return outcome
    parsed, data = _parse_json(response, source=source)
    if not parsed:
        return VerificationOutcome.failure("Invalid JSON response from Chocolatey API")

    # OData v2 wraps matches as {"d": {"results": [...]}}
    results = None
    if isinstance(data, dict):
        envelope = data.get("d")
        if isinstance(envelope, dict):
            results = envelope.get("results")
    if not results:
        return VerificationOutcome.failure(NOT_FOUND)
    return VerificationOutcome.verified()


# ----- Winget -----


@dataclass(frozen=True, slots=True)
class WingetPackageId:
    publisher: str
    name: str

    @property
    def first_letter(self) -> str:
        return self.publisher[0].lower()


def parse_winget_id(package_name: str) -> WingetPackageId | None:
    """Split ``Publisher.Name`` ids; the name part may itself contain dots."""
    publisher, sep, name = package_name.strip().partition(".")
    if not sep or not publisher or not name:
        return None
    return WingetPackageId(publisher=publisher, name=name)


def build_winget_url(package_name: str) -> str | None:
    parsed = parse_winget_id(package_name)
    if parsed is None:
        return None
    return (
        f"{WINGET_MANIFESTS_API}/{parsed.first_letter}/"
        f"{parsed.publisher}/{parsed.name}"
    )


def _epoch_seconds() -> float:
    return time.time()


def _github_rate_limit(response: _Response) -> RateLimitError | None:
    # GitHub signals an exhausted unauthenticated quota with a bare 403.
    exhausted = (
        response.status == 403
        and response.headers.get("X-RateLimit-Remaining") == "0"
    )
    if response.status != 429 and not exhausted:
        return None

    retry_after = _parse_retry_after(response.headers.get("Retry-After"))
    reset_raw = response.headers.get("X-RateLimit-Reset")
    if retry_after is None and reset_raw:
        try:
            retry_after = max(0, int(reset_raw) - int(_epoch_seconds()))
        except ValueError:
            retry_after = None
    suffix = f". Retry after {retry_after}s" if retry_after is not None else ""
    return RateLimitError(f"Rate limited by GitHub API{suffix}", retry_after)


async def verify_winget(
    session: aiohttp.ClientSession, package_name: str
) -> VerificationOutcome:
    url = build_winget_url(package_name)
    if url is None:
        return VerificationOutcome.failure(
            "Invalid Winget package ID format. Expected: Publisher.PackageName"
        )

    source = "GitHub API"
    response = await _fetch(
        session,
        url,
        source=source,
        package_name=package_name,
        headers={"Accept": "application/vnd.github.v3+json"},
    )
    rate_limited = _github_rate_limit(response)
    if rate_limited is not None:
        raise rate_limited
    outcome = _check_status(response, source=source)
    if outcome is not None:
        return outcome
    parsed, data = _parse_json(response, source=source)
    if not parsed:
        return VerificationOutcome.failure("Invalid JSON response from GitHub API")
    if not data:
        return VerificationOutcome.failure(NOT_FOUND)
    return VerificationOutcome.verified()


# ----- Flatpak -----


def build_flatpak_url(package_name: str) -> str:
    return f"{FLATHUB_API}/{package_name.strip()}"


async def verify_flatpak(
    session: aiohttp.ClientSession, package_name: str
) -> VerificationOutcome:
    source = "Flathub API"
    response = await _fetch(
        session,
        build_flatpak_url(package_name),
        source=source,
        package_name=package_name,
    )
    outcome = _check_status(response, source=source)
    if outcome is not None:
        return outcome
    parsed, data = _parse_json(response, source=source)
    if not parsed:
        return VerificationOutcome.failure("Invalid JSON response from Flathub API")
    if data is None:
        return VerificationOutcome.failure(NOT_FOUND)
    return VerificationOutcome.verified()


# ----- Snap -----


def strip_snap_flags(package_name: str) -> str:
    """``"slack --classic"`` -> ``"slack"``."""
    parts = package_name.split()
    return parts[0] if parts else ""


def build_snap_url(package_name: str) -> str:
    return f"{SNAPCRAFT_API}/{strip_snap_flags(package_name)}"


async def verify_snap(
    session: aiohttp.ClientSession, package_name: str
) -> VerificationOutcome:
    source = "Snapcraft API"
    response = await _fetch(
        session,
        build_snap_url(package_name),
        source=source,
        package_name=package_name,
        headers={"Snap-Device-Series": "16"},
    )
    outcome = _check_status(response, source=source)
    if outcome is not None:
        return outcome
    parsed, _ = _parse_json(response, source=source)
    if not parsed:
        return VerificationOutcome.failure("Invalid JSON response from Snapcraft API")
    return VerificationOutcome.verified()


VERIFIERS: Final[dict[str, VerifyFn]] = {
    "homebrew": verify_homebrew,
    "chocolatey": verify_chocolatey,
    "winget": verify_winget,
    "flatpak": verify_flatpak,
    "snap": verify_snap,
}


__all__ = [
    "VERIFIERS",
    "VerifyFn",
    "WingetPackageId",
    "build_chocolatey_url",
    "build_flatpak_url",
    "build_homebrew_url",
    "build_snap_url",
    "build_winget_url",
    "escape_odata_string",
    "parse_homebrew_name",
    "parse_winget_id",
    "strip_snap_flags",
    "verify_chocolatey",
    "verify_flatpak",
    "verify_homebrew",
    "verify_snap",
    "verify_winget",
]
