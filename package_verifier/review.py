"""Read-side queries over stored verification history.

These back the admin review workflow: listing the app/package-manager pairs
with a regression that no verified result has followed yet, and resolving one
by appending a fresh ``verified`` record.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from typing import Final

from .models import VerificationResult, utc_now_iso
from .storage import ResultStore

log = logging.getLogger(__name__)

SORT_FIELDS: Final[tuple[str, ...]] = (
    "timestamp",
    "app_id",
    "package_manager_id",
    "package_name",
)


def status_key(app_id: str, package_manager_id: str) -> str:
    return f"{app_id}:{package_manager_id}"


def newest_first(
    results: Iterable[VerificationResult],
) -> list[VerificationResult]:
    """Order by timestamp, newest first; equal timestamps keep later entries first."""
    indexed = sorted(
        enumerate(results),
        key=lambda pair: (pair[1].timestamp, pair[0]),
        reverse=True,
    )
    return [result for _, result in indexed]


def _histories(store: ResultStore) -> dict[tuple[str, str], list[VerificationResult]]:
    grouped: dict[tuple[str, str], list[VerificationResult]] = defaultdict(list)
    for result in store.iter_results():
        grouped[(result.app_id, result.package_manager_id)].append(result)
    return {key: newest_first(results) for key, results in grouped.items()}


def pending_review(
    history: Sequence[VerificationResult],
) -> VerificationResult | None:
    """Return the flagged record still awaiting review, if any.

    ``history`` is newest first. A flagged record stays open until a later
    ``verified`` record follows it; further failures do not close it.
    """
    for result in history:
        if result.status == "verified":
            return None
        if result.manual_review_flag:
            return result
    return None


def latest_results(store: ResultStore) -> list[VerificationResult]:
    """Return the newest result for every app/package-manager pair."""
    return [history[0] for _, history in sorted(_histories(store).items())]


def list_flagged(
    store: ResultStore,
    *,
    package_manager_id: str | None = None,
    sort_by: str = "timestamp",
) -> list[VerificationResult]:
    """Return the open flagged record of every pair awaiting manual review."""
    if sort_by not in SORT_FIELDS:
        log.debug("Unsupported sort field %r, using timestamp", sort_by)
        sort_by = "timestamp"
    flagged: list[VerificationResult] = []
    for (_, manager), history in _histories(store).items():
        if package_manager_id is not None and manager != package_manager_id:
            continue
        pending = pending_review(history)
        if pending is not None:
            flagged.append(pending)
    flagged.sort(key=lambda result: getattr(result, sort_by), reverse=True)
    return flagged


def resolve_flagged(
    store: ResultStore,
    app_id: str,
    package_manager_id: str,
    *,
    now: Callable[[], str] = utc_now_iso,
) -> VerificationResult | None:
    """Clear a pending review by recording a fresh ``verified`` result.

    Returns ``None`` when the pair has no open flagged record. The flagged
    record itself stays untouched in the history.
    """
    history = store.history(app_id, package_manager_id)
    if pending_review(history) is None:
        return None
    resolved = VerificationResult(
        app_id=app_id,
        package_manager_id=package_manager_id,
        package_name=history[0].package_name,
        status="verified",
        timestamp=now(),
    )
    store.put_result(resolved)
    log.info("Resolved manual review for %s/%s", app_id, package_manager_id)
    return resolved


def get_status(
    store: ResultStore, app_id: str, package_manager_id: str
) -> VerificationResult | None:
    return store.latest_result(app_id, package_manager_id)


def build_status_map(
    results: Iterable[VerificationResult],
) -> dict[str, VerificationResult]:
    """Index results by ``"app_id:package_manager_id"``; later entries win."""
    return {
        status_key(result.app_id, result.package_manager_id): result
        for result in results
    }


__all__ = [
    "SORT_FIELDS",
    "build_status_map",
    "get_status",
    "latest_results",
    "list_flagged",
    "newest_first",
    "pending_review",
    "resolve_flagged",
    "status_key",
]
