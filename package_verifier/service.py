"""Verification orchestration: routing, retries, regression detection, storage."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Final

import aiohttp

from .models import (
    UNVERIFIABLE_MANAGERS,
    VERIFIABLE_MANAGERS,
    VerificationOutcome,
    VerificationResult,
    VerificationSummary,
    utc_now_iso,
)
from .retry import DEFAULT_MAX_RETRIES, SleepFn, execute_with_retry
from .verifiers import VERIFIERS, VerifyFn

if TYPE_CHECKING:
    from .catalog import CatalogEntry
    from .storage import ResultStore

log = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT: Final[float] = 10.0
DEFAULT_BATCH_DELAY: Final[float] = 0.1


def generate_timestamp() -> str:
    """Current instant as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return utc_now_iso()


class VerificationService:
    DEFAULT_MAX_RETRIES: Final[int] = DEFAULT_MAX_RETRIES

    def __init__(
        self,
        storage: ResultStore | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        verifiers: Mapping[str, VerifyFn] | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: SleepFn = asyncio.sleep,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._storage = storage
        self._session = session
        self._owns_session = False
        self._verifiers = dict(VERIFIERS if verifiers is None else verifiers)
        self._max_retries = max_retries
        self._sleep = sleep
        self._request_timeout = request_timeout

    async def __aenter__(self) -> VerificationService:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._request_timeout)
            )
            self._owns_session = True
        return self._session

    @property
    def storage(self) -> ResultStore | None:
        return self._storage

    @staticmethod
    def is_verifiable(package_manager_id: str) -> bool:
        return package_manager_id in VERIFIABLE_MANAGERS

    @staticmethod
    def is_unverifiable(package_manager_id: str) -> bool:
        return package_manager_id in UNVERIFIABLE_MANAGERS

    async def verify_package(
        self,
        app_id: str,
        package_manager_id: str,
        package_name: str,
        *,
        store_result: bool = True,
    ) -> VerificationResult:
        if self.is_unverifiable(package_manager_id):
            return self._unverifiable(app_id, package_manager_id, package_name)
        if not self.is_verifiable(package_manager_id):
            raise ValueError(f"Unknown package manager: {package_manager_id}")

        verifier = self._verifiers.get(package_manager_id)
        if verifier is None:
            log.warning("No verifier registered for %s", package_manager_id)
            return self._unverifiable(app_id, package_manager_id, package_name)

        session = self._get_session()
        try:
            outcome = await execute_with_retry(
                lambda: verifier(session, package_name),
                self._max_retries,
                sleep=self._sleep,
            )
        except Exception as exc:
            log.warning(
                "Verification of %s/%s (%s) failed: %s",
                app_id,
                package_manager_id,
                package_name,
                exc,
            )
            outcome = VerificationOutcome.failure(str(exc))

        result = VerificationResult.from_outcome(
            outcome,
            app_id=app_id,
            package_manager_id=package_manager_id,
            package_name=package_name,
            timestamp=generate_timestamp(),
        )

        if result.status == "failed":
            previous = self.get_latest_result(app_id, package_manager_id)
            if previous is not None and previous.status == "verified":
                log.warning(
                    "Regression: %s/%s was verified and now fails (%s); flagged for review",
                    app_id,
                    package_manager_id,
                    result.error_message,
                )
                result = dataclasses.replace(result, manual_review_flag=True)

        if store_result:
            self.store_result(result)
        return result

    def _unverifiable(
        self, app_id: str, package_manager_id: str, package_name: str
    ) -> VerificationResult:
        return VerificationResult(
            app_id=app_id,
            package_manager_id=package_manager_id,
            package_name=package_name,
            status="unverifiable",
            timestamp=generate_timestamp(),
        )

    def store_result(self, result: VerificationResult) -> None:
        if self._storage is None:
            return
        try:
            self._storage.put_result(result)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception(
                "Failed to store verification result for %s/%s: %s",
                result.app_id,
                result.package_manager_id,
                exc,
            )

    def get_latest_result(
        self, app_id: str, package_manager_id: str
    ) -> VerificationResult | None:
        if self._storage is None:
            return None
        try:
            return self._storage.latest_result(app_id, package_manager_id)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception(
                "Failed to fetch latest verification result for %s/%s: %s",
                app_id,
                package_manager_id,
                exc,
            )
            return None

    async def verify_all_packages(
        self,
        catalog: Iterable[CatalogEntry],
        *,
        delay_between_requests: float = DEFAULT_BATCH_DELAY,
        store_results: bool = True,
    ) -> VerificationSummary:
        """Verify every target in ``catalog`` one at a time.

        A failure to verify one target is counted under ``errors`` and does not
        stop the run. ``delay_between_requests`` spaces out upstream calls.
        """
        summary = VerificationSummary()
        for entry in catalog:
            for package_manager_id, package_name in entry.targets.items():
                if not package_name:
                    continue
                summary.total += 1
                try:
                    result = await self.verify_package(
                        entry.app_id,
                        package_manager_id,
                        package_name,
                        store_result=store_results,
                    )
                except Exception as exc:  # pylint: disable=broad-except
                    summary.errors += 1
                    log.error(
                        "Error verifying %s/%s: %s",
                        entry.app_id,
                        package_manager_id,
                        exc,
                    )
                    continue
                summary.record(result)
                if result.status != "unverifiable" and delay_between_requests > 0:
                    await self._sleep(delay_between_requests)

        log.info(
            "Verification run complete: %d total, %d verified, %d failed, "
            "%d unverifiable, %d errors",
            summary.total,
            summary.verified,
            summary.failed,
            summary.unverifiable,
            summary.errors,
        )
        return summary


__all__ = ["VerificationService", "generate_timestamp"]
