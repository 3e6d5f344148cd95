from __future__ import annotations

import json
from contextlib import asynccontextmanager

import pytest

from package_verifier.models import VerificationResult
from package_verifier.review import newest_first


class FakeResponse:
    def __init__(
        self,
        status: int = 200,
        body: object = None,
        *,
        reason: str = "",
        headers: dict[str, str] | None = None,
        raw: str | None = None,
    ) -> None:
        self.status = status
        self.reason = reason
        self.headers = headers or {}
        self._text = raw if raw is not None else json.dumps(body)

    async def text(self) -> str:
        return self._text


class FakeSession:
    """Stands in for ``aiohttp.ClientSession`` and replays canned responses."""

    def __init__(self, *responses) -> None:
        self._responses = list(responses)
        self.requests: list[tuple[str, dict[str, str] | None]] = []

    @property
    def urls(self) -> list[str]:
        return [url for url, _ in self.requests]

    @asynccontextmanager
    async def get(self, url: str, *, headers: dict[str, str] | None = None):
        self.requests.append((url, headers))
        if not self._responses:
            raise AssertionError(f"Unexpected request to {url}")
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        yield item

    async def close(self) -> None:
        return None


class MemoryStore:
    """In-memory ``ResultStore`` double that records every call."""

    def __init__(self, *results: VerificationResult) -> None:
        self.results: list[VerificationResult] = list(results)
        self.put_calls = 0
        self.latest_calls = 0

    def put_result(self, result: VerificationResult) -> None:
        self.put_calls += 1
        self.results.append(result)

    def latest_result(
        self, app_id: str, package_manager_id: str
    ) -> VerificationResult | None:
        self.latest_calls += 1
        history = self.history(app_id, package_manager_id)
        return history[0] if history else None

    def history(
        self, app_id: str, package_manager_id: str
    ) -> list[VerificationResult]:
        return newest_first(
            result
            for result in self.results
            if result.app_id == app_id
            and result.package_manager_id == package_manager_id
        )

    def iter_results(self):
        return iter(list(self.results))


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def make_store():
    return MemoryStore
