"""Infrastructure tests for upstream API reliability.

These run the real verifiers through VerificationService against a scripted
session to check behaviour when the package manager APIs misbehave.
"""

import aiohttp
import pytest

from package_verifier.service import VerificationService


def build_service(session, store, sleep, max_retries=3):
    return VerificationService(
        store, session=session, sleep=sleep, max_retries=max_retries
    )


class TestTransientFailures:
    @pytest.mark.asyncio
    async def test_server_error_then_success(
        self, make_session, make_response, memory_store, fake_sleep
    ):
        session = make_session(
            make_response(503, {}, reason="Service Unavailable"),
            make_response(200, {"token": "firefox"}),
        )
        service = build_service(session, memory_store, fake_sleep)

        result = await service.verify_package("firefox", "homebrew", "--cask firefox")

        assert result.status == "verified"
        assert len(session.requests) == 2
        assert fake_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_rate_limit_waits_for_retry_after(
        self, make_session, make_response, memory_store, fake_sleep
    ):
        session = make_session(
            make_response(429, {}, headers={"Retry-After": "7"}),
            make_response(200, {"d": {"results": [{"Id": "git"}]}}),
        )
        service = build_service(session, memory_store, fake_sleep)

        result = await service.verify_package("git", "chocolatey", "git")

        assert result.status == "verified"
        assert fake_sleep.delays == [7.0]

    @pytest.mark.asyncio
    async def test_connection_reset_is_retried_with_backoff(
        self, make_session, make_response, memory_store, fake_sleep
    ):
        session = make_session(
            aiohttp.ClientConnectionError("ECONNRESET"),
            aiohttp.ClientConnectionError("ECONNRESET"),
            make_response(200, {"name": "slack"}),
        )
        service = build_service(session, memory_store, fake_sleep)

        result = await service.verify_package("slack", "snap", "slack --classic")

        assert result.status == "verified"
        assert fake_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_persistent_outage_exhausts_retries(
        self, make_session, make_response, memory_store, fake_sleep
    ):
        session = make_session(*(make_response(502, {}, reason="Bad Gateway") for _ in range(3)))
        service = build_service(session, memory_store, fake_sleep)

        result = await service.verify_package("vlc", "flatpak", "org.videolan.VLC")

        assert result.status == "failed"
        assert "502" in result.error_message
        assert len(session.requests) == 3
        assert fake_sleep.delays == [1.0, 2.0]
        assert memory_store.results == [result]


class TestDefinitiveAnswers:
    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(
        self, make_session, make_response, memory_store, fake_sleep
    ):
        session = make_session(make_response(404, {}))
        service = build_service(session, memory_store, fake_sleep)

        result = await service.verify_package("ghost", "homebrew", "ghost")

        assert result.status == "failed"
        assert result.error_message == "Package not found"
        assert len(session.requests) == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_exhausted_github_quota_is_retried(
        self, make_session, make_response, memory_store, fake_sleep, monkeypatch
    ):
        monkeypatch.setattr("package_verifier.verifiers._epoch_seconds", lambda: 100)
        session = make_session(
            make_response(
                403,
                {},
                reason="Forbidden",
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "130"},
            ),
            make_response(200, [{"name": "2.44.0"}]),
        )
        service = build_service(session, memory_store, fake_sleep)

        result = await service.verify_package("git", "winget", "Git.Git")

        assert result.status == "verified"
        assert fake_sleep.delays == [30.0]

    @pytest.mark.asyncio
    async def test_single_attempt_configuration(
        self, make_session, make_response, memory_store, fake_sleep
    ):
        session = make_session(make_response(503, {}))
        service = build_service(session, memory_store, fake_sleep, max_retries=1)

        result = await service.verify_package("git", "homebrew", "git")

        assert result.status == "failed"
        assert fake_sleep.delays == []
