import dataclasses
import re

import pytest

from package_verifier.models import (
    PACKAGE_MANAGERS,
    UNVERIFIABLE_MANAGERS,
    VERIFIABLE_MANAGERS,
    VerificationOutcome,
    VerificationResult,
    VerificationSummary,
    format_timestamp,
    parse_timestamp,
    utc_now_iso,
)

TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def make_result(**overrides) -> VerificationResult:
    values = {
        "app_id": "firefox",
        "package_manager_id": "homebrew",
        "package_name": "--cask firefox",
        "status": "verified",
        "timestamp": "2024-05-01T12:00:00.000Z",
    }
    values.update(overrides)
    return VerificationResult(**values)


class TestPackageManagerPartitions:
    def test_eleven_managers_split_without_overlap(self):
        assert len(PACKAGE_MANAGERS) == 11
        assert set(VERIFIABLE_MANAGERS).isdisjoint(UNVERIFIABLE_MANAGERS)
        assert set(VERIFIABLE_MANAGERS) == {
            "homebrew",
            "chocolatey",
            "winget",
            "flatpak",
            "snap",
        }


class TestTimestamps:
    def test_now_has_millisecond_precision_and_z_suffix(self):
        assert TIMESTAMP_RE.match(utc_now_iso())

    def test_round_trip_preserves_value(self):
        value = utc_now_iso()
        assert format_timestamp(parse_timestamp(value)) == value

    def test_parse_returns_aware_utc_datetime(self):
        parsed = parse_timestamp("2024-05-01T12:00:00.123Z")
        assert parsed.tzinfo is not None
        assert parsed.microsecond == 123000


class TestVerificationResultInvariants:
    def test_failed_requires_error_message(self):
        with pytest.raises(ValueError):
            make_result(status="failed")

    def test_failed_rejects_empty_error_message(self):
        with pytest.raises(ValueError):
            make_result(status="failed", error_message="")

    @pytest.mark.parametrize("status", ["verified", "pending", "unverifiable"])
    def test_non_failed_statuses_reject_error_message(self, status):
        with pytest.raises(ValueError):
            make_result(status=status, error_message="boom")

    @pytest.mark.parametrize("status", ["verified", "pending", "unverifiable"])
    def test_manual_review_flag_only_on_failed(self, status):
        with pytest.raises(ValueError):
            make_result(status=status, manual_review_flag=True)

    def test_flagged_failure_is_valid(self):
        result = make_result(
            status="failed", error_message="Package not found", manual_review_flag=True
        )
        assert result.manual_review_flag is True
        assert result.to_dict()["manual_review_flag"] is True

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            make_result(status="gone")

    def test_empty_app_id_rejected(self):
        with pytest.raises(ValueError):
            make_result(app_id="")

    def test_records_are_immutable(self):
        result = make_result()
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.status = "failed"  # type: ignore[misc]


class TestSerialization:
    def test_to_dict_omits_unset_optional_fields(self):
        data = make_result().to_dict()
        assert "error_message" not in data
        assert "manual_review_flag" not in data

    def test_to_dict_includes_failure_details(self):
        data = make_result(
            status="failed", error_message="Package not found", manual_review_flag=True
        ).to_dict()
        assert data["error_message"] == "Package not found"
        assert data["manual_review_flag"] is True

    def test_item_keys_group_history_per_pair(self):
        item = make_result().to_item(sort_suffix="#abc")
        assert item["pk"] == "APP#firefox#PM#homebrew"
        assert item["sk"] == "RESULT#2024-05-01T12:00:00.000Z#abc"

    def test_from_item_restores_result(self):
        original = make_result(
            status="failed", error_message="HTTP error: 403 Forbidden"
        )
        assert VerificationResult.from_item(original.to_item()) == original


class TestOutcomeAndSummary:
    def test_failure_without_message_gets_generic_text(self):
        outcome = VerificationOutcome.failure("")
        assert outcome.status == "failed"
        assert outcome.error_message == "Verification failed"

    def test_from_outcome_fills_identity(self):
        result = VerificationResult.from_outcome(
            VerificationOutcome.verified(),
            app_id="git",
            package_manager_id="homebrew",
            package_name="git",
            timestamp="2024-05-01T12:00:00.000Z",
        )
        assert result.app_id == "git"
        assert result.status == "verified"
        assert result.error_message is None

    def test_summary_counts_by_status(self):
        summary = VerificationSummary()
        summary.record(make_result())
        summary.record(make_result(status="failed", error_message="x"))
        summary.record(make_result(status="unverifiable"))
        summary.record(make_result(status="pending"))
        assert summary.to_dict() == {
            "total": 0,
            "verified": 1,
            "failed": 1,
            "errors": 0,
            "unverifiable": 1,
        }
