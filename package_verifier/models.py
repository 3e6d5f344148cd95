from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import ClassVar, Final, Literal

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

VerificationStatus = Literal["verified", "failed", "pending", "unverifiable"]

STATUSES: Final[tuple[str, ...]] = ("verified", "failed", "pending", "unverifiable")

VERIFIABLE_MANAGERS: Final[tuple[str, ...]] = (
    "homebrew",
    "chocolatey",
    "winget",
    "flatpak",
    "snap",
)

# No public query API exists for these managers.
UNVERIFIABLE_MANAGERS: Final[tuple[str, ...]] = (
    "macports",
    "apt",
    "dnf",
    "pacman",
    "zypper",
    "scoop",
)

PACKAGE_MANAGERS: Final[tuple[str, ...]] = VERIFIABLE_MANAGERS + UNVERIFIABLE_MANAGERS


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format (ms precision)."""
    return format_timestamp(datetime.now(UTC))


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class VerificationOutcome:
    """What a single package-manager lookup concluded."""

    status: VerificationStatus
    error_message: str | None = None

    @classmethod
    def verified(cls) -> VerificationOutcome:
        return cls(status="verified")

    @classmethod
    def failure(cls, message: str) -> VerificationOutcome:
        return cls(status="failed", error_message=message or "Verification failed")


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """One immutable verification record for an app/package-manager pair.

    ``error_message`` is set exactly when the status is ``failed`` and
    ``manual_review_flag`` only marks failed results that regressed from a
    verified state. Both rules are checked on construction.
    """

    app_id: str
    package_manager_id: str
    package_name: str
    status: VerificationStatus
    timestamp: str
    error_message: str | None = None
    manual_review_flag: bool = field(default=False)

    PK_TEMPLATE: ClassVar[str] = "APP#%s#PM#%s"
    SK_PREFIX: ClassVar[str] = "RESULT#"

    def __post_init__(self) -> None:
        if not self.app_id:
            raise ValueError("app_id must not be empty")
        if self.status not in STATUSES:
            raise ValueError(f"Unknown verification status: {self.status!r}")
        if self.status == "failed":
            if not self.error_message:
                raise ValueError("failed results require an error message")
        elif self.error_message is not None:
            raise ValueError(f"{self.status} results cannot carry an error message")
        if self.manual_review_flag and self.status != "failed":
            raise ValueError("only failed results can be flagged for manual review")

    @classmethod
    def from_outcome(
        cls,
        outcome: VerificationOutcome,
        *,
        app_id: str,
        package_manager_id: str,
        package_name: str,
        timestamp: str,
    ) -> VerificationResult:
        return cls(
            app_id=app_id,
            package_manager_id=package_manager_id,
            package_name=package_name,
            status=outcome.status,
            timestamp=timestamp,
            error_message=outcome.error_message,
        )

    @classmethod
    def partition_key(cls, app_id: str, package_manager_id: str) -> str:
        return cls.PK_TEMPLATE % (app_id, package_manager_id)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "app_id": self.app_id,
            "package_manager_id": self.package_manager_id,
            "package_name": self.package_name,
            "status": self.status,
            "timestamp": self.timestamp,
        }
        if self.error_message is not None:
            data["error_message"] = self.error_message
        if self.manual_review_flag:
            data["manual_review_flag"] = True
        return data

    def to_item(self, sort_suffix: str = "") -> dict[str, object]:
        item: dict[str, object] = {
            "pk": self.partition_key(self.app_id, self.package_manager_id),
            "sk": f"{self.SK_PREFIX}{self.timestamp}{sort_suffix}",
        }
        item.update(self.to_dict())
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> VerificationResult:
        error_message = item.get("error_message")
        return cls(
            app_id=str(item["app_id"]),
            package_manager_id=str(item["package_manager_id"]),
            package_name=str(item.get("package_name", "")),
            status=str(item["status"]),  # type: ignore[arg-type]
            timestamp=str(item["timestamp"]),
            error_message=str(error_message) if error_message else None,
            manual_review_flag=bool(item.get("manual_review_flag", False)),
        )


@dataclass(slots=True)
class VerificationSummary:
    total: int = 0
    verified: int = 0
    failed: int = 0
    errors: int = 0
    unverifiable: int = 0

    def record(self, result: VerificationResult) -> None:
        if result.status == "verified":
            self.verified += 1
        elif result.status == "failed":
            self.failed += 1
        elif result.status == "unverifiable":
            self.unverifiable += 1

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "verified": self.verified,
            "failed": self.failed,
            "errors": self.errors,
            "unverifiable": self.unverifiable,
        }


__all__ = [
    "ISO_FORMAT",
    "PACKAGE_MANAGERS",
    "STATUSES",
    "UNVERIFIABLE_MANAGERS",
    "VERIFIABLE_MANAGERS",
    "VerificationOutcome",
    "VerificationResult",
    "VerificationStatus",
    "VerificationSummary",
    "format_timestamp",
    "parse_timestamp",
    "utc_now_iso",
]
