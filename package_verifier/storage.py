from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Protocol

from boto3.dynamodb.conditions import Key

from .models import VerificationResult


def _now_ns() -> int:
    return time.time_ns()


class ResultStore(Protocol):
    """Narrow persistence contract the verification service depends on."""

    def put_result(self, result: VerificationResult) -> None: ...

    def latest_result(
        self, app_id: str, package_manager_id: str
    ) -> VerificationResult | None: ...

    def history(
        self, app_id: str, package_manager_id: str
    ) -> list[VerificationResult]: ...

    def iter_results(self) -> Iterator[VerificationResult]: ...


class VerificationStorage:
    """Append-only history of verification results in a DynamoDB table.

    Each app/package-manager pair is one partition; sort keys start with the
    result timestamp so the newest record is the last one in key order.
    """

    def __init__(self, table) -> None:
        self._table = table
        self._last_suffix = 0

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Verification table is not configured")

    def put_result(self, result: VerificationResult) -> None:
        self.ensure_table()
        self._table.put_item(Item=result.to_item(sort_suffix=self._next_suffix()))

    def _next_suffix(self) -> str:
        # Strictly increasing so writes within one millisecond keep their order.
        self._last_suffix = max(_now_ns(), self._last_suffix + 1)
        return f"#{self._last_suffix:020d}"

    def latest_result(
        self, app_id: str, package_manager_id: str
    ) -> VerificationResult | None:
        self.ensure_table()
        resp = self._table.query(
            KeyConditionExpression=Key("pk").eq(
                VerificationResult.partition_key(app_id, package_manager_id)
            )
            & Key("sk").begins_with(VerificationResult.SK_PREFIX),
            ScanIndexForward=False,
            Limit=1,
        )
        items = resp.get("Items", [])
        if not items:
            return None
        return VerificationResult.from_item(items[0])

    def history(
        self, app_id: str, package_manager_id: str
    ) -> list[VerificationResult]:
        """Return every stored result for the pair, newest first."""
        self.ensure_table()
        query_kwargs: dict[str, object] = {
            "KeyConditionExpression": Key("pk").eq(
                VerificationResult.partition_key(app_id, package_manager_id)
            )
            & Key("sk").begins_with(VerificationResult.SK_PREFIX),
            "ScanIndexForward": False,
        }
        results: list[VerificationResult] = []
        while True:
            resp = self._table.query(**query_kwargs)
            results.extend(
                VerificationResult.from_item(item) for item in resp.get("Items", [])
            )
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return results
            query_kwargs["ExclusiveStartKey"] = last_key

    def iter_results(self) -> Iterator[VerificationResult]:
        self.ensure_table()
        scan_kwargs: dict[str, object] = {}
        while True:
            resp = self._table.scan(**scan_kwargs)
            for item in resp.get("Items", []):
                if str(item.get("sk", "")).startswith(VerificationResult.SK_PREFIX):
                    yield VerificationResult.from_item(item)
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return
            scan_kwargs["ExclusiveStartKey"] = last_key


__all__ = ["ResultStore", "VerificationStorage"]
