from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path


class CatalogLookupError(LookupError):
    pass


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    app_id: str
    targets: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> CatalogEntry:
        app_id = str(data.get("id", "")).strip()
        if not app_id:
            raise ValueError("Catalog entry is missing an id")
        raw_targets = data.get("targets") or {}
        if not isinstance(raw_targets, dict):
            raise ValueError(f"Catalog entry {app_id} has malformed targets")
        targets = {
            str(manager): str(package)
            for manager, package in raw_targets.items()
            if package
        }
        return cls(app_id=app_id, targets=targets)


def parse_catalog(data: Iterable[dict[str, object]]) -> list[CatalogEntry]:
    return [CatalogEntry.from_dict(item) for item in data]


def load_catalog(path: str | Path) -> list[CatalogEntry]:
    """Load a JSON list of ``{"id": ..., "targets": {manager: package}}``."""
    with Path(path).open(encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, list):
        raise ValueError(f"Catalog {path} must contain a JSON list")
    return parse_catalog(data)


def package_name_for(
    catalog: Sequence[CatalogEntry], app_id: str, package_manager_id: str
) -> str:
    for entry in catalog:
        if entry.app_id != app_id:
            continue
        package_name = entry.targets.get(package_manager_id)
        if not package_name:
            raise CatalogLookupError(
                f"Package not available for {package_manager_id} in app {app_id}"
            )
        return package_name
    raise CatalogLookupError(f"App not found: {app_id}")


__all__ = [
    "CatalogEntry",
    "CatalogLookupError",
    "load_catalog",
    "package_name_for",
    "parse_catalog",
]
