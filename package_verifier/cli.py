"""Command line entry point for package verification.

Sub-commands:

* ``verify APP_ID MANAGER`` checks one target (package name from the catalog
  or ``--package-name``).
* ``verify-all`` checks every target in the catalog and prints a summary.
* ``status`` prints the latest stored result(s), or a pair's full history
  with ``--history``.
* ``flagged`` lists pairs whose latest result awaits manual review.
* ``resolve APP_ID MANAGER`` marks a flagged pair as verified again.

Storage comes from ``VERIFICATION_TABLE_NAME``; without it results are
printed but not persisted, and the read-only commands exit with status 2.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from botocore.exceptions import BotoCoreError, ClientError

from . import review
from .catalog import CatalogLookupError, load_catalog, package_name_for
from .clients import build_storage
from .config import VerifierSettings, read_settings
from .models import PACKAGE_MANAGERS
from .service import VerificationService

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="package-verifier",
        description="Check that catalog packages still exist upstream.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify = subparsers.add_parser("verify", help="Verify a single app target")
    verify.add_argument("app_id")
    verify.add_argument("package_manager", choices=PACKAGE_MANAGERS)
    verify.add_argument(
        "--package-name",
        help="Package name to check (defaults to the catalog entry)",
    )
    verify.add_argument("--catalog", help="Path to the JSON app catalog")
    verify.add_argument(
        "--no-store", action="store_true", help="Do not persist the result"
    )

    verify_all = subparsers.add_parser(
        "verify-all", help="Verify every target in the catalog"
    )
    verify_all.add_argument("--catalog", help="Path to the JSON app catalog")
    verify_all.add_argument(
        "--delay",
        type=float,
        help="Seconds to wait between upstream requests",
    )
    verify_all.add_argument(
        "--no-store", action="store_true", help="Do not persist results"
    )

    status = subparsers.add_parser("status", help="Show latest stored results")
    status.add_argument("app_id", nargs="?")
    status.add_argument("package_manager", nargs="?", choices=PACKAGE_MANAGERS)
    status.add_argument(
        "--history",
        action="store_true",
        help="Print every stored result for the pair, newest first",
    )

    flagged = subparsers.add_parser(
        "flagged", help="List results flagged for manual review"
    )
    flagged.add_argument("--package-manager", choices=PACKAGE_MANAGERS)
    flagged.add_argument(
        "--sort-by", choices=review.SORT_FIELDS, default="timestamp"
    )

    resolve = subparsers.add_parser(
        "resolve", help="Clear the manual review flag for a pair"
    )
    resolve.add_argument("app_id")
    resolve.add_argument("package_manager", choices=PACKAGE_MANAGERS)

    return parser.parse_args(argv)


def _emit(payload: object) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _catalog_path(args: argparse.Namespace, settings: VerifierSettings) -> str:
    path = getattr(args, "catalog", None) or settings.catalog_path
    if not path:
        raise CatalogLookupError(
            "No catalog given; pass --catalog or set VERIFY_CATALOG_PATH"
        )
    return path


async def _verify(args: argparse.Namespace, settings: VerifierSettings) -> int:
    package_name = args.package_name
    if package_name is None:
        catalog = load_catalog(_catalog_path(args, settings))
        package_name = package_name_for(catalog, args.app_id, args.package_manager)

    async with VerificationService(
        build_storage(settings),
        max_retries=settings.max_retries,
        request_timeout=settings.request_timeout,
    ) as service:
        result = await service.verify_package(
            args.app_id,
            args.package_manager,
            package_name,
            store_result=settings.store_results and not args.no_store,
        )
    _emit(result.to_dict())
    return EXIT_FAILED if result.status == "failed" else EXIT_OK


async def _verify_all(args: argparse.Namespace, settings: VerifierSettings) -> int:
    catalog = load_catalog(_catalog_path(args, settings))
    delay = settings.request_delay if args.delay is None else max(0.0, args.delay)
    async with VerificationService(
        build_storage(settings),
        max_retries=settings.max_retries,
        request_timeout=settings.request_timeout,
    ) as service:
        summary = await service.verify_all_packages(
            catalog,
            delay_between_requests=delay,
            store_results=settings.store_results and not args.no_store,
        )
    _emit(summary.to_dict())
    return EXIT_OK


def _read_command(args: argparse.Namespace, settings: VerifierSettings) -> int:
    storage = build_storage(settings)
    if storage is None:
        log.error("VERIFICATION_TABLE_NAME is required for '%s'", args.command)
        return EXIT_USAGE

    if args.command == "status":
        if args.app_id and args.package_manager and args.history:
            history = storage.history(args.app_id, args.package_manager)
            _emit([result.to_dict() for result in history])
            return EXIT_OK
        if args.app_id and args.package_manager:
            result = review.get_status(storage, args.app_id, args.package_manager)
            if result is None:
                _emit(
                    {
                        "app_id": args.app_id,
                        "package_manager_id": args.package_manager,
                        "status": "pending",
                    }
                )
            else:
                _emit(result.to_dict())
            return EXIT_OK
        if args.app_id or args.package_manager:
            log.error("status needs both APP_ID and MANAGER, or neither")
            return EXIT_USAGE
        status_map = review.build_status_map(review.latest_results(storage))
        _emit({key: result.to_dict() for key, result in status_map.items()})
        return EXIT_OK

    if args.command == "flagged":
        flagged = review.list_flagged(
            storage,
            package_manager_id=args.package_manager,
            sort_by=args.sort_by,
        )
        _emit([result.to_dict() for result in flagged])
        return EXIT_OK

    resolved = review.resolve_flagged(storage, args.app_id, args.package_manager)
    if resolved is None:
        log.error(
            "No flagged result found for %s/%s", args.app_id, args.package_manager
        )
        return EXIT_FAILED
    _emit(resolved.to_dict())
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = read_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    try:
        if args.command == "verify":
            return asyncio.run(_verify(args, settings))
        if args.command == "verify-all":
            return asyncio.run(_verify_all(args, settings))
        return _read_command(args, settings)
    except (ClientError, BotoCoreError) as exc:
        log.error("AWS request failed: %s", exc)
        return EXIT_FAILED
    except CatalogLookupError as exc:
        log.error("%s", exc)
        return EXIT_USAGE
    except (OSError, ValueError) as exc:
        log.error("Unable to load catalog: %s", exc)
        return EXIT_USAGE


if __name__ == "__main__":  # pragma: no cover - manual execution
    sys.exit(main())
