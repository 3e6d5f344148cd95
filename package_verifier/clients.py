from __future__ import annotations

import logging

import boto3

from .config import VerifierSettings
from .storage import VerificationStorage

log = logging.getLogger(__name__)


def build_table(settings: VerifierSettings):
    """Return the DynamoDB table resource, or None when no table is configured."""
    if not settings.table_name:
        log.info("VERIFICATION_TABLE_NAME not set; results will not be persisted")
        return None
    dynamodb = boto3.resource("dynamodb", region_name=settings.aws_region)
    return dynamodb.Table(settings.table_name)


def build_storage(settings: VerifierSettings) -> VerificationStorage | None:
    table = build_table(settings)
    if table is None:
        return None
    return VerificationStorage(table)
