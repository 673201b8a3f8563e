"""
Status <-> Bucket Position Mapping
==================================
The one place that knows how a lead status lines up with a kanban column.

Buckets are read, never written. A bucket can be a `Bucket` dataclass or a
raw row mapping straight from the store; only `id` and `position` are used.
Registries are ordered sequences and the first match wins.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from .statuses import (
    DEFAULT_POSITION,
    DEFAULT_STATUS,
    EMPTY_BUCKET_ID,
    JOB_POSITION_THRESHOLD,
    POSITION_TO_STATUS,
    STATUS_TO_POSITION,
    CardKind,
    LeadStatus,
    UnknownPosition,
    UnknownStatus,
)

logger = logging.getLogger(__name__)


# ── Field access ──────────────────────────────────────────────────────────────

def _field(bucket: Any, name: str) -> Any:
    if bucket is None:
        return None
    if isinstance(bucket, Mapping):
        return bucket.get(name)
    return getattr(bucket, name, None)


def coerce_position(value: Any) -> Optional[int]:
    """Whole-number position of a bucket, or None when absent or not a whole number"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, int):
        return value
    # nan, inf and fractional ranks have no column
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def bucket_position(bucket: Any) -> Optional[int]:
    return coerce_position(_field(bucket, "position"))


def bucket_id(bucket: Any) -> str:
    value = _field(bucket, "id")
    return EMPTY_BUCKET_ID if value is None else str(value)


def find_bucket(bucket_id_: str, buckets: Sequence[Any]) -> Optional[Any]:
    """First bucket in registry order with this id"""
    for bucket in buckets:
        if bucket_id(bucket) == str(bucket_id_):
            return bucket
    return None


def is_empty_bucket_id(value: str) -> bool:
    return value == EMPTY_BUCKET_ID


# ── Status <-> position ───────────────────────────────────────────────────────

def parse_status(status: Any) -> LeadStatus:
    """Canonical status for a member or its string value"""
    if isinstance(status, LeadStatus):
        return status
    if isinstance(status, str):
        try:
            return LeadStatus(status.strip().lower())
        except ValueError:
            pass
    raise UnknownStatus(f"Unknown lead status: {status!r}")


def position_for_status(status: Any) -> int:
    return STATUS_TO_POSITION[parse_status(status)]


def status_for_position(position: Any) -> LeadStatus:
    coerced = coerce_position(position)
    if coerced is None or coerced not in POSITION_TO_STATUS:
        raise UnknownPosition(f"No status for bucket position {position!r}")
    return POSITION_TO_STATUS[coerced]


def position_for_status_or_default(status: Any) -> int:
    try:
        return position_for_status(status)
    except UnknownStatus:
        logger.debug("Unknown status %r, using position %d", status, DEFAULT_POSITION)
        return DEFAULT_POSITION


def status_for_position_or_default(position: Any) -> LeadStatus:
    try:
        return status_for_position(position)
    except UnknownPosition:
        logger.debug("Unknown position %r, using status %s", position, DEFAULT_STATUS.value)
        return DEFAULT_STATUS


def status_or_default(status: Any) -> LeadStatus:
    try:
        return parse_status(status)
    except UnknownStatus:
        logger.debug("Unknown status %r, treating as %s", status, DEFAULT_STATUS.value)
        return DEFAULT_STATUS


# ── Bucket registry lookups ───────────────────────────────────────────────────

def bucket_id_for_status(status: Any, buckets: Sequence[Any]) -> str:
    """
    Bucket a card with this status belongs in.

    First bucket sitting at the status's position wins. With no such bucket
    the card lands in the first bucket; with no buckets at all the result is
    EMPTY_BUCKET_ID.
    """
    if not buckets:
        logger.warning("No buckets configured, cannot place status %r", status)
        return EMPTY_BUCKET_ID

    target = position_for_status_or_default(status)
    for bucket in buckets:
        if bucket_position(bucket) == target:
            return bucket_id(bucket)

    logger.debug("No bucket at position %d, falling back to first bucket", target)
    return bucket_id(buckets[0])


def status_for_bucket_id(bucket_id_: str, buckets: Sequence[Any]) -> LeadStatus:
    """Status a card takes on when it sits in this bucket"""
    bucket = find_bucket(bucket_id_, buckets)
    # Missing bucket, missing position and position 0 all read as position 1
    position = bucket_position(bucket) or DEFAULT_POSITION
    return status_for_position_or_default(position)


# ── Classifier ────────────────────────────────────────────────────────────────

def kind_for_position(position: Any) -> CardKind:
    coerced = coerce_position(position)
    if coerced is not None and coerced >= JOB_POSITION_THRESHOLD:
        return CardKind.JOB
    return CardKind.LEAD


def kind_for_bucket(bucket: Any) -> CardKind:
    return kind_for_position(_field(bucket, "position"))
