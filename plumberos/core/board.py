"""
Pipeline Board Reconciler
=========================
Keeps a card's bucket, its persisted status, and its lead/job kind in step.

The persisted status is the single source of truth. Bucket membership and
kind are always derived from it (on load) or from the destination bucket
(on drop) and never stored on their own.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Sequence

from plumberos.config import settings

from .mapping import (
    bucket_position,
    bucket_id_for_status,
    coerce_position,
    find_bucket,
    kind_for_bucket,
    status_for_bucket_id,
    status_or_default,
)
from .statuses import (
    DEFAULT_POSITION,
    JOB_POSITION_THRESHOLD,
    POSITION_TO_STATUS,
    CardKind,
    LeadStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_COLOR = settings.default_bucket_color


@dataclass(frozen=True)
class Bucket:
    """A kanban column. Position is a rank, not guaranteed unique or dense."""
    id: str
    title: str = ""
    color: str = DEFAULT_BUCKET_COLOR
    position: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Bucket":
        return cls(
            id=str(row.get("id")),
            title=row.get("title") or "",
            color=row.get("color") or DEFAULT_BUCKET_COLOR,
            position=coerce_position(row.get("position")),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "color": self.color, "position": self.position}


# Columns the board shows before any have been set up in the store
DEFAULT_BUCKETS = (
    Bucket(id="1", title="New Leads", color="#3b82f6", position=1),
    Bucket(id="2", title="Qualified", color="#8b5cf6", position=2),
    Bucket(id="3", title="Quoted", color="#eab308", position=3),
    Bucket(id="4", title="Booked", color="#f97316", position=4),
    Bucket(id="5", title="In Progress", color="#eab308", position=5),
    Bucket(id="6", title="Completed", color="#22c55e", position=6),
)


@dataclass(frozen=True)
class Card:
    """
    A lead or job as the board renders it.
    `bucket_id` and `kind` are derived; `status` is what the store holds.
    """
    id: str
    status: LeadStatus
    bucket_id: str
    kind: CardKind
    customer_name: str = "Unknown"
    customer_phone: str = ""
    location: str = ""
    service: str = ""
    price: float = 0.0
    source: Optional[str] = None
    plumber_name: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "bucket_id": self.bucket_id,
            "kind": self.kind.value,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "location": self.location,
            "service": self.service,
            "price": self.price,
            "source": self.source,
            "plumber_name": self.plumber_name,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class DropResult:
    """What the board shows right away, and what still has to be written."""
    card: Card
    status_to_persist: Optional[LeadStatus] = None

    @property
    def is_noop(self) -> bool:
        return self.status_to_persist is None


@dataclass(frozen=True)
class BoardCounts:
    total_leads: int = 0
    total_jobs: int = 0
    by_bucket: dict = field(default_factory=dict)


# ── Registry normalization ────────────────────────────────────────────────────

def normalize_buckets(rows: Sequence[Any]) -> list:
    """
    Turn a raw registry snapshot into Buckets ordered by position.
    The sort is stable, so duplicates keep fetch order; buckets without a
    position go last.
    """
    buckets = [row if isinstance(row, Bucket) else Bucket.from_row(row) for row in rows]
    return sorted(
        buckets,
        key=lambda b: (b.position is None, b.position if b.position is not None else 0),
    )


def buckets_or_default(rows: Sequence[Any]) -> list:
    buckets = normalize_buckets(rows)
    return buckets if buckets else list(DEFAULT_BUCKETS)


# ── Loading ───────────────────────────────────────────────────────────────────

def card_from_row(row: Mapping[str, Any], buckets: Sequence[Any]) -> Card:
    """Build a card from a stored lead row, placing it by its status"""
    status = status_or_default(row.get("status"))
    bucket_id = bucket_id_for_status(status, buckets)
    kind = kind_for_bucket(find_bucket(bucket_id, buckets))
    created_at = row.get("created_at")
    return Card(
        id=str(row.get("id")),
        status=status,
        bucket_id=bucket_id,
        kind=kind,
        customer_name=row.get("customer_name") or "Unknown",
        customer_phone=row.get("customer_phone") or "",
        location=row.get("location") or "",
        service=row.get("issue") or row.get("service") or "",
        price=float(row.get("estimated_price") or 0),
        source=row.get("source"),
        plumber_name=row.get("plumber_name"),
        created_at=created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
    )


# ── Reconciliation ────────────────────────────────────────────────────────────

def reconcile_drop(
    card: Card,
    source_bucket_id: str,
    destination_bucket_id: str,
    buckets: Sequence[Any],
) -> DropResult:
    """
    Move a card to another bucket.

    The returned card is the optimistic view: new bucket, new kind, old
    status. `status_to_persist` is what the caller must write to the store.
    Dropping a card on the bucket it came from changes nothing.
    """
    if str(source_bucket_id) == str(destination_bucket_id):
        return DropResult(card=card)

    destination = find_bucket(destination_bucket_id, buckets)
    if destination is None:
        logger.debug("Drop target %r is not in the registry", destination_bucket_id)

    moved = replace(card, bucket_id=str(destination_bucket_id), kind=kind_for_bucket(destination))
    status = status_for_bucket_id(destination_bucket_id, buckets)
    return DropResult(card=moved, status_to_persist=status)


def reconcile_status_change(card: Card, new_status: Any, buckets: Sequence[Any]) -> Card:
    """Status was set directly; re-place the card from it"""
    status = status_or_default(new_status)
    bucket_id = bucket_id_for_status(status, buckets)
    return replace(
        card,
        status=status,
        bucket_id=bucket_id,
        kind=kind_for_bucket(find_bucket(bucket_id, buckets)),
    )


# ── Board queries ─────────────────────────────────────────────────────────────

def filter_cards(cards: Sequence[Card], search: Optional[str]) -> list:
    if not search:
        return list(cards)
    needle = search.lower()
    return [
        c for c in cards
        if needle in c.customer_name.lower()
        or needle in c.service.lower()
        or needle in c.location.lower()
    ]


def count_cards(cards: Sequence[Card], buckets: Sequence[Any]) -> BoardCounts:
    """Lead/job totals by the position of the bucket each card sits in"""
    last_position = max(POSITION_TO_STATUS)
    leads = jobs = 0
    by_bucket = {}
    for card in cards:
        by_bucket[card.bucket_id] = by_bucket.get(card.bucket_id, 0) + 1
        position = bucket_position(find_bucket(card.bucket_id, buckets)) or DEFAULT_POSITION
        if DEFAULT_POSITION <= position < JOB_POSITION_THRESHOLD:
            leads += 1
        elif JOB_POSITION_THRESHOLD <= position <= last_position:
            jobs += 1
    return BoardCounts(total_leads=leads, total_jobs=jobs, by_bucket=by_bucket)
