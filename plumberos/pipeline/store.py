"""
Pipeline Store
==============
Reads and writes buckets and leads for the board.
The reconciler never touches the database; everything it needs comes
through here as a fresh snapshot.
"""

import logging
import uuid as _uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select

from plumberos.config import settings
from plumberos.core.board import (
    DEFAULT_BUCKETS,
    Bucket,
    Card,
    buckets_or_default,
    card_from_row,
    normalize_buckets,
)
from plumberos.core.mapping import parse_status, status_for_bucket_id
from plumberos.core.statuses import DEFAULT_STATUS
from plumberos.db.models import (
    Bucket as BucketModel,
    Lead as LeadModel,
    LeadStatusEvent as EventModel,
)

logger = logging.getLogger(__name__)

LEAD_FIELDS = (
    "customer_name",
    "customer_phone",
    "location",
    "issue",
    "estimated_price",
    "source",
    "plumber_name",
)


class LeadNotFound(LookupError):
    pass


class BucketNotFound(LookupError):
    pass


def _as_uuid(value: Any) -> Optional[_uuid.UUID]:
    if isinstance(value, _uuid.UUID):
        return value
    try:
        return _uuid.UUID(str(value))
    except ValueError:
        return None


class PipelineStore:
    """Buckets and leads, backed by SQLAlchemy async sessions"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    # ── Buckets ───────────────────────────────────────────────────────────────

    async def list_buckets(self) -> list:
        """All buckets, ordered by position then creation time"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(BucketModel).order_by(BucketModel.position, BucketModel.created_at)
            )
            rows = [b.to_row() for b in result.scalars().all()]
        return normalize_buckets(rows)

    async def create_bucket(self, title: str, color: Optional[str] = None) -> Bucket:
        """Append a bucket after the current last position"""
        async with self.session_factory() as session:
            max_pos = await session.scalar(select(func.coalesce(func.max(BucketModel.position), 0)))
            bucket = BucketModel(
                id=_uuid.uuid4(),
                title=title,
                color=color or settings.default_bucket_color,
                position=(max_pos or 0) + 1,
                created_at=datetime.now(timezone.utc),
            )
            session.add(bucket)
            await session.commit()
            row = bucket.to_row()

        logger.info("Created bucket %s (%r) at position %d", row["id"], title, row["position"])
        return Bucket.from_row(row)

    async def update_bucket(
        self,
        bucket_id: str,
        title: Optional[str] = None,
        color: Optional[str] = None,
        position: Optional[int] = None,
    ) -> Bucket:
        """Change only the fields that were given"""
        key = _as_uuid(bucket_id)
        async with self.session_factory() as session:
            bucket = await session.get(BucketModel, key) if key else None
            if bucket is None:
                raise BucketNotFound(f"Bucket {bucket_id} not found")

            if title is not None:
                bucket.title = title
            if color is not None:
                bucket.color = color
            if position is not None:
                bucket.position = position

            await session.commit()
            row = bucket.to_row()

        return Bucket.from_row(row)

    async def delete_bucket(self, bucket_id: str) -> None:
        key = _as_uuid(bucket_id)
        async with self.session_factory() as session:
            bucket = await session.get(BucketModel, key) if key else None
            if bucket is None:
                raise BucketNotFound(f"Bucket {bucket_id} not found")
            await session.delete(bucket)
            await session.commit()

        # Cards in it fall back to another bucket on the next read
        logger.info("Deleted bucket %s", bucket_id)

    async def seed_default_buckets(self) -> list:
        """Insert the six standard columns, but only into an empty table"""
        async with self.session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(BucketModel))
            if count:
                return []

            now = datetime.now(timezone.utc)
            models = [
                BucketModel(
                    id=_uuid.uuid4(),
                    title=default.title,
                    color=default.color,
                    position=default.position,
                    created_at=now,
                )
                for default in DEFAULT_BUCKETS
            ]
            session.add_all(models)
            await session.commit()
            rows = [m.to_row() for m in models]

        return normalize_buckets(rows)

    # ── Leads / cards ─────────────────────────────────────────────────────────

    async def list_lead_rows(self) -> list:
        async with self.session_factory() as session:
            result = await session.execute(
                select(LeadModel).order_by(LeadModel.created_at.desc())
            )
            return [lead.to_row() for lead in result.scalars().all()]

    async def list_cards(self, buckets: Optional[list] = None) -> list:
        """Every lead as a board card, placed by its persisted status"""
        if buckets is None:
            buckets = await self.list_buckets()
        return [card_from_row(row, buckets) for row in await self.list_lead_rows()]

    async def get_lead_row(self, lead_id: str) -> dict:
        key = _as_uuid(lead_id)
        async with self.session_factory() as session:
            lead = await session.get(LeadModel, key) if key else None
            if lead is None:
                raise LeadNotFound(f"Lead {lead_id} not found")
            return lead.to_row()

    async def get_card(self, lead_id: str, buckets: Optional[list] = None) -> Card:
        row = await self.get_lead_row(lead_id)
        if buckets is None:
            buckets = await self.list_buckets()
        return card_from_row(row, buckets)

    async def create_lead(self, fields: dict, bucket_id: Optional[str] = None) -> dict:
        """
        Add a lead. Created into a bucket, it takes that bucket's status;
        otherwise it starts as the given status, or new.
        """
        if bucket_id:
            status = status_for_bucket_id(bucket_id, buckets_or_default(await self.list_buckets()))
        else:
            status = parse_status(fields.get("status") or DEFAULT_STATUS)

        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            lead = LeadModel(
                id=_uuid.uuid4(),
                status=status.value,
                status_changed_at=now,
                created_at=now,
                updated_at=now,
                **{k: fields.get(k) for k in LEAD_FIELDS},
            )
            session.add(lead)
            session.add(EventModel(
                id=_uuid.uuid4(),
                lead_id=lead.id,
                from_status="none",
                to_status=status.value,
                trigger="create",
                occurred_at=now,
            ))
            await session.commit()
            row = lead.to_row()

        logger.info("Created lead %s as %s", row["id"][:8], status.value)
        return row

    async def update_card_status(self, lead_id: str, status: Any, trigger: str = "direct") -> dict:
        """
        Persist a new status for a lead and log it.
        Any status may follow any other; there is no transition table.
        """
        new_status = parse_status(status)
        key = _as_uuid(lead_id)

        if key is None:
            raise LeadNotFound(f"Lead {lead_id} not found")

        async with self.session_factory() as session:
            # Row lock; last write still wins across sessions
            result = await session.execute(
                select(LeadModel).where(LeadModel.id == key).with_for_update()
            )
            lead = result.scalar_one_or_none()
            if lead is None:
                raise LeadNotFound(f"Lead {lead_id} not found")

            old_status = lead.status
            now = datetime.now(timezone.utc)
            session.add(EventModel(
                id=_uuid.uuid4(),
                lead_id=lead.id,
                from_status=old_status,
                to_status=new_status.value,
                trigger=trigger,
                occurred_at=now,
            ))
            lead.status = new_status.value
            lead.status_changed_at = now
            lead.updated_at = now

            await session.commit()
            row = lead.to_row()

        logger.info("Lead %s: %s -> %s (%s)", str(lead_id)[:8], old_status, new_status.value, trigger)
        return row

    async def lead_history(self, lead_id: str) -> list:
        """Status writes for a lead, oldest first"""
        await self.get_lead_row(lead_id)
        async with self.session_factory() as session:
            result = await session.execute(
                select(EventModel)
                .where(EventModel.lead_id == _as_uuid(lead_id))
                .order_by(EventModel.occurred_at)
            )
            events = result.scalars().all()
            return [
                {
                    "from_status": e.from_status,
                    "to_status": e.to_status,
                    "trigger": e.trigger,
                    "occurred_at": e.occurred_at.isoformat(),
                }
                for e in events
            ]
