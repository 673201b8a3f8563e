"""
PlumberOS Pipeline - API
========================
FastAPI application for the kanban pipeline board
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError

from plumberos.config import settings
from plumberos.core.board import (
    buckets_or_default,
    count_cards,
    filter_cards,
    reconcile_drop,
    reconcile_status_change,
)
from plumberos.core.statuses import LeadStatus, UnknownStatus, status_style
from plumberos.db.database import async_session_factory, init_db
from plumberos.pipeline.store import BucketNotFound, LeadNotFound, PipelineStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="PlumberOS Pipeline",
    description="Kanban pipeline board for leads and jobs",
    version="1.0.0"
)


def get_store() -> PipelineStore:
    return PipelineStore(async_session_factory)


def _normalize_status(value):
    """Statuses are accepted trimmed and in any case, as the store reads them"""
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ── Request Models ────────────────────────────────────────────────────────────

class BucketCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    color: Optional[str] = None


class BucketUpdateRequest(BaseModel):
    title: Optional[str] = None
    color: Optional[str] = None
    position: Optional[int] = None


class LeadCreateRequest(BaseModel):
    customer_name: str = Field(min_length=1)
    customer_phone: Optional[str] = None
    location: Optional[str] = None
    issue: Optional[str] = None
    estimated_price: Optional[float] = None
    source: Optional[str] = "website"
    plumber_name: Optional[str] = None
    status: Optional[LeadStatus] = None
    bucket_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return _normalize_status(value)


class StatusUpdateRequest(BaseModel):
    status: LeadStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return _normalize_status(value)


class DropRequest(BaseModel):
    card_id: str
    source_bucket_id: str
    destination_bucket_id: str


# ── Endpoints ─────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": settings.service_name, "env": settings.env}


@app.post("/setup")
async def setup(store: PipelineStore = Depends(get_store)):
    """Create tables and the default columns if there are none yet"""
    await init_db()
    created = await store.seed_default_buckets()
    return {"success": True, "seeded": [b.to_dict() for b in created]}


@app.get("/buckets")
async def list_buckets(store: PipelineStore = Depends(get_store)):
    buckets = await store.list_buckets()
    return {"buckets": [b.to_dict() for b in buckets]}


@app.post("/buckets")
async def create_bucket(body: BucketCreateRequest, store: PipelineStore = Depends(get_store)):
    bucket = await store.create_bucket(body.title, body.color)
    return {"bucket": bucket.to_dict()}


@app.put("/buckets/{bucket_id}")
async def update_bucket(
    bucket_id: str,
    body: BucketUpdateRequest,
    store: PipelineStore = Depends(get_store),
):
    try:
        bucket = await store.update_bucket(bucket_id, body.title, body.color, body.position)
    except BucketNotFound:
        raise HTTPException(status_code=404, detail="Bucket not found")
    return {"bucket": bucket.to_dict()}


@app.delete("/buckets/{bucket_id}")
async def delete_bucket(bucket_id: str, store: PipelineStore = Depends(get_store)):
    try:
        await store.delete_bucket(bucket_id)
    except BucketNotFound:
        raise HTTPException(status_code=404, detail="Bucket not found")
    return {"success": True}


@app.get("/board")
async def get_board(search: Optional[str] = None, store: PipelineStore = Depends(get_store)):
    """
    Everything the board page renders.

    Buckets fall back to the built-in six when none are configured. Each
    card is placed by its persisted status, and lead/job totals are counted
    by the position of the bucket each card lands in.
    """
    buckets = buckets_or_default(await store.list_buckets())
    cards = await store.list_cards(buckets)
    counts = count_cards(cards, buckets)
    visible = filter_cards(cards, search)

    return {
        "buckets": [b.to_dict() for b in buckets],
        "cards": [c.to_dict() for c in visible],
        "total_leads": counts.total_leads,
        "total_jobs": counts.total_jobs,
        "bucket_counts": counts.by_bucket,
        "statuses": {s.value: status_style(s) for s in LeadStatus},
    }


@app.post("/board/drop")
async def drop_card(body: DropRequest, store: PipelineStore = Depends(get_store)):
    """
    A card was dragged to another bucket.

    The moved card is computed before the write and returned either way.
    If the write fails the move is not undone; the next board load shows
    where the stored status puts the card.
    """
    buckets = buckets_or_default(await store.list_buckets())
    try:
        card = await store.get_card(body.card_id, buckets)
    except LeadNotFound:
        raise HTTPException(status_code=404, detail="Lead not found")

    result = reconcile_drop(card, body.source_bucket_id, body.destination_bucket_id, buckets)
    if result.is_noop:
        return {"card": result.card.to_dict(), "status_to_persist": None, "persisted": False}

    status = result.status_to_persist
    try:
        await store.update_card_status(card.id, status, trigger="drop")
    except LeadNotFound:
        raise HTTPException(status_code=404, detail="Lead not found")
    except SQLAlchemyError:
        logger.exception("Failed to update lead %s status to %s", card.id, status.value)
        raise HTTPException(
            status_code=502,
            detail={
                "message": "Failed to update lead status",
                "card": result.card.to_dict(),
                "status_to_persist": status.value,
            },
        )

    return {"card": result.card.to_dict(), "status_to_persist": status.value, "persisted": True}


@app.post("/leads")
async def create_lead(body: LeadCreateRequest, store: PipelineStore = Depends(get_store)):
    """
    Add a lead. When created into a bucket it takes that bucket's status,
    so a card added to the Booked column is booked from the start.
    """
    fields = body.model_dump(exclude={"bucket_id"})
    row = await store.create_lead(fields, bucket_id=body.bucket_id or None)

    buckets = buckets_or_default(await store.list_buckets())
    card = await store.get_card(row["id"], buckets)
    return {"lead_id": row["id"], "card": card.to_dict()}


@app.put("/leads/{lead_id}/status")
async def update_lead_status(
    lead_id: str,
    body: StatusUpdateRequest,
    store: PipelineStore = Depends(get_store),
):
    """Set a status directly and return the card re-placed to match it"""
    buckets = buckets_or_default(await store.list_buckets())
    try:
        card = await store.get_card(lead_id, buckets)
        await store.update_card_status(lead_id, body.status, trigger="direct")
    except LeadNotFound:
        raise HTTPException(status_code=404, detail="Lead not found")
    except UnknownStatus as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {"card": reconcile_status_change(card, body.status, buckets).to_dict()}


@app.get("/leads/{lead_id}/history")
async def get_lead_history(lead_id: str, store: PipelineStore = Depends(get_store)):
    """Full status history for a lead (audit trail)"""
    try:
        events = await store.lead_history(lead_id)
    except LeadNotFound:
        raise HTTPException(status_code=404, detail="Lead not found")
    return {"lead_id": lead_id, "event_count": len(events), "events": events}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
