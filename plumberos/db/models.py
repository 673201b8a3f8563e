"""
Database Models
===============
Bucket = a kanban column on the pipeline board
Lead = current status + customer data
LeadStatusEvent = immutable history of status writes (audit log)
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, Numeric, ForeignKey, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, relationship

from plumberos.config import settings


def utcnow():
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Bucket(Base):
    """
    A column on the board. Users add, rename, recolor, reorder and delete
    these freely, so positions can have gaps or repeats.
    """
    __tablename__ = "buckets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(Text, nullable=False)
    color = Column(Text, default=settings.default_bucket_color)
    position = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_row(self) -> dict:
        return {
            "id": str(self.id),
            "title": self.title,
            "color": self.color,
            "position": self.position,
        }


class Lead(Base):
    """
    The Lead table stores the CURRENT status.
    Which bucket a card shows up in is worked out from this on every read.
    """
    __tablename__ = "leads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Lead data
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    location = Column(Text, nullable=True)
    issue = Column(Text, nullable=True)
    estimated_price = Column(Numeric(10, 2), nullable=True)
    source = Column(String(50), nullable=True)
    plumber_name = Column(String(255), nullable=True)

    # THE SINGLE SOURCE OF TRUTH for board placement
    status = Column(String(50), nullable=False, default="new")
    status_changed_at = Column(DateTime(timezone=True), default=utcnow)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationship to events
    events = relationship(
        "LeadStatusEvent",
        back_populates="lead",
        order_by="LeadStatusEvent.occurred_at",
        cascade="all, delete-orphan",
    )

    def to_row(self) -> dict:
        return {
            "id": str(self.id),
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "location": self.location,
            "issue": self.issue,
            "estimated_price": float(self.estimated_price) if self.estimated_price is not None else None,
            "source": self.source,
            "plumber_name": self.plumber_name,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class LeadStatusEvent(Base):
    """
    The Event Log - IMMUTABLE history.
    Every status write creates a new row here.
    Never updated or deleted - append-only.
    """
    __tablename__ = "lead_status_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id = Column(Uuid, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)

    # What happened?
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)
    trigger = Column(String(20), nullable=False, default="direct")  # create | drop | direct

    # When?
    occurred_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationship
    lead = relationship("Lead", back_populates="events")
