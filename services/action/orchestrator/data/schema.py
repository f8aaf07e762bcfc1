"""SQLAlchemy table definitions owned by the orchestrator service.

Each record is stored as its JSON document plus the few columns the store
filters or orders on. ``seq`` columns give insertion order.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

metadata = MetaData()

# JSONB on PostgreSQL, plain JSON text elsewhere (SQLite in tests).
Document = JSON().with_variant(JSONB(), "postgresql")
# SQLite only autoincrements INTEGER PRIMARY KEY.
SeqInteger = BigInteger().with_variant(Integer(), "sqlite")

states = Table(
    "orchestrator_states",
    metadata,
    Column("family_id", String(128), primary_key=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("document", Document, nullable=False),
)

signals = Table(
    "orchestrator_signals",
    metadata,
    Column("seq", SeqInteger, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False),
    Column("family_id", String(128), nullable=False),
    Column("idempotency_key", String(256), nullable=True),
    Column("signal_type", String(64), nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("document", Document, nullable=False),
    UniqueConstraint("id", name="uq_orchestrator_signals_id"),
    UniqueConstraint(
        "family_id",
        "idempotency_key",
        name="uq_orchestrator_signals_idempotency",
    ),
    Index("ix_orchestrator_signals_family_seq", "family_id", "seq"),
)

actions = Table(
    "orchestrator_actions",
    metadata,
    Column("seq", SeqInteger, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False),
    Column("family_id", String(128), nullable=False),
    Column("status", String(16), nullable=False),
    Column("queued_at", DateTime(timezone=True), nullable=False),
    Column("document", Document, nullable=False),
    UniqueConstraint("family_id", "id", name="uq_orchestrator_actions_family_id"),
)

digest_items = Table(
    "orchestrator_digest_items",
    metadata,
    Column("seq", SeqInteger, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False),
    Column("family_id", String(128), nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("document", Document, nullable=False),
    UniqueConstraint("id", name="uq_orchestrator_digest_items_id"),
    Index("ix_orchestrator_digest_items_family_seq", "family_id", "seq"),
)

daily_plans = Table(
    "orchestrator_daily_plans",
    metadata,
    Column("seq", SeqInteger, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False, unique=True),
    Column("family_id", String(128), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("document", Document, nullable=False),
)

weekly_briefs = Table(
    "orchestrator_weekly_briefs",
    metadata,
    Column("seq", SeqInteger, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False, unique=True),
    Column("family_id", String(128), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("document", Document, nullable=False),
)

mitigations = Table(
    "orchestrator_mitigations",
    metadata,
    Column("family_id", String(128), primary_key=True),
    Column("mitigation_type", String(64), primary_key=True),
    Column("active", Boolean, nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("document", Document, nullable=False),
    Index("ix_orchestrator_mitigations_active_expiry", "active", "expires_at"),
)
