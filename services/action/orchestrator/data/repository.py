"""Durable orchestrator store over SQLAlchemy Core tables."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Table, and_, delete, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from services.action.orchestrator.domain import (
    Action,
    ActionStatus,
    DailyPlan,
    DigestItem,
    DigestStatus,
    MitigationRecord,
    MitigationType,
    OrchestratorState,
    QueuedAction,
    Signal,
    WeeklyBrief,
    ensure_utc,
)
from services.action.orchestrator.interfaces import OrchestratorStore
from services.action.orchestrator.state import create_initial_state
from services.action.orchestrator.validation import parse_record

from .runtime import transactional_session
from .schema import (
    actions,
    daily_plans,
    digest_items,
    mitigations,
    signals,
    states,
    weekly_briefs,
)


class SqlOrchestratorStore(OrchestratorStore):
    """SQL store for PostgreSQL (psycopg) and SQLite.

    Signal history is retained in full; ``get_recent_signals`` bounds reads.
    Digest, plan and brief histories are trimmed to their caps on append.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get_state(self, family_id: str) -> OrchestratorState | None:
        with transactional_session(self._session_factory) as session:
            document = session.execute(
                select(states.c.document).where(states.c.family_id == family_id)
            ).scalar_one_or_none()
        if document is None:
            return None
        return parse_record(OrchestratorState, document, what="state")

    def get_or_create_state(self, family_id: str, now: datetime) -> OrchestratorState:
        initial = create_initial_state(family_id, now)
        with transactional_session(self._session_factory) as session:
            stmt = _insert(session, states).values(
                family_id=family_id,
                updated_at=now,
                document=_document(initial),
            )
            session.execute(stmt.on_conflict_do_nothing(index_elements=["family_id"]))
            document = session.execute(
                select(states.c.document).where(states.c.family_id == family_id)
            ).scalar_one()
        return parse_record(OrchestratorState, document, what="state")

    def set_state(self, family_id: str, state: OrchestratorState, now: datetime) -> None:
        with transactional_session(self._session_factory) as session:
            self._write_state(session, family_id, state, now)

    def append_signal(self, signal: Signal, *, max_history: int = 200) -> Signal:
        del max_history
        with transactional_session(self._session_factory) as session:
            existing = _insert_signal(session, signal)
        return signal if existing is None else existing

    def record_ingest(
        self,
        signal: Signal,
        state: OrchestratorState,
        now: datetime,
        *,
        action: Action | None = None,
        digest_item: DigestItem | None = None,
        max_history: int = 200,
        max_digest_items: int = 200,
    ) -> Signal | None:
        del max_history
        with transactional_session(self._session_factory) as session:
            existing = _insert_signal(session, signal)
            if existing is not None:
                return existing
            self._write_state(session, signal.family_id, state, now)
            if action is not None:
                _insert_action(
                    session,
                    signal.family_id,
                    QueuedAction(action=action, status=ActionStatus.QUEUED, queued_at=now),
                )
            if digest_item is not None:
                _insert_digest_item(session, digest_item, max_digest_items)
        return None

    def _write_state(
        self, session: Session, family_id: str, state: OrchestratorState, now: datetime
    ) -> None:
        values = {"updated_at": now, "document": _document(state)}
        stmt = _insert(session, states).values(family_id=family_id, **values)
        session.execute(stmt.on_conflict_do_update(index_elements=["family_id"], set_=values))

    def get_recent_signals(self, family_id: str, *, limit: int = 200) -> list[Signal]:
        if limit <= 0:
            return []
        with transactional_session(self._session_factory) as session:
            documents = (
                session.execute(
                    select(signals.c.document)
                    .where(signals.c.family_id == family_id)
                    .order_by(signals.c.seq.desc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
        return [parse_record(Signal, doc, what="signal") for doc in reversed(documents)]

    def find_signal(self, family_id: str, idempotency_key: str) -> Signal | None:
        with transactional_session(self._session_factory) as session:
            document = session.execute(
                select(signals.c.document).where(
                    signals.c.family_id == family_id,
                    signals.c.idempotency_key == idempotency_key,
                )
            ).scalar_one_or_none()
        if document is None:
            return None
        return parse_record(Signal, document, what="signal")

    def enqueue_action(self, family_id: str, action: Action, now: datetime) -> QueuedAction:
        queued = QueuedAction(action=action, status=ActionStatus.QUEUED, queued_at=now)
        with transactional_session(self._session_factory) as session:
            _insert_action(session, family_id, queued)
        return queued

    def list_actions(self, family_id: str) -> list[QueuedAction]:
        with transactional_session(self._session_factory) as session:
            documents = (
                session.execute(
                    select(actions.c.document)
                    .where(actions.c.family_id == family_id)
                    .order_by(actions.c.seq)
                )
                .scalars()
                .all()
            )
        return [parse_record(QueuedAction, doc, what="action") for doc in documents]

    def complete_action(
        self, family_id: str, action_id: str, now: datetime
    ) -> QueuedAction | None:
        return self._transition_action(
            family_id, action_id, {"status": ActionStatus.COMPLETED, "completed_at": now}
        )

    def dismiss_action(
        self, family_id: str, action_id: str, now: datetime
    ) -> QueuedAction | None:
        return self._transition_action(
            family_id, action_id, {"status": ActionStatus.DISMISSED, "dismissed_at": now}
        )

    def _transition_action(
        self, family_id: str, action_id: str, changes: dict[str, Any]
    ) -> QueuedAction | None:
        with transactional_session(self._session_factory) as session:
            row = (
                session.execute(
                    select(actions.c.seq, actions.c.document).where(
                        actions.c.family_id == family_id,
                        actions.c.id == action_id,
                        actions.c.status == ActionStatus.QUEUED.value,
                    )
                )
                .mappings()
                .one_or_none()
            )
            if row is None:
                return None
            current = parse_record(QueuedAction, row["document"], what="action")
            updated = current.model_copy(update=changes)
            result = session.execute(
                update(actions)
                .where(
                    actions.c.seq == row["seq"],
                    actions.c.status == ActionStatus.QUEUED.value,
                )
                .values(status=updated.status.value, document=_document(updated))
            )
            if int(result.rowcount or 0) == 0:
                return None
            return updated

    def append_digest_item(self, item: DigestItem, *, max_items: int = 200) -> None:
        with transactional_session(self._session_factory) as session:
            _insert_digest_item(session, item, max_items)

    def get_digest(
        self, family_id: str, *, status: DigestStatus | None = None
    ) -> list[DigestItem]:
        stmt = select(digest_items.c.document).where(digest_items.c.family_id == family_id)
        if status is not None:
            stmt = stmt.where(digest_items.c.status == status.value)
        with transactional_session(self._session_factory) as session:
            documents = session.execute(stmt.order_by(digest_items.c.seq)).scalars().all()
        return [parse_record(DigestItem, doc, what="digest_item") for doc in documents]

    def mark_digest_delivered(self, family_id: str, now: datetime) -> list[DigestItem]:
        delivered: list[DigestItem] = []
        with transactional_session(self._session_factory) as session:
            rows = (
                session.execute(
                    select(digest_items.c.seq, digest_items.c.document)
                    .where(
                        digest_items.c.family_id == family_id,
                        digest_items.c.status == DigestStatus.QUEUED.value,
                    )
                    .order_by(digest_items.c.seq)
                )
                .mappings()
                .all()
            )
            for row in rows:
                item = parse_record(DigestItem, row["document"], what="digest_item")
                item = item.model_copy(
                    update={"status": DigestStatus.DELIVERED, "delivered_at": now}
                )
                session.execute(
                    update(digest_items)
                    .where(digest_items.c.seq == row["seq"])
                    .values(status=item.status.value, document=_document(item))
                )
                delivered.append(item)
        return delivered

    def dismiss_digest_item(
        self, family_id: str, item_id: str, now: datetime
    ) -> DigestItem | None:
        with transactional_session(self._session_factory) as session:
            row = (
                session.execute(
                    select(digest_items.c.seq, digest_items.c.document).where(
                        digest_items.c.family_id == family_id,
                        digest_items.c.id == item_id,
                        digest_items.c.status == DigestStatus.QUEUED.value,
                    )
                )
                .mappings()
                .one_or_none()
            )
            if row is None:
                return None
            item = parse_record(DigestItem, row["document"], what="digest_item")
            item = item.model_copy(update={"status": DigestStatus.DISMISSED, "dismissed_at": now})
            session.execute(
                update(digest_items)
                .where(digest_items.c.seq == row["seq"])
                .values(status=item.status.value, document=_document(item))
            )
            return item

    def append_daily_plan(self, plan: DailyPlan, *, max_plans: int = 30) -> None:
        self._append_history(daily_plans, plan.family_id, plan.id, plan.created_at, plan, max_plans)

    def get_daily_plans(self, family_id: str) -> list[DailyPlan]:
        return [
            parse_record(DailyPlan, doc, what="daily_plan")
            for doc in self._read_history(daily_plans, family_id)
        ]

    def append_weekly_brief(self, brief: WeeklyBrief, *, max_briefs: int = 12) -> None:
        self._append_history(
            weekly_briefs, brief.family_id, brief.id, brief.created_at, brief, max_briefs
        )

    def get_weekly_briefs(self, family_id: str) -> list[WeeklyBrief]:
        return [
            parse_record(WeeklyBrief, doc, what="weekly_brief")
            for doc in self._read_history(weekly_briefs, family_id)
        ]

    def _append_history(
        self,
        table: Table,
        family_id: str,
        record_id: str,
        created_at: datetime,
        record: Any,
        cap: int,
    ) -> None:
        with transactional_session(self._session_factory) as session:
            session.execute(
                table.insert().values(
                    id=record_id,
                    family_id=family_id,
                    created_at=created_at,
                    document=_document(record),
                )
            )
            _trim(session, table, family_id, cap)

    def _read_history(self, table: Table, family_id: str) -> list[Any]:
        with transactional_session(self._session_factory) as session:
            return list(
                session.execute(
                    select(table.c.document)
                    .where(table.c.family_id == family_id)
                    .order_by(table.c.seq)
                )
                .scalars()
                .all()
            )

    def get_mitigation(
        self, family_id: str, mitigation_type: MitigationType
    ) -> MitigationRecord | None:
        with transactional_session(self._session_factory) as session:
            document = session.execute(
                select(mitigations.c.document).where(
                    mitigations.c.family_id == family_id,
                    mitigations.c.mitigation_type == mitigation_type.value,
                )
            ).scalar_one_or_none()
        if document is None:
            return None
        return parse_record(MitigationRecord, document, what="mitigation")

    def save_mitigation(self, record: MitigationRecord) -> None:
        values = {
            "active": record.active,
            "expires_at": record.expires_at,
            "document": _document(record),
        }
        with transactional_session(self._session_factory) as session:
            stmt = _insert(session, mitigations).values(
                family_id=record.family_id,
                mitigation_type=record.mitigation_type.value,
                **values,
            )
            session.execute(
                stmt.on_conflict_do_update(
                    index_elements=["family_id", "mitigation_type"],
                    set_=values,
                )
            )

    def list_expired_mitigations(self, now: datetime) -> list[MitigationRecord]:
        now = ensure_utc(now)
        with transactional_session(self._session_factory) as session:
            documents = (
                session.execute(
                    select(mitigations.c.document)
                    .where(mitigations.c.active.is_(True), mitigations.c.expires_at <= now)
                    .order_by(mitigations.c.expires_at)
                )
                .scalars()
                .all()
            )
        return [parse_record(MitigationRecord, doc, what="mitigation") for doc in documents]


def _insert(session: Session, table: Table) -> Any:
    """Return a dialect insert that supports ``ON CONFLICT`` clauses."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"orchestrator store does not support dialect {dialect!r}")


def _stored_duplicate(session: Session, signal: Signal) -> Signal | None:
    """Return the stored signal sharing this one's id or idempotency key."""
    match = signals.c.id == signal.id
    if signal.idempotency_key is not None:
        match = or_(
            match,
            and_(
                signals.c.family_id == signal.family_id,
                signals.c.idempotency_key == signal.idempotency_key,
            ),
        )
    document = session.execute(
        select(signals.c.document).where(match).order_by(signals.c.seq).limit(1)
    ).scalar_one_or_none()
    if document is None:
        return None
    return parse_record(Signal, document, what="signal")


def _insert_signal(session: Session, signal: Signal) -> Signal | None:
    """Insert ``signal`` unless it duplicates a stored one; return the duplicate."""
    existing = _stored_duplicate(session, signal)
    if existing is not None:
        return existing
    stmt = _insert(session, signals).values(
        id=signal.id,
        family_id=signal.family_id,
        idempotency_key=signal.idempotency_key,
        signal_type=signal.type.value,
        timestamp=signal.timestamp,
        document=_document(signal),
    )
    result = session.execute(stmt.on_conflict_do_nothing())
    if int(result.rowcount or 0) == 0:
        # Another writer stored the same id or key since the lookup above.
        return _stored_duplicate(session, signal)
    return None


def _insert_action(session: Session, family_id: str, queued: QueuedAction) -> None:
    session.execute(
        actions.insert().values(
            id=queued.action.id,
            family_id=family_id,
            status=queued.status.value,
            queued_at=queued.queued_at,
            document=_document(queued),
        )
    )


def _insert_digest_item(session: Session, item: DigestItem, cap: int) -> None:
    session.execute(
        digest_items.insert().values(
            id=item.id,
            family_id=item.family_id,
            status=item.status.value,
            created_at=item.created_at,
            document=_document(item),
        )
    )
    _trim(session, digest_items, item.family_id, cap)


def _trim(session: Session, table: Table, family_id: str, cap: int) -> None:
    """Delete a family's oldest rows beyond ``cap``; a cap of zero or less keeps none."""
    condition = table.c.family_id == family_id
    if cap > 0:
        keep = (
            select(table.c.seq)
            .where(table.c.family_id == family_id)
            .order_by(table.c.seq.desc())
            .limit(cap)
        )
        condition = and_(condition, table.c.seq.not_in(keep))
    session.execute(delete(table).where(condition))


def _document(record: Any) -> dict[str, Any]:
    return record.model_dump(mode="json")
