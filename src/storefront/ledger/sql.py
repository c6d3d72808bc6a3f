"""SQLAlchemy-backed webhook ledger.

Atomicity comes from the database: a unique constraint on
``(provider, event_id)`` makes the insert the check-and-set, and a failed
entry, or a ``processing`` entry abandoned past the processing timeout, is
re-claimed with a conditional UPDATE that only one writer can win.
Processing of different events never serialises on anything else.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    delete,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from storefront.ledger.port import (
    DEFAULT_PROCESSING_TIMEOUT,
    ClaimResult,
    LedgerEntry,
    LedgerOutcome,
    WebhookLedger,
)
from storefront.utils.clock import as_utc, utc_now

logger = structlog.get_logger(__name__)

metadata = MetaData()

webhook_events = Table(
    "webhook_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("provider", String(50), nullable=False),
    Column("event_id", String(255), nullable=False),
    Column("received_at", DateTime(timezone=True), nullable=False),
    Column("outcome", String(20), nullable=False),
    Column("detail", Text),
    Column("order_id", String(64)),
    Column("updated_at", DateTime(timezone=True)),
    UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event"),
    Index("ix_webhook_events_received_at", "received_at"),
)


def create_ledger_engine(database_url: str) -> Engine:
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(database_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(database_url, pool_pre_ping=True)


class SqlAlchemyWebhookLedger(WebhookLedger):
    def __init__(
        self,
        engine: Engine | str,
        clock: Callable[[], datetime] = utc_now,
        processing_timeout: timedelta = DEFAULT_PROCESSING_TIMEOUT,
    ) -> None:
        self.engine = create_ledger_engine(engine) if isinstance(engine, str) else engine
        self._clock = clock
        self.processing_timeout = processing_timeout

    def create_tables(self) -> None:
        metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        metadata.drop_all(self.engine)

    def record_if_new(self, provider: str, event_id: str, received_at: datetime | None = None) -> ClaimResult:
        now = received_at or self._clock()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(webhook_events).values(
                        provider=provider,
                        event_id=event_id,
                        received_at=now,
                        outcome=LedgerOutcome.PROCESSING.value,
                        updated_at=now,
                    )
                )
            return ClaimResult(
                is_new=True,
                entry=LedgerEntry(provider=provider, event_id=event_id, received_at=now, updated_at=now),
            )
        except IntegrityError:
            pass

        with self.engine.begin() as conn:
            result = conn.execute(
                update(webhook_events)
                .where(
                    webhook_events.c.provider == provider,
                    webhook_events.c.event_id == event_id,
                    or_(
                        webhook_events.c.outcome == LedgerOutcome.FAILED.value,
                        and_(
                            webhook_events.c.outcome == LedgerOutcome.PROCESSING.value,
                            webhook_events.c.updated_at < now - self.processing_timeout,
                        ),
                    ),
                )
                .values(outcome=LedgerOutcome.PROCESSING.value, detail=None, updated_at=now)
            )
            reclaimed = result.rowcount == 1

        if reclaimed:
            logger.info("Re-claimed webhook event", provider=provider, event_id=event_id)
        return ClaimResult(is_new=reclaimed, entry=self.get(provider, event_id))

    def mark_outcome(
        self,
        provider: str,
        event_id: str,
        outcome: LedgerOutcome,
        detail: str | None = None,
        order_id: str | None = None,
    ) -> None:
        values = {"outcome": outcome.value, "detail": detail, "updated_at": self._clock()}
        if order_id:
            values["order_id"] = order_id
        with self.engine.begin() as conn:
            conn.execute(
                update(webhook_events)
                .where(webhook_events.c.provider == provider, webhook_events.c.event_id == event_id)
                .values(**values)
            )

    def get(self, provider: str, event_id: str) -> LedgerEntry | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(webhook_events).where(
                    webhook_events.c.provider == provider,
                    webhook_events.c.event_id == event_id,
                )
            ).first()
        if row is None:
            return None
        return LedgerEntry(
            provider=row.provider,
            event_id=row.event_id,
            received_at=as_utc(row.received_at),
            outcome=row.outcome,
            detail=row.detail,
            order_id=row.order_id,
            updated_at=as_utc(row.updated_at),
        )

    def purge_older_than(self, cutoff: datetime) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(delete(webhook_events).where(webhook_events.c.received_at < cutoff))
        return result.rowcount
