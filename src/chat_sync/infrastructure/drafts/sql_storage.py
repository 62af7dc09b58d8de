"""Local draft storage on a synchronous SQLAlchemy engine (SQLite by default)."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Engine, MetaData, String, Table, Text, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError

from chat_sync.config import settings

logger = logging.getLogger(__name__)

metadata = MetaData()

drafts_table = Table(
    "message_drafts",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("text", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


class SqlDraftStorage:
    """Implements application.ports.drafts.DraftStorage.

    Failures are logged and reported as a missing draft; the compose field
    keeps working without persistence.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: str = settings.DRAFTS_DATABASE_URL) -> SqlDraftStorage:
        return cls(create_engine(url))

    def get(self, key: str) -> str | None:
        try:
            with self._engine.connect() as conn:
                return conn.execute(
                    select(drafts_table.c.text).where(drafts_table.c.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Failed to load draft %s", key)
            return None

    def set(self, key: str, text: str) -> None:
        now = datetime.now(timezone.utc)
        try:
            with self._engine.begin() as conn:
                updated = conn.execute(
                    drafts_table.update()
                    .where(drafts_table.c.key == key)
                    .values(text=text, updated_at=now)
                )
                if updated.rowcount == 0:
                    conn.execute(drafts_table.insert().values(key=key, text=text, updated_at=now))
        except SQLAlchemyError:
            logger.exception("Failed to save draft %s", key)

    def clear(self, key: str) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(drafts_table).where(drafts_table.c.key == key))
        except SQLAlchemyError:
            logger.exception("Failed to clear draft %s", key)


class InMemoryDraftStorage:
    def __init__(self) -> None:
        self._drafts: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._drafts.get(key)

    def set(self, key: str, text: str) -> None:
        self._drafts[key] = text

    def clear(self, key: str) -> None:
        self._drafts.pop(key, None)
