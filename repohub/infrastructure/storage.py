import logging
from typing import Dict, Optional, Protocol

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, delete, select, text
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError

from repohub.domain.exceptions import PersistenceError

logger = logging.getLogger(__name__)

TOKENS_KEY = "platformTokens"
GROUPS_KEY = "repositoryGroups"
CACHE_KEY = "cachedRepositories"

# SQLAlchemy core Table definition
metadata = MetaData()
kv_table = Table(
    'repohub_kv', metadata,
    Column('storage_key', String, primary_key=True),
    Column('payload', Text, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP')),
)


class KeyValueStore(Protocol):
    """Durable string-keyed persistence capability."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store, used for tests and ephemeral runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SqlKeyValueStore:
    """
    Key/value store backed by a single SQLite table.
    Every write is its own transaction, so callers observe it synchronously.
    """

    def __init__(self, db_url: str):
        self.engine = create_engine(db_url, echo=False)
        metadata.create_all(self.engine)

    def get(self, key: str) -> Optional[str]:
        try:
            with self.engine.connect() as conn:
                return conn.execute(select(kv_table.c.payload).where(kv_table.c.storage_key == key)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: str) -> None:
        """
        Inserts or replaces the value stored under key.

        Args:
            key (str): Storage key.
            value (str): Serialized payload.
        """
        try:
            with self.engine.begin() as conn:
                stmt = insert(kv_table).values(storage_key=key, payload=value)

                # Only touch the row when the payload actually changed.
                upsert_stmt = stmt.on_conflict_do_update(
                    index_elements=['storage_key'],
                    set_={
                        'payload': stmt.excluded.payload,
                        'updated_at': text('CURRENT_TIMESTAMP'),
                    },
                    where=kv_table.c.payload.is_distinct_from(stmt.excluded.payload),
                )
                conn.execute(upsert_stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write '{key}': {e}") from e

    def remove(self, key: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(kv_table).where(kv_table.c.storage_key == key))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to remove '{key}': {e}") from e
