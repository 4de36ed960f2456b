"""Structured store with named collections and secondary indexes."""
import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import Table, create_engine, delete, insert, inspect, select, text, update
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from spellfun.exceptions import DuplicateKey, OpenFailed, ResetBlocked, StoreError, TransactionFailed
from spellfun.models.base import COLLECTIONS, META_TABLE, SCHEMA_VERSION, CollectionSchema, build_metadata, index_name
from spellfun.monitoring import db_errors, db_operations

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class _DeletionBlocked(Exception):
    """The platform refused to delete the database right now."""


def _index_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


class StructuredStore:
    """Versioned local database of id-keyed collections.

    The handle is opened lazily by the first operation and reused until
    ``close()`` or ``delete_database()``. Blocking driver calls run in a
    worker thread so callers on the event loop never block.
    """

    def __init__(
        self,
        url: str,
        collections: Dict[str, CollectionSchema] = COLLECTIONS,
        echo: bool = False,
        reset_retry_delay: float = 1.0,
    ):
        """Initialize the store without touching the database."""
        self.url = url
        self.collections = collections
        self.echo = echo
        self.reset_retry_delay = reset_retry_delay
        self.metadata = build_metadata(collections)
        self._engine: Optional[Engine] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self) -> Engine:
        """Open the database, creating or upgrading collections as needed."""
        if self._engine is not None:
            return self._engine
        async with self._lock:
            if self._engine is None:
                self._engine = await asyncio.to_thread(self._open_sync)
        return self._engine

    def close(self) -> None:
        """Release the open handle, if any."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.debug("Structured store handle released")

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Get one record by id, or None."""
        table = self._table(collection)
        return await self._run("get", self._get_sync, table, record_id)

    async def get_all(self, collection: str) -> List[Record]:
        """Get every record in a collection."""
        table = self._table(collection)
        return await self._run("get_all", self._get_all_sync, table)

    async def get_all_by_index(self, collection: str, index: str, value: Any) -> List[Record]:
        """Get every record whose indexed field equals ``value``."""
        table = self._table(collection)
        if index not in self.collections[collection].indexes:
            raise ValueError(f"Collection {collection} has no index {index}")
        return await self._run("get_all_by_index", self._get_all_by_index_sync, table, index, value)

    async def put(self, collection: str, record: Record) -> None:
        """Insert a record or replace the one with the same id."""
        table = self._table(collection)
        values = self._row_values(collection, record)
        await self._run("put", self._put_sync, table, values)

    async def add(self, collection: str, record: Record) -> None:
        """Insert a record; raises DuplicateKey if the id exists."""
        table = self._table(collection)
        values = self._row_values(collection, record)
        await self._run("add", self._add_sync, table, values)

    async def delete_database(self) -> None:
        """Destroy the whole store. Irreversible."""
        async with self._lock:
            self.close()
            db_operations.labels(operation_type="delete_database").inc()
            try:
                await asyncio.to_thread(self._destroy)
            except _DeletionBlocked as e:
                logger.warning(
                    "Database deletion blocked (%s), retrying in %.1fs", e, self.reset_retry_delay
                )
                await asyncio.sleep(self.reset_retry_delay)
                try:
                    await asyncio.to_thread(self._destroy)
                except _DeletionBlocked as retry_error:
                    db_errors.labels(error_type="reset_blocked").inc()
                    logger.error("Database deletion still blocked: %s", retry_error)
                    raise ResetBlocked(f"Database deletion blocked: {retry_error}") from retry_error
                logger.info("Database deleted on retry")
                return
            logger.info("Database deleted")

    def _table(self, collection: str) -> Table:
        if collection not in self.collections:
            raise ValueError(f"Unknown collection: {collection}")
        return self.metadata.tables[collection]

    def _row_values(self, collection: str, record: Record) -> Dict[str, Any]:
        if record.get("id") is None:
            raise ValueError(f"Record for {collection} has no id")
        values = {"id": str(record["id"]), "data": record}
        for field in self.collections[collection].indexes:
            values[field] = _index_value(record.get(field))
        return values

    async def _run(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        engine = await self.open()
        db_operations.labels(operation_type=operation).inc()
        try:
            return await asyncio.to_thread(func, engine, *args)
        except DuplicateKey:
            db_errors.labels(error_type="duplicate_key").inc()
            raise
        except SQLAlchemyError as e:
            db_errors.labels(error_type="transaction_failed").inc()
            logger.error("Store %s failed: %s", operation, e)
            raise TransactionFailed(f"{operation} failed: {e}") from e

    # Worker-thread implementations

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self.echo}
        if make_url(self.url).get_backend_name() == "sqlite":
            options["connect_args"] = {"check_same_thread": False}
            if self._database_path() is None:
                options["poolclass"] = StaticPool
        return options

    def _database_path(self) -> Optional[Path]:
        url = make_url(self.url)
        if url.get_backend_name() != "sqlite":
            return None
        if not url.database or url.database == ":memory:" or url.database.startswith("file:"):
            return None
        return Path(url.database)

    def _open_sync(self) -> Engine:
        try:
            path = self._database_path()
            if path is not None:
                path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(self.url, **self._engine_options())
        except (OSError, SQLAlchemyError) as e:
            db_errors.labels(error_type="open_failed").inc()
            raise OpenFailed(f"Could not open {self.url}: {e}") from e

        try:
            with engine.begin() as conn:
                version = self._read_version(conn)
                if version is not None and version > SCHEMA_VERSION:
                    raise OpenFailed(
                        f"Database schema version {version} is newer than supported {SCHEMA_VERSION}"
                    )
                if version is None or version < SCHEMA_VERSION:
                    self._upgrade(conn, version)
        except StoreError:
            engine.dispose()
            db_errors.labels(error_type="open_failed").inc()
            raise
        except SQLAlchemyError as e:
            engine.dispose()
            db_errors.labels(error_type="open_failed").inc()
            raise OpenFailed(f"Could not open {self.url}: {e}") from e

        logger.info("Structured store opened at %s (schema version %d)", self.url, SCHEMA_VERSION)
        return engine

    def _read_version(self, conn: Connection) -> Optional[int]:
        if not inspect(conn).has_table(META_TABLE):
            return None
        meta = self.metadata.tables[META_TABLE]
        row = conn.execute(select(meta.c.version).where(meta.c.id == 1)).first()
        return row.version if row else None

    def _upgrade(self, conn: Connection, from_version: Optional[int]) -> None:
        """Additive upgrade: create what is missing, never drop."""
        logger.info("Upgrading store schema from version %s to %d", from_version, SCHEMA_VERSION)
        self.metadata.create_all(conn, checkfirst=True)

        inspector = inspect(conn)
        for schema in self.collections.values():
            table = self.metadata.tables[schema.name]
            existing_columns = {column["name"] for column in inspector.get_columns(schema.name)}
            existing_indexes = {index["name"] for index in inspector.get_indexes(schema.name)}
            for field in schema.indexes:
                if field not in existing_columns:
                    logger.info("Adding index field %s to %s", field, schema.name)
                    conn.execute(text(f'ALTER TABLE "{schema.name}" ADD COLUMN "{field}" VARCHAR'))
                    self._backfill(conn, table, field)
                name = index_name(schema.name, field)
                if name not in existing_indexes:
                    next(index for index in table.indexes if index.name == name).create(conn)

        meta = self.metadata.tables[META_TABLE]
        conn.execute(delete(meta))
        conn.execute(insert(meta).values(id=1, version=SCHEMA_VERSION))

    @staticmethod
    def _backfill(conn: Connection, table: Table, field: str) -> None:
        rows = conn.execute(select(table.c.id, table.c.data)).all()
        for row in rows:
            conn.execute(
                update(table)
                .where(table.c.id == row.id)
                .values({field: _index_value((row.data or {}).get(field))})
            )

    @staticmethod
    def _get_sync(engine: Engine, table: Table, record_id: str) -> Optional[Record]:
        with engine.connect() as conn:
            row = conn.execute(select(table.c.data).where(table.c.id == str(record_id))).first()
        return row.data if row else None

    @staticmethod
    def _get_all_sync(engine: Engine, table: Table) -> List[Record]:
        with engine.connect() as conn:
            return [row.data for row in conn.execute(select(table.c.data))]

    @staticmethod
    def _get_all_by_index_sync(engine: Engine, table: Table, index: str, value: Any) -> List[Record]:
        with engine.connect() as conn:
            query = select(table.c.data).where(table.c[index] == _index_value(value))
            return [row.data for row in conn.execute(query)]

    @staticmethod
    def _put_sync(engine: Engine, table: Table, values: Dict[str, Any]) -> None:
        with engine.begin() as conn:
            exists = conn.execute(select(table.c.id).where(table.c.id == values["id"])).first()
            if exists:
                conn.execute(update(table).where(table.c.id == values["id"]).values(**values))
            else:
                conn.execute(insert(table).values(**values))

    @staticmethod
    def _add_sync(engine: Engine, table: Table, values: Dict[str, Any]) -> None:
        with engine.begin() as conn:
            if conn.execute(select(table.c.id).where(table.c.id == values["id"])).first():
                raise DuplicateKey(table.name, values["id"])
            # Any other constraint failure surfaces as TransactionFailed
            conn.execute(insert(table).values(**values))

    def _destroy(self) -> None:
        path = self._database_path()
        if path is not None:
            for target in (path, *(path.with_name(path.name + suffix) for suffix in ("-journal", "-wal", "-shm"))):
                try:
                    target.unlink(missing_ok=True)
                except PermissionError as e:
                    raise _DeletionBlocked(str(e)) from e
                except OSError as e:
                    raise TransactionFailed(f"Could not delete {target}: {e}") from e
            return

        engine = create_engine(self.url, **self._engine_options())
        try:
            self.metadata.drop_all(engine)
        except OperationalError as e:
            if "locked" in str(e).lower():
                raise _DeletionBlocked(str(e)) from e
            raise TransactionFailed(f"Could not delete database: {e}") from e
        finally:
            engine.dispose()
