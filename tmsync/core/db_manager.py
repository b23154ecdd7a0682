"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
SQLAlchemy-based access to the canonical store.

This module implements the find-or-create and merge protocol every synchronizer
writes through, plus partitioned bulk commits. It supports SQLite and PostgreSQL.
Racing writers converge on one row per natural key through the unique
constraints declared in ``tmsync.core.db_models`` and a conflict-ignoring insert
followed by a re-read.
"""

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig
from sqlalchemy import Engine, create_engine, event, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, QueuePool

from tmsync.batch_strategies import FixedSizeBatchStrategy
from tmsync.core import db_models as orm
from tmsync.core.config import DEFAULT_PARTITION_SIZE, DatabaseConfig
from tmsync.core.logging import get_logger
from tmsync.domain.models import (
    NAMED_KINDS,
    CanonicalModel,
    Cycle,
    EntityKind,
    Execution,
    ExecutionStatus,
    Found,
    Item,
    ItemMetaData,
    NotFound,
    Project,
    Resolution,
    User,
    Version,
    kind_of,
    natural_key,
)

logger = get_logger(__name__)

ORM_MODELS: dict[EntityKind, type[orm.Base]] = {
    EntityKind.PROJECT: orm.Project,
    EntityKind.VERSION: orm.Version,
    EntityKind.ITEM: orm.Item,
    EntityKind.CYCLE: orm.Cycle,
    EntityKind.USER: orm.User,
    EntityKind.EXECUTION_STATUS: orm.ExecutionStatus,
    EntityKind.EXECUTION: orm.Execution,
}

MAX_CONFLICT_RETRIES = 3
MIGRATIONS_PATH = Path(__file__).resolve().parent.parent / "migrations"


class StoreError(Exception):
    """Raised when the canonical store rejects an operation."""


class PartitionCommitError(StoreError):
    """
    Raised when one partition of a partitioned write fails.

    The failing partition is rolled back; partitions listed in
    ``committed_partitions`` stay committed and ``remaining`` holds every item
    that was not committed, starting with the failing partition.
    """

    def __init__(
        self,
        partition_index: int,
        failing_key: Any,
        committed_partitions: list[int],
        remaining: list[Any],
    ):
        self.partition_index = partition_index
        self.failing_key = failing_key
        self.committed_partitions = list(committed_partitions)
        self.remaining = list(remaining)
        super().__init__(
            f"Partition {partition_index} failed at key {failing_key!r}; "
            f"committed partitions {self.committed_partitions}, "
            f"{len(self.remaining)} items not committed"
        )


@dataclass
class PartitionOutcome:
    """Result of a fully committed partitioned write."""

    partition_count: int
    committed_partitions: list[int] = field(default_factory=list)
    results: list[Any] = field(default_factory=list)


def _describe_key(item: Any) -> Any:
    if isinstance(item, CanonicalModel):
        return natural_key(item)
    return item


def _describe_record(item: Any) -> Any:
    if hasattr(item, "model_dump"):
        return item.model_dump(mode="json")
    return repr(item)


def key_values(kind: EntityKind, key: Any) -> dict[str, Any]:
    """Column values identifying a row of ``kind`` by its natural key."""
    if kind in NAMED_KINDS:
        return {"name": key}
    if kind == EntityKind.VERSION:
        project_id, name = key
        return {"project_id": project_id, "name": name}
    return {"id": str(key)}


class CanonicalStore:
    """
    Access layer for the canonical relational model.

    Every public method opens and commits its own transaction unless a session
    is passed in, in which case the caller owns the transaction.
    """

    def __init__(self, config: DatabaseConfig | None = None):
        """
        Initialize the store.

        Args:
            config: Database configuration
        """
        self.config = config or DatabaseConfig()
        self._engine = self._create_engine()
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def _create_engine(self) -> Engine:
        """
        Create a SQLAlchemy engine based on the configuration.

        Returns:
            SQLAlchemy engine
        """
        conn_str = self.config.get_connection_string()
        engine_kwargs: dict[str, Any] = {"echo": self.config.echo}

        if self.config.db_type == "sqlite":
            engine_kwargs["poolclass"] = NullPool
            engine_kwargs["connect_args"] = {"timeout": 30, "check_same_thread": False}
        elif self.config.db_type == "postgresql":
            engine_kwargs.update(
                {
                    "poolclass": QueuePool,
                    "pool_size": self.config.pool_size,
                    "max_overflow": self.config.max_overflow,
                    "pool_pre_ping": True,
                    "pool_recycle": 3600,
                }
            )

        engine = create_engine(conn_str, **engine_kwargs)
        if self.config.db_type == "sqlite":
            self._configure_sqlite(engine)
        return engine

    @staticmethod
    def _configure_sqlite(engine: Engine) -> None:
        """
        Configure SQLite connections for concurrent writers.

        Transactions start with BEGIN IMMEDIATE so a transaction that reads
        before it writes never has to upgrade its lock.
        """

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_immediate(connection):
            connection.exec_driver_sql("BEGIN IMMEDIATE")

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """
        Context manager for database sessions.

        Commits on success, rolls back on error and always closes the session.

        Yields:
            SQLAlchemy session object
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            session.close()

    @contextmanager
    def _session_scope(self, session: Session | None) -> Iterator[Session]:
        if session is not None:
            yield session
        else:
            with self.get_session() as own_session:
                yield own_session

    def initialize_database(self) -> None:
        """Create all tables of the canonical schema if they don't exist."""
        try:
            logger.info("Initializing database schema...")
            orm.Base.metadata.create_all(self._engine)
            logger.info("Database schema initialized successfully")
        except SQLAlchemyError as e:
            logger.error(f"Error initializing database schema: {e}")
            raise

    def migrate(self, revision: str = "head") -> None:
        """
        Bring the schema to ``revision`` with the bundled Alembic migrations.

        Args:
            revision: Target revision
        """
        alembic_cfg = AlembicConfig()
        alembic_cfg.set_main_option("script_location", str(MIGRATIONS_PATH))
        alembic_cfg.set_main_option(
            "sqlalchemy.url",
            self.config.get_connection_string().replace("%", "%%"),
        )
        logger.info(f"Upgrading database schema to {revision}")
        alembic_command.upgrade(alembic_cfg, revision)

    def drop_all_tables(self) -> None:
        """
        Drop all tables from the database.

        WARNING: This will delete all data in the database.
        """
        logger.warning("Dropping all database tables...")
        orm.Base.metadata.drop_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    # Identity

    def find(self, kind: EntityKind, key: Any, session: Session | None = None) -> Resolution:
        """
        Look up an entity by its natural key.

        Returns:
            Found with the canonical entity, or NotFound
        """
        model = ORM_MODELS[kind]
        with self._session_scope(session) as s:
            row = s.execute(select(model).filter_by(**key_values(kind, key))).scalar_one_or_none()
            if row is None:
                return NotFound(key=key)
            return Found(self._to_entity(kind, row))

    def find_or_create(
        self, kind: EntityKind, key: Any, session: Session | None = None
    ) -> CanonicalModel:
        """
        Return the entity with the given natural key, creating it if absent.

        A created row carries only its key; business fields stay empty until a
        merge fills them. Concurrent callers for the same key all receive the
        same row.
        """
        with self._session_scope(session) as s:
            row = self._find_or_create_row(s, kind, key)
            return self._to_entity(kind, row)

    def _find_or_create_row(self, session: Session, kind: EntityKind, key: Any) -> orm.Base:
        model = ORM_MODELS[kind]
        values = key_values(kind, key)
        query = select(model).filter_by(**values)

        dialect = session.get_bind().dialect.name
        if dialect in ("sqlite", "postgresql"):
            insert = sqlite_insert if dialect == "sqlite" else pg_insert
            session.execute(insert(model).values(**values).on_conflict_do_nothing())
            return session.execute(query).scalar_one()

        for attempt in range(MAX_CONFLICT_RETRIES):
            row = session.execute(query).scalar_one_or_none()
            if row is not None:
                return row
            try:
                with session.begin_nested():
                    row = model(**values)
                    session.add(row)
                return row
            except IntegrityError:
                logger.debug(
                    f"Concurrent insert of {kind.value} {key!r} detected (attempt {attempt + 1})"
                )
        row = session.execute(query).scalar_one_or_none()
        if row is None:
            raise StoreError(f"Could not find or create {kind.value} {key!r}")
        return row

    # Merge

    def merge(self, entity: CanonicalModel, session: Session | None = None) -> CanonicalModel:
        """
        Persist an entity, overwriting every business field of an existing row.

        Returns:
            The persisted entity with its database id
        """
        kind = kind_of(entity)
        if kind == EntityKind.EXECUTION:
            missing = [
                name
                for name in ("item_id", "cycle_id", "status_id", "executor_id")
                if getattr(entity, name) is None
            ]
            if missing:
                raise StoreError(f"Execution {entity.id!r} is missing {', '.join(missing)}")

        with self._session_scope(session) as s:
            row = self._find_or_create_row(s, kind, natural_key(entity))
            self._apply(s, kind, row, entity)
            s.flush()
            return self._to_entity(kind, row)

    def _apply(self, session: Session, kind: EntityKind, row: orm.Base, entity: CanonicalModel):
        if kind == EntityKind.VERSION:
            row.start_date = entity.start_date
            row.end_date = entity.end_date
        elif kind == EntityKind.ITEM:
            row.name = entity.name
            row.project_id = entity.project_id
            row.type = entity.type
            row.status = entity.status
            row.priority = entity.priority
            row.created = entity.created
            row.updated = entity.updated
            row.versions = [
                self._version_row(session, version_id)
                for version_id in dict.fromkeys(entity.version_ids)
            ]
            row.meta_data = [
                orm.ItemMetaData(name=entry.name, value=entry.value) for entry in entity.meta_data
            ]
        elif kind == EntityKind.CYCLE:
            row.version_id = entity.version_id
            row.name = entity.name
            row.start_date = entity.start_date
            row.end_date = entity.end_date
        elif kind == EntityKind.EXECUTION:
            row.item_id = entity.item_id
            row.cycle_id = entity.cycle_id
            row.status_id = entity.status_id
            row.executor_id = entity.executor_id
            row.created = entity.created
            row.executed = entity.executed

    @staticmethod
    def _version_row(session: Session, version_id: int) -> orm.Version:
        version = session.get(orm.Version, version_id)
        if version is None:
            raise StoreError(f"Version {version_id} does not exist")
        return version

    @staticmethod
    def _to_entity(kind: EntityKind, row: orm.Base) -> CanonicalModel:
        if kind == EntityKind.PROJECT:
            return Project(id=row.id, name=row.name)
        if kind == EntityKind.USER:
            return User(id=row.id, name=row.name)
        if kind == EntityKind.EXECUTION_STATUS:
            return ExecutionStatus(id=row.id, name=row.name)
        if kind == EntityKind.VERSION:
            return Version(
                id=row.id,
                project_id=row.project_id,
                name=row.name,
                start_date=row.start_date,
                end_date=row.end_date,
            )
        if kind == EntityKind.ITEM:
            return Item(
                id=row.id,
                name=row.name,
                project_id=row.project_id,
                type=row.type,
                status=row.status,
                priority=row.priority,
                created=row.created,
                updated=row.updated,
                version_ids=[version.id for version in row.versions],
                meta_data=[ItemMetaData(name=m.name, value=m.value) for m in row.meta_data],
            )
        if kind == EntityKind.CYCLE:
            return Cycle(
                id=row.id,
                version_id=row.version_id,
                name=row.name,
                start_date=row.start_date,
                end_date=row.end_date,
            )
        return Execution(
            id=row.id,
            item_id=row.item_id,
            cycle_id=row.cycle_id,
            status_id=row.status_id,
            executor_id=row.executor_id,
            created=row.created,
            executed=row.executed,
        )

    # Partitioned writes

    def run_partitioned(
        self,
        items: Iterable[Any],
        operation: Callable[[Session, Any], Any],
        partition_size: int = DEFAULT_PARTITION_SIZE,
        key: Callable[[Any], Any] | None = None,
    ) -> PartitionOutcome:
        """
        Apply ``operation`` to every item, committing one transaction per partition.

        Partitions run in order. When one fails it is rolled back, the partitions
        before it stay committed and the ones after it are not attempted.

        Args:
            items: Work items, typically canonical entities to merge
            operation: Callable receiving the partition's session and one item
            partition_size: Number of items per transaction
            key: Describes an item in errors; defaults to its natural key

        Returns:
            PartitionOutcome with the committed partition indexes and operation results

        Raises:
            PartitionCommitError: When a partition fails
        """
        describe = key or _describe_key
        partitions = FixedSizeBatchStrategy(partition_size).create_batches(list(items))
        outcome = PartitionOutcome(partition_count=len(partitions))

        for index, partition in enumerate(partitions):
            session = self._session_factory()
            failing_item = failing_key = None
            partition_results = []
            try:
                for item in partition:
                    failing_item, failing_key = item, describe(item)
                    partition_results.append(operation(session, item))
                    session.flush()
                failing_item = failing_key = None
                session.commit()
            except Exception as e:
                session.rollback()
                remaining = [item for pending in partitions[index:] for item in pending]
                logger.error(
                    f"Partition {index + 1}/{len(partitions)} rolled back "
                    f"at key {failing_key!r}: {e}",
                    context={
                        "partition": index,
                        "key": failing_key,
                        "record": None if failing_item is None else _describe_record(failing_item),
                    },
                )
                raise PartitionCommitError(
                    index, failing_key, outcome.committed_partitions, remaining
                ) from e
            finally:
                session.close()

            outcome.committed_partitions.append(index)
            outcome.results.extend(partition_results)
            logger.debug(
                f"Committed partition {index + 1}/{len(partitions)} with {len(partition)} items"
            )

        return outcome

    def merge_all(
        self, entities: Iterable[CanonicalModel], partition_size: int = DEFAULT_PARTITION_SIZE
    ) -> PartitionOutcome:
        """Merge entities in partitioned transactions."""
        return self.run_partitioned(
            entities, lambda session, entity: self.merge(entity, session=session), partition_size
        )

    # Sync bookkeeping

    def get_last_sync(self, sync_key: str, project_name: str, scope: str = "") -> datetime | None:
        """Return when the given scope was last synchronized, or None."""
        with self.get_session() as session:
            row = session.get(orm.LastSync, (sync_key, project_name, scope))
            return row.last_sync if row else None

    def update_last_sync(
        self, sync_key: str, project_name: str, when: datetime, scope: str = ""
    ) -> None:
        """Record the start time of a completed synchronization of a scope."""
        with self.get_session() as session:
            session.merge(
                orm.LastSync(
                    sync_key=sync_key, project_name=project_name, scope=scope, last_sync=when
                )
            )
        logger.debug(f"Last sync of {sync_key}/{project_name}/{scope or '*'} set to {when}")

    def row_counts(self) -> dict[str, int]:
        """Count the rows of every canonical table."""
        counts = {}
        with self.get_session() as session:
            for kind, model in ORM_MODELS.items():
                counts[kind.value] = session.execute(
                    select(func.count()).select_from(model)
                ).scalar_one()
            counts["item_metadata"] = session.execute(
                select(func.count()).select_from(orm.ItemMetaData)
            ).scalar_one()
        return counts
