"""
URL storage strategies using Strategy Pattern.

Three interchangeable backends implement one interface:
- InMemoryURLStorage: dict indexes behind one lock, nothing persisted
- FileURLStorage: the in-memory backend plus an append-only JSON-lines log
- DatabaseURLStorage: one SQLAlchemy table whose UNIQUE constraints arbitrate collisions

The backend is picked once at startup (see factory.py) and every request
handler talks to that single shared instance. All methods are synchronous
and safe to call from many threads.
"""

import contextlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from shortener.database.connection import Base, create_db_engine, create_session_factory
from shortener.exceptions import (
    AlreadyExistsError,
    PersistenceError,
    ShortIDConflictError,
    StorageCorruptedError,
    URLConflictError,
)
from shortener.logging_config import get_logger
from shortener.models.url import URL
from shortener.storage.models import URLLogEntry, URLRecord


class URLStorageStrategy(ABC):
    """
    Abstract base class for URL storage strategies.

    Invariants every backend keeps:
    - a short ID maps to at most one URL, and a URL to at most one short ID
    - the forward (ID -> URL) and reverse (URL -> ID) views always agree
    - records are tombstoned, never removed

    Conflicts are reported by raising a subclass of AlreadyExistsError.
    A lookup miss returns None.
    """

    hide_deleted: bool = True

    @abstractmethod
    def save_id(self, owner_id: str, short_id: str, original_url: str) -> None:
        """
        Bind short_id to original_url on behalf of owner_id.

        Saving a pair that is already stored is a no-op, so callers can
        retry safely.

        Raises:
            URLConflictError: original_url already has a different short ID
                (the existing ID is on the error)
            ShortIDConflictError: short_id already points at a different URL
            PersistenceError: the write could not be made durable
        """
        pass

    @abstractmethod
    def get(self, short_id: str) -> Optional[str]:
        """
        Resolve a short ID.

        Returns:
            The original URL, or None if absent (or deleted while
            hide_deleted is on)
        """
        pass

    @abstractmethod
    def get_record(self, short_id: str) -> Optional[URLRecord]:
        """Full record for a short ID, tombstoned or not"""
        pass

    @abstractmethod
    def get_id_by_url(self, original_url: str) -> Optional[str]:
        """
        Reverse lookup used for dedup.

        Returns:
            The short ID bound to original_url, or None
        """
        pass

    @abstractmethod
    def save_batch(self, owner_id: str, pairs: Dict[str, str]) -> None:
        """
        Save many short_id -> original_url pairs as one operation.

        Conflict rules are the same as save_id. Whether a failure undoes
        the pairs written before it depends on the backend.
        """
        pass

    @abstractmethod
    def get_user_urls(self, owner_id: str) -> Dict[str, str]:
        """
        Every live mapping owned by owner_id.

        Returns:
            Dict of short_id -> original_url (empty if the owner has none)
        """
        pass

    @abstractmethod
    def batch_delete(self, owner_id: str, short_ids: Iterable[str]) -> None:
        """
        Tombstone the given short IDs.

        Only IDs owned by owner_id are touched; others are skipped
        without error.
        """
        pass

    def ping(self) -> bool:
        """Check the backend is reachable"""
        return True

    def close(self) -> None:
        """Release held resources"""
        pass


class InMemoryURLStorage(URLStorageStrategy):
    """
    In-memory storage using plain dicts.

    Pros:
    - O(1) lookups in both directions and per owner
    - No external dependencies
    - Good for development and testing

    Cons:
    - Lost on restart
    - One coarse lock serializes every call

    All state sits behind a single lock so the forward, reverse and
    owner indexes change together.
    """

    storage_name = "memory"

    def __init__(self, hide_deleted: bool = True, logger: Optional[logging.Logger] = None):
        """
        Initialize in-memory storage.

        Args:
            hide_deleted: Make get() treat tombstoned IDs as missing
            logger: Parent logger (a child named after the backend is used)
        """
        self.hide_deleted = hide_deleted
        self.logger = (logger or get_logger()).getChild(f"storage.{self.storage_name}")
        self._lock = threading.RLock()
        self._records: Dict[str, URLRecord] = {}       # short_id -> record
        self._ids_by_url: Dict[str, str] = {}          # original_url -> short_id
        self._ids_by_owner: Dict[str, Set[str]] = {}   # owner_id -> short_ids

    def _insert(self, owner_id: str, short_id: str, original_url: str) -> bool:
        """
        Add a record. The caller holds the lock.

        Returns:
            False if the identical pair was already stored, True if added
        """
        existing = self._records.get(short_id)
        if existing is not None and existing.original_url == original_url:
            return False

        bound_id = self._ids_by_url.get(original_url)
        if bound_id is not None:
            raise URLConflictError(original_url, bound_id)
        if existing is not None:
            raise ShortIDConflictError(short_id)

        self._records[short_id] = URLRecord(
            short_id=short_id,
            original_url=original_url,
            owner_id=owner_id,
        )
        self._ids_by_url[original_url] = short_id
        self._ids_by_owner.setdefault(owner_id, set()).add(short_id)
        return True

    def _apply(self, record: URLRecord) -> None:
        """
        Overwrite whatever is stored under record.short_id (last write wins).
        The caller holds the lock.
        """
        previous = self._records.get(record.short_id)
        if previous is not None:
            if self._ids_by_url.get(previous.original_url) == previous.short_id:
                del self._ids_by_url[previous.original_url]
            self._ids_by_owner.get(previous.owner_id, set()).discard(previous.short_id)

        self._records[record.short_id] = record
        self._ids_by_url[record.original_url] = record.short_id
        self._ids_by_owner.setdefault(record.owner_id, set()).add(record.short_id)

    def _tombstone(self, owner_id: str, short_ids: Iterable[str]) -> List[URLRecord]:
        """
        Mark owned, live records deleted. The caller holds the lock.

        Returns:
            The records that changed
        """
        owned = self._ids_by_owner.get(owner_id, set())
        changed = []
        for short_id in short_ids:
            if short_id not in owned:
                continue
            record = self._records[short_id]
            if not record.deleted:
                record.deleted = True
                changed.append(record)
        return changed

    def save_id(self, owner_id: str, short_id: str, original_url: str) -> None:
        with self._lock:
            self._insert(owner_id, short_id, original_url)

    def get(self, short_id: str) -> Optional[str]:
        with self._lock:
            record = self._records.get(short_id)
            if record is None or (record.deleted and self.hide_deleted):
                return None
            return record.original_url

    def get_record(self, short_id: str) -> Optional[URLRecord]:
        with self._lock:
            record = self._records.get(short_id)
            return record.model_copy() if record is not None else None

    def get_id_by_url(self, original_url: str) -> Optional[str]:
        with self._lock:
            return self._ids_by_url.get(original_url)

    def save_batch(self, owner_id: str, pairs: Dict[str, str]) -> None:
        """
        Save pairs one by one under the lock.

        The first conflict aborts the batch; pairs saved before it stay.
        """
        with self._lock:
            for short_id, original_url in pairs.items():
                self._insert(owner_id, short_id, original_url)

    def get_user_urls(self, owner_id: str) -> Dict[str, str]:
        with self._lock:
            return {
                short_id: self._records[short_id].original_url
                for short_id in self._ids_by_owner.get(owner_id, set())
                if not self._records[short_id].deleted
            }

    def batch_delete(self, owner_id: str, short_ids: Iterable[str]) -> None:
        with self._lock:
            changed = self._tombstone(owner_id, short_ids)
        self.logger.debug("Tombstoned %d URLs for user %s", len(changed), owner_id)


class FileURLStorage(InMemoryURLStorage):
    """
    In-memory storage made durable with an append-only JSON-lines file.

    Reads are served from memory. Every successful write also appends
    one line per record:

        {"short_url": "abc123", "original_url": "https://...", "user_id": "u1"}

    Deletes append the record again with "is_deleted": true. On startup
    the whole file is replayed in order and the last line for a short ID
    wins. The file is never rewritten or compacted.

    Memory is updated before the file. If the append fails the in-memory
    change stays and the error reaches the caller.
    """

    storage_name = "file"

    def __init__(
        self,
        file_path: str,
        hide_deleted: bool = True,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize file storage and replay the existing log.

        Args:
            file_path: Path to the JSON-lines file (created on first write)
            hide_deleted: Make get() treat tombstoned IDs as missing
            logger: Parent logger

        Raises:
            StorageCorruptedError: A line in the file can't be parsed
            PersistenceError: The file exists but can't be read
        """
        super().__init__(hide_deleted=hide_deleted, logger=logger)
        self.file_path = file_path
        self._load()

    def _load(self) -> None:
        """Rebuild memory state from the log file"""
        try:
            log_file = open(self.file_path, "r", encoding="utf-8")
        except FileNotFoundError:
            self.logger.info("Storage file %s not found, starting empty", self.file_path)
            return
        except OSError as e:
            raise PersistenceError(f"Failed to open storage file {self.file_path}: {e}") from e

        restored = 0
        with self._lock, log_file:
            try:
                for line_number, line in enumerate(log_file, start=1):
                    if not line.strip():
                        continue
                    try:
                        entry = URLLogEntry.model_validate_json(line)
                    except ValidationError as e:
                        raise StorageCorruptedError(
                            f"Corrupted record at {self.file_path}:{line_number}: {e}"
                        ) from e
                    self._apply(entry.to_record())
                    restored += 1
            except UnicodeDecodeError as e:
                raise StorageCorruptedError(
                    f"Storage file {self.file_path} is not valid UTF-8: {e}"
                ) from e

        self.logger.info("Restored %d records from %s", restored, self.file_path)

    def _append(self, records: List[URLRecord]) -> None:
        """Write records to the end of the log file. The caller holds the lock."""
        if not records:
            return
        try:
            with open(self.file_path, "a", encoding="utf-8") as log_file:
                for record in records:
                    entry = URLLogEntry.from_record(record)
                    log_file.write(entry.model_dump_json(exclude_defaults=True) + "\n")
        except OSError as e:
            self.logger.error("Error writing storage file %s: %s", self.file_path, e)
            raise PersistenceError(f"Failed to write storage file {self.file_path}: {e}") from e

    def save_id(self, owner_id: str, short_id: str, original_url: str) -> None:
        with self._lock:
            if self._insert(owner_id, short_id, original_url):
                self._append([self._records[short_id]])

    def save_batch(self, owner_id: str, pairs: Dict[str, str]) -> None:
        """
        Save pairs in memory, then append them with a single file open.

        On a conflict the pairs saved before it are still written to the
        file, keeping the file in step with memory.
        """
        with self._lock:
            saved = []
            try:
                for short_id, original_url in pairs.items():
                    if self._insert(owner_id, short_id, original_url):
                        saved.append(self._records[short_id])
            except AlreadyExistsError:
                self._append(saved)
                raise
            self._append(saved)

    def batch_delete(self, owner_id: str, short_ids: Iterable[str]) -> None:
        with self._lock:
            changed = self._tombstone(owner_id, short_ids)
            self._append(changed)
        self.logger.debug("Tombstoned %d URLs for user %s", len(changed), owner_id)


class DatabaseURLStorage(URLStorageStrategy):
    """
    Relational storage on a single `urls` table via SQLAlchemy.

    Works with PostgreSQL in production and SQLite in development/tests.
    Other dialects are refused: the UNIQUE index on original_url is wider
    than MySQL allows, so there is no insert-ignore path for it.

    Inserts use "insert, ignore conflict" and then look at what actually
    got stored, so the UNIQUE constraints on short_id and original_url
    decide races between concurrent writers. Batch writes run in one
    transaction: either every pair is stored or none is.

    The engine keeps a bounded connection pool owned by this backend.
    """

    SUPPORTED_DIALECTS = ("postgresql", "sqlite")

    def __init__(
        self,
        database_url: str,
        pool_size: int = 10,
        hide_deleted: bool = True,
        logger: Optional[logging.Logger] = None,
        engine: Optional[Engine] = None
    ):
        """
        Initialize database storage and create the schema if needed.

        Args:
            database_url: SQLAlchemy database URL
            pool_size: Maximum pooled connections
            hide_deleted: Make get() treat tombstoned IDs as missing
            logger: Parent logger
            engine: Prebuilt engine (overrides database_url/pool_size)
        """
        self.hide_deleted = hide_deleted
        self.logger = (logger or get_logger()).getChild("storage.database")
        self.engine = engine or create_db_engine(database_url, pool_size=pool_size)
        if self.engine.dialect.name not in self.SUPPORTED_DIALECTS:
            raise PersistenceError(f"Unsupported database dialect: {self.engine.dialect.name}")
        self.SessionLocal = create_session_factory(self.engine)
        self._create_schema()

    def _create_schema(self) -> None:
        """Create the urls table if it doesn't exist"""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create schema: {e}") from e
        self.logger.info("Database schema ready (%s)", self.engine.dialect.name)

    @contextlib.contextmanager
    def _session(self, action: str):
        """
        Session that rolls back on any error and closes afterwards.
        Driver errors are re-raised as PersistenceError.
        """
        db = self.SessionLocal()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            self.logger.error("Failed to %s: %s", action, e)
            raise PersistenceError(f"Failed to {action}: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _insert_ignore(self, rows: List[dict]):
        """INSERT that skips rows violating a unique constraint"""
        dialect = self.engine.dialect.name
        table = URL.__table__
        if dialect == "postgresql":
            return postgresql_insert(table).values(rows).on_conflict_do_nothing()
        if dialect == "sqlite":
            return sqlite_insert(table).values(rows).on_conflict_do_nothing()
        raise PersistenceError(f"Unsupported database dialect: {dialect}")

    @staticmethod
    def _row(owner_id: str, short_id: str, original_url: str) -> dict:
        return {
            "short_id": short_id,
            "original_url": original_url,
            "owner_id": owner_id,
            "is_deleted": False,
        }

    @staticmethod
    def _conflict_for(db, short_id: str, original_url: str) -> Optional[AlreadyExistsError]:
        """
        Explain why (short_id, original_url) is not stored as given.

        Returns:
            None if the pair is stored exactly, else the matching error
        """
        by_id = db.query(URL).filter(URL.short_id == short_id).first()
        if by_id is not None and by_id.original_url == original_url:
            return None

        by_url = db.query(URL).filter(URL.original_url == original_url).first()
        if by_url is not None:
            return URLConflictError(original_url, by_url.short_id)
        if by_id is not None:
            return ShortIDConflictError(short_id)
        return PersistenceError(f"Insert of {short_id!r} was ignored without a conflicting row")

    def save_id(self, owner_id: str, short_id: str, original_url: str) -> None:
        with self._session("save URL") as db:
            result = db.execute(self._insert_ignore([self._row(owner_id, short_id, original_url)]))
            db.commit()
            if result.rowcount == 1:
                return

            error = self._conflict_for(db, short_id, original_url)
            if error is not None:
                raise error

    def get(self, short_id: str) -> Optional[str]:
        with self._session("get URL") as db:
            query = db.query(URL.original_url).filter(URL.short_id == short_id)
            if self.hide_deleted:
                query = query.filter(URL.is_deleted == False)  # noqa: E712
            row = query.first()
            return row[0] if row else None

    def get_record(self, short_id: str) -> Optional[URLRecord]:
        with self._session("get record") as db:
            url = db.query(URL).filter(URL.short_id == short_id).first()
            if not url:
                return None
            return URLRecord(
                short_id=url.short_id,
                original_url=url.original_url,
                owner_id=url.owner_id,
                deleted=url.is_deleted,
            )

    def get_id_by_url(self, original_url: str) -> Optional[str]:
        with self._session("get ID by URL") as db:
            row = db.query(URL.short_id).filter(URL.original_url == original_url).first()
            return row[0] if row else None

    def save_batch(self, owner_id: str, pairs: Dict[str, str]) -> None:
        """
        Insert all pairs in one transaction and verify each one landed.

        Any pair that was ignored because of a conflict rolls back the
        whole batch and raises the conflict.
        """
        if not pairs:
            return

        rows = [self._row(owner_id, short_id, url) for short_id, url in pairs.items()]
        with self._session("save batch") as db:
            db.execute(self._insert_ignore(rows))

            stored = dict(
                db.query(URL.short_id, URL.original_url)
                .filter(URL.short_id.in_(list(pairs)))
                .all()
            )
            for short_id, original_url in pairs.items():
                if stored.get(short_id) != original_url:
                    raise self._conflict_for(db, short_id, original_url)

            db.commit()

    def get_user_urls(self, owner_id: str) -> Dict[str, str]:
        with self._session("get user URLs") as db:
            rows = db.query(URL.short_id, URL.original_url).filter(
                URL.owner_id == owner_id,
                URL.is_deleted == False  # noqa: E712
            ).all()
            return {short_id: original_url for short_id, original_url in rows}

    def batch_delete(self, owner_id: str, short_ids: Iterable[str]) -> None:
        """
        One UPDATE ... SET is_deleted = TRUE
        WHERE owner_id = ? AND short_id IN (...)
        """
        short_ids = list(short_ids)
        if not short_ids:
            return

        with self._session("delete URLs") as db:
            updated = db.query(URL).filter(
                URL.owner_id == owner_id,
                URL.short_id.in_(short_ids)
            ).update({URL.is_deleted: True}, synchronize_session=False)
            db.commit()
        self.logger.debug("Tombstoned %d URLs for user %s", updated, owner_id)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            self.logger.error("Database ping failed: %s", e)
            return False

    def close(self) -> None:
        self.engine.dispose()
