import sqlite3
import logging
from contextlib import contextmanager
from enum import Flag, auto
from urllib.parse import quote
import litenom.config as cfg
from litenom.constants import SAVEPOINT_PREFIX
from litenom.errors import StorageError
from litenom.schema.schema_registry import describe, _get_ordered_models
from litenom.statement import Statement, _SqlGenerator

logger = logging.getLogger(__name__)


class OpenFlags(Flag):
    READ_ONLY = auto()
    READ_WRITE = auto()
    CREATE = auto()
    SHARED_CACHE = auto()
    PRIVATE_CACHE = auto()
    FULL_MUTEX = auto()
    NO_MUTEX = auto()


def _to_uri(path: str, flags: OpenFlags) -> str:
    if OpenFlags.READ_ONLY in flags and OpenFlags.READ_WRITE in flags:
        raise ValueError("READ_ONLY and READ_WRITE cannot be combined.")
    if OpenFlags.READ_ONLY in flags and OpenFlags.CREATE in flags:
        raise ValueError("A READ_ONLY database cannot be created.")
    if OpenFlags.SHARED_CACHE in flags and OpenFlags.PRIVATE_CACHE in flags:
        raise ValueError("SHARED_CACHE and PRIVATE_CACHE cannot be combined.")
    if OpenFlags.FULL_MUTEX in flags and OpenFlags.NO_MUTEX in flags:
        raise ValueError("FULL_MUTEX and NO_MUTEX cannot be combined.")

    if OpenFlags.READ_ONLY in flags:
        mode = 'ro'
    elif OpenFlags.READ_WRITE in flags:
        mode = 'rwc' if OpenFlags.CREATE in flags else 'rw'
    else:
        raise ValueError("Either READ_ONLY or READ_WRITE must be set.")

    if path == ':memory:':
        # a shared cache would make every in-memory database the same one
        return 'file::memory:?mode=memory'

    uri = f'file:{quote(str(path))}?mode={mode}'
    if OpenFlags.SHARED_CACHE in flags:
        uri += '&cache=shared'
    elif OpenFlags.PRIVATE_CACHE in flags:
        uri += '&cache=private'
    return uri


class Database:
    """
    Owns the single SQLite connection of an application.

    Tables are created on first use through ``ensure_table``; creation is
    idempotent. The connection runs in autocommit mode, multi-row work is
    grouped with ``transaction()``.
    """

    def __init__(
            self,
            path: str = None,
            flags: OpenFlags = None,
            enforce_foreign_keys: bool = None
        ):
        self._path = path if path is not None else cfg.get(cfg.DATABASE_PATH)
        self._flags = flags if flags is not None else cfg.get(cfg.OPEN_FLAGS)
        self._enforce_foreign_keys = (
            enforce_foreign_keys if enforce_foreign_keys is not None else cfg.get(cfg.ENFORCE_FOREIGN_KEYS)
        )
        # fail early on contradictory flags
        self._uri = _to_uri(self._path, self._flags)

        self._conn = None
        self._created_tables = set()
        # tables created inside each open savepoint, innermost last
        self._savepoint_tables = []
        self._savepoint_counter = 0

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def path(self):
        return self._path

    @property
    def flags(self) -> OpenFlags:
        return self._flags

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        return bool(self._savepoint_tables)

    def open(self):
        if self._conn is not None:
            raise RuntimeError(f"Database {self._path} is already open.")

        try:
            self._conn = sqlite3.connect(
                self._uri,
                uri=True,
                isolation_level=None,
                check_same_thread=OpenFlags.FULL_MUTEX not in self._flags
            )
        except sqlite3.Error as e:
            message = f"Failed to open database {self._path}: {e}"
            logger.error(message)
            raise StorageError(message) from e

        self._conn.row_factory = sqlite3.Row
        self._conn.execute(f'PRAGMA foreign_keys = {"ON" if self._enforce_foreign_keys else "OFF"}')
        cfg.lock()
        logger.info(f"Opened database {self._path} with flags {self._flags}.")
        return self

    def close(self):
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        self._created_tables.clear()
        self._savepoint_tables.clear()
        cfg.unlock()
        logger.info(f"Closed database {self._path}.")

    def _throw_if_not_open(self):
        if self._conn is None:
            message = f'Database {self._path} must first be opened, either with open() or in a "with" block'
            logger.error(message)
            raise RuntimeError(message)

    def _execute(self, statement: Statement):
        self._throw_if_not_open()
        try:
            return statement.execute(self._conn.cursor())
        except (sqlite3.Error, OverflowError) as e:
            # OverflowError: an int parameter beyond 64 bits
            logger.error(f"Statement failed: {statement.sql} ({e})")
            raise StorageError(str(e)) from e

    def ensure_table(self, model):
        if model in self._created_tables:
            return
        descriptor = describe(model)
        generator = _SqlGenerator()

        logger.info(f"Initializing table {descriptor.table_name} for {model.__name__}.")
        self._execute(generator._define_entity(descriptor))
        for statement in generator._define_indexes(descriptor):
            self._execute(statement)
        self._created_tables.add(model)
        if self._savepoint_tables:
            self._savepoint_tables[-1].add(model)
        logger.debug(f"Created table {descriptor.table_name} if absent.")

    def create_all(self):
        for model in _get_ordered_models():
            self.ensure_table(model)

    def table_exists(self, model) -> bool:
        descriptor = describe(model)
        cursor = self._execute(Statement(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (descriptor.table_name,)
        ))
        return cursor.fetchone() is not None

    @contextmanager
    def transaction(self):
        """
        Group statements so that they are committed or rolled back together.

        Nested use creates nested savepoints; only the outermost release makes
        the changes durable.
        """
        self._throw_if_not_open()
        self._savepoint_counter += 1
        name = f'{SAVEPOINT_PREFIX}_{self._savepoint_counter}'
        self._execute(Statement(f'SAVEPOINT "{name}"'))
        self._savepoint_tables.append(set())
        logger.debug(f"Savepoint {name} started.")
        try:
            yield self
        except BaseException:
            # tables created since the savepoint are gone after the rollback
            self._created_tables.difference_update(self._savepoint_tables.pop())
            self._execute(Statement(f'ROLLBACK TO SAVEPOINT "{name}"'))
            self._execute(Statement(f'RELEASE SAVEPOINT "{name}"'))
            logger.debug(f"Savepoint {name} rolled back.")
            raise
        else:
            created = self._savepoint_tables.pop()
            if self._savepoint_tables:
                self._savepoint_tables[-1].update(created)
            self._execute(Statement(f'RELEASE SAVEPOINT "{name}"'))
            logger.debug(f"Savepoint {name} released.")

    def dump(self, file_path: str):
        generator = _SqlGenerator()
        with open(file_path, 'w') as file:
            for model in _get_ordered_models():
                descriptor = describe(model)
                file.write(generator._define_entity(descriptor).dump())
                for statement in generator._define_indexes(descriptor):
                    file.write(statement.dump())

                if not self.table_exists(model):
                    continue
                rows = self._execute(generator._select(descriptor)).fetchall()
                for row in rows:
                    file.write(generator._insert(model._from_row(row)).dump())
        logger.info(f"Dumped database {self._path} to {file_path}.")
