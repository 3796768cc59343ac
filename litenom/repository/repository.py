import logging
from typing import Callable, Generic, Optional, Type, TypeVar
from litenom.constants import (
    NOT_PERSISTED, STATUS_INSERTED, STATUS_UPDATED, STATUS_DELETED, STATUS_FOUND, STATUS_ERROR
)
from litenom.errors import StorageError, SchemaError
from litenom.model import BaseModel
from litenom.query.query import Query
from litenom.schema.schema_registry import describe
from litenom.statement import _SqlGenerator

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class Repository(Generic[T]):
    """
    Typed single-table access for one model. Never cascades.

    Store failures are raised as ``StorageError``; the last outcome is kept in
    ``status_message`` for display.
    """

    def __init__(self, model: Type[T], database):
        database._throw_if_not_open()
        self._model = model
        self._database = database
        self._descriptor = describe(model)
        if self._descriptor.is_junction:
            raise SchemaError(f"Junction {model.__name__} has no identity and cannot back a repository.")

        self._generator = _SqlGenerator()
        self.status_message: Optional[str] = None
        database.ensure_table(model)

    @property
    def model(self) -> Type[T]:
        return self._model

    def query(self) -> Query:
        return Query(self._model, self._database)

    def _fail(self, error: StorageError):
        self.status_message = STATUS_ERROR.format(message=error)
        logger.error(f"{self._model.__name__} repository: {self.status_message}")

    def _check_type(self, item):
        if not isinstance(item, self._model):
            raise TypeError(f"Repository of {self._model.__name__} cannot handle {type(item).__name__}.")

    def save_item(self, item: T) -> int:
        self._check_type(item)
        try:
            if item.get_identity() != NOT_PERSISTED:
                count = self._database._execute(self._generator._update(item)).rowcount
                self.status_message = STATUS_UPDATED.format(count=count)
            else:
                cursor = self._database._execute(self._generator._insert(item))
                item.set_identity(cursor.lastrowid)
                count = cursor.rowcount
                self.status_message = STATUS_INSERTED.format(count=count)
        except StorageError as e:
            self._fail(e)
            raise
        logger.debug(f"Saved {self._model.__name__} {item.get_identity()}: {self.status_message}.")
        return count

    def _build_query(self, predicate, filters) -> Query:
        query = self.query()
        if filters:
            query.filter_by(**filters)
        if predicate is not None:
            query.where(predicate)
        return query

    def get_item(self, key=None, **filters) -> Optional[T]:
        """
        Return the first matching entity or ``None``.

        ``key`` is either an identity or a predicate over the entity; keyword
        arguments filter on column equality.
        """
        if key is not None and not callable(key) and not isinstance(key, int):
            raise TypeError(f"get_item expects an identity or a predicate, got {type(key).__name__}.")
        try:
            if isinstance(key, int):
                query = self._build_query(None, filters)
                result = query.get(key)
            else:
                result = self._build_query(key, filters).first()
        except StorageError as e:
            self._fail(e)
            raise
        self.status_message = STATUS_FOUND.format(count=1 if result is not None else 0)
        return result

    def get_items(self, predicate: Callable[[T], bool] = None, **filters) -> list[T]:
        try:
            result = self._build_query(predicate, filters).all()
        except StorageError as e:
            self._fail(e)
            raise
        self.status_message = STATUS_FOUND.format(count=len(result))
        return result

    def delete_item(self, item: T) -> int:
        self._check_type(item)
        identity = item.get_identity()
        if identity == NOT_PERSISTED:
            self.status_message = STATUS_DELETED.format(count=0)
            return 0

        key = {self._descriptor.identity._python_field_name: identity}
        try:
            count = self._database._execute(self._generator._delete(self._descriptor, key)).rowcount
        except StorageError as e:
            self._fail(e)
            raise
        self.status_message = STATUS_DELETED.format(count=count)
        logger.debug(f"Deleted {self._model.__name__} {identity}: {self.status_message}.")
        return count
