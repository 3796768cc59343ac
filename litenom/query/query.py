import logging
from litenom.errors import NotFoundError
from litenom.schema.schema_registry import describe
from litenom.statement import _SqlGenerator

logger = logging.getLogger(__name__)


class Query:
    """
    Lookup of rows of one model.

    ``filter_by`` is translated to SQL; ``where`` takes a Python predicate that
    is evaluated on the materialised entities. Both can be combined. Results
    come back in insertion order.
    """

    def __init__(self, model, database):
        self._model = model
        self._database = database
        self._descriptor = describe(model)
        self._generator = _SqlGenerator()
        self._filters = {}
        self._predicates = []
        self._limit = None

    def filter_by(self, **kwargs):
        for name in kwargs:
            if not self._descriptor.has_column(name):
                raise ValueError(f"{self._model.__name__} has no persisted field '{name}'.")
        self._filters.update(kwargs)
        return self

    def where(self, predicate):
        if not callable(predicate):
            raise TypeError(f"where() expects a callable, got {type(predicate).__name__}.")
        self._predicates.append(predicate)
        return self

    def limit(self, limit: int):
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}.")
        self._limit = limit
        return self

    def _matches(self, entity) -> bool:
        return all(predicate(entity) for predicate in self._predicates)

    def _fetch(self, limit=None):
        # the SQL limit only holds when no python predicate filters afterwards
        sql_limit = limit if not self._predicates else None
        statement = self._generator._select(self._descriptor, self._filters, sql_limit)
        rows = self._database._execute(statement).fetchall()
        entities = [self._model._from_row(row) for row in rows]
        entities = [entity for entity in entities if self._matches(entity)]
        if limit is not None:
            entities = entities[:limit]
        return entities

    def all(self):
        return self._fetch(self._limit)

    def first(self):
        limit = 1 if self._limit is None else min(1, self._limit)
        result = self._fetch(limit)
        return result[0] if result else None

    def get(self, identity):
        identity_field = self._descriptor.identity
        if identity_field is None:
            raise TypeError(f"Junction {self._model.__name__} has no identity to look up.")
        self._filters[identity_field._python_field_name] = identity
        return self.first()

    def one(self):
        result = self.first()
        if result is None:
            message = f"No {self._model.__name__} matches {self._filters or 'the query'}."
            logger.debug(message)
            raise NotFoundError(message)
        return result

    def count(self) -> int:
        # limit is applied after count
        if self._predicates:
            return len(self._fetch())
        statement = self._generator._count(self._descriptor, self._filters)
        return self._database._execute(statement).fetchone()[0]

    def delete(self) -> int:
        if not self._filters and not self._predicates:
            return self._database._execute(self._generator._delete_all(self._descriptor)).rowcount

        if not self._predicates:
            return self._database._execute(self._generator._delete(self._descriptor, self._filters)).rowcount

        deleted = 0
        for entity in self._fetch():
            keys = {f._python_field_name: getattr(entity, f._python_field_name) for f in self._descriptor.primary_key}
            deleted += self._database._execute(self._generator._delete(self._descriptor, keys)).rowcount
        return deleted
