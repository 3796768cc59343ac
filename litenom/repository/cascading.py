import logging
from typing import Callable, Optional, Type
from litenom.constants import STATUS_CASCADE_SAVED, STATUS_CASCADE_DELETED, STATUS_FOUND
from litenom.errors import StorageError
from litenom.repository.repository import Repository, T
from litenom.cascade.engine import CascadeEngine

logger = logging.getLogger(__name__)


class CascadingRepository(Repository[T]):
    """
    Repository that can also write, read and delete an entity together with
    the related entities its relationships declare.
    """

    def __init__(self, model: Type[T], database, atomic: bool = None):
        super().__init__(model, database)
        self._engine = CascadeEngine(database, atomic=atomic)

    @property
    def engine(self) -> CascadeEngine:
        return self._engine

    def save_item_with_children(self, item: T, recursive: bool = False) -> int:
        self._check_type(item)
        try:
            count = self._engine.save_with_children(item, recursive)
        except StorageError as e:
            self._fail(e)
            raise
        self.status_message = STATUS_CASCADE_SAVED.format(count=count)
        return count

    def get_items_with_children(self, predicate: Callable[[T], bool] = None, recursive: bool = False, **filters) -> list[T]:
        try:
            result = self._engine.get_all_with_children(self._model, predicate, recursive, **filters)
        except StorageError as e:
            self._fail(e)
            raise
        self.status_message = STATUS_FOUND.format(count=len(result))
        return result

    def get_item_with_children(self, identity: int, recursive: bool = False) -> Optional[T]:
        try:
            result = self._engine.get_with_children(self._model, identity, recursive)
        except StorageError as e:
            self._fail(e)
            raise
        self.status_message = STATUS_FOUND.format(count=1 if result is not None else 0)
        return result

    def delete_item_with_children(self, item: T, recursive: bool = False) -> int:
        self._check_type(item)
        try:
            count = self._engine.delete_with_children(item, recursive)
        except StorageError as e:
            self._fail(e)
            raise
        self.status_message = STATUS_CASCADE_DELETED.format(count=count)
        return count
