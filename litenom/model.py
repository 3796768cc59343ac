from typing import Any, Type, TypeVar
from litenom.constants import IDENTITY_FIELD, NOT_PERSISTED
from litenom.schema.schema_registry import register_model, describe
from litenom.query.query import Query
T = TypeVar("T")


class BaseModel:
    """
    Base class of every persisted entity.

    Subclasses point ``schema`` at their ``BaseSchema`` and accept every column
    attribute as a keyword argument in ``__init__``; rows are materialised by
    calling the constructor with the stored values.
    """
    schema: Type[Any]

    def __init__(self, id: int = NOT_PERSISTED):
        self.id = id or NOT_PERSISTED

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if getattr(cls, 'schema', None) is not None:
            register_model(cls)

    @classmethod
    def query(cls, database):
        return Query(cls, database)

    @classmethod
    def relationships(cls):
        return describe(cls).relationships

    def get_identity(self) -> int:
        return getattr(self, IDENTITY_FIELD, NOT_PERSISTED) or NOT_PERSISTED

    def set_identity(self, identity: int):
        current = self.get_identity()
        if current != NOT_PERSISTED and current != identity:
            raise ValueError(f"{self.__class__.__name__} {current} cannot change its identity to {identity}.")
        setattr(self, IDENTITY_FIELD, identity)

    def _reset_identity(self):
        setattr(self, IDENTITY_FIELD, NOT_PERSISTED)

    @property
    def is_persisted(self) -> bool:
        return self.get_identity() != NOT_PERSISTED

    @classmethod
    def _from_row(cls: Type[T], row) -> T:
        obj_data = {
            field._python_field_name: field._from_db(row[field._db_field_name])
            for field in describe(cls).columns
        }
        return cls(**obj_data)

    def _to_update_dict(self) -> dict[str, Any]:
        return {
            field._db_field_name: field._to_db(getattr(self, field._python_field_name))
            for field in describe(self.__class__).columns
            if hasattr(self, field._python_field_name)
        }

    def _to_insert_dict(self) -> dict[str, Any]:
        data = {}
        for field in describe(self.__class__).columns:
            if getattr(field, 'autoincrement', False) and not getattr(self, field._python_field_name, None):
                continue
            if not hasattr(self, field._python_field_name):
                continue
            data[field._db_field_name] = field._to_db(getattr(self, field._python_field_name))
        return data

    def __repr__(self):
        field_values = {
            field._python_field_name: getattr(self, field._python_field_name, None)
            for field in describe(self.__class__).columns
        }
        return f"<{self.__class__.__name__} {field_values}>"


class JunctionModel(BaseModel):
    """
    One many-to-many association: a pair of foreign keys and nothing else.
    """

    def __init__(self, **keys):
        for field in describe(self.__class__).columns:
            setattr(self, field._python_field_name, keys.pop(field._python_field_name, None))
        if keys:
            raise TypeError(f"{self.__class__.__name__} has no key(s) {sorted(keys)}.")

    def get_identity(self):
        return None

    def set_identity(self, identity):
        raise TypeError(f"Junction {self.__class__.__name__} has no identity of its own.")

    def _key_pair(self) -> tuple:
        return tuple(getattr(self, field._python_field_name) for field in describe(self.__class__).primary_key)
