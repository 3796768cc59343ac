from dataclasses import dataclass
from typing import Any
from litenom.schema.field import Field, PrimaryKeyField, ForeignKeyField
from litenom.schema.sqltypes import Integer
from litenom.constants import IDENTITY_FIELD, IDENTITY_COLUMN


class BaseSchema:
    entity_name: str = None
    fields: list = []
    ignored: list = []
    _base_fields = [
        PrimaryKeyField(IDENTITY_FIELD, Integer(), autoincrement=True, db_field_name=IDENTITY_COLUMN)
    ]
    _is_junction = False

    @classmethod
    def _get_fields(cls):
        return cls._base_fields + list(cls.fields)

    @classmethod
    def _get_field_map(cls):
        # cached per schema class, not inherited from a parent's cache
        if '_type_map' not in cls.__dict__:
            cls._type_map = {field._python_field_name: field for field in cls._get_fields()}
        return cls._type_map

    @classmethod
    def _get_primary_key_fields(cls):
        return [field for field in cls._get_fields() if isinstance(field, PrimaryKeyField)]


class JunctionSchema(BaseSchema):
    """
    Schema of a many-to-many junction table.

    A junction declares exactly two foreign keys and no identity of its own;
    the pair is the primary key, so one row stands for one association.
    """
    _base_fields = []
    _is_junction = True

    @classmethod
    def _get_primary_key_fields(cls):
        return [field for field in cls._get_fields() if isinstance(field, ForeignKeyField)]


@dataclass(frozen=True)
class TableSchema:
    model: Any
    table_name: str
    columns: tuple
    primary_key: tuple
    relationships: tuple
    ignored: frozenset
    is_junction: bool = False

    def column(self, python_name: str) -> Field:
        for field in self.columns:
            if field._python_field_name == python_name:
                return field
        raise KeyError(f"{self.table_name} has no column for attribute '{python_name}'.")

    def has_column(self, python_name: str) -> bool:
        return any(field._python_field_name == python_name for field in self.columns)

    @property
    def identity(self) -> Field:
        if self.is_junction:
            return None
        return self.primary_key[0]

    @property
    def foreign_keys(self) -> tuple:
        return tuple(field for field in self.columns if isinstance(field, ForeignKeyField))

    def relationship(self, name: str):
        for rel in self.relationships:
            if rel._key == name:
                return rel
        raise KeyError(f"{self.table_name} has no relationship '{name}'.")
