from litenom.schema.sqltypes import SqlType, Integer
from litenom.constants import IDENTITY_COLUMN, FOREIGN_KEY_SUFFIX


class Field:
    def __init__(
            self,
            python_field_name: str,
            polytype,
            nullable: bool = True,
            default=None,
            unique: bool = False,
            indexed: bool = False,
            db_field_name: str = None
        ):
        # accept both Text and Text()
        if isinstance(polytype, type) and issubclass(polytype, SqlType):
            polytype = polytype()
        if not isinstance(polytype, SqlType):
            raise TypeError(f"Field '{python_field_name}' needs a SqlType, got {polytype!r}.")

        self._python_field_name = python_field_name
        self._db_field_name = db_field_name or python_field_name
        self._polytype = polytype
        self.nullable = nullable
        self.default = default
        self.unique = unique
        self.indexed = indexed

    def _to_db(self, value):
        return self._polytype._to_db(value)

    def _from_db(self, value):
        return self._polytype._from_db(value)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self._python_field_name} -> {self._db_field_name} {self._polytype!r}>"


class PrimaryKeyField(Field):
    def __init__(self, python_field_name: str, polytype, autoincrement: bool = False, db_field_name: str = None):
        super().__init__(python_field_name, polytype, nullable=False, unique=True, db_field_name=db_field_name)
        if autoincrement and not isinstance(self._polytype, Integer):
            raise TypeError(f"Only integer primary keys can autoincrement ('{python_field_name}').")
        self.autoincrement = autoincrement


class ForeignKeyField(Field):
    """
    Column holding the identity of a row in another (or the same) table.

    The column name follows the ``<ReferencedModel>Id`` convention unless
    ``db_field_name`` is given. The model is looked up by its table name once
    it is registered; until then the table name stands in for it.
    """

    def __init__(
            self,
            python_field_name: str,
            polytype=Integer,
            referenced_entity_name: str = None,
            referenced_db_field_name: str = IDENTITY_COLUMN,
            nullable: bool = True,
            indexed: bool = False,
            db_field_name: str = None
        ):
        if not referenced_entity_name:
            raise ValueError(f"Foreign key '{python_field_name}' must name the referenced entity.")
        self.referenced_entity_name = referenced_entity_name
        self.referenced_db_field_name = referenced_db_field_name
        super().__init__(
            python_field_name,
            polytype,
            nullable=nullable,
            indexed=indexed,
            db_field_name=db_field_name
        )
        # Field falls back to the python name, a foreign key to the referenced model
        self._explicit_db_field_name = db_field_name

    @property
    def _db_field_name(self) -> str:
        if self._explicit_db_field_name:
            return self._explicit_db_field_name
        if self._resolved_db_field_name:
            return self._resolved_db_field_name

        from litenom.schema.schema_registry import _find_model_by_table
        model = _find_model_by_table(self.referenced_entity_name)
        if model is None:
            return f'{self.referenced_entity_name}{FOREIGN_KEY_SUFFIX}'
        self._resolved_db_field_name = f'{model.__name__}{FOREIGN_KEY_SUFFIX}'
        return self._resolved_db_field_name

    @_db_field_name.setter
    def _db_field_name(self, value: str):
        self._explicit_db_field_name = value
        self._resolved_db_field_name = None
