import logging
from litenom.constants import INDEX_PREFIX
from litenom.schema.field import PrimaryKeyField, ForeignKeyField
from litenom.schema.sqltypes import _literal
from litenom.schema.schema_registry import describe

logger = logging.getLogger(__name__)


def _quote(*parts):
    return '.'.join(f'"{part}"' for part in parts if part)


class Statement:
    def __init__(self, sql: str, params: tuple = (), literals: tuple = None):
        self.sql = sql
        self.params = tuple(params)
        # SQL literals of the params, used when dumping
        self._literals = literals

    def execute(self, cursor):
        logger.debug(f"Executing {self.sql} with {self.params}")
        cursor.execute(self.sql, self.params)
        return cursor

    def dump(self) -> str:
        sql = self.sql
        if self.params:
            if self._literals is None:
                raise ValueError(f"Statement cannot be dumped without literal values: {self.sql}")
            for literal in self._literals:
                sql = sql.replace('?', literal, 1)
        return f'{sql};\n'

    def __repr__(self):
        return f"<Statement {self.sql!r} {self.params!r}>"


class _SqlGenerator:
    def _define_entity(self, descriptor) -> Statement:
        column_defs = []
        constraints = []
        inline_primary_key = False

        for field in descriptor.columns:
            col_def = f'"{field._db_field_name}" {field._polytype._type_string}'
            if isinstance(field, PrimaryKeyField) and getattr(field, 'autoincrement', False):
                col_def += ' PRIMARY KEY AUTOINCREMENT'
                inline_primary_key = True
            elif not field.nullable:
                col_def += ' NOT NULL'

            if field.default is not None:
                col_def += f' DEFAULT {field._polytype._to_sql_expression(field.default)}'
            if field.unique and not isinstance(field, PrimaryKeyField):
                col_def += ' UNIQUE'

            check = field._polytype._check_constraint(field._db_field_name)
            if check:
                col_def += f' {check}'
            column_defs.append(col_def)

            if isinstance(field, ForeignKeyField):
                constraints.append(
                    f'FOREIGN KEY ("{field._db_field_name}") '
                    f'REFERENCES "{field.referenced_entity_name}"("{field.referenced_db_field_name}")'
                )

        if not inline_primary_key and descriptor.primary_key:
            keys = ', '.join(_quote(f._db_field_name) for f in descriptor.primary_key)
            constraints.append(f'PRIMARY KEY ({keys})')

        return Statement(
            f'CREATE TABLE IF NOT EXISTS {_quote(descriptor.table_name)} ({", ".join(column_defs + constraints)})'
        )

    def _define_indexes(self, descriptor) -> list:
        statements = []
        for field in descriptor.columns:
            if not field.indexed:
                continue
            index_name = f'{INDEX_PREFIX}_{descriptor.table_name}_{field._db_field_name}'
            statements.append(Statement(
                f'CREATE INDEX IF NOT EXISTS {_quote(index_name)} '
                f'ON {_quote(descriptor.table_name)} ({_quote(field._db_field_name)})'
            ))
        return statements

    def _insert(self, model) -> Statement:
        descriptor = describe(model.__class__)
        data = model._to_insert_dict()

        table = _quote(descriptor.table_name)
        if not data:
            return Statement(f'INSERT INTO {table} DEFAULT VALUES')

        columns = ', '.join(_quote(col) for col in data.keys())
        placeholders = ', '.join(['?'] * len(data))
        literals = tuple(_literal(value) for value in data.values())
        return Statement(f'INSERT INTO {table} ({columns}) VALUES ({placeholders})', tuple(data.values()), literals)

    def _update(self, model) -> Statement:
        descriptor = describe(model.__class__)
        data = model._to_update_dict()
        key_columns = [f._db_field_name for f in descriptor.primary_key]
        key_values = [data.pop(col) for col in key_columns]

        if not data:
            raise ValueError(f"{descriptor.table_name} has no columns to update.")

        set_clause = ', '.join(f'{_quote(col)} = ?' for col in data.keys())
        where_clause = ' AND '.join(f'{_quote(col)} = ?' for col in key_columns)
        return Statement(
            f'UPDATE {_quote(descriptor.table_name)} SET {set_clause} WHERE {where_clause}',
            tuple(data.values()) + tuple(key_values)
        )

    def _where(self, descriptor, filters: dict):
        clauses = []
        params = []
        for python_name, value in filters.items():
            field = descriptor.column(python_name)
            if value is None:
                clauses.append(f'{_quote(field._db_field_name)} IS NULL')
                continue
            clauses.append(f'{_quote(field._db_field_name)} = ?')
            params.append(field._to_db(value))
        if not clauses:
            return '', ()
        return ' WHERE ' + ' AND '.join(clauses), tuple(params)

    def _select(self, descriptor, filters: dict = None, limit: int = None) -> Statement:
        where, params = self._where(descriptor, filters or {})
        sql = f'SELECT * FROM {_quote(descriptor.table_name)}{where} ORDER BY rowid'
        if limit is not None:
            sql += ' LIMIT ?'
            params = params + (int(limit),)
        return Statement(sql, params)

    def _count(self, descriptor, filters: dict = None) -> Statement:
        where, params = self._where(descriptor, filters or {})
        return Statement(f'SELECT COUNT(*) FROM {_quote(descriptor.table_name)}{where}', params)

    def _delete(self, descriptor, filters: dict) -> Statement:
        if not filters:
            raise ValueError(f"Refusing to delete from {descriptor.table_name} without a filter.")
        where, params = self._where(descriptor, filters)
        return Statement(f'DELETE FROM {_quote(descriptor.table_name)}{where}', params)

    def _delete_all(self, descriptor) -> Statement:
        return Statement(f'DELETE FROM {_quote(descriptor.table_name)}')
