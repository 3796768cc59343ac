import json
from datetime import datetime, date


def _literal(db_value) -> str:
    if db_value is None:
        return 'NULL'
    if isinstance(db_value, (int, float)):
        return str(db_value)
    if isinstance(db_value, bytes):
        return f"X'{db_value.hex()}'"
    escaped = str(db_value).replace("'", "''")
    return f"'{escaped}'"


class SqlType:
    _type_string: str = None

    def _to_db(self, value):
        return value

    def _from_db(self, value):
        return value

    def _to_sql_expression(self, value) -> str:
        return _literal(self._to_db(value))

    def _check_constraint(self, column_name: str):
        return None

    def __eq__(self, other):
        return type(self) is type(other) and self.__dict__ == other.__dict__

    def __hash__(self):
        return hash((type(self), tuple(sorted(self.__dict__.items()))))

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class Integer(SqlType):
    _type_string = 'INTEGER'

    def _to_db(self, value):
        if value is None:
            return None
        return int(value)


class Real(SqlType):
    _type_string = 'REAL'

    def _to_db(self, value):
        if value is None:
            return None
        return float(value)


class Text(SqlType):
    _type_string = 'TEXT'


class VarChar(Text):
    def __init__(self, length: int):
        if length <= 0:
            raise ValueError(f"VarChar length must be positive, got {length}.")
        self.length = length
        self._type_string = f'VARCHAR({length})'

    def _check_constraint(self, column_name: str):
        return f'CHECK (length("{column_name}") <= {self.length})'

    def __repr__(self):
        return f"VarChar({self.length})"


class Boolean(SqlType):
    _type_string = 'INTEGER'

    def _to_db(self, value):
        if value is None:
            return None
        return 1 if value else 0

    def _from_db(self, value):
        if value is None:
            return None
        return bool(value)


class Timestamp(SqlType):
    _type_string = 'TEXT'

    def _to_db(self, value):
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.isoformat()
        raise TypeError(f"Timestamp columns expect datetime values, got {type(value).__name__}.")

    def _from_db(self, value):
        if value is None:
            return None
        return datetime.fromisoformat(value)


class Date(SqlType):
    _type_string = 'TEXT'

    def _to_db(self, value):
        if value is None:
            return None
        if isinstance(value, date) and not isinstance(value, datetime):
            return value.isoformat()
        raise TypeError(f"Date columns expect date values, got {type(value).__name__}.")

    def _from_db(self, value):
        if value is None:
            return None
        return date.fromisoformat(value)


class Json(SqlType):
    _type_string = 'TEXT'

    def _to_db(self, value):
        if value is None:
            return None
        return json.dumps(value)

    def _from_db(self, value):
        if value is None:
            return None
        return json.loads(value)


class Blob(SqlType):
    _type_string = 'BLOB'

    def _to_db(self, value):
        if value is None:
            return None
        return bytes(value)
