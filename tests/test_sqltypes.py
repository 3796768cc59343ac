import pytest
from datetime import date, datetime
from litenom.model import BaseModel
from litenom.repository.repository import Repository
from litenom.schema.field import Field
from litenom.schema.schema import BaseSchema
from litenom.schema.sqltypes import Boolean, Date, Json, Blob, Real, Text, VarChar, Timestamp, _literal


def test_literal():
    assert _literal(None) == 'NULL'
    assert _literal(3) == '3'
    assert _literal(2.5) == '2.5'
    assert _literal("it's") == "'it''s'"
    assert _literal(b'\x01\xff') == "X'01ff'"

def test_varchar():
    assert VarChar(10)._type_string == 'VARCHAR(10)'
    assert VarChar(10)._check_constraint('name') == 'CHECK (length("name") <= 10)'
    assert VarChar(10) == VarChar(10)
    assert VarChar(10) != VarChar(11)
    with pytest.raises(ValueError):
        VarChar(0)

def test_default_expression():
    assert Boolean()._to_sql_expression(True) == '1'
    assert Text()._to_sql_expression('n/a') == "'n/a'"

def test_timestamp_rejects_strings():
    with pytest.raises(TypeError):
        Timestamp()._to_db('2030-01-01')
    with pytest.raises(TypeError):
        Date()._to_db(datetime(2030, 1, 1))

def test_field_requires_sql_type():
    with pytest.raises(TypeError):
        Field('name', str)

def test_column_types_round_trip(database, isolated_registry):
    class MeasurementSchema(BaseSchema):
        fields = [
            Field('active', Boolean()),
            Field('taken_on', Date()),
            Field('payload', Json()),
            Field('raw', Blob()),
            Field('value', Real(), default=1.5),
        ]

    class Measurement(BaseModel):
        schema = MeasurementSchema

        def __init__(self, active=None, taken_on=None, payload=None, raw=None, value=None, id=0):
            super().__init__(id)
            self.active = active
            self.taken_on = taken_on
            self.payload = payload
            self.raw = raw
            self.value = value

    measurements = Repository(Measurement, database)
    stored = Measurement(True, date(2024, 2, 29), {'points': [1, 2]}, b'\x00\x01', 3)
    measurements.save_item(stored)

    loaded = measurements.get_item(stored.id)
    assert loaded.active is True
    assert loaded.taken_on == date(2024, 2, 29)
    assert loaded.payload == {'points': [1, 2]}
    assert loaded.raw == b'\x00\x01'
    assert loaded.value == 3.0
    assert measurements.get_items(active=True)[0].id == stored.id
