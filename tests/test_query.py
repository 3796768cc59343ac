import pytest
from litenom.errors import NotFoundError
from litenom.query.query import Query
from litenom.repository.repository import Repository
from tests.model import Customer, CustomerTag

# test data
customers = [
    ('Ann', '555-0100', 12, 'Main Street 1'),
    ('Bob', '555-0101', 40, 'Main Street 2'),
    ('Cid', '555-0102', 67, None),
    ('Dee', '555-0103', 40, 'Lake Road 9'),
    ('Eve', '555-0104', 19, None),
]

@pytest.fixture
def populated(database):
    repository = Repository(Customer, database)
    for name, phone, age, address in customers:
        repository.save_item(Customer(name, phone, age, address))
    return database

def test_query_all(populated):
    result = Customer.query(populated).all()
    assert [c.name for c in result] == [c[0] for c in customers]

def test_query_all_filtered(populated):
    result = Customer.query(populated).filter_by(age=40).all()
    assert [c.name for c in result] == ['Bob', 'Dee']

def test_query_all_filtered_multiple(populated):
    result = Customer.query(populated).filter_by(age=40, address='Lake Road 9').all()
    assert [c.name for c in result] == ['Dee']

def test_query_filter_by_none(populated):
    result = Customer.query(populated).filter_by(address=None).all()
    assert [c.name for c in result] == ['Cid', 'Eve']

def test_query_filter_by_unknown_field(populated):
    with pytest.raises(ValueError):
        Customer.query(populated).filter_by(nickname='A')

def test_query_filter_by_ignored_field(populated):
    with pytest.raises(ValueError):
        Customer.query(populated).filter_by(is_adult=True)

def test_query_where(populated):
    result = Customer.query(populated).where(lambda c: c.is_adult).all()
    assert [c.name for c in result] == ['Bob', 'Cid', 'Dee', 'Eve']

def test_query_where_and_filter(populated):
    result = Customer.query(populated).filter_by(age=40).where(lambda c: c.name.startswith('D')).all()
    assert [c.name for c in result] == ['Dee']

def test_query_where_requires_callable(populated):
    with pytest.raises(TypeError):
        Customer.query(populated).where('age > 18')

def test_query_first(populated):
    assert Customer.query(populated).first().name == 'Ann'
    assert Customer.query(populated).filter_by(age=99).first() is None

def test_query_get(populated):
    bob = Customer.query(populated).filter_by(name='Bob').first()
    assert Customer.query(populated).get(bob.id).name == 'Bob'
    assert Customer.query(populated).get(4711) is None

def test_query_one(populated):
    assert Customer.query(populated).filter_by(name='Cid').one().age == 67
    with pytest.raises(NotFoundError):
        Customer.query(populated).filter_by(name='Zed').one()

def test_query_limit(populated):
    result = Customer.query(populated).limit(2).all()
    assert [c.name for c in result] == ['Ann', 'Bob']

def test_query_limit_with_predicate(populated):
    result = Customer.query(populated).where(lambda c: c.is_adult).limit(2).all()
    assert [c.name for c in result] == ['Bob', 'Cid']

def test_query_negative_limit(populated):
    with pytest.raises(ValueError):
        Customer.query(populated).limit(-1)

def test_query_count(populated):
    assert Customer.query(populated).count() == len(customers)
    assert Customer.query(populated).filter_by(age=40).count() == 2
    assert Customer.query(populated).where(lambda c: c.age > 50).count() == 1

def test_query_count_ignores_limit(populated):
    assert Customer.query(populated).limit(1).count() == len(customers)

def test_query_delete(populated):
    assert Customer.query(populated).filter_by(age=40).delete() == 2
    assert Customer.query(populated).count() == 3

def test_query_delete_with_predicate(populated):
    assert Customer.query(populated).where(lambda c: not c.is_adult).delete() == 1
    assert Customer.query(populated).filter_by(name='Ann').first() is None

def test_query_delete_all(populated):
    assert Customer.query(populated).delete() == len(customers)
    assert Customer.query(populated).all() == []

def test_query_get_on_junction(populated):
    populated.ensure_table(CustomerTag)
    with pytest.raises(TypeError):
        Query(CustomerTag, populated).get(1)
