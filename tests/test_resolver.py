import pytest
from datetime import datetime
from litenom.cascade.resolver import resolve, RelationshipResolver, ForeignKeyAssignment
from litenom.schema.relationship import CascadeOperation
from litenom.schema.schema_registry import describe
from tests.model import Customer, Passport, Order, Tag, Department, Employee, Person


def _customer_graph():
    ann = Customer('Ann')
    ann.passport = Passport(datetime(2030, 1, 1))
    ann.orders = [Order('book'), Order('lamp')]
    ann.tags = [Tag('vip'), Tag('new')]
    return ann

def test_resolve_arena_order():
    ann = _customer_graph()
    plan = resolve(ann)

    entities = [node.entity for node in plan.nodes]
    assert entities == [ann, ann.passport, *ann.orders, *ann.tags]
    assert plan.root.entity is ann
    assert [node.depth for node in plan.nodes] == [0, 1, 1, 1, 1, 1]

def test_resolve_back_references_are_single_nodes():
    ann = _customer_graph()
    plan = resolve(ann)

    assert len(plan.nodes) == 6
    # passport and orders point back at the root
    back_edges = [edge for edge in plan.edges if edge.child == 0]
    assert len(back_edges) == 3
    assert not any(edge.cascaded for edge in back_edges)

def test_resolve_persist_and_owned():
    ann = _customer_graph()
    plan = resolve(ann)

    assert all(node.persist for node in plan.nodes)
    assert [node.owned for node in plan.nodes] == [True, True, True, True, False, False]
    assert len(plan.persisted_nodes()) == 6

def test_resolve_assignments():
    ann = _customer_graph()
    plan = resolve(ann)

    assert plan.assignments() == [
        ForeignKeyAssignment(0, 'passport_id', 1),
        ForeignKeyAssignment(2, 'customer_id', 0),
        ForeignKeyAssignment(3, 'customer_id', 0),
    ]

def test_resolve_junctions():
    ann = _customer_graph()
    plan = resolve(ann)

    links = plan.junctions()
    assert [(link.owner, link.peer) for link in links] == [(0, 4), (0, 5)]
    assert all(link.relationship is Customer.tags for link in links)

def test_resolve_non_recursive_only_expands_root():
    ann = _customer_graph()
    plan = resolve(ann, recursive=False)

    assert len(plan.nodes) == 6
    assert all(edge.parent == 0 for edge in plan.edges)
    assert [edge.child for edge in plan.children(0)] == [1, 2, 3, 4, 5]

def test_resolve_not_cascaded_relationship():
    ada = Employee('ada')
    ada.department = Department('R&D')
    plan = RelationshipResolver(CascadeOperation.DELETE).resolve(ada)

    assert len(plan.nodes) == 2
    assert plan.nodes[0].persist
    assert not plan.nodes[1].persist
    assert not plan.edges[0].cascaded

def test_resolve_shared_peer():
    department = Department('R&D')
    department.employees = [Employee('ada'), Employee('grace')]
    plan = resolve(department)

    assert len(plan.nodes) == 3
    assert plan.assignments() == [
        ForeignKeyAssignment(1, 'department_id', 0),
        ForeignKeyAssignment(2, 'department_id', 0),
    ]

def test_resolve_cycle_terminates():
    a, b = Person('a'), Person('b')
    a.spouse = b
    b.spouse = a
    plan = resolve(a)

    assert [node.entity for node in plan.nodes] == [a, b]
    assert len(plan.edges) == 2
    assert plan.assignments() == [
        ForeignKeyAssignment(0, 'spouse_id', 1),
        ForeignKeyAssignment(1, 'spouse_id', 0),
    ]

def test_resolve_self_reference():
    a = Person('a')
    a.spouse = a
    plan = resolve(a)

    assert len(plan.nodes) == 1
    assert plan.assignments() == [ForeignKeyAssignment(0, 'spouse_id', 0)]

def test_resolve_distinct_unsaved_entities_stay_distinct():
    department = Department('R&D')
    department.employees = [Employee('ada'), Employee('ada')]
    plan = resolve(department)
    assert len(plan.nodes) == 3

def test_resolve_same_identity_is_one_node():
    department = Department('R&D')
    department.employees = [Employee('ada', id=7), Employee('ada', id=7)]
    plan = resolve(department)
    assert len(plan.nodes) == 2

def test_resolve_schema_must_describe_item():
    with pytest.raises(ValueError):
        resolve(Customer('Ann'), describe(Order))
    assert resolve(Customer('Ann'), describe(Customer)).root.schema is describe(Customer)
