import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any
from litenom.constants import NOT_PERSISTED
from litenom.schema.relationship import CascadeOperation, ManyToMany, Relationship
from litenom.schema.schema import TableSchema
from litenom.schema.schema_registry import describe

logger = logging.getLogger(__name__)


@dataclass
class PlanNode:
    index: int
    entity: Any
    schema: TableSchema
    depth: int
    # written by the cascade, as opposed to only linked to
    persist: bool = False
    # reached through a one-to-one/one-to-many edge (or the root); peers reached
    # only through many-to-many edges are inserted if absent, never updated
    owned: bool = False
    expanded: bool = False

    @property
    def identity(self) -> int:
        return self.entity.get_identity()


@dataclass
class PlanEdge:
    relationship: Relationship
    parent: int
    child: int
    cascaded: bool


@dataclass(frozen=True)
class ForeignKeyAssignment:
    holder: int
    field_name: str
    referenced: int


@dataclass(frozen=True)
class JunctionLink:
    relationship: ManyToMany
    owner: int
    peer: int


@dataclass
class RelationshipPlan:
    """
    Every entity reachable from a root, stored once in an arena.

    Edges refer to nodes by their arena index, so an entity reachable through
    several relationships (a back-reference, a shared peer) is a single node.
    """
    nodes: list = field(default_factory=list)
    edges: list = field(default_factory=list)

    @property
    def root(self) -> PlanNode:
        return self.nodes[0]

    def node(self, index: int) -> PlanNode:
        return self.nodes[index]

    def children(self, index: int) -> list:
        return [edge for edge in self.edges if edge.parent == index]

    def persisted_nodes(self) -> list:
        return [node for node in self.nodes if node.persist]

    def assignments(self) -> list:
        result = []
        for edge in self.edges:
            rel = edge.relationship
            if isinstance(rel, ManyToMany):
                continue
            if rel.key_on_owner:
                assignment = ForeignKeyAssignment(edge.parent, rel.foreign_key, edge.child)
            else:
                assignment = ForeignKeyAssignment(edge.child, rel.foreign_key, edge.parent)
            if assignment not in result:
                result.append(assignment)
        return result

    def junctions(self) -> list:
        result = []
        for edge in self.edges:
            if not isinstance(edge.relationship, ManyToMany):
                continue
            link = JunctionLink(edge.relationship, edge.parent, edge.child)
            if link not in result:
                result.append(link)
        return result


def _identity_key(entity):
    identity = entity.get_identity()
    if identity != NOT_PERSISTED:
        return (type(entity), identity)
    return (type(entity), 'transient', id(entity))


def _ordered_relationships(schema: TableSchema):
    # single-valued relationships before collections, declaration order otherwise
    singles = [rel for rel in schema.relationships if not rel.collection]
    collections = [rel for rel in schema.relationships if rel.collection]
    return singles + collections


class RelationshipResolver:
    def __init__(self, operation: CascadeOperation = CascadeOperation.INSERT, recursive: bool = True):
        self._operation = operation
        self._recursive = recursive

    def resolve(self, item, schema: TableSchema = None) -> RelationshipPlan:
        plan = RelationshipPlan()
        index_by_key = {}

        def lookup(entity, depth):
            key = _identity_key(entity)
            index = index_by_key.get(key)
            if index is not None:
                return plan.nodes[index]
            node = PlanNode(len(plan.nodes), entity, describe(type(entity)), depth)
            plan.nodes.append(node)
            index_by_key[key] = node.index
            return node

        root = lookup(item, 0)
        if schema is not None and schema is not root.schema:
            raise ValueError(f"Schema of {schema.table_name} does not describe {type(item).__name__}.")
        root.persist = True
        root.owned = True

        queue = deque([root.index])
        while queue:
            node = plan.nodes[queue.popleft()]
            if node.expanded:
                continue
            node.expanded = True
            if not self._recursive and node.depth >= 1:
                continue

            for rel in _ordered_relationships(node.schema):
                cascaded = rel.cascades(self._operation)
                for child in rel._items(rel._peek(node.entity)):
                    child_node = lookup(child, node.depth + 1)
                    plan.edges.append(PlanEdge(rel, node.index, child_node.index, cascaded))
                    if not cascaded:
                        continue
                    if not isinstance(rel, ManyToMany):
                        child_node.owned = True
                    if not child_node.persist:
                        child_node.persist = True
                        queue.append(child_node.index)

        logger.debug(
            f"Resolved {type(item).__name__} into {len(plan.nodes)} node(s) and {len(plan.edges)} edge(s) "
            f"for {self._operation}."
        )
        return plan


def resolve(item, schema: TableSchema = None, recursive: bool = True,
            operation: CascadeOperation = CascadeOperation.INSERT) -> RelationshipPlan:
    return RelationshipResolver(operation, recursive).resolve(item, schema)
