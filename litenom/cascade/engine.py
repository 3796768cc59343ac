import heapq
import logging
from collections import defaultdict, deque
from contextlib import contextmanager
from enum import Enum, auto
import litenom.config as cfg
from litenom.constants import NOT_PERSISTED, IDENTITY_FIELD
from litenom.model import BaseModel, JunctionModel
from litenom.repository.repository import Repository
from litenom.schema.relationship import CascadeOperation, ManyToMany
from litenom.schema.schema_registry import describe
from litenom.statement import _SqlGenerator
from litenom.cascade.resolver import RelationshipResolver, _ordered_relationships

logger = logging.getLogger(__name__)


class _CascadeState(Enum):
    IDLE = auto()
    RESOLVING = auto()
    ORDERING = auto()
    PERSISTING_CHILD = auto()
    PERSISTING_SELF = auto()
    BACKFILLING_FOREIGN_KEYS = auto()
    PERSISTING_JUNCTIONS = auto()
    READING = auto()
    DELETING_CHILDREN = auto()
    DELETING_SELF = auto()
    DONE = auto()
    FAILED = auto()


class CascadeEngine:
    """
    Inserts, reads and deletes whole entity graphs.

    Every call runs in one store transaction unless ``atomic`` is disabled;
    on failure the store is rolled back and the identities and foreign keys
    assigned in memory during the call are restored. Not thread safe: callers
    sharing an engine across threads must serialize access themselves.
    """

    def __init__(self, database, atomic: bool = None):
        self._database = database
        self._atomic = atomic if atomic is not None else cfg.get(cfg.ATOMIC_CASCADES)
        self._generator = _SqlGenerator()
        self._repositories = {}
        self._state = _CascadeState.IDLE
        self._journal = None

    def get_cascade_state(self):
        return self._state

    def _transition(self, state: _CascadeState):
        if self._state is not state:
            logger.debug(f"Cascade state {self._state.name} -> {state.name}.")
        self._state = state

    def _repository(self, model) -> Repository:
        repository = self._repositories.get(model)
        if repository is None:
            repository = Repository(model, self._database)
            self._repositories[model] = repository
        return repository

    def _check_entity(self, item):
        if not isinstance(item, BaseModel) or isinstance(item, JunctionModel):
            raise TypeError(f"Cascading operations need an entity with an identity, got {type(item).__name__}.")

    @contextmanager
    def _cascade(self, description: str, atomic: bool):
        self._journal = []
        try:
            if atomic:
                with self._database.transaction():
                    yield
            else:
                yield
        except Exception as e:
            self._transition(_CascadeState.FAILED)
            if atomic:
                self._undo()
                # their tables may have been rolled back with the transaction
                self._repositories.clear()
            logger.error(f"Cascading {description} failed{' and was rolled back' if atomic else ''}: {e}")
            raise
        else:
            self._transition(_CascadeState.DONE)
        finally:
            self._journal = None

    def _record(self, entity, attr: str):
        if self._journal is not None:
            self._journal.append((entity, attr, getattr(entity, attr, None)))

    def _undo(self):
        for entity, attr, value in reversed(self._journal):
            setattr(entity, attr, value)
        logger.debug(f"Restored {len(self._journal)} in-memory value(s) after rollback.")

    # insert

    def save_with_children(self, item, recursive: bool = False) -> int:
        self._check_entity(item)
        with self._cascade(f'save of {type(item).__name__}', self._atomic):
            self._transition(_CascadeState.RESOLVING)
            plan = RelationshipResolver(CascadeOperation.INSERT, recursive).resolve(item)

            self._transition(_CascadeState.ORDERING)
            assignments = plan.assignments()
            order = self._order(plan, assignments)

            written = 0
            for index in order:
                self._transition(_CascadeState.PERSISTING_SELF if index == 0 else _CascadeState.PERSISTING_CHILD)
                written += self._persist(plan, index, assignments)

            self._transition(_CascadeState.BACKFILLING_FOREIGN_KEYS)
            for index in order:
                if self._assign_all(plan, index, assignments):
                    logger.debug(f"Backfilling foreign key(s) of {type(plan.node(index).entity).__name__}.")
                    written += self._repository(type(plan.node(index).entity)).save_item(plan.node(index).entity)

            self._transition(_CascadeState.PERSISTING_JUNCTIONS)
            for link in plan.junctions():
                written += self._link(plan.node(link.owner).entity, plan.node(link.peer).entity, link.relationship)
        return written

    def _order(self, plan, assignments) -> list:
        # holders of a foreign key are written after the (new) row they reference
        persisted = [node.index for node in plan.persisted_nodes()]
        dependencies = {index: set() for index in persisted}
        dependents = defaultdict(set)
        for a in assignments:
            if a.holder not in dependencies or a.referenced not in dependencies or a.holder == a.referenced:
                continue
            if plan.node(a.referenced).identity != NOT_PERSISTED:
                continue
            dependencies[a.holder].add(a.referenced)
            dependents[a.referenced].add(a.holder)

        ready = [index for index in persisted if not dependencies[index]]
        heapq.heapify(ready)
        remaining = set(persisted)
        order = []
        while remaining:
            if ready:
                index = heapq.heappop(ready)
                if index not in remaining:
                    continue
            else:
                # cycle: write the earliest discovered row first, backfill later
                index = min(remaining)
                logger.debug(f"Foreign key cycle at {type(plan.node(index).entity).__name__}, deferring its key(s).")
                dependencies[index].clear()

            remaining.discard(index)
            order.append(index)
            for dependent in dependents[index]:
                dependencies[dependent].discard(index)
                if not dependencies[dependent] and dependent in remaining:
                    heapq.heappush(ready, dependent)
        return order

    def _assign(self, plan, assignment) -> bool:
        holder = plan.node(assignment.holder)
        identity = plan.node(assignment.referenced).identity
        if not holder.persist or identity == NOT_PERSISTED:
            return False
        if getattr(holder.entity, assignment.field_name, None) == identity:
            return False
        self._record(holder.entity, assignment.field_name)
        setattr(holder.entity, assignment.field_name, identity)
        return True

    def _assign_all(self, plan, index, assignments) -> bool:
        changed = False
        for assignment in assignments:
            if assignment.holder == index and self._assign(plan, assignment):
                changed = True
        return changed

    def _persist(self, plan, index, assignments) -> int:
        node = plan.node(index)
        changed = self._assign_all(plan, index, assignments)
        if not node.owned and node.identity != NOT_PERSISTED and not changed:
            logger.debug(f"Peer {type(node.entity).__name__} {node.identity} already persisted, linking only.")
            return 0
        if node.identity == NOT_PERSISTED:
            self._record(node.entity, IDENTITY_FIELD)
        return self._repository(type(node.entity)).save_item(node.entity)

    def _link(self, owner, peer, relationship: ManyToMany) -> int:
        if owner.get_identity() == NOT_PERSISTED or peer.get_identity() == NOT_PERSISTED:
            logger.debug(f"Skipping link '{relationship._key}' to an unsaved {type(peer).__name__}.")
            return 0

        junction = relationship.get_through_model()
        self._database.ensure_table(junction)
        keys = {relationship.owner_key: owner.get_identity(), relationship.target_key: peer.get_identity()}
        if junction.query(self._database).filter_by(**keys).count():
            logger.debug(f"Junction {junction.__name__} {keys} already present.")
            return 0
        self._database._execute(self._generator._insert(junction(**keys)))
        return 1

    # read

    def get_all_with_children(self, model, predicate=None, recursive: bool = False, **filters) -> list:
        with self._cascade(f'read of {model.__name__}', atomic=False):
            self._transition(_CascadeState.READING)
            tables = {}
            if not self._has_table(model, tables):
                return []
            roots = self._repository(model).get_items(predicate, **filters)
            self._load_graph(roots, recursive, tables)
        return roots

    def get_with_children(self, model, identity: int, recursive: bool = False):
        with self._cascade(f'read of {model.__name__} {identity}', atomic=False):
            self._transition(_CascadeState.READING)
            tables = {}
            if not self._has_table(model, tables):
                return None
            root = self._repository(model).get_item(identity)
            if root is not None:
                self._load_graph([root], recursive, tables)
        return root

    def _has_table(self, model, tables: dict) -> bool:
        # reads never create tables, a missing table holds no rows
        if model not in tables:
            tables[model] = self._database.table_exists(model)
            if not tables[model]:
                logger.debug(f"No table for {model.__name__} yet, reading it as empty.")
        return tables[model]

    def _load_graph(self, roots, recursive: bool, tables: dict):
        identity_map = {(type(root), root.get_identity()): root for root in roots}
        expanded = set()
        queue = deque(roots)
        while queue:
            entity = queue.popleft()
            key = (type(entity), entity.get_identity())
            if key in expanded:
                continue
            expanded.add(key)

            for rel in _ordered_relationships(describe(type(entity))):
                if not rel.cascades(CascadeOperation.READ):
                    continue
                children = self._load_related(entity, rel, identity_map, tables)
                rel.__set__(entity, children if rel.collection else (children[0] if children else None))
                if recursive:
                    queue.extend(children)

    def _materialise(self, model, identity, identity_map):
        key = (model, identity)
        if key not in identity_map:
            entity = model.query(self._database).get(identity)
            if entity is None:
                return None
            identity_map[key] = entity
        return identity_map[key]

    def _load_related(self, entity, rel, identity_map, tables: dict) -> list:
        target = rel.get_target_model()
        identity = entity.get_identity()
        if not self._has_table(target, tables):
            return []

        if isinstance(rel, ManyToMany):
            junction = rel.get_through_model()
            if not self._has_table(junction, tables):
                return []
            rows = junction.query(self._database).filter_by(**{rel.owner_key: identity}).all()
            peers = (self._materialise(target, getattr(row, rel.target_key), identity_map) for row in rows)
            return [peer for peer in peers if peer is not None]

        if rel.key_on_owner:
            foreign_key = getattr(entity, rel.foreign_key, None)
            if not foreign_key:
                return []
            child = self._materialise(target, foreign_key, identity_map)
            return [child] if child is not None else []

        loaded = target.query(self._database).filter_by(**{rel.foreign_key: identity}).all()
        if not rel.collection:
            loaded = loaded[:1]
        return [identity_map.setdefault((target, child.get_identity()), child) for child in loaded]

    # delete

    def delete_with_children(self, item, recursive: bool = False) -> int:
        self._check_entity(item)
        with self._cascade(f'delete of {type(item).__name__}', self._atomic):
            return self._delete(item, recursive, set())

    def _delete(self, entity, recursive: bool, visited: set) -> int:
        identity = entity.get_identity()
        if identity == NOT_PERSISTED:
            return 0
        key = (type(entity), identity)
        if key in visited:
            return 0
        visited.add(key)

        repository = self._repository(type(entity))
        stored = repository.get_item(identity) or entity
        deleted = 0
        # rows the entity points at go after it, rows pointing at it go before
        after = []

        self._transition(_CascadeState.DELETING_CHILDREN)
        for rel in _ordered_relationships(describe(type(entity))):
            if not rel.cascades(CascadeOperation.DELETE):
                continue
            if isinstance(rel, ManyToMany):
                deleted += self._unlink_all(identity, rel)
                continue

            children = self._stored_children(stored, rel)
            if rel.key_on_owner:
                after.extend(children)
                continue
            for child in children:
                deleted += self._delete_child(child, recursive, visited)

        self._transition(_CascadeState.DELETING_SELF)
        deleted += repository.delete_item(entity)

        self._transition(_CascadeState.DELETING_CHILDREN)
        for child in after:
            deleted += self._delete_child(child, recursive, visited)
        return deleted

    def _delete_child(self, child, recursive: bool, visited: set) -> int:
        if recursive:
            return self._delete(child, recursive, visited)
        key = (type(child), child.get_identity())
        if key in visited:
            return 0
        visited.add(key)
        return self._repository(type(child)).delete_item(child)

    def _stored_children(self, entity, rel) -> list:
        target = rel.get_target_model()
        if rel.key_on_owner:
            foreign_key = getattr(entity, rel.foreign_key, None)
            if not foreign_key:
                return []
            child = self._repository(target).get_item(foreign_key)
            return [child] if child is not None else []
        return self._repository(target).get_items(**{rel.foreign_key: entity.get_identity()})

    def _unlink_all(self, identity: int, rel: ManyToMany) -> int:
        junction = rel.get_through_model()
        self._database.ensure_table(junction)
        removed = junction.query(self._database).filter_by(**{rel.owner_key: identity}).delete()
        logger.debug(f"Removed {removed} {junction.__name__} association(s) of '{rel._key}'.")
        return removed
