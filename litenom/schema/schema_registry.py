import inspect
import logging
from collections import defaultdict, deque
from litenom.errors import SchemaError
from litenom.schema.schema import BaseSchema, TableSchema
from litenom.schema.relationship import Relationship

logger = logging.getLogger(__name__)

_registered_models = {}
_descriptors = {}
_sorted_models = None


def register_model(model):
    global _sorted_models
    name = model.__name__
    previous = _registered_models.get(name)
    if previous is not None and previous is not model:
        logger.debug(f"Model name {name} re-registered, replacing {previous.__module__}.{name}.")
    _registered_models[name] = model
    _sorted_models = None


def _get_registered_models():
    return list(_registered_models.values())


def _find_model(name: str):
    return _registered_models.get(name)


def _find_model_by_table(table_name: str):
    for model in _registered_models.values():
        schema = getattr(model, 'schema', None)
        if (getattr(schema, 'entity_name', None) or model.__name__) == table_name:
            return model
    return None


def get_model(name: str):
    model = _find_model(name)
    if model is None:
        raise SchemaError(f"No model named '{name}' is registered.")
    return model


def _collect_relationships(model):
    # base classes first, declaration order within a class
    relationships = {}
    for klass in reversed(model.__mro__):
        for attr in vars(klass):
            rel = inspect.getattr_static(klass, attr)
            if isinstance(rel, Relationship):
                relationships.pop(attr, None)
                relationships[attr] = rel
    return list(relationships.values())


def describe(model) -> TableSchema:
    """
    Derive the table descriptor of a model class.

    The result is validated once and cached for the lifetime of the process;
    later changes to the declarations are not picked up.
    """
    descriptor = _descriptors.get(model)
    if descriptor is not None:
        return descriptor

    schema = getattr(model, 'schema', None)
    if schema is None or not (isinstance(schema, BaseSchema) or (isinstance(schema, type) and issubclass(schema, BaseSchema))):
        raise SchemaError(f"{model.__name__} does not declare a BaseSchema.")

    table_name = schema.entity_name or model.__name__
    columns = tuple(schema._get_fields())
    primary_key = tuple(schema._get_primary_key_fields())
    ignored = frozenset(schema.ignored)
    relationships = tuple(_collect_relationships(model))

    _validate_columns(model, table_name, columns, primary_key, ignored, schema._is_junction)
    _validate_relationships(model, columns, ignored, relationships, schema._is_junction)

    descriptor = TableSchema(
        model=model,
        table_name=table_name,
        columns=columns,
        primary_key=primary_key,
        relationships=relationships,
        ignored=ignored,
        is_junction=schema._is_junction
    )
    _descriptors[model] = descriptor
    logger.debug(f"Described {model.__name__} as table {table_name} with {len(columns)} column(s) and {len(relationships)} relationship(s).")
    return descriptor


def _validate_columns(model, table_name, columns, primary_key, ignored, is_junction):
    python_names = [field._python_field_name for field in columns]
    db_names = [field._db_field_name for field in columns]
    for names, kind in ((python_names, 'attribute'), (db_names, 'column')):
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise SchemaError(f"{model.__name__} declares the {kind} name(s) {sorted(duplicates)} more than once.")

    clashing = ignored.intersection(python_names)
    if clashing:
        raise SchemaError(f"{model.__name__} marks persisted field(s) {sorted(clashing)} as ignored.")

    if is_junction:
        if len(columns) != 2 or len(primary_key) != 2:
            raise SchemaError(f"Junction {model.__name__} must declare exactly two foreign keys.")
    elif len(primary_key) != 1:
        raise SchemaError(f"Table {table_name} must have exactly one primary key, found {len(primary_key)}.")


def _validate_relationships(model, columns, ignored, relationships, is_junction):
    if is_junction and relationships:
        raise SchemaError(f"Junction {model.__name__} cannot declare relationships.")

    column_names = {field._python_field_name for field in columns}
    for rel in relationships:
        if rel._key in column_names:
            raise SchemaError(f"Relationship '{rel._key}' on {model.__name__} conflicts with a column of the same name.")
        if rel._key in ignored:
            raise SchemaError(f"Relationship '{rel._key}' on {model.__name__} is also marked as ignored.")
        rel._validate()


def _get_ordered_models():
    global _sorted_models
    if _sorted_models is not None:
        return _sorted_models
    _sorted_models = _sort_by_foreign_key(_get_registered_models())
    return _sorted_models


def _sort_by_foreign_key(models):
    descriptors = {describe(m).table_name: describe(m) for m in models}
    dependencies = defaultdict(set)
    reverse_deps = defaultdict(set)
    for name, descriptor in descriptors.items():
        for f in descriptor.foreign_keys:
            referenced = f.referenced_entity_name
            if referenced == name or referenced not in descriptors:
                continue
            dependencies[name].add(referenced)
            reverse_deps[referenced].add(name)

    q = deque(sorted(name for name in descriptors if not dependencies[name]))
    ordered_names = []
    while q:
        table = q.popleft()
        ordered_names.append(table)
        for child in sorted(reverse_deps[table]):
            dependencies[child].discard(table)
            if not dependencies[child]:
                q.append(child)

    if len(ordered_names) != len(descriptors):
        remaining = sorted(set(descriptors) - set(ordered_names))
        logger.warning(f"Circular foreign key dependency between {remaining}, appending them in name order.")
        ordered_names.extend(remaining)
    return [descriptors[name].model for name in ordered_names]
