import re
import inspect
from enum import Flag, auto
from litenom.errors import SchemaError
from litenom.schema.field import PrimaryKeyField


class CascadeOperation(Flag):
    NONE = 0
    INSERT = auto()
    READ = auto()
    DELETE = auto()
    ALL = INSERT | READ | DELETE


def _snake_case(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


def _type_name(target) -> str:
    return target if isinstance(target, str) else target.__name__


class Relationship:
    """
    Descriptor holding a related entity (or a list of them) on a model instance.

    Setting the attribute keeps the ``back_populates`` side of the related
    objects in sync. Persistence semantics live in the subclasses.
    """
    collection = False

    def __init__(self, target_model=None, back_populates: str = None, cascade: CascadeOperation = CascadeOperation.NONE):
        if not isinstance(cascade, CascadeOperation):
            raise TypeError(f"cascade must be a CascadeOperation, got {cascade!r}.")
        self.target_model = target_model
        self._back_populates = back_populates
        self._cascade = cascade
        self._internal_name = None
        self._owner_class = None
        self._key = None

    def __set_name__(self, owner, name):
        self._internal_name = f'_{name}'
        self._key = name
        self._owner_class = owner

    def cascades(self, operation: CascadeOperation) -> bool:
        return operation in self._cascade

    def get_target_model(self):
        if isinstance(self.target_model, type):
            return self.target_model
        if self.target_model is None:
            raise SchemaError(f"Relationship '{self._key}' on {self._owner_class.__name__} has no target model.")

        from litenom.schema.schema_registry import get_model
        return get_model(self.target_model)

    def _resolved_target(self):
        if isinstance(self.target_model, type):
            return self.target_model
        if self.target_model is None:
            return None

        from litenom.schema.schema_registry import _find_model
        return _find_model(self.target_model)

    def _validate(self):
        raise SchemaError(
            f"Relationship '{self._key}' on {self._owner_class.__name__} must be declared as "
            f"OneToOne, OneToMany or ManyToMany to be persisted."
        )

    def _items(self, value) -> list:
        if value is None:
            return []
        if self.collection:
            return list(value)
        return [value]

    def _check_type(self, value):
        if self.collection and value is not None:
            if isinstance(value, (str, bytes)) or not hasattr(value, '__iter__'):
                raise TypeError(f"'{self._key}' holds a collection, got {type(value).__name__}.")

        target = self._resolved_target()
        if target is None:
            return
        for item in self._items(value):
            if not isinstance(item, target):
                raise TypeError(f"'{self._key}' expects {target.__name__} instances, got {type(item).__name__}.")

    def _peek(self, instance):
        return getattr(instance, self._internal_name, None)

    def __set__(self, instance, value):
        self._check_type(value)
        old_value = self._peek(instance)
        if old_value is value and value is not None:
            return
        if self.collection:
            value = value if isinstance(value, list) else list(value or [])

        setattr(instance, self._internal_name, value)
        if not self._back_populates:
            return

        new_items = self._items(value)
        for old in self._items(old_value):
            if not any(old is new for new in new_items):
                self._unlink(instance, old)
        for new in new_items:
            self._link(instance, new)

    def _link(self, instance, other):
        back = inspect.getattr_static(type(other), self._back_populates, None)
        if isinstance(back, Relationship):
            if back.collection:
                items = back.__get__(other, type(other))
                if not any(item is instance for item in items):
                    items.append(instance)
            elif back._peek(other) is not instance:
                back.__set__(other, instance)
            return

        current = getattr(other, self._back_populates, None)
        if isinstance(current, list):
            if not any(item is instance for item in current):
                current.append(instance)
        elif current is not instance:
            setattr(other, self._back_populates, instance)

    def _unlink(self, instance, other):
        back = inspect.getattr_static(type(other), self._back_populates, None)
        if isinstance(back, Relationship):
            if back.collection:
                items = back.__get__(other, type(other))
                items[:] = [item for item in items if item is not instance]
            elif back._peek(other) is instance:
                back.__set__(other, None)
            return

        current = getattr(other, self._back_populates, None)
        if isinstance(current, list):
            current[:] = [item for item in current if item is not instance]
        elif current is instance:
            setattr(other, self._back_populates, None)

    def __get__(self, instance, owner):
        if instance is None:
            return self
        value = getattr(instance, self._internal_name, None)
        if value is None and self.collection:
            value = []
            setattr(instance, self._internal_name, value)
        return value

    def __repr__(self):
        return f"<{self.__class__.__name__} {self._key} -> {_type_name(self.target_model) if self.target_model else None}>"


def _require_field(model, field_name: str, relationship: Relationship):
    field = model.schema._get_field_map().get(field_name)
    if field is None:
        raise SchemaError(
            f"Relationship '{relationship._key}' on {relationship._owner_class.__name__} references "
            f"foreign key '{field_name}', which does not exist on {model.__name__}."
        )
    if isinstance(field, PrimaryKeyField) and not model.schema._is_junction:
        raise SchemaError(
            f"Relationship '{relationship._key}' on {relationship._owner_class.__name__} uses the primary key "
            f"'{field_name}' of {model.__name__} as its foreign key."
        )
    return field


class OneToOne(Relationship):
    """
    Single related entity.

    By default the owner holds the foreign key (``<target>_id``) to the target's
    identity; with ``key_on_target`` the target holds ``<owner>_id`` instead.
    """

    def __init__(self, target_model=None, foreign_key: str = None, key_on_target: bool = False,
                 back_populates: str = None, cascade: CascadeOperation = CascadeOperation.NONE):
        super().__init__(target_model, back_populates=back_populates, cascade=cascade)
        self._foreign_key = foreign_key
        self.key_on_target = key_on_target

    @property
    def key_on_owner(self) -> bool:
        return not self.key_on_target

    @property
    def foreign_key(self) -> str:
        if self._foreign_key:
            return self._foreign_key
        if self.key_on_target:
            return f'{_snake_case(self._owner_class.__name__)}_id'
        return f'{_snake_case(_type_name(self.target_model))}_id'

    def _validate(self):
        target = self.get_target_model()
        holder = target if self.key_on_target else self._owner_class
        _require_field(holder, self.foreign_key, self)


class OneToMany(Relationship):
    collection = True
    key_on_owner = False

    def __init__(self, target_model=None, foreign_key: str = None,
                 back_populates: str = None, cascade: CascadeOperation = CascadeOperation.NONE):
        super().__init__(target_model, back_populates=back_populates, cascade=cascade)
        self._foreign_key = foreign_key

    @property
    def foreign_key(self) -> str:
        return self._foreign_key or f'{_snake_case(self._owner_class.__name__)}_id'

    def _validate(self):
        _require_field(self.get_target_model(), self.foreign_key, self)


class ManyToMany(Relationship):
    collection = True
    key_on_owner = False

    def __init__(self, target_model=None, through=None, owner_key: str = None, target_key: str = None,
                 back_populates: str = None, cascade: CascadeOperation = CascadeOperation.NONE):
        super().__init__(target_model, back_populates=back_populates, cascade=cascade)
        self.through = through
        self._owner_key = owner_key
        self._target_key = target_key

    @property
    def owner_key(self) -> str:
        return self._owner_key or f'{_snake_case(self._owner_class.__name__)}_id'

    @property
    def target_key(self) -> str:
        return self._target_key or f'{_snake_case(_type_name(self.target_model))}_id'

    def get_through_model(self):
        if isinstance(self.through, type):
            return self.through
        if self.through is None:
            raise SchemaError(f"Many-to-many relationship '{self._key}' on {self._owner_class.__name__} needs a junction model.")

        from litenom.schema.schema_registry import get_model
        return get_model(self.through)

    def _validate(self):
        self.get_target_model()
        junction = self.get_through_model()
        if not getattr(junction, 'schema', None) or not junction.schema._is_junction:
            raise SchemaError(
                f"Relationship '{self._key}' on {self._owner_class.__name__} goes through "
                f"{junction.__name__}, which does not use a JunctionSchema."
            )
        if self.owner_key == self.target_key:
            raise SchemaError(
                f"Relationship '{self._key}' on {self._owner_class.__name__} needs distinct owner and target keys, "
                f"both are '{self.owner_key}'."
            )
        _require_field(junction, self.owner_key, self)
        _require_field(junction, self.target_key, self)
