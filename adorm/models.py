"""
adorm entity base classes and metaclass.

This module provides :py:class:`ADObject`, the base class for every kind of
directory entry, and the :py:class:`ADObjectBase` metaclass that wires up
fields, ``Meta`` options and the ``objects`` manager the way Django does for
its models.

Entities are read-mostly snapshots of one search result row.  They are only
created by :py:class:`~adorm.managers.EntityManager` find operations; the
store stays the system of record.
"""

import enum
import inspect
import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, cast

from .adapters import to_db_values
from .attributes import AttributeNames
from .exceptions import NotFoundError
from .fields import (
    CharField,
    CharListField,
    Field,
    GeneralizedTimeField,
    GuidField,
    RelatedObjectField,
)
from .managers import EntityManager
from .options import Options
from .typing import DirectoryOperator, LDAPData, RawValue

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger("adorm")


class EntityKind(enum.Enum):
    """The tag that says which kind of directory entry an entity is."""

    COMPUTER = "computer"
    USER = "user"
    GROUP = "group"
    ORGANIZATIONAL_UNIT = "organizationalUnit"


class ADObjectBase(type):
    """
    Metaclass for directory entities.

    Builds :py:class:`~adorm.options.Options` from the ``Meta`` class,
    registers the fields, attaches the ``objects`` manager and records every
    concrete kind in :py:attr:`registry` so that rows can be materialized as
    the right class.
    """

    #: Entity classes by kind, in the order they were declared.
    registry: ClassVar[dict[EntityKind, type["ADObject"]]] = {}

    def __new__(cls, name, bases, attrs, **kwargs):
        super_new = super().__new__

        # Create the class.
        module = attrs.pop("__module__")
        new_attrs = {"__module__": module}
        classcell = attrs.pop("__classcell__", None)
        if classcell is not None:
            new_attrs["__classcell__"] = classcell
        meta = attrs.pop("Meta", None)
        # Plain attributes and methods go straight into the class; fields and
        # managers are added after _meta exists.
        contributable_attrs = {}
        for obj_name, obj in attrs.items():
            if not inspect.isclass(obj) and hasattr(obj, "contribute_to_class"):
                contributable_attrs[obj_name] = obj
            else:
                new_attrs[obj_name] = obj
        new_class = super_new(cls, name, bases, new_attrs, **kwargs)

        new_class.add_to_class("_meta", Options(meta))

        # This is where the fields get registered
        for obj_name, obj in contributable_attrs.items():
            new_class.add_to_class(obj_name, obj)

        new_class._prepare()
        return new_class

    def add_to_class(cls, name: str, value: Any) -> None:
        """
        Add an attribute to the class, calling contribute_to_class if available.
        """
        if not inspect.isclass(value) and hasattr(value, "contribute_to_class"):
            value.contribute_to_class(cls, name)
        else:
            setattr(cls, name, value)

    def _prepare(cls) -> None:
        opts = cast("Options", cls._meta)  # type: ignore[attr-defined]
        if cls.__doc__ is None:
            cls.__doc__ = "{}({})".format(
                cls.__name__, ", ".join(cast("str", f.name) for f in opts.fields)
            )
        if "objects" in opts.fields_map:
            msg = (
                f"{cls.__name__} must not have a field named 'objects'; that "
                "name is reserved for the manager."
            )
            raise ValueError(msg)
        manager = opts.manager_class()
        cls.add_to_class("objects", manager)
        # Subclasses of a registered kind share its tag; rows are still
        # materialized as the class that declared the kind.
        if opts.kind is not None:
            ADObjectBase.registry.setdefault(opts.kind, cast("type[ADObject]", cls))

    def for_object_classes(cls, object_classes: "Iterable[str]") -> type["ADObject"]:
        """
        Pick the most specific registered entity class for an objectClass
        value list.  The store lists a structural class chain from most
        general to most specific (``top``, ``person``, ``organizationalPerson``,
        ``user``, ``computer``), so we try the values from the end.

        Returns:
            The matching entity class, or :py:class:`ADObject` if no registered
            kind matches.

        """
        by_class = {
            (model._meta.object_class or "").lower(): model  # type: ignore[union-attr]
            for model in ADObjectBase.registry.values()
        }
        for object_class in reversed(list(object_classes)):
            model = by_class.get(object_class.lower())
            if model is not None:
                return model
        return ADObject


class ADObject(metaclass=ADObjectBase):
    """
    Base class for directory entities.

    An entity wraps one raw search result row: a DN and an attribute map.  It
    keeps a reference to (but does not own) the connection the row came from,
    which it uses for reference lookups and attribute writes.

    Typed attributes are exposed through :py:mod:`adorm.fields` descriptors.
    Each one is computed from the raw row on first access and memoized; the
    memoized value only changes when that attribute is written through this
    entity, or when :py:meth:`invalidate` or :py:meth:`refresh` is called.

    Do not instantiate entities directly; use the ``objects`` manager on the
    entity class.
    """

    #: The entity's metadata and configuration options.
    _meta: ClassVar[Options]
    #: The default manager for this entity class.
    objects: ClassVar[EntityManager]

    cn = CharField(AttributeNames.CN)
    name = CharField(AttributeNames.NAME)
    distinguished_name = CharField(AttributeNames.DISTINGUISHED_NAME)
    object_class = CharListField(AttributeNames.OBJECT_CLASS)
    object_guid = GuidField(AttributeNames.OBJECT_GUID)
    description = CharField(AttributeNames.DESCRIPTION, editable=True)
    display_name = CharField(AttributeNames.DISPLAY_NAME, editable=True)
    when_created = GeneralizedTimeField(AttributeNames.WHEN_CREATED)
    when_changed = GeneralizedTimeField(AttributeNames.WHEN_CHANGED)

    def __init__(self, *args, **kwargs) -> None:  # noqa: ARG002
        msg = (
            f"{self.__class__.__name__} objects are created by find operations; "
            f"use {self.__class__.__name__}.objects instead"
        )
        raise TypeError(msg)

    @classmethod
    def from_db(cls, connection: DirectoryOperator, data: LDAPData) -> "ADObject":
        """
        Create an entity from a raw search result row.

        The row is copied, so the entity does not share any state with the
        connection's result set.

        Args:
            connection: the connection the row came from.
            data: the ``(dn, attributes)`` row.

        Returns:
            An instance of this class.

        """
        dn, attrs = data
        instance = cls.__new__(cls)
        instance._dn = dn
        instance._connection = connection
        # Case sensitivity does not matter in LDAP, but it does when we're
        # looking up keys in our dict here.
        instance._data = MappingProxyType(
            {k: list(v) if isinstance(v, (list, tuple)) else [v] for k, v in attrs.items()}
        )
        instance._lookup = {k.lower(): k for k in attrs}
        instance._cache = {}
        return instance

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.dn}>"

    def __str__(self) -> str:
        return f"{self.__class__.__name__} object ({self.dn})"

    def __eq__(self, other: object) -> bool:
        """
        Equal means the same class and the same DN.  DNs compare
        case-insensitively.
        """
        if not isinstance(other, ADObject):
            return False
        if self.__class__ is not other.__class__:
            return False
        return self.dn.lower() == other.dn.lower()

    def __hash__(self) -> int:
        return hash(self.dn.lower())

    @property
    def dn(self) -> str:
        """The distinguished name.  It never changes for a given entity."""
        return self._dn

    @property
    def connection(self) -> DirectoryOperator:
        return self._connection

    @property
    def kind(self) -> EntityKind | None:
        return self._meta.kind

    @property
    def attributes(self) -> Mapping[str, list[Any]]:
        """
        The raw attribute row, read-only, as the store returned it.
        """
        return self._data

    def get_raw(self, attribute: str) -> RawValue:
        """
        Return the raw value of ``attribute``, or ``None`` if the row does not
        have it.  Attribute names are case-insensitive.
        """
        key = self._lookup.get(attribute.lower())
        if key is None:
            return None
        return self._data[key]

    # -----------------------
    # Memoization
    # -----------------------

    def _get_field_value(self, field: Field) -> Any:
        name = cast("str", field.name)
        try:
            return self._cache[name]
        except KeyError:
            pass
        value = field.from_db_value(self.get_raw(field.ldap_attribute))
        self._cache[name] = value
        return value

    def _get_related_value(self, related: RelatedObjectField) -> "ADObject | None":
        name = cast("str", related.name)
        try:
            return self._cache[name]
        except KeyError:
            pass
        value = related.resolve(self)
        self._cache[name] = value
        return value

    def invalidate(self, *names: str) -> None:
        """
        Forget memoized values so they are recomputed from the raw row on next
        access.

        Args:
            *names: field names to forget.  Forget everything if none are given.

        """
        if not names:
            self._cache.clear()
            return
        for name in names:
            self._cache.pop(name, None)

    def refresh(self) -> None:
        """
        Re-read our row from the store and forget every memoized value.

        Raises:
            NotFoundError: the entry no longer exists.

        """
        fresh = self.__class__.objects.find_one_by_identity(self._connection, self.dn)
        if fresh is None:
            msg = f"{self.dn} no longer exists"
            raise NotFoundError(msg)
        self._data = fresh._data
        self._lookup = fresh._lookup
        self._cache = {}

    # -----------------------
    # Writes
    # -----------------------

    def _set_field_value(self, field: Field, value: Any) -> None:
        """
        Update the memoized value of ``field`` and commit it to the store.

        The memoized value is updated before the write is sent and is not rolled
        back if the write fails: what the store holds after a failed write is up
        to the store, so the exception is the authority.
        """
        name = cast("str", field.name)
        value = field.to_python(value)
        self._cache[name] = value
        for related in self._meta.dependents(name):
            self._cache.pop(cast("str", related.name), None)
        self._commit(field.ldap_attribute, field.to_db_value(value))

    def set_attribute(self, attribute: str, value: Any) -> None:
        """
        Write one attribute to the store.

        If one of our fields maps to ``attribute`` this goes through that field,
        so its memoized value is updated too.

        Args:
            attribute: the LDAP attribute name.
            value: the new value; ``None``, ``""`` or ``[]`` remove the attribute.

        """
        field_name = self._meta.attribute_to_field_name_map.get(attribute.lower())
        if field_name is not None:
            self._set_field_value(self._meta.fields_map[field_name], value)
            return
        self._commit(attribute, to_db_values(value))

    def _commit(self, attribute: str, values: list[bytes]) -> None:
        logger.debug("adorm.model.write dn=%s attribute=%s", self.dn, attribute)
        self._connection.commit_attribute(self.dn, attribute, values)
