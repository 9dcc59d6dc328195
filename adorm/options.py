"""
adorm entity options and metadata.

This module provides the Options class that holds the metadata for an entity
kind: its structural object class, the filter that selects it, the attribute
used in its relative distinguished name, and the registry of its fields.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, cast

from django.core.exceptions import FieldDoesNotExist
from django.utils.functional import cached_property
from django.utils.text import camel_case_to_spaces

from .attributes import AttributeNames, ObjectClasses
from .filters import FilterNode, IsObjectClass
from .managers import EntityManager

if TYPE_CHECKING:
    from .fields import Field, RelatedObjectField
    from .models import ADObject, EntityKind

#: The names a ``class Meta`` may set.
DEFAULT_NAMES = (
    "kind",
    "object_class",
    "extra_object_classes",
    "filter",
    "rdn_attribute",
    "manager_class",
    "verbose_name",
    "verbose_name_plural",
)

#: The ``Meta`` names a subclass takes from its parent unless it sets them.
INHERITED_NAMES = tuple(
    name for name in DEFAULT_NAMES if not name.startswith("verbose_name")
)


class Options:
    """
    Metadata for an entity kind.

    This gets instantiated by parsing the ``Meta`` class for the entity class,
    and is available as ``cls._meta``.  Fields declared on parent classes are
    inherited.

    Args:
        meta: The Meta class from the entity class definition.

    """

    def __init__(self, meta) -> None:
        #: The tag identifying this entity kind, or ``None`` for the generic
        #: :py:class:`~adorm.models.ADObject`.
        self.kind: EntityKind | None = None
        #: The structural objectClass for this kind.  Used to build the default
        #: kind filter and when creating new entries.
        self.object_class: str | None = None
        #: Extra objectClasses to send when creating new entries, before
        #: :py:attr:`object_class`.
        self.extra_object_classes: list[str] = [ObjectClasses.TOP]
        #: A callable returning the :py:class:`~adorm.filters.FilterNode` that
        #: selects entries of this kind.  Defaults to
        #: ``IsObjectClass(object_class)``.
        self.filter: Callable[[], FilterNode] | None = None
        #: The attribute used in the RDN of entries of this kind; also what
        #: ``find_one_by_name()`` searches on.
        self.rdn_attribute: str = AttributeNames.CN
        #: The manager class to attach as ``objects``.
        self.manager_class: type[EntityManager] = EntityManager
        self.verbose_name: str | None = None
        self.verbose_name_plural: str | None = None

        #: These are set up by the :py:class:`~adorm.models.ADObjectBase`
        #: metaclass.  They are not intended to be set by the user.
        self.meta = meta
        self.model: type[ADObject] | None = None
        self.object_name: str | None = None
        self.base_manager: EntityManager | None = None
        self.local_fields: list[Field] = []
        self.related_fields: list[RelatedObjectField] = []

    def __repr__(self) -> str:
        return f"<Options for {self.object_name}>"

    def contribute_to_class(self, cls: type["ADObject"], name: str) -> None:  # noqa: ARG002
        """
        Used by the :py:class:`~adorm.models.ADObjectBase` metaclass to add
        this :py:class:`Options` instance to an entity class.

        Args:
            cls: The entity class to contribute to.
            name: The name of the options attribute.

        Raises:
            TypeError: the ``Meta`` class has attributes we don't know about.

        """
        cls._meta = self
        self.model = cls
        self.object_name = cls.__name__
        self.verbose_name = camel_case_to_spaces(self.object_name)

        # Fields declared on our parents come first, and our Meta options start
        # out as our nearest parent's.
        for parent in reversed(cls.__mro__[1:]):
            parent_meta = parent.__dict__.get("_meta")
            if isinstance(parent_meta, Options):
                for attr_name in INHERITED_NAMES:
                    setattr(self, attr_name, getattr(parent_meta, attr_name))
                for field in parent_meta.local_fields:
                    if field not in self.local_fields:
                        self.local_fields.append(field)
                for related in parent_meta.related_fields:
                    if related not in self.related_fields:
                        self.related_fields.append(related)

        if self.meta:
            meta_attrs = {
                k: v for k, v in self.meta.__dict__.items() if not k.startswith("_")
            }
            for attr_name in DEFAULT_NAMES:
                if attr_name in meta_attrs:
                    setattr(self, attr_name, meta_attrs.pop(attr_name))
            if meta_attrs != {}:
                msg = "'class Meta' got invalid attribute(s): {}".format(
                    ",".join(meta_attrs)
                )
                raise TypeError(msg)
        if self.verbose_name_plural is None:
            self.verbose_name_plural = f"{self.verbose_name}s"
        del self.meta

    def add_field(self, field: "Field") -> None:
        # A field redeclared on a subclass replaces the inherited one
        self.local_fields = [f for f in self.local_fields if f.name != field.name]
        self.local_fields.append(field)

    def add_related(self, related: "RelatedObjectField") -> None:
        self.related_fields.append(related)

    @property
    def kind_filter(self) -> FilterNode | None:
        """
        The filter that selects entries of this kind, or ``None`` if this is
        the generic entity class and any entry will do.
        """
        if self.filter is not None:
            return self.filter()
        if self.object_class:
            return IsObjectClass(self.object_class)
        return None

    @property
    def object_classes(self) -> list[str]:
        """
        The objectClass values to send when creating an entry of this kind.
        """
        classes = list(self.extra_object_classes)
        if self.object_class and self.object_class not in classes:
            classes.append(self.object_class)
        return classes

    @property
    def fields(self) -> list["Field"]:
        return self.local_fields

    @cached_property
    def fields_map(self) -> dict[str, "Field"]:
        """
        Get a mapping of field names to field instances.
        """
        return {cast("str", f.name): f for f in self.local_fields}

    @cached_property
    def attribute_to_field_name_map(self) -> dict[str, str]:
        """
        Get a mapping of lowercased LDAP attribute names to field names.
        LDAP attribute names are case-insensitive.
        """
        return {f.ldap_attribute.lower(): cast("str", f.name) for f in self.local_fields}

    @cached_property
    def attributes(self) -> list[str]:
        """
        The LDAP attribute names to request when searching for this kind.
        """
        attributes: list[str] = []
        for field in self.local_fields:
            if field.ldap_attribute not in attributes:
                attributes.append(field.ldap_attribute)
        return attributes

    def dependents(self, field_name: str) -> list["RelatedObjectField"]:
        """
        Return the related object fields that resolve through ``field_name``.
        """
        return [r for r in self.related_fields if r.source == field_name]

    def get_field(self, field_name: str) -> "Field":
        """
        Return a field instance given its name.

        Raises:
            FieldDoesNotExist: If no field with the given name exists.

        """
        try:
            return self.fields_map[field_name]
        except KeyError as e:
            msg = f"{self.object_name} has no field named '{field_name}'"
            raise FieldDoesNotExist(msg) from e
