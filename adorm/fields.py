"""
adorm field implementations.

Fields are descriptors declared on :py:class:`~adorm.models.ADObject`
subclasses.  Each one maps a Python attribute to one LDAP attribute of the
entity's raw row and knows which adapter from :py:mod:`adorm.adapters` turns
the raw value into a typed one.

Reading a field is a read-through cache: the adapter runs on first access only
and the result is memoized on the entity.  Writing an ``editable`` field
updates the memoized value and commits that one attribute to the store.
"""

import datetime
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from . import adapters
from .exceptions import AmbiguousResultError
from .typing import RawValue

if TYPE_CHECKING:
    from .models import ADObject

logger = logging.getLogger("adorm")


class Field:
    """
    Base field class.  Maps to a single-valued text attribute.

    Args:
        db_column: the LDAP attribute name in the schema.

    Keyword Args:
        editable: if ``False``, assigning to the field raises ``AttributeError``.

    """

    #: The adapter that converts the raw attribute to our Python type.
    adapter: Callable[[RawValue], Any] = staticmethod(adapters.single_line)

    def __init__(
        self,
        db_column: str,
        editable: bool = False,
    ) -> None:
        self.db_column = db_column
        self.editable = editable
        #: These get set by contribute_to_class()
        self.name: str | None = None
        self.model: type[ADObject] | None = None

    def __repr__(self) -> str:
        path = f"{self.__class__.__module__}.{self.__class__.__qualname__}"
        if self.name is not None:
            return f"<{path}: {self.name}>"
        return f"<{path}>"

    @property
    def ldap_attribute(self) -> str:
        return self.db_column

    def contribute_to_class(self, cls, name: str) -> None:
        """
        Register the field with the entity class it belongs to.

        Args:
            cls: The entity class to register with.
            name: The name of the field.

        """
        self.name = name
        self.model = cls
        cls._meta.add_field(self)
        setattr(cls, name, self)

    def from_db_value(self, value: RawValue) -> Any:
        """
        Convert the raw attribute from the store to our Python type.

        Args:
            value: the raw attribute; ``None`` if the entry does not have it.

        """
        return self.adapter(value)

    def to_python(self, value: Any) -> Any:
        """
        Normalize a value assigned to this field.
        """
        if value is None:
            return ""
        return str(value)

    def to_db_value(self, value: Any) -> list[bytes]:
        """
        Convert a Python value to the list of byte strings we send to the store.
        """
        return adapters.to_db_values(value)

    def __get__(self, instance: "ADObject | None", owner=None) -> Any:
        if instance is None:
            return self
        return instance._get_field_value(self)

    def __set__(self, instance: "ADObject", value: Any) -> None:
        if not self.editable:
            msg = f"{instance.__class__.__name__}.{self.name} is read-only"
            raise AttributeError(msg)
        instance._set_field_value(self, value)


class CharField(Field):
    """A single line of text.  Absent attributes read as ``""``."""


class CharListField(Field):
    """
    A multi-valued text attribute, in the order the store returned the
    values.  Absent attributes read as ``[]``.
    """

    adapter = staticmethod(adapters.multi_line)

    def to_python(self, value: str | list[str] | None) -> list[str]:  # type: ignore[override]
        if not value:
            return []
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value]


class SidField(Field):
    """A binary security identifier, read as its ``S-1-...`` form."""

    adapter = staticmethod(adapters.sid)

    def to_db_value(self, value: str) -> list[bytes]:
        if not value:
            return []
        return [adapters.encode_sid(value)]


class GuidField(Field):
    """A binary ``objectGUID``, read as its canonical string form."""

    adapter = staticmethod(adapters.guid)


class IntegerField(Field):
    """An integer attribute.  Absent attributes read as ``None``."""

    adapter = staticmethod(adapters.integer)

    def to_python(self, value: int | str | None) -> int | None:
        if value is None or value == "":
            return None
        return int(value)


class GeneralizedTimeField(Field):
    """
    A GeneralizedTime attribute like ``whenCreated``, read as an aware UTC
    datetime.  Absent attributes read as ``None``.
    """

    adapter = staticmethod(adapters.generalized_time)


class ActiveDirectoryTimestampField(Field):
    """
    A Windows FILETIME attribute like ``lastLogonTimestamp``, read as an
    aware UTC datetime.  Absent attributes, and the values Active Directory
    uses for "never", read as ``None``.
    """

    adapter = staticmethod(adapters.filetime)

    def to_python(self, value: datetime.datetime | None) -> datetime.datetime | None:
        return value

    def to_db_value(self, value: datetime.datetime | None) -> list[bytes]:
        if value is None:
            return []
        return adapters.to_db_values(adapters.datetime_to_filetime(value))


class GroupTypeField(Field):
    """``groupType``, read as a :py:class:`~adorm.adapters.GroupType`."""

    adapter = staticmethod(adapters.group_type)


class RelatedObjectField:
    """
    A lazily resolved reference to another entry.

    The referenced entry's DN is read from the ``source`` field.  On first
    access we look the DN up with
    :py:meth:`~adorm.managers.EntityManager.find_one_by_identity` and memoize
    the result.  A missing source, a dangling DN or an ambiguous lookup all
    resolve to ``None``: dangling references are common in directory data.

    Assigning to the ``source`` field forgets the resolved entry.

    Args:
        source: the name of the field holding the referenced DN.

    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.name: str | None = None
        self.model: type[ADObject] | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name} -> {self.source}>"

    def contribute_to_class(self, cls, name: str) -> None:
        self.name = name
        self.model = cls
        cls._meta.add_related(self)
        setattr(cls, name, self)

    def resolve(self, instance: "ADObject") -> "ADObject | None":
        """
        Look up the referenced entry.

        Args:
            instance: the entity holding the reference.

        Returns:
            The referenced entity, or ``None`` if it cannot be resolved.

        """
        from .models import ADObject

        dn = getattr(instance, self.source)
        if not dn:
            return None
        try:
            return ADObject.objects.find_one_by_identity(instance.connection, dn)
        except AmbiguousResultError:
            logger.warning(
                "adorm.field.resolve.ambiguous dn=%s field=%s", instance.dn, self.name
            )
            return None

    def __get__(self, instance: "ADObject | None", owner=None) -> Any:
        if instance is None:
            return self
        return instance._get_related_value(self)

    def __set__(self, instance: "ADObject", value: Any) -> None:
        msg = (
            f"{instance.__class__.__name__}.{self.name} is read-only; set "
            f"{self.source} instead"
        )
        raise AttributeError(msg)

