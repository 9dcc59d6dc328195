"""
Filter expression trees.

A small algebra of immutable predicate nodes that render to the LDAP search
filter grammar (RFC 4515)::

    >>> from adorm.filters import And, Equals, is_computer
    >>> str(And(is_computer(), Equals("cn", "PC01")))
    '(&(objectClass=computer)(cn=PC01))'

Values are escaped by the renderer, never by the caller, so a tree built from
untrusted input always renders to a well-formed filter.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

from adorm import ldap

from .attributes import AttributeNames, ObjectClasses
from .exceptions import InvalidFilterError

#: Value types an assertion accepts.
AssertionValue = str | bytes | int

_ATTRIBUTE_RE = re.compile(
    r"^(?:[A-Za-z][A-Za-z0-9-]*|\d+(?:\.\d+)*)(?:;[A-Za-z0-9-]+)*$"
)


def _check_attribute(name: str) -> str:
    if not isinstance(name, str) or not _ATTRIBUTE_RE.match(name):
        msg = f"Invalid attribute description in filter: {name!r}"
        raise InvalidFilterError(msg)
    return name


def escape(value: AssertionValue) -> str:
    """
    Escape an assertion value for use inside a filter.

    Text has ``*``, ``(``, ``)``, ``\\`` and NUL escaped; ``bytes`` are
    escaped completely as ``\\xx`` pairs so binary values such as SIDs survive
    the trip.

    Args:
        value: the value to escape.

    Returns:
        The escaped value.

    """
    if isinstance(value, (bytes, bytearray)):
        return "".join(f"\\{b:02x}" for b in value)
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return ldap.filter.escape_filter_chars(str(value))


@dataclass(frozen=True)
class FilterNode:
    """
    Base class for every node of a filter tree.

    Nodes are immutable, and rendering is a pure function of the tree: the
    same tree always renders the same string.
    """

    def render(self) -> str:
        """
        Render this tree in LDAP filter syntax.

        Raises:
            InvalidFilterError: the tree contains an empty ``And`` or ``Or``,
                or an invalid attribute name.

        """
        raise NotImplementedError

    def __str__(self) -> str:
        return self.render()

    def __and__(self, other: "FilterNode") -> "And":
        return And(self, other)

    def __or__(self, other: "FilterNode") -> "Or":
        return Or(self, other)

    def __invert__(self) -> "Not":
        return Not(self)


def _check_node(node: object) -> FilterNode:
    if not isinstance(node, FilterNode):
        msg = f"Filter children must be FilterNode instances, not {type(node).__name__}"
        raise TypeError(msg)
    return node


@dataclass(frozen=True)
class Equals(FilterNode):
    """``(name=value)``: exact match on one attribute."""

    name: str
    value: AssertionValue

    def render(self) -> str:
        return f"({_check_attribute(self.name)}={escape(self.value)})"


@dataclass(frozen=True, init=False)
class IsObjectClass(Equals):
    """``(objectClass=object_class)``: structural class test."""

    def __init__(self, object_class: str) -> None:
        super().__init__(AttributeNames.OBJECT_CLASS, object_class)

    @property
    def object_class(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Present(FilterNode):
    """``(name=*)``: the attribute has at least one value."""

    name: str

    def render(self) -> str:
        return f"({_check_attribute(self.name)}=*)"


@dataclass(frozen=True)
class StartsWith(FilterNode):
    """``(name=value*)``"""

    name: str
    value: str

    def render(self) -> str:
        return f"({_check_attribute(self.name)}={escape(self.value)}*)"


@dataclass(frozen=True)
class EndsWith(FilterNode):
    """``(name=*value)``"""

    name: str
    value: str

    def render(self) -> str:
        return f"({_check_attribute(self.name)}=*{escape(self.value)})"


@dataclass(frozen=True)
class Contains(FilterNode):
    """``(name=*value*)``"""

    name: str
    value: str

    def render(self) -> str:
        return f"({_check_attribute(self.name)}=*{escape(self.value)}*)"


@dataclass(frozen=True, init=False)
class _Group(FilterNode):
    children: tuple[FilterNode, ...]

    #: The grammar's group operator character.
    operator: ClassVar[str] = ""

    def __init__(self, *children: FilterNode) -> None:
        if len(children) == 1 and isinstance(children[0], (list, tuple)):
            children = tuple(children[0])
        object.__setattr__(
            self, "children", tuple(_check_node(c) for c in children)
        )

    def _check_not_empty(self) -> None:
        if not self.children:
            msg = (
                f"{self.__class__.__name__}() needs at least one child; empty "
                "groups are ambiguous"
            )
            raise InvalidFilterError(msg)

    def render(self) -> str:
        self._check_not_empty()
        return f"({self.operator}{''.join(c.render() for c in self.children)})"


@dataclass(frozen=True, init=False)
class And(_Group):
    """``(&(...)(...))``: every child matches."""

    operator: ClassVar[str] = "&"


@dataclass(frozen=True, init=False)
class Or(_Group):
    """``(|(...)(...))``: at least one child matches."""

    operator: ClassVar[str] = "|"


@dataclass(frozen=True)
class Not(FilterNode):
    """``(!(...))``: the child does not match."""

    child: FilterNode

    def __post_init__(self) -> None:
        _check_node(self.child)

    def render(self) -> str:
        return f"(!{self.child.render()})"


# -----------------------
# Structural class predicates
# -----------------------


def is_computer() -> IsObjectClass:
    return IsObjectClass(ObjectClasses.COMPUTER)


def is_user() -> And:
    """
    Users, but not computers: computer accounts carry the ``user`` class too.
    """
    return And(IsObjectClass(ObjectClasses.USER), Not(is_computer()))


def is_group() -> IsObjectClass:
    return IsObjectClass(ObjectClasses.GROUP)


def is_ou() -> IsObjectClass:
    return IsObjectClass(ObjectClasses.ORGANIZATIONAL_UNIT)


def is_contact() -> IsObjectClass:
    return IsObjectClass(ObjectClasses.CONTACT)
