"""
adorm type definitions.

Type aliases for the raw data that flows between the directory store and the
entity layer, plus the interface every directory connection must provide.
"""

from contextlib import AbstractContextManager
from typing import Protocol

#: One value of one attribute as the store hands it to us.
Scalar = bytes | str | int
#: A raw attribute: absent, a single scalar, or an ordered sequence of scalars.
RawValue = Scalar | list[Scalar] | tuple[Scalar, ...] | None
#: A raw search result row: ``(dn, {attribute: [value, ...]})``.
LDAPData = tuple[str, dict[str, list[bytes]]]
ModifyModListEntry = tuple[int, str, list[bytes] | None]
AddModlist = list[tuple[str, list[bytes]]]


class DirectoryOperator(Protocol):
    """
    What the entity layer needs from a connection to the directory store.

    :py:class:`adorm.connection.DirectoryConnection` is the python-ldap backed
    implementation.
    """

    basedn: str

    def search(
        self,
        searchfilter: str,
        attributes: list[str] | None = None,
        basedn: str | None = None,
        scope: int = ...,
        sizelimit: int = 0,
    ) -> list[LDAPData]: ...

    def commit_attribute(self, dn: str, attribute: str, values: list[bytes]) -> None: ...

    def create_child(
        self, parent_dn: str, rdn: tuple[str, str], object_classes: list[str]
    ) -> str: ...

    def session(self, key: str = "read") -> AbstractContextManager[None]: ...
