"""
adorm finder and factory operations.

This module provides :py:class:`EntityManager`, the generic repository that
the :py:class:`~adorm.models.ADObjectBase` metaclass attaches as ``objects`` to
every entity class.  One manager class serves every entity kind: it takes the
kind's structural filter, RDN attribute and object classes from the entity
class's :py:class:`~adorm.options.Options`.

Every operation takes the connection to use as its first argument; managers
hold no connection state of their own.
"""

import logging
from typing import TYPE_CHECKING, cast

from adorm import ldap

from .adapters import encode_sid
from .attributes import AttributeNames
from .exceptions import AmbiguousResultError, NotFoundError
from .filters import And, Equals, FilterNode, Present

if TYPE_CHECKING:
    from .models import ADObject
    from .options import Options
    from .typing import DirectoryOperator, LDAPData

logger = logging.getLogger("adorm")


class EntityManager:
    """
    Finder and factory operations for one entity kind.

    Single-result finders return ``None`` when nothing matches and raise
    :py:exc:`~adorm.exceptions.AmbiguousResultError` when more than one entry
    matches.  :py:meth:`find_all` returns every match, in the order the store
    returned them.

    The manager on :py:class:`~adorm.models.ADObject` itself has no kind
    filter; it materializes each row as the most specific registered entity
    class.
    """

    def __init__(self) -> None:
        self.logger = logger
        # These get set during contribute_to_class()
        self.model: type[ADObject] | None = None

    def __repr__(self) -> str:
        name = self.model.__name__ if self.model is not None else None
        return f"<{self.__class__.__name__}: {name}>"

    def contribute_to_class(self, cls, accessor_name: str) -> None:
        """
        Set up the manager for an entity class.

        Args:
            cls: The entity class.
            accessor_name: The attribute name to assign the manager to.

        """
        self.model = cls
        cls._meta.base_manager = self
        setattr(cls, accessor_name, self)

    @property
    def options(self) -> "Options":
        return cast("Options", cast("type[ADObject]", self.model)._meta)

    @property
    def is_generic(self) -> bool:
        """
        ``True`` if our entity class has no kind of its own, so rows may be of
        any kind.
        """
        return self.options.kind is None

    @property
    def attributes(self) -> list[str]:
        """
        The LDAP attributes to request when searching.  The generic manager
        asks for the attributes of every registered kind, so that rows can be
        fully materialized as any of them.
        """
        attributes = list(self.options.attributes)
        if self.is_generic:
            from .models import ADObjectBase

            for model in ADObjectBase.registry.values():
                for attribute in model._meta.attributes:
                    if attribute not in attributes:
                        attributes.append(attribute)
        return attributes

    def _combine(self, searchfilter: FilterNode | None = None) -> FilterNode:
        """
        AND our kind filter with ``searchfilter``.
        """
        kind_filter = self.options.kind_filter
        if kind_filter is None:
            return searchfilter or Present(AttributeNames.OBJECT_CLASS)
        if searchfilter is None:
            return kind_filter
        return And(kind_filter, searchfilter)

    def _materialize(
        self, connection: "DirectoryOperator", rows: list["LDAPData"]
    ) -> list["ADObject"]:
        model = cast("type[ADObject]", self.model)
        objects = []
        for dn, attrs in rows:
            cls = model
            if self.is_generic:
                object_classes = []
                for key, value in attrs.items():
                    if key.lower() == AttributeNames.OBJECT_CLASS.lower():
                        object_classes = [
                            v.decode("utf-8") if isinstance(v, bytes) else str(v)
                            for v in value
                        ]
                        break
                cls = model.for_object_classes(object_classes)
            objects.append(cls.from_db(connection, (dn, attrs)))
        return objects

    def _search(
        self,
        connection: "DirectoryOperator",
        searchfilter: FilterNode | None,
        basedn: str | None = None,
        scope: int = ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
    ) -> list["ADObject"]:
        filterstr = self._combine(searchfilter).render()
        self.logger.debug(
            "adorm.manager.search model=%s basedn=%s filter=%s",
            cast("type[ADObject]", self.model).__name__,
            basedn,
            filterstr,
        )
        rows = connection.search(
            filterstr, attributes=self.attributes, basedn=basedn, scope=scope
        )
        return self._materialize(connection, rows)

    def _single(self, objects: list["ADObject"], what: str) -> "ADObject | None":
        """
        Apply the single-result policy.

        Raises:
            AmbiguousResultError: more than one entry matched.

        """
        if not objects:
            return None
        if len(objects) > 1:
            model = cast("type[ADObject]", self.model)
            msg = (
                f"{len(objects)} {model._meta.verbose_name_plural} matched {what}; "
                "expected at most one"
            )
            raise AmbiguousResultError(msg)
        return objects[0]

    # -----------------------
    # Finders
    # -----------------------

    def find_one_by_identity(
        self, connection: "DirectoryOperator", dn: str
    ) -> "ADObject | None":
        """
        Get the entry with distinguished name ``dn``, if it is of our kind.

        Args:
            connection: the connection to search with.
            dn: the distinguished name.

        Returns:
            The entity, or ``None`` if there is no entry of our kind at ``dn``.

        """
        objects = self._search(
            connection,
            None,
            basedn=dn,
            scope=ldap.SCOPE_BASE,  # type: ignore[attr-defined]
        )
        return self._single(objects, f"dn={dn}")

    def find_one_by_name(
        self, connection: "DirectoryOperator", name: str, parent: str | None = None
    ) -> "ADObject | None":
        """
        Get the entry whose RDN attribute (``cn``, or ``ou`` for organizational
        units) is ``name``.

        Args:
            connection: the connection to search with.
            name: the RDN value to look for.

        Keyword Args:
            parent: if given, only look at the immediate children of this DN.

        Raises:
            AmbiguousResultError: more than one entry has this name.

        """
        searchfilter = Equals(self.options.rdn_attribute, name)
        if parent is not None:
            objects = self._search(
                connection,
                searchfilter,
                basedn=parent,
                scope=ldap.SCOPE_ONELEVEL,  # type: ignore[attr-defined]
            )
        else:
            objects = self._search(connection, searchfilter)
        return self._single(objects, f"{self.options.rdn_attribute}={name}")

    def find_one_by_cn(
        self, connection: "DirectoryOperator", cn: str
    ) -> "ADObject | None":
        """
        Get the entry whose ``cn`` is ``cn``.

        Raises:
            AmbiguousResultError: more than one entry has this ``cn``.

        """
        objects = self._search(connection, Equals(AttributeNames.CN, cn))
        return self._single(objects, f"cn={cn}")

    def find_one_by_sid(
        self, connection: "DirectoryOperator", sid: str
    ) -> "ADObject | None":
        """
        Get the entry whose ``objectSid`` is ``sid``.

        Args:
            connection: the connection to search with.
            sid: the SID in its ``S-1-...`` form.  It is matched against the
                binary attribute.

        Raises:
            DecodeError: ``sid`` is not a well-formed SID.
            AmbiguousResultError: more than one entry has this SID.

        """
        objects = self._search(
            connection, Equals(AttributeNames.OBJECT_SID, encode_sid(sid))
        )
        return self._single(objects, f"objectSid={sid}")

    def find_one_by_filter(
        self, connection: "DirectoryOperator", searchfilter: FilterNode
    ) -> "ADObject | None":
        """
        Get the one entry of our kind that matches ``searchfilter``.

        Raises:
            AmbiguousResultError: more than one entry matched.

        """
        objects = self._search(connection, searchfilter)
        return self._single(objects, str(searchfilter))

    def find_all(
        self,
        connection: "DirectoryOperator",
        searchfilter: FilterNode | None = None,
    ) -> list["ADObject"]:
        """
        Get every entry of our kind, optionally narrowed by ``searchfilter``.

        Returns:
            The entities, in the order the store returned them.

        """
        return self._search(connection, searchfilter)

    # -----------------------
    # Factory
    # -----------------------

    def create(
        self, connection: "DirectoryOperator", parent: str, name: str
    ) -> "ADObject":
        """
        Create a new entry of our kind as an immediate child of ``parent``, and
        return it fully materialized.

        Args:
            connection: the connection to write with.
            parent: the DN of the container to create the entry in.
            name: the value of the new entry's RDN attribute.

        Raises:
            NotFoundError: ``parent`` does not exist.
            StoreIOError: the store refused the create.
            NotFoundError: the new entry could not be read back.

        Returns:
            The new entity.

        """
        options = self.options
        with connection.session("write"):
            dn = connection.create_child(
                parent, (options.rdn_attribute, name), options.object_classes
            )
            self.logger.info(
                "adorm.manager.create model=%s dn=%s",
                cast("type[ADObject]", self.model).__name__,
                dn,
            )
            obj = self.find_one_by_name(connection, name, parent=parent)
        if obj is None:
            # The store accepted the create but we can't see the entry
            msg = f"Created {dn} but could not read it back"
            raise NotFoundError(msg)
        return obj
