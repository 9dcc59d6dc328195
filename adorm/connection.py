# mypy: disable-error-code="attr-defined"
"""
python-ldap backed directory connection.

This module provides :py:class:`DirectoryConnection`, the connection that
:py:class:`~adorm.managers.EntityManager` finders and entity writes go
through.  It reads its configuration from ``settings.LDAP_SERVERS``, keeps one
python-ldap connection per thread while a call is in progress, and maps
python-ldap errors onto :py:mod:`adorm.exceptions`.

Example configuration::

    LDAP_SERVERS = {
        "default": {
            "basedn": "dc=example,dc=com",
            "read": {
                "url": "ldaps://dc1.example.com",
                "user": "cn=svc-adorm,ou=Service Accounts,dc=example,dc=com",
                "password": "password",
            },
            "write": {
                "url": "ldaps://dc1.example.com",
                "user": "cn=svc-adorm,ou=Service Accounts,dc=example,dc=com",
                "password": "password",
            },
        }
    }
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from typing import Any, cast

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from ldap.controls import SimplePagedResultsControl

from adorm import ldap

from .exceptions import NotFoundError, StoreIOError
from .typing import LDAPData, ModifyModListEntry

logger = logging.getLogger("adorm")


def atomic(key: str = "read") -> Callable:
    """
    Decorator to wrap methods that need to talk to the LDAP server.

    If the current thread already has a connection, the wrapped method uses
    it.  Otherwise we connect before the call and unbind afterwards.

    Args:
        key: Either "read" or "write". Determines which LDAP server to use.

    Returns:
        A decorator that manages LDAP connection context for the wrapped method.

    """

    def real_decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> Callable:
            if self.has_connection():
                # Ensure we're not currently in a wrapped function
                return func(self, *args, **kwargs)
            self.connect(key)
            try:
                retval = func(self, *args, **kwargs)
            finally:
                # We do this in a finally: branch so that the ldap
                # connection gets cleaned up no matter what happens in
                # `func()`.
                self.disconnect()
            return retval

        return wrapper

    return real_decorator


class DirectoryConnection:
    """
    A connection to one Active Directory domain.

    This class is thread-safe: each thread gets its own python-ldap
    connection, because python-ldap connections are not.

    Args:
        server: the key in ``settings.LDAP_SERVERS`` to use.

    Keyword Args:
        config: use this configuration instead of looking ``server`` up in
            ``settings.LDAP_SERVERS``.

    Raises:
        ImproperlyConfigured: the configuration is missing or has no
            ``basedn``.

    """

    def __init__(self, server: str = "default", config: dict[str, Any] | None = None):
        self.server = server
        self.logger = logger
        if config is None:
            try:
                config = settings.LDAP_SERVERS[server]
            except AttributeError as e:
                msg = "settings.LDAP_SERVERS does not exist!"
                raise ImproperlyConfigured(msg) from e
            except KeyError as e:
                msg = f"settings.LDAP_SERVERS has no key '{server}'"
                raise ImproperlyConfigured(msg) from e
        self.config: dict[str, Any] = cast("dict[str, Any]", config)
        try:
            self.basedn: str = self.config["basedn"]
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS['{server}'] has no 'basedn' key"
            raise ImproperlyConfigured(msg) from e
        self.pagesize: int = int(self.config.get("pagesize", 100))
        self.paged_search: bool = bool(self.config.get("paged_search", False))
        # keys in this dictionary get manipulated by .connect() and .disconnect()
        self._ldap_objects: dict[threading.Thread, ldap.ldapobject.LDAPObject] = {}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.server} {self.basedn}>"

    # -----------------------
    # Connection management
    # -----------------------

    def _connect(self, key: str) -> ldap.ldapobject.LDAPObject:  # noqa: PLR0912
        """
        Create and return a new bound LDAP connection object.

        Args:
            key: "read" or "write"; which sub-configuration to use.

        Raises:
            ImproperlyConfigured: there is no ``key`` section in our configuration.
            ValueError: If the ``tls_verify`` value in the configuration is invalid.
            OSError: If a TLS certificate or key file is configured but does
                not exist or is not a file.

        Returns:
            A connected LDAPObject.

        """
        try:
            config = self.config[key]
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS['{self.server}'] has no '{key}' key"
            raise ImproperlyConfigured(msg) from e
        ldap_object: ldap.ldapobject.LDAPObject = ldap.initialize(config["url"])
        if config.get("follow_referrals", False):
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)
        timeout = config.get("timeout", 15.0)
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(timeout))
        sizelimit = config.get("sizelimit", None)
        if sizelimit:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(sizelimit))
        tls_verify = config.get("tls_verify", "never")
        if tls_verify == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)
        elif tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)
        else:
            msg = f"Invalid tls_verify value: {tls_verify}"
            raise ValueError(msg)
        for option, setting in (
            (ldap.OPT_X_TLS_CACERTFILE, "tls_ca_certfile"),
            (ldap.OPT_X_TLS_CERTFILE, "tls_certfile"),
            (ldap.OPT_X_TLS_KEYFILE, "tls_keyfile"),
        ):
            if filename := config.get(setting, None):
                path = Path(filename)
                if not path.exists():
                    msg = f"{setting} does not exist: {filename}"
                    raise OSError(msg)
                if not path.is_file():
                    msg = f"{setting} is not a file: {filename}"
                    raise OSError(msg)
                ldap_object.set_option(option, filename)
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)
        try:
            if config.get("use_starttls", True):
                ldap_object.start_tls_s()
            ldap_object.simple_bind_s(config["user"], config["password"])
        except ldap.LDAPError as e:
            msg = f"Could not bind to {config['url']}: {e}"
            raise StoreIOError(msg) from e
        self.logger.debug("adorm.connection.bind url=%s key=%s", config["url"], key)
        return ldap_object

    def connect(self, key: str = "read") -> None:
        """
        Set the per-thread LDAP connection object.  Used by the
        :py:func:`atomic` decorator.

        Args:
            key: "read" or "write".

        """
        self._ldap_objects[threading.current_thread()] = self._connect(key)

    def disconnect(self) -> None:
        """
        Unbind and forget the current thread's LDAP connection.
        """
        try:
            self.connection.unbind_s()
        finally:
            del self._ldap_objects[threading.current_thread()]

    def has_connection(self) -> bool:
        """
        Check if the current thread has an active LDAP connection.

        Returns:
            True if a connection exists, False otherwise.

        """
        return threading.current_thread() in self._ldap_objects

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:
        """
        Get the current thread's LDAP connection object.
        """
        return self._ldap_objects[threading.current_thread()]

    @contextmanager
    def session(self, key: str = "read") -> Iterator[None]:
        """
        Keep one LDAP connection open for every call made inside the ``with``
        block.  Nested sessions reuse the outer connection.

        Example::

            with connection.session("write"):
                dn = connection.create_child(parent, ("ou", "Sales"), classes)
                connection.search("(ou=Sales)", basedn=parent)

        Args:
            key: "read" or "write".

        """
        if self.has_connection():
            yield
            return
        self.connect(key)
        try:
            yield
        finally:
            self.disconnect()

    # -----------------------
    # Searches
    # -----------------------

    def _get_pctrls(self, serverctrls):
        """
        Find the paged results controls among the controls the server returned.
        """
        return [
            c
            for c in serverctrls
            if c.controlType == SimplePagedResultsControl.controlType
        ]

    def _paged_search(
        self,
        basedn: str,
        searchfilter: str,
        attrlist: list[str] | None = None,
        sizelimit: int = 0,
        scope: int = ldap.SCOPE_SUBTREE,
    ) -> list[LDAPData]:
        """
        Perform a Simple Paged Results search, so we can get more entries
        than the server's per-search size limit.

        Returns:
            List of LDAPData tuples (dn, attrs).

        """
        # The cookie starts out empty
        paging = SimplePagedResultsControl(True, size=self.pagesize, cookie="")  # noqa: FBT003
        controls = [paging]
        results: list[LDAPData] = []
        while True:
            msgid = self.connection.search_ext(
                basedn,
                scope,
                searchfilter,
                attrlist,
                serverctrls=controls,
                sizelimit=sizelimit,
            )
            _, rdata, _, serverctrls = self.connection.result3(msgid)
            for dn, attrs in rdata:
                # AD returns referrals at the end that we want to ignore
                if isinstance(attrs, dict):
                    results.append((dn, attrs))
            paged_controls = self._get_pctrls(serverctrls)
            if not paged_controls:
                # We're doing a ldap.SCOPE_BASE search
                break
            controls[0].cookie = paged_controls[0].cookie
            if not paged_controls[0].cookie:
                break
        return results

    @atomic(key="read")
    def search(
        self,
        searchfilter: str,
        attributes: list[str] | None = None,
        basedn: str | None = None,
        scope: int = ldap.SCOPE_SUBTREE,
        sizelimit: int = 0,
    ) -> list[LDAPData]:
        """
        Search the directory.

        Args:
            searchfilter: the LDAP search filter string.

        Keyword Args:
            attributes: the attributes to retrieve; ``None`` means all of them.
            basedn: the DN to search from; defaults to our ``basedn``.
            scope: the LDAP search scope.
            sizelimit: the maximum number of entries to return; ``0`` means no
                limit.

        Raises:
            StoreIOError: the server reported an error.

        Returns:
            List of LDAPData tuples (dn, attrs), in the order the server
            returned them.  A ``basedn`` that does not exist yields ``[]``.

        """
        if basedn is None:
            basedn = self.basedn
        self.logger.debug(
            "adorm.connection.search basedn=%s scope=%s filter=%s",
            basedn,
            scope,
            searchfilter,
        )
        try:
            if self.paged_search:
                return self._paged_search(
                    basedn,
                    searchfilter,
                    attrlist=attributes,
                    sizelimit=sizelimit,
                    scope=scope,
                )
            if sizelimit:
                data = self.connection.search_ext_s(
                    basedn,
                    scope,
                    filterstr=searchfilter,
                    attrlist=attributes,
                    sizelimit=sizelimit,
                )
            else:
                data = self.connection.search_s(
                    basedn, scope, filterstr=searchfilter, attrlist=attributes
                )
        except ldap.NO_SUCH_OBJECT:
            return []
        except ldap.LDAPError as e:
            msg = f"Search for {searchfilter} under {basedn} failed: {e}"
            raise StoreIOError(msg) from e
        # We have to filter out any references that AD puts in
        return [obj for obj in data if isinstance(obj[1], dict)]

    # -----------------------
    # Writes
    # -----------------------

    @atomic(key="write")
    def commit_attribute(self, dn: str, attribute: str, values: list[bytes]) -> None:
        """
        Replace every value of one attribute of one entry.

        Args:
            dn: the entry to modify.
            attribute: the LDAP attribute name.
            values: the new values; ``[]`` removes the attribute.

        Raises:
            NotFoundError: there is no entry at ``dn``.
            StoreIOError: the server refused the change.

        """
        modlist: list[ModifyModListEntry]
        if values:
            modlist = [(ldap.MOD_REPLACE, attribute, list(values))]
        else:
            modlist = [(ldap.MOD_DELETE, attribute, None)]
        self.logger.debug(
            "adorm.connection.modify dn=%s attribute=%s values=%d",
            dn,
            attribute,
            len(values),
        )
        try:
            self.connection.modify_s(dn, modlist)
        except ldap.NO_SUCH_OBJECT as e:
            msg = f"No entry at {dn}"
            raise NotFoundError(msg) from e
        except ldap.NO_SUCH_ATTRIBUTE as e:
            if values:
                msg = f"Could not write {attribute} on {dn}: {e}"
                raise StoreIOError(msg) from e
            # Removing an attribute the entry does not have is a no-op
            self.logger.debug(
                "adorm.connection.modify.noop dn=%s attribute=%s", dn, attribute
            )
        except ldap.LDAPError as e:
            msg = f"Could not write {attribute} on {dn}: {e}"
            raise StoreIOError(msg) from e

    @atomic(key="write")
    def create_child(
        self, parent_dn: str, rdn: tuple[str, str], object_classes: list[str]
    ) -> str:
        """
        Create a new entry as an immediate child of ``parent_dn``.

        Args:
            parent_dn: the DN of the container.
            rdn: the ``(attribute, value)`` pair naming the new entry.  The
                value is escaped for use in a DN.
            object_classes: the new entry's ``objectClass`` values.

        Raises:
            NotFoundError: there is no entry at ``parent_dn``.
            StoreIOError: the server refused the create.

        Returns:
            The DN of the new entry.

        """
        attribute, value = rdn
        dn = f"{attribute}={ldap.dn.escape_dn_chars(value)},{parent_dn}"
        entry = {
            "objectClass": [c.encode("utf-8") for c in object_classes],
            attribute: [value.encode("utf-8")],
        }
        self.logger.info("adorm.connection.add dn=%s", dn)
        try:
            self.connection.add_s(dn, ldap.modlist.addModlist(entry))
        except ldap.NO_SUCH_OBJECT as e:
            msg = f"No entry at {parent_dn}"
            raise NotFoundError(msg) from e
        except ldap.LDAPError as e:
            msg = f"Could not create {dn}: {e}"
            raise StoreIOError(msg) from e
        return dn
