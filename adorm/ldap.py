# Every module in adorm imports python-ldap through here, so tests have a
# single place to patch ``initialize``.
import ldap
from ldap import *  # noqa: F403
from ldap import dn, filter, modlist  # noqa: A004

__version__ = ldap.__version__
