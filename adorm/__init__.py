"""
Typed, Django-flavored access to Active Directory entries.
"""

__version__ = "1.0.0"

from .connection import DirectoryConnection  # noqa: E402
from .exceptions import (  # noqa: E402
    ADORMError,
    AmbiguousResultError,
    DecodeError,
    InvalidFilterError,
    NotFoundError,
    StoreIOError,
)
from .models import ADObject, EntityKind  # noqa: E402
from .objects import Computer, Group, OrganizationalUnit, User  # noqa: E402

__all__ = [
    "ADORMError",
    "ADObject",
    "AmbiguousResultError",
    "Computer",
    "DecodeError",
    "DirectoryConnection",
    "EntityKind",
    "Group",
    "InvalidFilterError",
    "NotFoundError",
    "OrganizationalUnit",
    "StoreIOError",
    "User",
]
