"""
Exceptions raised by adorm.

Absence of data is never an error here: finders return ``None`` or an empty
list, and adapters return empty values.  These exceptions cover programmer
errors, data-integrity problems and failures reported by the store.
"""


class ADORMError(Exception):
    """Base class for everything adorm raises."""


class AmbiguousResultError(ADORMError):
    """A single-result finder matched more than one entry."""


class InvalidFilterError(ADORMError):
    """A filter tree or filter string is malformed."""


class DecodeError(ADORMError):
    """A binary or typed attribute value could not be decoded."""


class StoreIOError(ADORMError):
    """The directory store reported a failure for a search, write or create."""


class NotFoundError(StoreIOError):
    """
    A write or create targeted an entry that does not exist.

    Finders never raise this; they return ``None`` instead.
    """
