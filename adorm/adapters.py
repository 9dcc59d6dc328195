"""
Attribute type adapters.

Pure functions that turn one raw attribute, as returned by the directory store,
into a Python value.  A raw attribute is either absent (``None``), a single
scalar, or an ordered sequence of scalars; scalars are usually ``bytes`` but
``str`` and ``int`` are accepted too.

Absent or empty attributes always map to an empty value (``""``, ``[]`` or
``None``), never to an error.  Malformed values raise
:py:exc:`~adorm.exceptions.DecodeError`.  None of these functions cache
anything; :py:mod:`adorm.fields` does that.
"""

import datetime
import enum
import re
import struct
import uuid
from typing import Any

import pytz

from .attributes import GROUP_TYPE_SECURITY_ENABLED
from .exceptions import DecodeError
from .typing import RawValue, Scalar

#: Windows FILETIME epoch (January 1, 1601 UTC).
AD_EPOCH: datetime.datetime = datetime.datetime(1601, 1, 1, tzinfo=pytz.UTC)
#: Number of 100-nanosecond intervals per second.
INTERVALS_PER_SECOND: int = 10_000_000
#: FILETIME value Active Directory uses for "never".
FILETIME_NEVER: int = 0x7FFFFFFFFFFFFFFF

SID_REVISION: int = 1
SID_MAX_SUB_AUTHORITIES: int = 15

_GENERALIZED_TIME_RE = re.compile(
    r"^(?P<stamp>\d{14})(?:[.,](?P<fraction>\d+))?(?P<tz>Z|[+-]\d{4})$"
)
_SID_RE = re.compile(r"^S-(\d+)-(\d+|0x[0-9a-fA-F]{12})((?:-\d+)*)$", re.IGNORECASE)


class GroupType(enum.Enum):
    """The kind of an Active Directory group."""

    UNKNOWN = "unknown"
    SECURITY = "security"
    DISTRIBUTION = "distribution"


def values(raw: RawValue) -> list[Scalar]:
    """
    Normalize a raw attribute into a list of scalars.

    Args:
        raw: the raw attribute.

    Returns:
        The scalars, in store order.  ``[]`` if ``raw`` is absent.

    """
    if raw is None:
        return []
    if isinstance(raw, (bytes, bytearray, str, int)):
        return [raw]
    return list(raw)


def _text(value: Scalar) -> str:
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            msg = f"Attribute value {value!r} is not valid UTF-8 text"
            raise DecodeError(msg) from e
    return str(value)


def single_line(raw: RawValue) -> str:
    """
    Return the first value of an attribute as text.

    Args:
        raw: the raw attribute.

    Returns:
        The first value decoded as UTF-8, or ``""`` if the attribute is absent.

    """
    _values = values(raw)
    if not _values:
        return ""
    return _text(_values[0])


def multi_line(raw: RawValue) -> list[str]:
    """
    Return every value of an attribute as text, in store order.

    Args:
        raw: the raw attribute.

    Returns:
        A new list of decoded values, or ``[]`` if the attribute is absent.

    """
    return [_text(v) for v in values(raw)]


def _first_bytes(raw: RawValue) -> bytes | None:
    _values = values(raw)
    if not _values:
        return None
    value = _values[0]
    if isinstance(value, str):
        msg = f"Expected a binary value, got text {value!r}"
        raise DecodeError(msg)
    if isinstance(value, int):
        msg = f"Expected a binary value, got integer {value!r}"
        raise DecodeError(msg)
    return bytes(value)


def decode_sid(blob: bytes) -> str:
    """
    Decode a binary security identifier into its ``S-R-A-S1-S2...`` form.

    Binary layout: revision (1 byte), sub-authority count (1 byte), identifier
    authority (6 bytes, big-endian), then ``count`` little-endian 32-bit
    sub-authorities.

    Args:
        blob: the binary SID.

    Raises:
        DecodeError: the length or the revision markers are wrong.

    Returns:
        The textual SID.

    """
    if len(blob) < 8:  # noqa: PLR2004
        msg = f"SID is too short: {len(blob)} bytes"
        raise DecodeError(msg)
    revision = blob[0]
    count = blob[1]
    if revision != SID_REVISION:
        msg = f"Unsupported SID revision {revision}"
        raise DecodeError(msg)
    if count > SID_MAX_SUB_AUTHORITIES:
        msg = f"SID declares {count} sub-authorities; the maximum is 15"
        raise DecodeError(msg)
    if len(blob) != 8 + 4 * count:
        msg = (
            f"SID length {len(blob)} does not match its {count} sub-authorities "
            f"(expected {8 + 4 * count})"
        )
        raise DecodeError(msg)
    authority = int.from_bytes(blob[2:8], "big")
    if authority >= 2**32:
        _authority = f"0x{authority:012X}"
    else:
        _authority = str(authority)
    sub_authorities = struct.unpack(f"<{count}I", blob[8:])
    return "-".join(["S", str(revision), _authority, *map(str, sub_authorities)])


def sid(raw: RawValue) -> str:
    """
    Adapter for ``objectSid``.

    Args:
        raw: the raw attribute.

    Raises:
        DecodeError: the value is not a well-formed binary SID.

    Returns:
        The textual SID, or ``""`` if the attribute is absent.

    """
    blob = _first_bytes(raw)
    if blob is None:
        return ""
    return decode_sid(blob)


def encode_sid(text: str) -> bytes:
    """
    Encode a textual SID into its binary form.  This is the inverse of
    :py:func:`decode_sid`.

    Args:
        text: a SID like ``S-1-5-21-1004336348-1177238915-682003330-512``.

    Raises:
        DecodeError: ``text`` is not a well-formed SID.

    Returns:
        The binary SID.

    """
    match = _SID_RE.match(text.strip())
    if not match:
        msg = f"Malformed SID: {text!r}"
        raise DecodeError(msg)
    revision = int(match.group(1))
    _authority = match.group(2)
    authority = int(_authority, 16) if _authority[:2].lower() == "0x" else int(_authority)
    sub_authorities = [int(s) for s in match.group(3).split("-") if s]
    if revision != SID_REVISION:
        msg = f"Unsupported SID revision {revision}"
        raise DecodeError(msg)
    if len(sub_authorities) > SID_MAX_SUB_AUTHORITIES:
        msg = f"SID has {len(sub_authorities)} sub-authorities; the maximum is 15"
        raise DecodeError(msg)
    if authority >= 2**48 or any(s >= 2**32 for s in sub_authorities):
        msg = f"SID component out of range: {text!r}"
        raise DecodeError(msg)
    return (
        bytes([revision, len(sub_authorities)])
        + authority.to_bytes(6, "big")
        + struct.pack(f"<{len(sub_authorities)}I", *sub_authorities)
    )


def guid(raw: RawValue) -> str:
    """
    Adapter for ``objectGUID``.  Active Directory stores GUIDs in the
    Microsoft mixed-endian layout.

    Args:
        raw: the raw attribute.

    Raises:
        DecodeError: the value is not 16 bytes long.

    Returns:
        The canonical lowercase GUID, or ``""`` if the attribute is absent.

    """
    blob = _first_bytes(raw)
    if blob is None:
        return ""
    if len(blob) != 16:  # noqa: PLR2004
        msg = f"GUID must be 16 bytes, got {len(blob)}"
        raise DecodeError(msg)
    return str(uuid.UUID(bytes_le=blob))


def integer(raw: RawValue) -> int | None:
    """
    Return the first value of an attribute as an integer.

    Raises:
        DecodeError: the value is not an integer.

    """
    _values = values(raw)
    if not _values:
        return None
    value = _values[0]
    if isinstance(value, int):
        return value
    try:
        return int(_text(value))
    except ValueError as e:
        msg = f"Attribute value {value!r} is not an integer"
        raise DecodeError(msg) from e


def generalized_time(raw: RawValue) -> datetime.datetime | None:
    """
    Adapter for LDAP GeneralizedTime attributes like ``whenCreated``
    (``20240131235959.0Z``).

    Raises:
        DecodeError: the value is not a GeneralizedTime.

    Returns:
        An aware UTC datetime, or ``None`` if the attribute is absent.

    """
    _values = values(raw)
    if not _values:
        return None
    text = _text(_values[0]).strip()
    match = _GENERALIZED_TIME_RE.match(text)
    if not match:
        msg = f"'{text}' is not a GeneralizedTime value"
        raise DecodeError(msg)
    try:
        dt = datetime.datetime.strptime(match.group("stamp"), "%Y%m%d%H%M%S")  # noqa: DTZ007
    except ValueError as e:
        msg = f"'{text}' is not a valid GeneralizedTime value"
        raise DecodeError(msg) from e
    if fraction := match.group("fraction"):
        dt = dt.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    tz = match.group("tz")
    if tz == "Z":
        return pytz.UTC.localize(dt)
    offset = datetime.timedelta(hours=int(tz[1:3]), minutes=int(tz[3:5]))
    if tz[0] == "-":
        offset = -offset
    return pytz.UTC.localize(dt - offset)


def filetime(raw: RawValue) -> datetime.datetime | None:
    """
    Adapter for Windows FILETIME attributes like ``lastLogonTimestamp`` and
    ``pwdLastSet``: the number of 100-nanosecond intervals since
    January 1, 1601 UTC.

    Raises:
        DecodeError: the value is not an integer or is out of range.

    Returns:
        An aware UTC datetime, or ``None`` if the attribute is absent or means
        "never".

    """
    timestamp = integer(raw)
    if timestamp is None or timestamp in (0, FILETIME_NEVER):
        return None
    try:
        return AD_EPOCH + datetime.timedelta(
            microseconds=timestamp // (INTERVALS_PER_SECOND // 1_000_000)
        )
    except OverflowError as e:
        msg = f"FILETIME {timestamp} is out of range"
        raise DecodeError(msg) from e


def datetime_to_filetime(dt: datetime.datetime) -> int:
    """
    Convert a datetime to a Windows FILETIME.  Naive datetimes are taken to be
    in UTC.
    """
    dt = pytz.UTC.localize(dt) if dt.tzinfo is None else dt.astimezone(pytz.UTC)
    delta = dt - AD_EPOCH
    return (
        delta.days * 86_400 * INTERVALS_PER_SECOND
        + delta.seconds * INTERVALS_PER_SECOND
        + delta.microseconds * 10
    )


def group_type(raw: RawValue) -> GroupType:
    """
    Adapter for ``groupType``.

    Returns:
        :py:attr:`GroupType.SECURITY` if the security bit is set,
        :py:attr:`GroupType.DISTRIBUTION` if not, and
        :py:attr:`GroupType.UNKNOWN` if the attribute is absent.

    """
    value = integer(raw)
    if value is None:
        return GroupType.UNKNOWN
    # groupType is a signed 32-bit integer on the wire
    if value & GROUP_TYPE_SECURITY_ENABLED:
        return GroupType.SECURITY
    return GroupType.DISTRIBUTION


def to_db_values(value: Any) -> list[bytes]:
    """
    Encode a Python value for a single-attribute write.

    ``None``, ``""`` and ``[]`` all mean "remove the attribute" and encode to
    ``[]``.

    Args:
        value: a string, integer, bytes, boolean or a list of those.

    Returns:
        The list of byte strings to send to the store.

    """
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    cleaned: list[bytes] = []
    for item in value:
        if item is None or item == "":
            continue
        if isinstance(item, bool):
            cleaned.append(b"TRUE" if item else b"FALSE")
        elif isinstance(item, (bytes, bytearray)):
            cleaned.append(bytes(item))
        elif isinstance(item, enum.Enum):
            cleaned.append(str(item.value).encode("utf-8"))
        else:
            cleaned.append(str(item).encode("utf-8"))
    return cleaned
