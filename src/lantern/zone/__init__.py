"""Zone loading and the in-memory record table."""

from .loader import (
    RawRecordEntry,
    ZoneFormatError,
    ZoneLoadError,
    ZoneMalformedError,
    ZoneNotFoundError,
    load,
)
from .records import ARecord, CNAMERecord, ResourceRecord, materialize, normalize_name
from .store import RecordStore

__all__ = [
    "ARecord",
    "CNAMERecord",
    "RawRecordEntry",
    "RecordStore",
    "ResourceRecord",
    "ZoneFormatError",
    "ZoneLoadError",
    "ZoneMalformedError",
    "ZoneNotFoundError",
    "load",
    "materialize",
    "normalize_name",
]
