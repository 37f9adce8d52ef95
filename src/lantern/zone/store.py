"""Immutable owner-name -> records table built once at startup."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from . import loader
from .loader import RawRecordEntry
from .records import ResourceRecord, materialize, normalize_name

logger = logging.getLogger(__name__)


class RecordStore:
    """Read-only mapping from canonical owner name to its records.

    Inputs (constructor):
        records: Mapping of canonical owner name -> tuple of records. Prefer
            RecordStore.build() or RecordStore.from_file().

    Outputs:
        RecordStore that can be shared between handler threads without
        locking; there is no API to change it after construction.

    Example:
        >>> store = RecordStore.build(
        ...     [RawRecordEntry(name="Example.com", type="A", ttl=600, data="192.0.2.1")]
        ... )
        >>> [str(r.address) for r in store.lookup("EXAMPLE.COM.")]
        ['192.0.2.1']
    """

    def __init__(self, records: Mapping[str, Tuple[ResourceRecord, ...]]) -> None:
        self._records: Mapping[str, Tuple[ResourceRecord, ...]] = MappingProxyType(
            {name: tuple(rrs) for name, rrs in records.items() if rrs}
        )

    @classmethod
    def build(cls, entries: Iterable[RawRecordEntry]) -> "RecordStore":
        """Brief: Materialize raw entries and group them by owner name.

        Inputs:
          - entries: Raw entries in source order.

        Outputs:
          - RecordStore: Insertion order preserved per owner; duplicates kept;
            unsupported types dropped.
        """
        grouped: Dict[str, List[ResourceRecord]] = {}
        skipped = 0
        for entry in entries:
            record = materialize(entry)
            if record is None:
                skipped += 1
                continue
            grouped.setdefault(record.owner, []).append(record)
            logger.debug(
                "Loaded record: %s %s %d %s",
                entry.name,
                record.rtype,
                entry.ttl,
                entry.data,
            )

        store = cls({name: tuple(rrs) for name, rrs in grouped.items()})
        logger.info(
            "Zone loaded: %d names, %d records (%d skipped)",
            len(store),
            store.record_count,
            skipped,
        )
        return store

    @classmethod
    def from_file(cls, source_path: str, fmt: str) -> "RecordStore":
        """Load a zone file and build a store; ZoneLoadError propagates."""
        return cls.build(loader.load(source_path, fmt))

    def lookup(self, name: str) -> Optional[Tuple[ResourceRecord, ...]]:
        """Return the records owned by ``name`` (any case, dot optional) or None."""
        return self._records.get(normalize_name(name))

    def names(self) -> Tuple[str, ...]:
        return tuple(self._records.keys())

    @property
    def record_count(self) -> int:
        return sum(len(rrs) for rrs in self._records.values())

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return normalize_name(name) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"RecordStore(names={len(self)}, records={self.record_count})"
