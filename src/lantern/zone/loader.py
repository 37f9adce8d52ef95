"""Zone source parsing for Lantern.

Brief:
  Reads a zone source from disk and turns it into a list of raw record
  entries. Two on-disk formats are understood:
    - ``yaml``: a document with a top-level ``records`` list of
      ``{name, type, ttl, data}`` mappings
    - ``csv``: a header row followed by ``name,type,ttl,data`` rows

Inputs:
  - A path to the zone source and its declared format tag

Outputs:
  - A list of RawRecordEntry models (unvalidated against record semantics)

Notes:
  - Problems with the source as a whole (missing file, extension/format
    mismatch, undecodable YAML) raise a ZoneLoadError subclass and must abort
    startup.
  - Problems with a single CSV row (wrong field count, bad TTL) are logged
    and the row is skipped.
"""

from __future__ import annotations

import csv
import logging
import os
import re
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

MAX_TTL = 0xFFFFFFFF

FORMAT_YAML = "yaml"
FORMAT_CSV = "csv"

FORMAT_EXTENSIONS = {
    FORMAT_YAML: (".yaml", ".yml"),
    FORMAT_CSV: (".csv",),
}

CSV_HEADER = ("name", "type", "ttl", "data")

_TTL_RE = re.compile(r"[0-9]+")


class ZoneLoadError(Exception):
    """
    Brief: Base class for fatal zone loading failures.

    Inputs:
    - message: description
    - path: zone source path the failure refers to

    Outputs:
    - Exception instance
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class ZoneNotFoundError(ZoneLoadError):
    """Zone source does not exist."""


class ZoneMalformedError(ZoneLoadError):
    """Zone source could not be read or decoded."""


class ZoneFormatError(ZoneLoadError):
    """Declared format is unknown or does not match the file extension."""


class RawRecordEntry(BaseModel):
    """Brief: One record as it appears in a zone source.

    Inputs:
      - name: Owner name exactly as written in the source.
      - type: Record type tag (for example ``A`` or ``CNAME``).
      - ttl: Unsigned 32-bit TTL in seconds.
      - data: Record data as text.

    Outputs:
      - RawRecordEntry instance.
    """

    name: str
    type: str
    ttl: int = Field(ge=0, le=MAX_TTL)
    data: str

    class Config:
        frozen = True


def check_format(source_path: str, fmt: str) -> None:
    """Brief: Verify that a zone file extension agrees with its declared format.

    Inputs:
      - source_path: Zone file path.
      - fmt: Declared format tag (``yaml`` or ``csv``).

    Outputs:
      - None.

    Raises:
      - ZoneFormatError: Unknown format tag or mismatching extension.

    Example:
      check_format("zone.yml", "yaml") -> None
      check_format("zone.csv", "yaml") -> raises ZoneFormatError
    """
    allowed = FORMAT_EXTENSIONS.get(str(fmt).lower())
    if allowed is None:
        raise ZoneFormatError(
            f"Unsupported zone file format: {fmt!r}", path=source_path
        )
    ext = os.path.splitext(source_path)[1]
    if ext.lower() not in allowed:
        raise ZoneFormatError(
            f"Zone file {source_path} has extension {ext!r}, but format is "
            f"specified as {str(fmt).upper()}",
            path=source_path,
        )


def parse_ttl(text: str) -> int:
    """Brief: Parse a TTL field as an unsigned 32-bit integer.

    Inputs:
      - text: TTL as written in the source (surrounding whitespace allowed).

    Outputs:
      - int: TTL value.

    Raises:
      - ValueError: Empty, signed, non-decimal, or larger than 2**32-1.
    """
    value = str(text).strip()
    if not _TTL_RE.fullmatch(value):
        raise ValueError(f"invalid ttl {text!r}")
    ttl = int(value)
    if ttl > MAX_TTL:
        raise ValueError(f"ttl {ttl} out of range")
    return ttl


def _parse_yaml(source_path: str, text: str) -> List[RawRecordEntry]:
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ZoneMalformedError(
            f"error decoding YAML file {source_path}: {exc}", path=source_path
        ) from exc

    if doc is None:
        return []
    if not isinstance(doc, dict):
        raise ZoneMalformedError(
            f"error decoding YAML file {source_path}: top level must be a mapping",
            path=source_path,
        )

    nodes: Any = doc.get("records")
    if nodes is None:
        return []
    if not isinstance(nodes, list):
        raise ZoneMalformedError(
            f"error decoding YAML file {source_path}: 'records' must be a list",
            path=source_path,
        )

    entries: List[RawRecordEntry] = []
    for index, node in enumerate(nodes):
        if not isinstance(node, dict):
            raise ZoneMalformedError(
                f"error decoding YAML file {source_path}: record #{index + 1} "
                f"is not a mapping",
                path=source_path,
            )
        # YAML will happily hand back ints/bools for names or data such as
        # 1.2 or yes; coerce the text fields, keep ttl strict.
        node = dict(node)
        for key in ("name", "type", "data"):
            if key in node and node[key] is not None and not isinstance(
                node[key], str
            ):
                node[key] = str(node[key])
        try:
            entries.append(RawRecordEntry(**node))
        except ValidationError as exc:
            raise ZoneMalformedError(
                f"error decoding YAML file {source_path}: record #{index + 1}: "
                f"{exc}",
                path=source_path,
            ) from exc
    return entries


def _parse_csv(source_path: str, text: str) -> List[RawRecordEntry]:
    reader = csv.reader(text.splitlines(), skipinitialspace=True, strict=False)
    rows = [(lineno, row) for lineno, row in enumerate(reader, start=1) if row]

    if len(rows) <= 1:
        logger.info("CSV file %s is empty or has only a header", source_path)
        return []

    header = tuple(col.strip().lower() for col in rows[0][1])
    if header != CSV_HEADER:
        logger.debug(
            "CSV file %s header %r differs from %r; treating it as a header anyway",
            source_path,
            rows[0][1],
            ",".join(CSV_HEADER),
        )

    entries: List[RawRecordEntry] = []
    for lineno, row in rows[1:]:
        if len(row) != 4:
            logger.warning(
                "Invalid record format at %s line %d: %r", source_path, lineno, row
            )
            continue
        name, rtype, ttl_raw, data = row
        try:
            ttl = parse_ttl(ttl_raw)
        except ValueError as exc:
            logger.warning(
                "Invalid TTL value at %s line %d: %r (%s)",
                source_path,
                lineno,
                ttl_raw,
                exc,
            )
            continue
        entries.append(RawRecordEntry(name=name, type=rtype, ttl=ttl, data=data))
    return entries


def load(source_path: str, fmt: str) -> List[RawRecordEntry]:
    """Brief: Parse a zone source into raw record entries.

    Inputs:
      - source_path: Path to the zone file.
      - fmt: Declared format tag, ``yaml`` or ``csv`` (case-insensitive).

    Outputs:
      - list[RawRecordEntry]: Entries in source order.

    Raises:
      - ZoneFormatError: Format unknown or extension mismatch (checked first).
      - ZoneNotFoundError: File does not exist.
      - ZoneMalformedError: File unreadable or YAML undecodable.
    """
    check_format(source_path, fmt)
    fmt = str(fmt).lower()

    logger.info("Loading zone data from %s with format %s", source_path, fmt)
    try:
        with open(source_path, "r", encoding="utf-8", newline="") as f:
            text = f.read()
    except FileNotFoundError as exc:
        raise ZoneNotFoundError(
            f"zone file {source_path} does not exist", path=source_path
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ZoneMalformedError(
            f"error opening file {source_path}: {exc}", path=source_path
        ) from exc

    if fmt == FORMAT_YAML:
        entries = _parse_yaml(source_path, text)
    else:
        entries = _parse_csv(source_path, text)

    logger.debug("Read %d raw entries from %s", len(entries), source_path)
    return entries
