from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

SENTINEL = b"\x03"

# Plain ASCII numerals only; no "_" separators or non-ASCII digits
_INT_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.ASCII | re.IGNORECASE,
)

# Field order of a Heimdall candidate record (tab separated)
_FIELDS = (
    ("significance", float),
    ("frequency_channel_index", int),
    ("time_index", int),
    ("timestamp", float),
    ("boxcar_index", int),
    ("dm_index", int),
    ("dispersion_measure", float),
)


class ParseError(ValueError):
    """A record could not be decoded into a Candidate."""

    def __init__(self, message: str, record: Union[str, bytes, None] = None):
        super().__init__(message)
        self.record = record


@dataclass(frozen=True)
class Candidate:
    significance: float
    frequency_channel_index: int
    time_index: int
    timestamp: float
    boxcar_index: int
    dm_index: int
    dispersion_measure: float

    def to_row(self) -> dict:
        """Projection written to the ``t2_cands`` table."""
        return {
            "mjds": self.timestamp,
            "snr": self.significance,
            "ibox": self.boxcar_index,
            "dm": self.dispersion_measure,
        }


def is_sentinel(record: Union[str, bytes]) -> bool:
    if isinstance(record, str):
        return record == SENTINEL.decode("ascii")
    return bytes(record) == SENTINEL


def parse_candidate(record: Union[str, bytes]) -> Candidate:
    """Decode one tab separated record.

    Raises ``ParseError`` when the record is not valid UTF-8, does not have
    exactly seven fields, or a field does not parse as its numeric type.
    """
    if isinstance(record, (bytes, bytearray)):
        try:
            text = bytes(record).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"record is not valid utf-8: {e}", record) from e
    else:
        text = record

    fields = [f.strip() for f in text.strip().split("\t")]
    if len(fields) != len(_FIELDS):
        raise ParseError(f"expected {len(_FIELDS)} fields, got {len(fields)}", record)

    values = {}
    for raw, (name, kind) in zip(fields, _FIELDS):
        pattern = _INT_RE if kind is int else _FLOAT_RE
        if not pattern.fullmatch(raw):
            raise ParseError(f"bad {name} value {raw!r}", record)
        values[name] = kind(raw)
    return Candidate(**values)
