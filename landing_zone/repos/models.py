"""Repository dataclasses."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class StateRecord:
    """One item of the state table: the sort key plus the serialized snapshot."""

    partition_key: str
    sort_key: str
    state: str
    version: str
