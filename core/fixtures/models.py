"""Data models for fixture documents and their line bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# case name -> 1-based line of its top-level key
LineIndex = dict[str, int]

FixtureDocument = dict[str, Any]


@dataclass
class FilteredFixture:
    """Excerpt of a fixture restricted to cases matching a name pattern."""

    text: str = ""
    included_cases: list[str] = field(default_factory=list)
    line_adjustments: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class GeneratedFixture:
    """Synthesized fixture plus where it was written."""

    handle: str
    case_name: str
    document: FixtureDocument
    path: Path | None = None
