"""Data models for template sources, scan results, and shared-part usage."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Literal

TemplateKind = Literal["reconciliationText", "accountTemplate"]

# handle -> referenced field names, first-seen order, no duplicates
DependencyMap = dict[str, list[str]]


@dataclass(frozen=True)
class TemplateSource:
    """Main text plus named text parts of one template or shared part."""

    name: str
    text: str
    parts: dict[str, str] = field(default_factory=dict)

    def texts(self) -> Iterator[str]:
        """Yield main text first, then each part in declaration order."""

        yield self.text
        yield from self.parts.values()

    def is_empty(self) -> bool:
        return not any(text.strip() for text in self.texts())


@dataclass
class CompanyFieldReferences:
    """Company fields referenced by a template."""

    standard: list[str] = field(default_factory=list)
    custom: list[str] = field(default_factory=list)


@dataclass
class ScanResult:
    """Merged references of a template and its fragment closure."""

    results: DependencyMap = field(default_factory=dict)
    customs: DependencyMap = field(default_factory=dict)
    fragments: list[str] = field(default_factory=list)
    company: CompanyFieldReferences = field(default_factory=CompanyFieldReferences)


@dataclass(frozen=True)
class SharedPartUsage:
    """One `used_in` entry of a shared part config."""

    part_name: str
    kind: str
    handle: str
    firm_ids: frozenset[str] = frozenset()


def add_reference(dependencies: DependencyMap, handle: str, field_name: str) -> None:
    """Record handle.field_name once, keeping first-seen order."""

    fields = dependencies.setdefault(handle, [])
    if field_name not in fields:
        fields.append(field_name)
