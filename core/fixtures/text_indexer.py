"""Case-to-line indexing and pattern extraction over raw fixture text.

The structural parse only provides the set of case names. Line numbers are
always taken from the literal text so they match what the user edits.
"""

from __future__ import annotations

import re

import yaml  # type: ignore[import-untyped]

from core.fixtures.models import FilteredFixture, LineIndex


def parse_case_names(fixture_text: str) -> list[str]:
    """Return top-level case names in document order, or [] for an empty document."""

    loaded = yaml.safe_load(fixture_text) if fixture_text.strip() else None
    if not isinstance(loaded, dict):
        return []
    return [str(name) for name in loaded]


def index_case_lines(fixture_text: str) -> LineIndex:
    """Map each case name to the 1-based line of its top-level key.

    A case whose key line cannot be found falls back to the first line that
    mentions the name as a whole token. Comments naming a case never win over
    its key line.
    """

    lines = fixture_text.splitlines()
    index: LineIndex = {}
    for name in parse_case_names(fixture_text):
        line_number = _find_key_line(lines, name)
        if line_number is not None:
            index[name] = line_number
    return index


def filter_by_pattern(
    fixture_text: str,
    pattern: str,
    index: LineIndex | None = None,
) -> FilteredFixture:
    """Extract every case whose name contains pattern, in original order.

    Each block keeps the blank and comment lines directly above its key and
    ends where the next case's block begins. Blocks are separated by one
    blank line; edge blank lines of each block are dropped.
    """

    if index is None:
        index = index_case_lines(fixture_text)
    lines = fixture_text.splitlines()
    ordered = sorted(index.items(), key=lambda item: item[1])

    starts: list[int] = []
    for position, (_, line_number) in enumerate(ordered):
        floor = ordered[position - 1][1] if position > 0 else 0
        starts.append(_extended_start(lines, line_number - 1, floor))

    blocks: list[str] = []
    included: list[str] = []
    for position, (name, _) in enumerate(ordered):
        if pattern not in name:
            continue
        end = starts[position + 1] if position + 1 < len(starts) else len(lines)
        block = _strip_blank_edges(lines[starts[position] : end])
        if block:
            blocks.append("\n".join(block))
            included.append(name)

    if not included:
        return FilteredFixture()

    text = "\n\n".join(blocks).strip()
    filtered_index = index_case_lines(text)
    adjustments = {
        name: index[name] - filtered_index[name] for name in included if name in filtered_index
    }
    return FilteredFixture(text=text, included_cases=included, line_adjustments=adjustments)


def has_cases(fixture_text: str | None) -> bool:
    """Return False for a missing fixture or one holding only a header comment."""

    if fixture_text is None:
        return False
    if len(fixture_text.strip().splitlines()) <= 1:
        return False
    return bool(parse_case_names(fixture_text))


def _find_key_line(lines: list[str], name: str) -> int | None:
    key_re = re.compile(rf"^(['\"]?){re.escape(name)}\1\s*:")
    for number, line in enumerate(lines, start=1):
        if key_re.match(line):
            return number
    token_re = re.compile(rf"(?<![\w-]){re.escape(name)}(?![\w-])")
    for number, line in enumerate(lines, start=1):
        if token_re.search(line):
            return number
    return None


def _extended_start(lines: list[str], start: int, floor: int) -> int:
    while start > floor:
        previous = lines[start - 1].strip()
        if previous and not previous.startswith("#"):
            break
        start -= 1
    return start


def _strip_blank_edges(block: list[str]) -> list[str]:
    first = 0
    last = len(block)
    while first < last and not block[first].strip():
        first += 1
    while last > first and not block[last - 1].strip():
        last -= 1
    return block[first:last]
