"""Static reference extraction from template source text.

Every function is a pure text scan: results are appended to an existing
accumulator so callers can merge a template with its shared parts, and
running a scan twice over the same source never adds duplicates.
"""

from __future__ import annotations

import json
import re
from typing import Any

from core.templates.models import (
    CompanyFieldReferences,
    DependencyMap,
    TemplateSource,
    add_reference,
)

_DIRECT_RESULT_RE = re.compile(r"period\.reconciliations\.(\w+)\.results\.(\w+)")
# `assign alias = period.reconciliations.<handle>[.results]` followed by a delimiter
_RESULT_ALIAS_RE = re.compile(
    r"(?<![\w.])(\w+)\s*=\s*period\.reconciliations\.(\w+)(\.results)?(?=[\s%}|])"
)
_CUSTOM_RE = re.compile(r"period\.reconciliations\.(\w+)\.custom\.(\w+)\.(\w+)")
_FRAGMENT_RE = re.compile(r"shared/(\w+)")
_COMPANY_CUSTOM_RE = re.compile(r"\bcompany\.custom\.(\w+)\.(\w+)")
_COMPANY_FIELD_RE = re.compile(r"\bcompany\.(\w+)")
_ACCOUNT_LITERAL_RE = re.compile(r"#([0-9]+)")


def find_fragment_references(source: TemplateSource, known: list[str]) -> list[str]:
    """Append shared-part names referenced as `shared/<name>` to known."""

    for text in source.texts():
        for match in _FRAGMENT_RE.finditer(text):
            name = match.group(1)
            if name not in known:
                known.append(name)
    return known


def find_cross_template_result_references(
    source: TemplateSource,
    own_handle: str,
    dependencies: DependencyMap,
) -> DependencyMap:
    """Append `handle -> result names` read from other templates.

    Two styles are recognised:
    - direct: `period.reconciliations.<handle>.results.<name>`
    - aliased: `assign x = period.reconciliations.<handle>` then `x.results.<name>`,
      or `assign x = period.reconciliations.<handle>.results` then `x.<name>`.
    """

    texts = list(source.texts())
    for text in texts:
        for match in _DIRECT_RESULT_RE.finditer(text):
            handle, result_name = match.groups()
            if handle != own_handle:
                add_reference(dependencies, handle, result_name)

    for text in texts:
        for alias_match in _RESULT_ALIAS_RE.finditer(text):
            alias, handle, bound_to_results = alias_match.groups()
            if handle == own_handle:
                continue
            if bound_to_results:
                usage_re = re.compile(rf"(?<![\w.]){re.escape(alias)}\.(\w+)")
            else:
                usage_re = re.compile(rf"(?<![\w.]){re.escape(alias)}\.results\.(\w+)")
            for usage_text in texts:
                for usage in usage_re.finditer(usage_text):
                    add_reference(dependencies, handle, usage.group(1))
    return dependencies


def find_cross_template_custom_references(
    source: TemplateSource,
    own_handle: str,
    dependencies: DependencyMap,
) -> DependencyMap:
    """Append `handle -> "namespace.key"` custom fields read from other templates."""

    for text in source.texts():
        for match in _CUSTOM_RE.finditer(text):
            handle, namespace, key = match.groups()
            if handle != own_handle:
                add_reference(dependencies, handle, f"{namespace}.{key}")
    return dependencies


def find_company_field_references(
    source: TemplateSource,
    references: CompanyFieldReferences | None = None,
) -> CompanyFieldReferences:
    """Collect `company.<field>` and `company.custom.<namespace>.<key>` references."""

    if references is None:
        references = CompanyFieldReferences()
    for text in source.texts():
        for match in _COMPANY_CUSTOM_RE.finditer(text):
            custom_key = f"{match.group(1)}.{match.group(2)}"
            if custom_key not in references.custom:
                references.custom.append(custom_key)
        for match in _COMPANY_FIELD_RE.finditer(text):
            field_name = match.group(1)
            if field_name == "custom" or field_name in references.standard:
                continue
            references.standard.append(field_name)
    return references


def find_literal_account_references(structure: Any) -> list[str]:
    """Return account numbers written as `#<digits>` anywhere in a serialisable structure."""

    serialized = json.dumps(structure, ensure_ascii=False, default=str)
    numbers: list[str] = []
    for match in _ACCOUNT_LITERAL_RE.finditer(serialized):
        number = match.group(1)
        if number not in numbers:
            numbers.append(number)
    return numbers
