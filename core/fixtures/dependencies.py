"""Find which stored fixtures feed data into other templates."""

from __future__ import annotations

import logging
from typing import Any

import yaml  # type: ignore[import-untyped]

from core.templates.store import TemplateStore
from core.utils.log_events import log_event

logger = logging.getLogger("testkit.dependencies")


def find_templates_with_fixtures(store: TemplateStore) -> list[str]:
    """Return reconciliation handles whose fixture file exists."""

    return [
        handle
        for handle in store.list_handles("reconciliationText")
        if store.fixture_path("reconciliationText", handle).exists()
    ]


def find_fixture_dependents(store: TemplateStore, target_handle: str) -> list[str]:
    """Return handles whose fixture `data` sections mention target_handle.

    A mention is a mapping key or a string value equal to the handle, at any
    depth below a case's `data` section.
    """

    dependents: list[str] = []
    for handle in find_templates_with_fixtures(store):
        if handle == target_handle:
            continue
        text = store.read_fixture_text("reconciliationText", handle) or ""
        try:
            document = yaml.safe_load(text) if text.strip() else None
        except yaml.YAMLError as exc:
            log_event(logger, logging.WARNING, "fixture_unreadable", handle=handle, error=str(exc))
            continue
        if not isinstance(document, dict):
            continue
        for case in document.values():
            if isinstance(case, dict) and _mentions(case.get("data"), target_handle):
                dependents.append(handle)
                break
    return dependents


def _mentions(node: Any, target: str) -> bool:
    if isinstance(node, dict):
        return any(str(key) == target or _mentions(value, target) for key, value in node.items())
    if isinstance(node, list):
        return any(_mentions(item, target) for item in node)
    return isinstance(node, str) and node == target
