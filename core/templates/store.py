"""Local disk store for templates, shared parts, and their fixtures."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from core.templates.models import SharedPartUsage, TemplateKind, TemplateSource
from core.utils.log_events import log_event

logger = logging.getLogger("testkit.store")

KIND_FOLDERS: dict[str, str] = {
    "reconciliationText": "reconciliation_texts",
    "accountTemplate": "account_templates",
}
SHARED_PARTS_FOLDER = "shared_parts"

# config keys that are file references, not template attributes
_NON_PAYLOAD_CONFIG_KEYS = {"id", "text", "text_parts", "test", "externally_managed"}
_FIXTURE_SUFFIX = "_liquid_test.yml"

_UsageIndex = tuple[
    dict[tuple[str, str], list[SharedPartUsage]],
    dict[str, list[SharedPartUsage]],
]


class TemplateStore:
    """Read template sources and read/write fixture files under a repository root."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._usage: _UsageIndex | None = None

    def template_dir(self, kind: TemplateKind, handle: str) -> Path:
        return self._root / KIND_FOLDERS[kind] / handle

    def read_config(self, kind: TemplateKind, handle: str) -> dict[str, Any] | None:
        return _read_json(self.template_dir(kind, handle) / "config.json")

    def read_template_source(self, kind: TemplateKind, handle: str) -> TemplateSource | None:
        """Return main text and parts, or None when the template is not stored locally."""

        template_dir = self.template_dir(kind, handle)
        config = self.read_config(kind, handle)
        if config is None:
            return None
        main_path = template_dir / str(config.get("text") or "main.liquid")
        if not main_path.exists():
            return None

        parts: dict[str, str] = {}
        for name, relative in (config.get("text_parts") or {}).items():
            part_path = template_dir / str(relative or f"text_parts/{name}.liquid")
            if part_path.exists():
                parts[name] = part_path.read_text(encoding="utf-8")
            else:
                log_event(logger, logging.WARNING, "text_part_missing", handle=handle, part=name)
        return TemplateSource(name=handle, text=main_path.read_text(encoding="utf-8"), parts=parts)

    def read_shared_part(self, name: str) -> TemplateSource | None:
        part_dir = self._root / SHARED_PARTS_FOLDER / name
        config = _read_json(part_dir / "config.json") or {}
        path = part_dir / str(config.get("text") or f"{name}.liquid")
        if not path.exists():
            return None
        return TemplateSource(name=name, text=path.read_text(encoding="utf-8"))

    def fixture_path(self, kind: TemplateKind, handle: str) -> Path:
        config = self.read_config(kind, handle) or {}
        relative = config.get("test") or f"tests/{handle}{_FIXTURE_SUFFIX}"
        return self.template_dir(kind, handle) / str(relative)

    def read_fixture_text(self, kind: TemplateKind, handle: str) -> str | None:
        path = self.fixture_path(kind, handle)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write_fixture_text(
        self, kind: TemplateKind, handle: str, text: str, path: Path | None = None
    ) -> Path:
        """Write fixture text to path (default: the configured fixture file)."""

        target = path or self.fixture_path(kind, handle)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.with_suffix(f"{target.suffix}.tmp")
        temp_path.write_text(text, encoding="utf-8")
        temp_path.replace(target)
        return target

    def next_fixture_path(self, kind: TemplateKind, handle: str) -> Path:
        """Return the first free `<handle>[_<n>]_liquid_test.yml` in the tests folder."""

        tests_dir = self.template_dir(kind, handle) / "tests"
        candidate = tests_dir / f"{handle}{_FIXTURE_SUFFIX}"
        counter = 0
        while candidate.exists():
            counter += 1
            candidate = tests_dir / f"{handle}_{counter}{_FIXTURE_SUFFIX}"
        return candidate

    def list_handles(self, kind: TemplateKind) -> list[str]:
        folder = self._root / KIND_FOLDERS[kind]
        if not folder.is_dir():
            return []
        return sorted(path.name for path in folder.iterdir() if (path / "config.json").exists())

    def resolve_template_id(self, firm_id: str, kind: TemplateKind, handle: str) -> int | None:
        config = self.read_config(kind, handle) or {}
        raw = (config.get("id") or {}).get(str(firm_id))
        try:
            return int(raw) if raw is not None else None
        except (TypeError, ValueError):
            return None

    def list_shared_parts_used_by(self, firm_id: str, kind: TemplateKind, handle: str) -> list[str]:
        """Return shared part names linked to the template in the given firm."""

        by_template, _ = self._usage_index()
        return [
            usage.part_name
            for usage in by_template.get((kind, handle), [])
            if str(firm_id) in usage.firm_ids
        ]

    def list_templates_using(self, part_name: str) -> list[SharedPartUsage]:
        _, by_part = self._usage_index()
        return list(by_part.get(part_name, []))

    def build_template_payload(self, kind: TemplateKind, handle: str) -> dict[str, Any] | None:
        """Return config attributes plus `text` and `text_parts` as sent to the test endpoints."""

        config = self.read_config(kind, handle)
        source = self.read_template_source(kind, handle)
        if config is None or source is None:
            return None
        payload = {
            key: value for key, value in config.items() if key not in _NON_PAYLOAD_CONFIG_KEYS
        }
        payload["handle"] = config.get("handle") or handle
        payload["text"] = source.text
        payload["text_parts"] = [
            {"name": name, "content": content} for name, content in source.parts.items()
        ]
        return payload

    def _usage_index(self) -> _UsageIndex:
        if self._usage is None:
            self._usage = self._build_usage_index()
        return self._usage

    def _build_usage_index(self) -> _UsageIndex:
        by_template: dict[tuple[str, str], list[SharedPartUsage]] = {}
        by_part: dict[str, list[SharedPartUsage]] = {}
        folder = self._root / SHARED_PARTS_FOLDER
        if not folder.is_dir():
            return by_template, by_part

        for part_dir in sorted(folder.iterdir()):
            config = _read_json(part_dir / "config.json")
            if config is None:
                continue
            for entry in config.get("used_in") or []:
                handle = entry.get("handle") or entry.get("name")
                kind = entry.get("type")
                if not handle or kind not in KIND_FOLDERS:
                    continue
                usage = SharedPartUsage(
                    part_name=part_dir.name,
                    kind=kind,
                    handle=handle,
                    firm_ids=frozenset(str(key) for key in (entry.get("id") or {})),
                )
                by_template.setdefault((kind, handle), []).append(usage)
                by_part.setdefault(part_dir.name, []).append(usage)
        return by_template, by_part


def _read_json(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid config JSON: {path}") from exc
    return raw if isinstance(raw, dict) else None
