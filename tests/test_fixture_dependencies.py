from __future__ import annotations

import json
from pathlib import Path

from core.fixtures.dependencies import find_fixture_dependents, find_templates_with_fixtures
from core.templates.store import TemplateStore


def _write_template(root: Path, handle: str, fixture: str | None) -> None:
    template_dir = root / "reconciliation_texts" / handle
    (template_dir / "tests").mkdir(parents=True)
    (template_dir / "main.liquid").write_text("main", encoding="utf-8")
    config = {"handle": handle, "text": "main.liquid", "test": f"tests/{handle}_liquid_test.yml"}
    (template_dir / "config.json").write_text(json.dumps(config), encoding="utf-8")
    if fixture is not None:
        path = template_dir / "tests" / f"{handle}_liquid_test.yml"
        path.write_text(fixture, encoding="utf-8")


def _store(tmp_path: Path) -> TemplateStore:
    _write_template(
        tmp_path,
        "alpha",
        "case:\n  data:\n    periods:\n      '2023-12-31':\n        reconciliations:\n"
        "          beta:\n            results:\n              total: 1\n",
    )
    _write_template(
        tmp_path,
        "gamma",
        "case:\n  context:\n    period: beta\n  data: {}\n  expectation:\n    results:\n"
        "      beta: 1\n",
    )
    _write_template(tmp_path, "delta", "case:\n  data:\n    links:\n      - beta\n")
    _write_template(tmp_path, "beta", "case:\n  data:\n    beta: 1\n")
    _write_template(tmp_path, "epsilon", None)
    return TemplateStore(tmp_path)


def test_templates_with_fixtures_skip_missing_files(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert find_templates_with_fixtures(store) == ["alpha", "beta", "delta", "gamma"]


def test_dependents_only_look_inside_data(tmp_path: Path) -> None:
    store = _store(tmp_path)

    assert find_fixture_dependents(store, "beta") == ["alpha", "delta"]
    assert find_fixture_dependents(store, "unknown") == []
