from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from apps.cli.main import app
from core.remote.client import PlatformClient
from core.utils.settings import Settings

runner = CliRunner()

_FIXTURE = """\
unit_1_test:
  expectation:
    reconciled: true

unit_2_test:
  expectation:
    reconciled: false
"""


def _write_template(root: Path, handle: str, fixture: str) -> None:
    template_dir = root / "reconciliation_texts" / handle
    (template_dir / "tests").mkdir(parents=True)
    (template_dir / "main.liquid").write_text("main", encoding="utf-8")
    config = {"handle": handle, "text": "main.liquid", "test": f"tests/{handle}_liquid_test.yml"}
    (template_dir / "config.json").write_text(json.dumps(config), encoding="utf-8")
    (template_dir / "tests" / f"{handle}_liquid_test.yml").write_text(fixture, encoding="utf-8")


def _use_fake_platform(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    def for_firm(cls, settings: Settings, firm_id: str) -> PlatformClient:
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url=f"https://example.test/api/v4/f/{firm_id}/",
        )
        return cls(http_client, firm_id)

    monkeypatch.setattr(PlatformClient, "for_firm", classmethod(for_firm))


@pytest.fixture(autouse=True)
def _env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SF_ACCESS_TOKEN", "token")
    monkeypatch.delenv("SF_FIRM_ID", raising=False)
    monkeypatch.setenv("SF_POLL_INITIAL_DELAY_SECONDS", "0.001")
    monkeypatch.setenv("SF_HTML_EXPORT_DIR", str(tmp_path / "html"))


def _failing_run_handler(request: httpx.Request) -> httpx.Response:
    if request.method == "POST":
        return httpx.Response(200, json=9)
    failing = {"total": {"got": 1, "expected": 2, "line_number": 3}}
    tests = {"unit_2_test": {"reconciled": None, "results": failing, "rollforwards": {}}}
    return httpx.Response(200, json={"status": "completed", "tests": tests})


def test_run_test_requires_firm(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--root", str(tmp_path), "run-test", "--handle", "alpha"])

    assert result.exit_code == 2
    assert "ERROR: --firm is required" in result.output


def test_run_test_all_requires_status(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--root", str(tmp_path), "run-test", "--firm", "1", "--all"])

    assert result.exit_code == 2


def test_run_test_unauthorized_firm(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SF_ACCESS_TOKEN")
    _write_template(tmp_path, "alpha", _FIXTURE)

    result = runner.invoke(
        app, ["--root", str(tmp_path), "run-test", "--firm", "1", "--handle", "alpha"]
    )

    assert result.exit_code == 3
    assert "ERROR: Firm 1 is not authorized" in result.output


def test_run_test_with_empty_fixture_is_not_an_error(tmp_path: Path) -> None:
    _write_template(tmp_path, "alpha", "# Add your Liquid Tests here\n")

    result = runner.invoke(
        app, ["--root", str(tmp_path), "run-test", "--firm", "1", "--handle", "alpha"]
    )

    assert result.exit_code == 0
    assert "there are no tests stored in the YAML file" in result.output


def test_run_test_pattern_reports_original_line_numbers(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _write_template(tmp_path, "alpha", _FIXTURE)
    _use_fake_platform(monkeypatch, _failing_run_handler)

    result = runner.invoke(
        app,
        [
            "--root",
            str(tmp_path),
            "run-test",
            "--firm",
            "1",
            "--handle",
            "alpha",
            "--pattern",
            "unit_2",
        ],
    )

    assert result.exit_code == 4
    assert 'Running 1 test matching pattern "unit_2"' in result.output
    assert "1 TEST FAILED" in result.output
    assert "At line number 7" in result.output


def test_run_test_status_prints_each_handle(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _write_template(tmp_path, "alpha", _FIXTURE)
    _write_template(tmp_path, "beta", "# Add your Liquid Tests here\n")
    _use_fake_platform(monkeypatch, _failing_run_handler)

    result = runner.invoke(
        app, ["--root", str(tmp_path), "run-test", "--firm", "1", "--all", "--status"]
    )

    assert result.exit_code == 4
    assert result.output.splitlines() == ["alpha: FAILED [unit_2_test]", "beta: PASSED", "FAILED"]


def test_run_test_preview_only_exports_html(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _write_template(tmp_path, "alpha", _FIXTURE)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            assert request.url.path.endswith("/reconciliations/render")
            return httpx.Response(200, json=3)
        tests = {"unit_1_test": {"html_preview": "https://cdn.test/preview.html"}}
        return httpx.Response(200, json={"status": "completed", "tests": tests})

    async def download_text(self: PlatformClient, url: str) -> str:
        return f"<html>{url}</html>"

    _use_fake_platform(monkeypatch, handler)
    monkeypatch.setattr(PlatformClient, "download_text", download_text)

    result = runner.invoke(
        app,
        [
            "--root",
            str(tmp_path),
            "run-test",
            "--firm",
            "1",
            "--handle",
            "alpha",
            "--html-preview",
            "--preview-only",
        ],
    )

    assert result.exit_code == 0
    assert "SUCCESSFULLY RENDERED HTML (SKIPPED TESTS)" in result.output
    exported = tmp_path / "html" / "unit_1_test_html_preview.html"
    assert exported.read_text(encoding="utf-8") == "<html>https://cdn.test/preview.html</html>"


def test_generate_test_rejects_bad_link(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["--root", str(tmp_path), "generate-test", "--url", "https://x.test/1", "--test", "t"],
    )

    assert result.exit_code == 2
    assert result.output.startswith("ERROR:")


def test_dependents_lists_templates(tmp_path: Path) -> None:
    _write_template(tmp_path, "alpha", "case:\n  data:\n    beta: 1\n")
    _write_template(tmp_path, "gamma", "case:\n  data: {}\n")

    result = runner.invoke(app, ["--root", str(tmp_path), "dependents", "--handle", "beta"])

    assert result.exit_code == 0
    assert result.output.splitlines() == ["alpha"]
