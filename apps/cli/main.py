"""Typer CLI entrypoint for liquid-testkit."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Any

import typer

from apps.cli.io import clear_html_exports, html_export_path, write_text_atomic
from apps.cli.report_human import render_batch_status, render_run_report
from core.fixtures.dependencies import find_fixture_dependents, find_templates_with_fixtures
from core.fixtures.models import GeneratedFixture
from core.fixtures.synthesizer import FixtureSynthesizer
from core.orchestrator.runner import (
    RenderMode,
    RunOrchestrator,
    check_render_mode,
    html_render_targets,
)
from core.remote.client import PlatformClient
from core.remote.models import RunResult, TemplateLocation
from core.remote.urls import parse_template_url
from core.templates.models import TemplateKind
from core.templates.store import TemplateStore
from core.utils.errors import (
    RunTimeoutError,
    TemplateNotFoundError,
    UnauthorizedFirmError,
    UserInputError,
)
from core.utils.settings import Settings, load_settings

app = typer.Typer(help="Liquid template test toolkit", rich_markup_mode=None)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USER_INPUT = 2
EXIT_NOT_FOUND = 3
EXIT_TESTS_FAILED = 4


@app.callback()
def cli_callback(
    ctx: typer.Context,
    root: Annotated[
        Path, typer.Option("--root", help="Repository root holding the template folders.")
    ] = Path("."),
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable debug logging.")] = False,
) -> None:
    """Resolve repository root and logging level shared by all commands."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )
    ctx.obj = {"root": root, "settings": load_settings()}


@app.command("generate-test")
def generate_test_command(
    ctx: typer.Context,
    url: Annotated[str, typer.Option("--url", help="Link to the reconciliation in the platform.")],
    test: Annotated[str, typer.Option("--test", help="Name of the test case to create.")],
    reconciled: Annotated[
        bool, typer.Option("--reconciled/--not-reconciled", help="Expected reconciled status.")
    ] = True,
) -> None:
    """Create a fixture from the live data behind a reconciliation link."""

    settings, store = _context(ctx)
    try:
        location = parse_template_url(url)
        generated = asyncio.run(_generate(settings, store, location, test, reconciled))
    except Exception as exc:  # noqa: BLE001
        raise typer.Exit(code=_report_error(exc)) from exc

    typer.echo(f"INFO: File saved: {generated.path}")


@app.command("run-test")
def run_test_command(
    ctx: typer.Context,
    handle: Annotated[
        list[str] | None, typer.Option("--handle", help="Template handle; repeat with --status.")
    ] = None,
    firm: Annotated[
        str | None, typer.Option("--firm", help="Firm id (default SF_FIRM_ID).")
    ] = None,
    account_template: Annotated[
        bool, typer.Option("--account-template", help="Handles are account templates.")
    ] = False,
    test: Annotated[str, typer.Option("--test", help="Run a single test case.")] = "",
    pattern: Annotated[
        str, typer.Option("--pattern", help="Run test cases whose name contains this text.")
    ] = "",
    html_input: Annotated[bool, typer.Option("--html-input")] = False,
    html_preview: Annotated[bool, typer.Option("--html-preview")] = False,
    preview_only: Annotated[
        bool, typer.Option("--preview-only", help="Only render HTML, skip the test run.")
    ] = False,
    open_browser: Annotated[bool, typer.Option("--open", help="Open rendered HTML.")] = False,
    status: Annotated[
        bool, typer.Option("--status", help="Only print PASSED/FAILED per handle.")
    ] = False,
    all_templates: Annotated[
        bool, typer.Option("--all", help="With --status, run every template with a fixture.")
    ] = False,
) -> None:
    """Run stored fixtures against the remote engine."""

    settings, store = _context(ctx)
    handles = list(handle or [])
    firm_id = firm or settings.default_firm_id
    kind: TemplateKind = "accountTemplate" if account_template else "reconciliationText"

    if firm_id is None:
        typer.echo("ERROR: --firm is required when SF_FIRM_ID is not set.")
        raise typer.Exit(code=EXIT_USER_INPUT)
    if all_templates and not status:
        typer.echo("ERROR: --all can only be combined with --status.")
        raise typer.Exit(code=EXIT_USER_INPUT)
    if all_templates:
        handles = find_templates_with_fixtures(store)
    if not handles:
        typer.echo("ERROR: no template handle given.")
        raise typer.Exit(code=EXIT_USER_INPUT)
    if not status and len(handles) > 1:
        typer.echo("ERROR: multiple handles require --status.")
        raise typer.Exit(code=EXIT_USER_INPUT)

    try:
        if status:
            exit_code = asyncio.run(
                _run_status(settings, store, firm_id, kind, handles, test, pattern)
            )
        else:
            render_mode = check_render_mode(html_input, html_preview)
            if preview_only and render_mode == "none":
                raise UserInputError("--preview-only needs --html-input or --html-preview")
            exit_code = asyncio.run(
                _run_single(
                    settings,
                    store,
                    firm_id,
                    kind,
                    handles[0],
                    test_name=test,
                    pattern=pattern,
                    render_mode=render_mode,
                    preview_only=preview_only,
                    open_browser=open_browser,
                )
            )
    except Exception as exc:  # noqa: BLE001
        raise typer.Exit(code=_report_error(exc)) from exc

    raise typer.Exit(code=exit_code)


@app.command("dependents")
def dependents_command(
    ctx: typer.Context,
    handle: Annotated[str, typer.Option("--handle", help="Template whose data others use.")],
) -> None:
    """List templates whose fixtures feed data of the given template."""

    _, store = _context(ctx)
    dependents = find_fixture_dependents(store, handle)
    if not dependents:
        typer.echo(f"INFO: no fixtures depend on {handle}")
        return
    for dependent in dependents:
        typer.echo(dependent)


async def _generate(
    settings: Settings,
    store: TemplateStore,
    location: TemplateLocation,
    case_name: str,
    reconciled: bool,
) -> GeneratedFixture:
    async with PlatformClient.for_firm(settings, location.firm_id) as client:
        return await FixtureSynthesizer(client, store).generate(location, case_name, reconciled)


async def _run_status(
    settings: Settings,
    store: TemplateStore,
    firm_id: str,
    kind: TemplateKind,
    handles: list[str],
    case_name: str,
    pattern: str,
) -> int:
    async with PlatformClient.for_firm(settings, firm_id) as client:
        batch = await RunOrchestrator(client, store, settings).run_status_only(
            kind, handles, case_name, pattern
        )
    typer.echo(render_batch_status(batch))
    return EXIT_OK if batch.status == "PASSED" else EXIT_TESTS_FAILED


async def _run_single(
    settings: Settings,
    store: TemplateStore,
    firm_id: str,
    kind: TemplateKind,
    handle: str,
    *,
    test_name: str,
    pattern: str,
    render_mode: RenderMode,
    preview_only: bool,
    open_browser: bool,
) -> int:
    async with PlatformClient.for_firm(settings, firm_id) as client:
        orchestrator = RunOrchestrator(client, store, settings)
        payload = orchestrator.build_run_payload(kind, handle, test_name, render_mode, pattern)
        if payload is None:
            typer.echo(f"INFO: {handle}: there are no tests stored in the YAML file")
            return EXIT_OK
        if pattern:
            count = len(payload.included_cases)
            typer.echo(
                f'INFO: Running {count} test{"s" if count > 1 else ""} '
                f'matching pattern "{pattern}" in template "{handle}"'
            )

        outcome = await orchestrator.submit_and_await(kind, payload, preview_only=preview_only)
        primary = outcome.primary
        if primary is None:
            typer.echo("ERROR: no run was submitted.")
            return EXIT_ERROR
        typer.echo(
            render_run_report(primary, payload.line_adjustments, preview_only=preview_only)
        )

        preview = outcome.preview_run
        if preview is not None and preview.status != "test_error" and render_mode != "none":
            await _export_html(client, settings, preview, render_mode, test_name, open_browser)

    if primary.status != "completed":
        return EXIT_ERROR
    return EXIT_TESTS_FAILED if primary.failing_cases() else EXIT_OK


async def _export_html(
    client: PlatformClient,
    settings: Settings,
    preview: RunResult,
    render_mode: RenderMode,
    case_name: str,
    open_browser: bool,
) -> None:
    export_dir = settings.html_export_dir
    clear_html_exports(export_dir)
    for name, html_mode, url in html_render_targets(preview, render_mode, case_name):
        path = html_export_path(export_dir, name, html_mode)
        write_text_atomic(path, await client.download_text(url))
        typer.echo(f"INFO: HTML saved: {path}")
        if open_browser:
            typer.launch(str(path))


def _context(ctx: typer.Context) -> tuple[Settings, TemplateStore]:
    obj: dict[str, Any] = ctx.obj or {}
    settings = obj.get("settings") or load_settings()
    return settings, TemplateStore(obj.get("root") or Path("."))


def _report_error(exc: Exception) -> int:
    if isinstance(exc, UserInputError):
        typer.echo(f"ERROR: {exc}")
        return EXIT_USER_INPUT
    if isinstance(exc, (TemplateNotFoundError, UnauthorizedFirmError)):
        typer.echo(f"ERROR: {exc}")
        return EXIT_NOT_FOUND
    if isinstance(exc, RunTimeoutError):
        typer.echo(f"ERROR: {exc}")
        return EXIT_ERROR
    typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
    return EXIT_ERROR


def main() -> None:
    """Poetry script entrypoint."""

    app()


if __name__ == "__main__":
    main()
