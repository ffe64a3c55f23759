"""Build run payloads, submit runs, and aggregate pass/fail status."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
import yaml  # type: ignore[import-untyped]

from core.fixtures.text_indexer import filter_by_pattern, has_cases, index_case_lines
from core.orchestrator.polling import RunPoller
from core.remote.client import PlatformClient
from core.remote.models import RunResult
from core.templates.models import TemplateKind
from core.templates.source_scanner import find_fragment_references
from core.templates.store import TemplateStore
from core.utils.errors import (
    RemoteRequestError,
    RunTimeoutError,
    TemplateNotFoundError,
    UserInputError,
)
from core.utils.log_events import log_event
from core.utils.settings import Settings

logger = logging.getLogger("testkit.runner")

RenderMode = Literal["none", "input", "preview", "all"]
HandleOutcome = Literal["PASSED", "FAILED"]

_HTML_MODES: dict[str, tuple[str, ...]] = {
    "all": ("html_input", "html_preview"),
    "input": ("html_input",),
    "preview": ("html_preview",),
}

_BATCH_ERRORS = (
    RunTimeoutError,
    TemplateNotFoundError,
    UserInputError,
    RemoteRequestError,
    httpx.HTTPError,
    yaml.YAMLError,
    ValueError,
    OSError,
)


@dataclass
class RunPayload:
    """Request body for the test endpoints plus line bookkeeping for reporting."""

    body: dict[str, Any]
    line_adjustments: dict[str, int] = field(default_factory=dict)
    included_cases: list[str] = field(default_factory=list)


@dataclass
class RunOutcome:
    test_run: RunResult | None = None
    preview_run: RunResult | None = None

    @property
    def primary(self) -> RunResult | None:
        return self.test_run or self.preview_run


@dataclass(frozen=True)
class HandleStatus:
    handle: str
    status: HandleOutcome
    failed_cases: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class BatchStatus:
    status: HandleOutcome
    handles: list[HandleStatus] = field(default_factory=list)


def check_render_mode(html_input: bool, html_preview: bool) -> RenderMode:
    if html_input and html_preview:
        return "all"
    if html_input:
        return "input"
    if html_preview:
        return "preview"
    return "none"


def html_render_targets(
    preview_run: RunResult, render_mode: RenderMode, case_name: str = ""
) -> list[tuple[str, str, str]]:
    """Return `(case, html_mode, url)` for every rendered artifact that was requested."""

    modes = _HTML_MODES.get(render_mode, ())
    case_names = [case_name] if case_name else list(preview_run.tests)
    targets: list[tuple[str, str, str]] = []
    for name in case_names:
        feedback = preview_run.tests.get(name)
        if feedback is None:
            continue
        for html_mode in modes:
            url = getattr(feedback, html_mode)
            if url:
                targets.append((name, html_mode, url))
    return targets


class RunOrchestrator:
    """Run stored fixtures against the remote engine for one firm."""

    def __init__(
        self,
        client: PlatformClient,
        store: TemplateStore,
        settings: Settings | None = None,
        *,
        poller: RunPoller | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._settings = settings or Settings()
        self._poller = poller

    def build_run_payload(
        self,
        kind: TemplateKind,
        handle: str,
        case_name: str = "",
        render_mode: RenderMode = "none",
        pattern: str = "",
    ) -> RunPayload | None:
        """Return the run request, or None when the fixture holds no cases."""

        if case_name and pattern:
            raise UserInputError("Use either a test name or a pattern, not both", handle=handle)

        template = self._store.build_template_payload(kind, handle)
        if template is None:
            raise TemplateNotFoundError(f'Template "{handle}" not found', handle=handle, kind=kind)
        fixture_text = self._store.read_fixture_text(kind, handle)
        if fixture_text is None:
            raise TemplateNotFoundError(
                f'Test file for "{handle}" not found', handle=handle, kind=kind
            )
        fixture_text = fixture_text.strip()
        if not has_cases(fixture_text):
            log_event(logger, logging.INFO, "no_tests", handle=handle)
            return None

        shared_parts = self._bundle_shared_parts(kind, handle)
        if shared_parts:
            template["text_shared_parts"] = shared_parts

        body: dict[str, Any] = {"template": template, "tests": fixture_text, "mode": render_mode}
        payload = RunPayload(body=body)

        if case_name:
            index = index_case_lines(fixture_text)
            if case_name not in index:
                raise UserInputError(f"Test {case_name} not found in YAML", handle=handle)
            body["test_line"] = index[case_name]
            payload.included_cases = [case_name]
        elif pattern:
            filtered = filter_by_pattern(fixture_text, pattern)
            if not filtered.included_cases:
                raise UserInputError(
                    f'No tests found matching pattern "{pattern}" in template "{handle}"',
                    handle=handle,
                )
            body["tests"] = filtered.text
            payload.included_cases = filtered.included_cases
            payload.line_adjustments = filtered.line_adjustments
            log_event(
                logger,
                logging.INFO,
                "tests_filtered",
                handle=handle,
                pattern=pattern,
                cases=filtered.included_cases,
            )
        return payload

    async def submit_and_await(
        self,
        kind: TemplateKind,
        payload: RunPayload,
        *,
        preview_only: bool = False,
    ) -> RunOutcome:
        """Submit the preview run (when HTML is requested) and the test run, then wait for both."""

        outcome = RunOutcome()
        poller = self._poller_for(kind)
        if payload.body.get("mode", "none") != "none":
            run_id = await self._client.create_preview_run(kind, payload.body)
            outcome.preview_run = await poller.wait(self._require_run_id(run_id, kind, "render"))
        if not preview_only:
            run_id = await self._client.create_test_run(kind, payload.body)
            outcome.test_run = await poller.wait(self._require_run_id(run_id, kind, "test"))
        return outcome

    async def run_status_only(
        self,
        kind: TemplateKind,
        handles: list[str],
        case_name: str = "",
        pattern: str = "",
    ) -> BatchStatus:
        """Run every handle concurrently and report PASSED only if all of them pass."""

        statuses = await asyncio.gather(
            *(self._status_for_handle(kind, handle, case_name, pattern) for handle in handles)
        )
        overall: HandleOutcome = (
            "PASSED" if all(item.status == "PASSED" for item in statuses) else "FAILED"
        )
        return BatchStatus(status=overall, handles=list(statuses))

    async def _status_for_handle(
        self, kind: TemplateKind, handle: str, case_name: str, pattern: str
    ) -> HandleStatus:
        try:
            payload = self.build_run_payload(kind, handle, case_name, "none", pattern)
            if payload is None:
                return HandleStatus(handle=handle, status="PASSED")
            outcome = await self.submit_and_await(kind, payload)
        except _BATCH_ERRORS as exc:
            log_event(
                logger,
                logging.ERROR,
                "handle_failed",
                handle=handle,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            error = str(exc) or type(exc).__name__
            return HandleStatus(handle=handle, status="FAILED", error=error)

        run = outcome.test_run
        if run is None:
            return HandleStatus(handle=handle, status="FAILED", error="no test run")
        if run.status != "completed":
            return HandleStatus(
                handle=handle, status="FAILED", error=run.error_message or run.status
            )
        failed = run.failing_cases()
        if failed:
            return HandleStatus(handle=handle, status="FAILED", failed_cases=failed)
        return HandleStatus(handle=handle, status="PASSED")

    def _bundle_shared_parts(self, kind: TemplateKind, handle: str) -> list[dict[str, str]]:
        firm_id = self._client.firm_id
        names: list[str] = []
        # used_in links are recorded per firm against the template id there
        if self._store.resolve_template_id(firm_id, kind, handle) is None:
            log_event(
                logger, logging.WARNING, "template_not_in_firm", handle=handle, firm_id=firm_id
            )
        else:
            names = self._store.list_shared_parts_used_by(firm_id, kind, handle)
        source = self._store.read_template_source(kind, handle)
        if source is not None:
            find_fragment_references(source, names)

        bundled: list[dict[str, str]] = []
        position = 0
        while position < len(names):
            name = names[position]
            position += 1
            part = self._store.read_shared_part(name)
            if part is None:
                log_event(logger, logging.WARNING, "shared_part_missing", handle=handle, part=name)
                continue
            find_fragment_references(part, names)
            bundled.append({"name": name, "content": part.text})
        return bundled

    def _poller_for(self, kind: TemplateKind) -> RunPoller:
        if self._poller is not None:
            return self._poller

        async def fetch(run_id: int) -> RunResult | None:
            return await self._client.read_test_run(kind, run_id)

        return RunPoller(
            fetch,
            initial_delay=self._settings.poll_initial_delay_seconds,
            backoff=self._settings.poll_backoff,
            timeout=self._settings.poll_timeout_seconds,
        )

    @staticmethod
    def _require_run_id(run_id: int | None, kind: TemplateKind, action: str) -> int:
        if run_id is None:
            raise RemoteRequestError(
                f"The {action} run for {kind} was not created",
                status_code=None,
                method="POST",
                url=action,
            )
        return run_id
