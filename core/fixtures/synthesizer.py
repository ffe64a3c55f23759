"""Build a fixture document from a template's dependencies and live platform data."""

from __future__ import annotations

import functools
import logging
import re
from typing import Any

import httpx
import yaml  # type: ignore[import-untyped]

from core.fixtures.models import FixtureDocument, GeneratedFixture
from core.remote.client import PlatformClient
from core.remote.models import Period, TemplateLocation
from core.templates.models import ScanResult, TemplateKind, TemplateSource
from core.templates.source_scanner import (
    find_company_field_references,
    find_cross_template_custom_references,
    find_cross_template_result_references,
    find_fragment_references,
    find_literal_account_references,
)
from core.templates.store import TemplateStore
from core.utils.errors import TemplateNotFoundError
from core.utils.log_events import log_event

logger = logging.getLogger("testkit.synthesizer")

PLACEHOLDER_PERIOD = "replace_period_name"
_NUMERIC_SUFFIX_RE = re.compile(r"_(\d+)$")


def create_base_fixture(
    case_name: str, reconciled: bool, kind: TemplateKind = "reconciliationText"
) -> FixtureDocument:
    """Return a one-case document with a placeholder period key.

    Account template fixtures also carry a `current_account` placeholder and
    no reconciliations block for the period.
    """

    case: dict[str, Any] = {
        "context": {"period": "#Replace with period"},
        "data": {"periods": {PLACEHOLDER_PERIOD: {"reconciliations": {}}}},
        "expectation": {"reconciled": reconciled, "results": {}, "rollforward": {}},
    }
    if kind == "accountTemplate":
        case["context"]["current_account"] = "#Replace with current account"
        del case["data"]["periods"][PLACEHOLDER_PERIOD]["reconciliations"]
    return {case_name: case}


def process_custom(items: list[dict[str, Any]]) -> dict[str, Any]:
    """Flatten `{namespace, key, value}` items into an ordered `"namespace.key" -> value` map.

    Ordered by namespace, then key; keys that both end in a non-zero `_<n>`
    suffix compare numerically so `item_2` precedes `item_10`.
    """

    ordered = sorted(items, key=functools.cmp_to_key(_compare_custom))
    flattened: dict[str, Any] = {}
    for item in ordered:
        value = item.get("value")
        if isinstance(value, dict) and value.get("field"):
            value = value["field"]
        flattened[f"{item.get('namespace')}.{item.get('key')}"] = value
    return flattened


def dump_fixture(document: FixtureDocument) -> str:
    return yaml.safe_dump(
        document, sort_keys=False, allow_unicode=True, default_flow_style=False, width=4096
    )


class FixtureSynthesizer:
    """Assemble a fixture for one reconciliation text or account template instance."""

    def __init__(self, client: PlatformClient, store: TemplateStore) -> None:
        self._client = client
        self._store = store

    async def generate(
        self, location: TemplateLocation, case_name: str, reconciled: bool = True
    ) -> GeneratedFixture:
        """Synthesize and write the fixture next to the template without overwriting."""

        generated = await self.synthesize(location, case_name, reconciled)
        path = self._store.next_fixture_path(location.kind, generated.handle)
        self._store.write_fixture_text(
            location.kind, generated.handle, dump_fixture(generated.document), path=path
        )
        log_event(logger, logging.INFO, "fixture_written", handle=generated.handle, path=str(path))
        return GeneratedFixture(
            handle=generated.handle,
            case_name=case_name,
            document=generated.document,
            path=path,
        )

    async def synthesize(
        self, location: TemplateLocation, case_name: str, reconciled: bool = True
    ) -> GeneratedFixture:
        handle, details = await self._resolve_template(location)

        source = self._store.read_template_source(location.kind, handle)
        if source is None or source.is_empty():
            raise TemplateNotFoundError(
                f"Template {handle} was not found locally", handle=handle, kind=location.kind
            )
        scan = self._scan_with_fragments(handle, source)

        document = create_base_fixture(case_name, reconciled, location.kind)
        case = document[case_name]
        period_key = await self._resolve_periods(case, location)
        period_data = case["data"]["periods"][period_key]

        await self._add_period_custom(period_data, location)
        if location.kind == "reconciliationText":
            await self._add_own_facts(case, period_data, location, handle, details)
        else:
            await self._add_account_facts(case, period_data, location, details)

        for dependency, result_names in scan.results.items():
            await self._add_dependency_results(period_data, location, dependency, result_names)
        for dependency, custom_keys in scan.customs.items():
            await self._add_dependency_customs(period_data, location, dependency, custom_keys)

        await self._add_company_fields(case, location, scan)
        await self._add_accounts(document, period_data, location)

        return GeneratedFixture(handle=handle, case_name=case_name, document=document)

    async def _resolve_template(self, location: TemplateLocation) -> tuple[str, dict[str, Any]]:
        """Return the template handle and the remote record the link points at."""

        if location.kind == "reconciliationText":
            details = await self._client.get_reconciliation_details(
                location.company_id, location.period_id, location.template_id
            )
            if not details or not details.get("handle"):
                raise TemplateNotFoundError(
                    f"Reconciliation {location.template_id} was not found",
                    handle=location.template_id,
                    kind=location.kind,
                )
            return str(details["handle"]), details

        entry = await self._client.get_account_by_number(
            location.company_id, location.period_id, location.template_id
        )
        linked = (entry or {}).get("account_reconciliation_template") or {}
        if not entry or not linked.get("id"):
            raise TemplateNotFoundError(
                f"No account template associated with account {location.template_id}",
                handle=location.template_id,
                kind=location.kind,
            )
        template = await self._client.get_account_template(str(linked["id"]))
        if not template or not template.get("name_nl"):
            raise TemplateNotFoundError(
                f"Account template {linked['id']} was not found",
                handle=str(linked["id"]),
                kind=location.kind,
            )
        return str(template["name_nl"]), entry

    async def _resolve_periods(self, case: dict[str, Any], location: TemplateLocation) -> str:
        periods = await self._client.get_periods(location.company_id)
        position = _find_period(periods, location.period_id)
        if position is None:
            raise TemplateNotFoundError(
                f"Period {location.period_id} was not found for company {location.company_id}",
                handle=location.template_id,
                kind=location.kind,
            )
        current = periods[position]
        period_key = current.key

        case["context"]["period"] = period_key
        all_periods = case["data"]["periods"]
        all_periods[period_key] = all_periods.pop(PLACEHOLDER_PERIOD)

        if position + 1 < len(periods):
            previous = periods[position + 1]
            if previous.key != period_key:
                all_periods[previous.key] = None
        return period_key

    async def _add_own_facts(
        self,
        case: dict[str, Any],
        period_data: dict[str, Any],
        location: TemplateLocation,
        handle: str,
        details: dict[str, Any],
    ) -> None:
        starred = details.get("starred")
        if location.workflow_id:
            in_workflow = await self._client.find_reconciliation_in_workflow(
                handle, location.company_id, location.period_id, location.workflow_id
            )
            if in_workflow is not None:
                starred = in_workflow.get("starred", starred)

        custom_items = await self._client.get_reconciliation_custom(
            location.company_id, location.period_id, location.template_id
        )
        period_data["reconciliations"][handle] = {
            "starred": starred,
            "custom": process_custom(custom_items),
        }
        case["expectation"]["results"] = await self._client.get_reconciliation_results(
            location.company_id, location.period_id, location.template_id
        )

    async def _add_account_facts(
        self,
        case: dict[str, Any],
        period_data: dict[str, Any],
        location: TemplateLocation,
        entry: dict[str, Any],
    ) -> None:
        account = entry.get("account") or {}
        number = str(account.get("number"))
        account_id = str(account.get("id"))
        case["context"]["current_account"] = number

        custom_items = await self._client.get_account_template_custom(
            location.company_id, location.period_id, account_id
        )
        period_data.setdefault("accounts", {})[number] = {
            "name": account.get("name"),
            "value": _to_number(entry.get("value")),
            "custom": process_custom(custom_items),
        }
        case["expectation"]["results"] = await self._client.get_account_template_results(
            location.company_id, location.period_id, account_id
        )

    async def _add_period_custom(
        self, period_data: dict[str, Any], location: TemplateLocation
    ) -> None:
        items = await self._client.get_period_custom(location.company_id, location.period_id)
        if items:
            period_data["custom"] = process_custom(items)

    def _scan_with_fragments(self, handle: str, source: TemplateSource) -> ScanResult:
        scan = ScanResult()

        find_cross_template_result_references(source, handle, scan.results)
        find_cross_template_custom_references(source, handle, scan.customs)
        find_company_field_references(source, scan.company)
        find_fragment_references(source, scan.fragments)

        # the list grows while iterating; each name is scanned once
        position = 0
        while position < len(scan.fragments):
            name = scan.fragments[position]
            position += 1
            fragment = self._store.read_shared_part(name)
            if fragment is None or fragment.is_empty():
                log_event(logger, logging.WARNING, "shared_part_missing", handle=handle, part=name)
                continue
            find_fragment_references(fragment, scan.fragments)
            find_cross_template_result_references(fragment, name, scan.results)
            find_cross_template_custom_references(fragment, name, scan.customs)
            find_company_field_references(fragment, scan.company)

        scan.results.pop(handle, None)
        scan.customs.pop(handle, None)
        return scan

    async def _add_dependency_results(
        self,
        period_data: dict[str, Any],
        location: TemplateLocation,
        dependency: str,
        result_names: list[str],
    ) -> None:
        try:
            found = await self._client.find_reconciliation_in_workflows(
                dependency, location.company_id, location.period_id
            )
            if found is None:
                return
            results = await self._client.get_reconciliation_results(
                location.company_id, location.period_id, str(found["id"])
            )
        except httpx.HTTPError as exc:
            log_event(
                logger,
                logging.ERROR,
                "dependency_results_failed",
                dependency=dependency,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            return

        entry = period_data.setdefault("reconciliations", {}).setdefault(dependency, {})
        copied = entry.setdefault("results", {})
        for name in result_names:
            copied[name] = results.get(name)

    async def _add_dependency_customs(
        self,
        period_data: dict[str, Any],
        location: TemplateLocation,
        dependency: str,
        custom_keys: list[str],
    ) -> None:
        try:
            found = await self._client.find_reconciliation_in_workflows(
                dependency, location.company_id, location.period_id
            )
            if found is None:
                return
            items = await self._client.get_reconciliation_custom(
                location.company_id, location.period_id, str(found["id"])
            )
        except httpx.HTTPError as exc:
            log_event(
                logger,
                logging.ERROR,
                "dependency_customs_failed",
                dependency=dependency,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            return

        customs = process_custom(items)
        entry = period_data.setdefault("reconciliations", {}).setdefault(dependency, {})
        entry["custom"] = {key: value for key, value in customs.items() if key in custom_keys}

    async def _add_company_fields(
        self, case: dict[str, Any], location: TemplateLocation, scan: ScanResult
    ) -> None:
        references = scan.company
        if not references.standard and not references.custom:
            return
        company: dict[str, Any] = case["data"].setdefault("company", {})

        if references.standard:
            drop = await self._client.get_company_drop(location.company_id) or {}
            for field_name in references.standard:
                if field_name in drop:
                    company[field_name] = drop[field_name]

        if references.custom:
            values = process_custom(await self._client.get_company_custom(location.company_id))
            company["custom"] = {key: values[key] for key in references.custom if key in values}

    async def _add_accounts(
        self,
        document: FixtureDocument,
        period_data: dict[str, Any],
        location: TemplateLocation,
    ) -> None:
        account_ids = find_literal_account_references(document)
        if not account_ids:
            return
        accounts: dict[str, Any] = period_data.setdefault("accounts", {})
        for account_id in account_ids:
            try:
                details = await self._client.get_account_details(
                    location.company_id, location.period_id, account_id
                )
            except httpx.HTTPError as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "account_details_failed",
                    account_id=account_id,
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )
                continue
            if not details or not details.get("account"):
                continue
            account = details["account"]
            accounts.setdefault(str(account.get("number")), {}).update(
                id=account.get("id"),
                name=account.get("name"),
                value=_to_number(details.get("value")),
            )


def _find_period(periods: list[Period], period_id: str) -> int | None:
    for position, period in enumerate(periods):
        if str(period.id) == str(period_id):
            return position
    return None


def _compare_custom(left: dict[str, Any], right: dict[str, Any]) -> int:
    left_ns, right_ns = str(left.get("namespace")), str(right.get("namespace"))
    if left_ns != right_ns:
        return -1 if left_ns < right_ns else 1
    left_key, right_key = str(left.get("key")), str(right.get("key"))
    left_num, right_num = _numeric_suffix(left_key), _numeric_suffix(right_key)
    if left_num and right_num:
        return left_num - right_num
    if left_key == right_key:
        return 0
    return -1 if left_key < right_key else 1


def _numeric_suffix(key: str) -> int:
    match = _NUMERIC_SUFFIX_RE.search(key)
    return int(match.group(1)) if match else 0


def _to_number(value: Any) -> Any:
    if value is None or isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return value
    return int(number) if number.is_integer() else number
