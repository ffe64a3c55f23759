"""Async client for the platform REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from core.remote.models import Period, RunResult
from core.templates.models import TemplateKind
from core.utils.errors import RemoteRequestError, UnauthorizedFirmError
from core.utils.log_events import log_event
from core.utils.settings import Settings

logger = logging.getLogger("testkit.remote")

_PER_PAGE = 200
_KIND_ENDPOINTS: dict[str, str] = {
    "reconciliationText": "reconciliations",
    "accountTemplate": "account_templates",
}
_NO_DATA_STATUSES = {400, 404}
_FATAL_STATUSES = {403, 422}


class PlatformClient:
    """Thin wrapper over one firm-scoped `httpx.AsyncClient`.

    Error policy: 400/404 are logged and returned as None, 403/422 raise
    RemoteRequestError, any other failure propagates from httpx.
    """

    def __init__(self, http_client: httpx.AsyncClient, firm_id: str) -> None:
        self._http = http_client
        self.firm_id = str(firm_id)

    @classmethod
    def for_firm(cls, settings: Settings, firm_id: str) -> PlatformClient:
        token = settings.token_for(firm_id)
        if token is None:
            raise UnauthorizedFirmError(
                f"Firm {firm_id} is not authorized, set SF_ACCESS_TOKEN_{firm_id}",
                firm_id=str(firm_id),
            )
        http_client = httpx.AsyncClient(
            base_url=f"{settings.host}/api/v4/f/{firm_id}/",
            headers={"Authorization": f"Bearer {token}"},
            timeout=settings.request_timeout_seconds,
        )
        return cls(http_client, firm_id)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> PlatformClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # Test runs

    async def create_test_run(self, kind: TemplateKind, payload: dict[str, Any]) -> int | None:
        data = await self._request("POST", f"{_KIND_ENDPOINTS[kind]}/test", json=payload)
        return _run_id(data)

    async def create_preview_run(self, kind: TemplateKind, payload: dict[str, Any]) -> int | None:
        data = await self._request("POST", f"{_KIND_ENDPOINTS[kind]}/render", json=payload)
        return _run_id(data)

    async def read_test_run(self, kind: TemplateKind, run_id: int) -> RunResult | None:
        data = await self._request("GET", f"{_KIND_ENDPOINTS[kind]}/test_runs/{run_id}")
        if data is None:
            return None
        return RunResult.model_validate(data)

    async def download_text(self, url: str) -> str:
        """Fetch an absolute URL (HTML render) without firm credentials."""

        async with httpx.AsyncClient(timeout=self._http.timeout) as plain:
            response = await plain.get(url)
            response.raise_for_status()
            return response.text

    # Company data

    async def get_periods(self, company_id: str) -> list[Period]:
        data = await self._request(
            "GET", f"companies/{company_id}/periods", params={"page": 1, "per_page": _PER_PAGE}
        )
        return [Period.model_validate(item) for item in data or []]

    async def get_company_drop(self, company_id: str) -> dict[str, Any] | None:
        return await self._request("GET", f"companies/{company_id}")

    async def get_company_custom(self, company_id: str) -> list[dict[str, Any]]:
        return await self._get_all_pages(f"companies/{company_id}/custom")

    async def get_workflows(self, company_id: str, period_id: str) -> list[dict[str, Any]]:
        data = await self._request("GET", f"companies/{company_id}/periods/{period_id}/workflows")
        return list(data or [])

    async def get_workflow_reconciliations(
        self, company_id: str, period_id: str, workflow_id: str, page: int
    ) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"companies/{company_id}/periods/{period_id}/workflows/{workflow_id}/reconciliations",
            params={"page": page, "per_page": _PER_PAGE},
        )
        return list(data or [])

    async def find_reconciliation_in_workflow(
        self, handle: str, company_id: str, period_id: str, workflow_id: str
    ) -> dict[str, Any] | None:
        page = 1
        while True:
            items = await self.get_workflow_reconciliations(
                company_id, period_id, workflow_id, page
            )
            if not items:
                return None
            for item in items:
                if item.get("handle") == handle:
                    return item
            page += 1

    async def find_reconciliation_in_workflows(
        self, handle: str, company_id: str, period_id: str
    ) -> dict[str, Any] | None:
        """Search every workflow of the period for a reconciliation with handle."""

        for workflow in await self.get_workflows(company_id, period_id):
            found = await self.find_reconciliation_in_workflow(
                handle, company_id, period_id, str(workflow["id"])
            )
            if found is not None:
                return found
        log_event(logger, logging.INFO, "reconciliation_not_in_workflows", handle=handle)
        return None

    async def get_reconciliation_details(
        self, company_id: str, period_id: str, reconciliation_id: str
    ) -> dict[str, Any] | None:
        return await self._request(
            "GET", f"companies/{company_id}/periods/{period_id}/reconciliations/{reconciliation_id}"
        )

    async def get_reconciliation_custom(
        self, company_id: str, period_id: str, reconciliation_id: str
    ) -> list[dict[str, Any]]:
        return await self._get_all_pages(
            f"companies/{company_id}/periods/{period_id}/reconciliations/{reconciliation_id}/custom"
        )

    async def get_reconciliation_results(
        self, company_id: str, period_id: str, reconciliation_id: str
    ) -> dict[str, Any]:
        data = await self._request(
            "GET",
            f"companies/{company_id}/periods/{period_id}/reconciliations/"
            f"{reconciliation_id}/results",
        )
        return dict(data or {})

    async def get_account_details(
        self, company_id: str, period_id: str, account_id: str
    ) -> dict[str, Any] | None:
        return await self._request(
            "GET", f"companies/{company_id}/periods/{period_id}/accounts/{account_id}"
        )

    async def get_period_custom(self, company_id: str, period_id: str) -> list[dict[str, Any]]:
        return await self._get_all_pages(f"companies/{company_id}/periods/{period_id}/custom")

    async def get_account_by_number(
        self, company_id: str, period_id: str, account_id: str
    ) -> dict[str, Any] | None:
        """Page through the period's accounts for one whose id or number matches."""

        path = f"companies/{company_id}/periods/{period_id}/accounts"
        page = 1
        while True:
            data = await self._request("GET", path, params={"page": page, "per_page": _PER_PAGE})
            if not data:
                return None
            for item in data:
                account = item.get("account") or {}
                if str(account_id) in (str(account.get("id")), str(account.get("number"))):
                    return item
            if len(data) < _PER_PAGE:
                return None
            page += 1

    async def get_account_template(self, template_id: str) -> dict[str, Any] | None:
        return await self._request("GET", f"account_templates/{template_id}")

    async def get_account_template_custom(
        self, company_id: str, period_id: str, account_id: str
    ) -> list[dict[str, Any]]:
        return await self._get_all_pages(
            f"companies/{company_id}/periods/{period_id}/accounts/{account_id}/custom"
        )

    async def get_account_template_results(
        self, company_id: str, period_id: str, account_id: str
    ) -> dict[str, Any]:
        data = await self._request(
            "GET", f"companies/{company_id}/periods/{period_id}/accounts/{account_id}/results"
        )
        return dict(data or {})

    async def _get_all_pages(self, path: str) -> list[dict[str, Any]]:
        collected: list[dict[str, Any]] = []
        page = 1
        while True:
            data = await self._request("GET", path, params={"page": page, "per_page": _PER_PAGE})
            if not data:
                return collected
            collected.extend(data)
            if len(data) < _PER_PAGE:
                return collected
            page += 1

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._http.request(method, path, json=json, params=params)
        status = response.status_code
        if response.is_success:
            if not response.content:
                return None
            return response.json()

        url = str(response.request.url)
        if status in _NO_DATA_STATUSES:
            log_event(
                logger, logging.WARNING, "remote_no_data", method=method, url=url, status=status
            )
            return None
        if status in _FATAL_STATUSES:
            detail = response.text[:500]
            log_event(
                logger, logging.ERROR, "remote_rejected", method=method, url=url, status=status
            )
            raise RemoteRequestError(
                f"{method} {url} was rejected with HTTP {status}: {detail}",
                status_code=status,
                method=method,
                url=url,
                detail=detail,
            )
        if status == 401:
            log_event(logger, logging.DEBUG, "remote_unauthorized", method=method, url=url)
        response.raise_for_status()
        return None


def _run_id(data: Any) -> int | None:
    if isinstance(data, dict):
        data = data.get("id")
    if data is None:
        return None
    return int(data)
