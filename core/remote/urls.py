"""Parse platform links into template locations."""

from __future__ import annotations

from core.remote.models import TemplateLocation
from core.templates.models import TemplateKind
from core.utils.errors import UserInputError

_KIND_SEGMENTS: dict[str, TemplateKind] = {
    "reconciliation_texts": "reconciliationText",
    "account_entry": "accountTemplate",
}


def parse_template_url(url: str) -> TemplateLocation:
    """Read `.../f/<firm>/<company>/ledgers/<period>/workflows/<workflow>/<kind>/<id>`."""

    path = url.split("?", 1)[0].split("#", 1)[0]
    if "/f/" not in path:
        raise UserInputError(f"Not a template link: {url}")
    parts = [part for part in path.split("/f/", 1)[1].split("/") if part]
    if len(parts) < 8:
        raise UserInputError(f"Template link is incomplete: {url}")

    kind_segment = next((part for part in parts if part in _KIND_SEGMENTS), None)
    if kind_segment is None:
        raise UserInputError(f"Template link does not point to a reconciliation or account: {url}")

    return TemplateLocation(
        firm_id=parts[0],
        company_id=parts[1],
        period_id=parts[3],
        workflow_id=parts[5] or None,
        template_id=parts[7],
        kind=_KIND_SEGMENTS[kind_segment],
    )
