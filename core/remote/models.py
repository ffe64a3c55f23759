"""Models for remote run results, periods, and template locations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from core.templates.models import TemplateKind

RunStatus = Literal["pending", "started", "running", "completed", "test_error", "internal_error"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "test_error", "internal_error"})


class Diagnostic(BaseModel):
    """One failed assertion reported by the remote engine."""

    model_config = ConfigDict(extra="ignore")

    got: Any = None
    expected: Any = None
    line_number: int | None = None


class CaseFeedback(BaseModel):
    """Per-case feedback of a run; empty collections mean no failures."""

    model_config = ConfigDict(extra="ignore")

    reconciled: Diagnostic | None = None
    results: dict[str, Diagnostic] = Field(default_factory=dict)
    rollforwards: dict[str, Diagnostic] = Field(default_factory=dict)
    html_input: str | None = None
    html_preview: str | None = None

    def has_errors(self) -> bool:
        return self.reconciled is not None or bool(self.results) or bool(self.rollforwards)


class RunResult(BaseModel):
    """Normalized test or preview run state."""

    model_config = ConfigDict(extra="ignore")

    status: RunStatus
    tests: dict[str, CaseFeedback] = Field(default_factory=dict)
    error_message: str | None = None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def failing_cases(self) -> list[str]:
        """Return sorted names of cases with at least one diagnostic."""

        return sorted(name for name, feedback in self.tests.items() if feedback.has_errors())


class FiscalYear(BaseModel):
    model_config = ConfigDict(extra="ignore")

    end_date: str | None = None


class Period(BaseModel):
    """Company period as listed by the platform, newest first."""

    model_config = ConfigDict(extra="ignore")

    id: int
    fiscal_year: FiscalYear = Field(default_factory=FiscalYear)
    end_date: str | None = None

    @property
    def key(self) -> str:
        """Identifier used as the period key inside fixture data."""

        return str(self.fiscal_year.end_date or self.end_date or self.id)


@dataclass(frozen=True)
class TemplateLocation:
    """Where a template instance lives on the platform."""

    firm_id: str
    company_id: str
    period_id: str
    workflow_id: str | None
    template_id: str
    kind: TemplateKind
