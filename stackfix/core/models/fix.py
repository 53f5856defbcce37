"""
Fix model — the capability descriptor every plugin contributes.

A Fix pairs a side-effect-free scan predicate with an optional
remediation. Both take ``(config, ctx)``: the loaded StackConfig and
the FixContext for the stage being reconciled.

    scan(config, ctx) -> bool    True means "problem present"
    fix(config, ctx)  -> bool    True means "remediated"

A Fix without a remediation must carry ``manual_fix`` text; that is
what the operator sees instead.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Stage(StrEnum):
    """Lifecycle phase a Fix targets."""

    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Severity(StrEnum):
    """How bad an unresolved problem is. Critical findings fail the run."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Platform(StrEnum):
    """Operating system family of a target."""

    MAC = "mac"
    UBUNTU = "ubuntu"
    AMAZON_LINUX = "amazon-linux"
    WINDOWS = "windows"


STAGES: tuple[Stage, ...] = (Stage.DEV, Stage.STAGING, Stage.PROD)


class Fix(BaseModel):
    """One declared check plus its remediation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    stage: Stage
    description: str
    scan: Callable[..., bool]
    fix: Callable[..., bool] | None = None
    manual_fix: str = ""
    severity: Severity = Severity.CRITICAL
    os: frozenset[Platform] = frozenset()
    plugin: str = ""

    @field_validator("os", mode="before")
    @classmethod
    def _normalize_os(cls, value: Any) -> Any:
        # Accepts None, a single platform, or any iterable of platforms
        if value is None:
            return frozenset()
        if isinstance(value, str):
            return frozenset({value})
        if isinstance(value, Iterable):
            return frozenset(value)
        return value

    @model_validator(mode="after")
    def _require_remediation_path(self) -> Fix:
        if self.fix is None and not self.manual_fix.strip():
            raise ValueError(
                f"Fix '{self.id}' has no remediation and no manual_fix text"
            )
        return self

    @property
    def manual_only(self) -> bool:
        """True when the operator has to resolve this by hand."""
        return self.fix is None

    def for_plugin(self, plugin_id: str) -> Fix:
        """Return a copy stamped with its owning plugin id."""
        if self.plugin == plugin_id:
            return self
        return self.model_copy(update={"plugin": plugin_id})

    def __repr__(self) -> str:
        return f"<Fix {self.id} stage={self.stage} severity={self.severity}>"
