"""
Plugin descriptors — what a plugin declares to the registry.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stackfix.core.models.fix import Fix

CATEGORIES: tuple[str, ...] = (
    "server",
    "secrets",
    "registry",
    "framework",
    "addon",
    "pipeline",
)


def _always(root_dir: Path, config: Any) -> bool:
    return True


class PluginDescriptor(BaseModel):
    """A plugin's declaration: identity, fixes, requirements, factory.

    ``required_config`` names environment keys (see
    ``EnvironmentConfig.get``); ``required_secrets`` names secret store
    entries and may contain ``{ENV}``, replaced by the upper-cased
    environment name. Both apply to environments for which ``targets``
    returns True (default: every non-dev environment).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    category: str
    name: str = ""
    version: str = "0.1.0"
    description: str = ""
    fixes: tuple[Fix, ...] = ()
    required_config: tuple[str, ...] = ()
    required_secrets: tuple[str, ...] = ()
    should_load: Callable[..., bool] = _always
    targets: Callable[..., bool] | None = None
    factory: Callable[..., Any] | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class PluginInfo(BaseModel):
    """Listing row returned by ``PluginRegistry.list``."""

    category: str
    id: str
    name: str
    version: str
    fixes: int = 0


class ExternalLoadResult(BaseModel):
    """Per-package outcome of ``PluginRegistry.load_external``."""

    name: str
    loaded: bool = False
    approved: bool = False
    trusted: bool = False
    plugins: list[str] = Field(default_factory=list)
    warning: str | None = None
    error: str | None = None
