"""Windows server plugin — checks only; every install is manual."""

from __future__ import annotations

from stackfix.core.models.fix import Platform
from stackfix.core.models.plugin import PluginDescriptor
from stackfix.plugins.servers.base import (
    ServerTarget,
    server_fixes,
    should_load_for,
    targets_platform,
)

PLUGIN = PluginDescriptor(
    id="windows",
    category="server",
    name="Windows server",
    version="1.0.0",
    description="Docker Desktop, git and node on Windows",
    fixes=tuple(server_fixes(Platform.WINDOWS)),
    required_secrets=("{ENV}_SSH",),
    should_load=should_load_for(Platform.WINDOWS),
    targets=targets_platform(Platform.WINDOWS),
    factory=lambda config, secrets: ServerTarget(config, secrets, Platform.WINDOWS),
)
