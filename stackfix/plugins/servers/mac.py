"""macOS server plugin — Homebrew-based machines (Docker Desktop is manual)."""

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
    id="mac",
    category="server",
    name="macOS server",
    version="1.0.0",
    description="Docker Desktop, git and node on macOS",
    fixes=tuple(server_fixes(Platform.MAC)),
    required_secrets=("{ENV}_SSH",),
    should_load=should_load_for(Platform.MAC),
    targets=targets_platform(Platform.MAC),
    factory=lambda config, secrets: ServerTarget(config, secrets, Platform.MAC),
)
