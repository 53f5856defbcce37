"""Ubuntu server plugin — apt-based hosts and local Ubuntu machines."""

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
    id="ubuntu",
    category="server",
    name="Ubuntu server",
    version="1.0.0",
    description="Docker, git and node on Ubuntu hosts",
    fixes=tuple(server_fixes(Platform.UBUNTU)),
    required_secrets=("{ENV}_SSH",),
    should_load=should_load_for(Platform.UBUNTU),
    targets=targets_platform(Platform.UBUNTU),
    factory=lambda config, secrets: ServerTarget(config, secrets, Platform.UBUNTU),
)
