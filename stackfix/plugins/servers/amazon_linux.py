"""Amazon Linux server plugin — dnf-based hosts (EC2 default images)."""

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
    id="amazon-linux",
    category="server",
    name="Amazon Linux server",
    version="1.0.0",
    description="Docker, git and node on Amazon Linux hosts",
    fixes=tuple(server_fixes(Platform.AMAZON_LINUX)),
    required_secrets=("{ENV}_SSH",),
    should_load=should_load_for(Platform.AMAZON_LINUX),
    targets=targets_platform(Platform.AMAZON_LINUX),
    factory=lambda config, secrets: ServerTarget(config, secrets, Platform.AMAZON_LINUX),
)
