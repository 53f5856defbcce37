"""
Built-in plugins and the default registry.

Order matters: it is the registration order, and so the declaration
order the orchestrator preserves when reporting findings.
"""

from __future__ import annotations

from collections.abc import Iterable

from stackfix.core.models.plugin import PluginDescriptor
from stackfix.core.plugins.registry import APPROVED_PLUGINS, PluginRegistry
from stackfix.plugins.addons import server_mode
from stackfix.plugins.frameworks import node
from stackfix.plugins.pipelines import aws
from stackfix.plugins.registries import ecr
from stackfix.plugins.secrets import stores
from stackfix.plugins.servers import amazon_linux, mac, ubuntu, windows


def builtin_plugins() -> list[PluginDescriptor]:
    return [
        ubuntu.PLUGIN,
        amazon_linux.PLUGIN,
        mac.PLUGIN,
        windows.PLUGIN,
        *stores.PLUGINS,
        aws.PLUGIN,
        ecr.PLUGIN,
        node.PLUGIN,
        server_mode.PLUGIN,
    ]


def build_default_registry(approved: Iterable[str] = APPROVED_PLUGINS) -> PluginRegistry:
    """A registry holding every built-in plugin."""
    registry = PluginRegistry(approved=approved)
    for descriptor in builtin_plugins():
        registry.register(descriptor)
    return registry
