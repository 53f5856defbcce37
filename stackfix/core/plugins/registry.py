"""
Plugin registry — the catalogue every fix comes from.

The registry is an explicit value built at process start and passed
to whoever needs it. It is written during bootstrap and read-only
afterwards.

    register(descriptor)           add one plugin (interface checked here)
    get(category, id)              lookup
    list()                         (category, id, name, version) rows
    create_instance(...)           build a plugin instance by category
    load_external(names, trusted)  import third-party plugin packages
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Iterable
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any

from stackfix.core.errors import (
    DuplicatePluginError,
    PluginInterfaceError,
    PluginNotFoundError,
    UnknownCategoryError,
)
from stackfix.core.models.fix import Fix, Stage
from stackfix.core.models.plugin import (
    CATEGORIES,
    ExternalLoadResult,
    PluginDescriptor,
    PluginInfo,
)
from stackfix.core.models.stack import EnvironmentConfig, StackConfig
from stackfix.core.scanfix.fixes import missing_config_fix, missing_secret_fix

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "stackfix.plugins"

# Third-party plugin packages reviewed and approved for use
APPROVED_PLUGINS: frozenset[str] = frozenset({
    "stackfix_vercel",
    "stackfix_cloudflare",
    "stackfix_github",
})


class PluginRegistry:
    """Registry of plugin descriptors, keyed by (category, id)."""

    def __init__(self, approved: Iterable[str] = APPROVED_PLUGINS):
        self._plugins: dict[tuple[str, str], PluginDescriptor] = {}
        self._fix_ids: dict[str, str] = {}
        self._approved = frozenset(approved)

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._plugins

    # ── Registration ────────────────────────────────────────────

    def register(self, descriptor: Any) -> PluginDescriptor:
        """Register a plugin.

        Accepts a PluginDescriptor or a mapping with the same fields.

        Raises:
            PluginInterfaceError: a required member is missing or malformed.
            UnknownCategoryError: category outside the fixed set.
            DuplicatePluginError: (category, id) or a fix id already taken.
        """
        descriptor = _coerce(descriptor)

        if descriptor.category not in CATEGORIES:
            raise UnknownCategoryError(
                f"Plugin '{descriptor.id}' has unknown category '{descriptor.category}' "
                f"(expected one of: {', '.join(CATEGORIES)})"
            )

        key = (descriptor.category, descriptor.id)
        if key in self._plugins:
            raise DuplicatePluginError(
                f"Plugin {descriptor.category}/{descriptor.id} is already registered"
            )

        for fix in descriptor.fixes:
            owner = self._fix_ids.get(fix.id)
            if owner is not None:
                raise DuplicatePluginError(
                    f"Fix id '{fix.id}' of plugin '{descriptor.id}' is already "
                    f"declared by plugin '{owner}'"
                )

        stamped = descriptor.model_copy(
            update={"fixes": tuple(f.for_plugin(descriptor.id) for f in descriptor.fixes)}
        )
        self._plugins[key] = stamped
        for fix in stamped.fixes:
            self._fix_ids[fix.id] = descriptor.id
        logger.debug(
            "Registered plugin: %s/%s (%d fixes)",
            descriptor.category, descriptor.id, len(descriptor.fixes),
        )
        return stamped

    # ── Lookup ──────────────────────────────────────────────────

    def get(self, category: str, plugin_id: str) -> PluginDescriptor | None:
        return self._plugins.get((category, plugin_id))

    def list(self, category: str | None = None) -> list[PluginInfo]:
        """Every registered plugin, in registration order."""
        return [
            PluginInfo(
                category=d.category,
                id=d.id,
                name=d.display_name,
                version=d.version,
                fixes=len(d.fixes),
            )
            for d in self._plugins.values()
            if category is None or d.category == category
        ]

    def descriptors(self) -> list[PluginDescriptor]:
        return list(self._plugins.values())

    def fixes(self) -> list[Fix]:
        """All declared fixes: registration order, then declaration order."""
        return [fix for d in self._plugins.values() for fix in d.fixes]

    def relevant(self, root_dir: Path, config: StackConfig) -> list[PluginDescriptor]:
        """Plugins whose ``should_load`` accepts this project.

        A predicate that raises excludes its plugin.
        """
        result: list[PluginDescriptor] = []
        for descriptor in self._plugins.values():
            try:
                if descriptor.should_load(root_dir, config):
                    result.append(descriptor)
            except Exception as e:
                logger.warning(
                    "Plugin %s/%s: should_load raised, not loading: %s",
                    descriptor.category, descriptor.id, e,
                )
        return result

    def collect_fixes(self, root_dir: Path, config: StackConfig) -> list[Fix]:
        """Fixes of relevant plugins plus generated requirement fixes.

        Two plugins requiring the same key yield one requirement fix.
        """
        fixes: list[Fix] = []
        seen: set[str] = set()
        for descriptor in self.relevant(root_dir, config):
            for fix in [*descriptor.fixes, *_requirement_fixes(descriptor, config)]:
                if fix.id in seen:
                    continue
                seen.add(fix.id)
                fixes.append(fix)
        return fixes

    # ── Instances ───────────────────────────────────────────────

    def create_instance(
        self,
        category: str,
        plugin_id: str,
        config: Any,
        secrets: Any = None,
        path: Path | None = None,
    ) -> Any:
        """Build a plugin instance.

        secrets plugins get ``(config)``; framework plugins get
        ``(path, config)``; every other category gets ``(config, secrets)``.

        Raises:
            PluginNotFoundError: nothing registered under (category, id).
            PluginInterfaceError: the plugin declares no factory.
        """
        descriptor = self.get(category, plugin_id)
        if descriptor is None:
            raise PluginNotFoundError(f"No plugin registered as {category}/{plugin_id}")
        if descriptor.factory is None:
            raise PluginInterfaceError(f"Plugin {category}/{plugin_id} has no factory")

        if category == "secrets":
            return descriptor.factory(config)
        if category == "framework":
            return descriptor.factory(path or Path.cwd(), config)
        return descriptor.factory(config, secrets)

    # ── External plugins ────────────────────────────────────────

    def load_external(
        self,
        names: Iterable[str],
        trusted: Iterable[str] = (),
        importer: Callable[[str], Any] | None = None,
    ) -> list[ExternalLoadResult]:
        """Import and register third-party plugin packages.

        Each name is an installed ``stackfix.plugins`` entry point or an
        importable module exposing ``PLUGIN`` or ``PLUGINS``. Packages
        that are neither approved nor trusted still load, with a
        warning. A package that fails is reported and skipped; nothing
        raises out of here.
        """
        trusted_set = set(trusted)
        importer = importer or _import_plugin_module
        results: list[ExternalLoadResult] = []

        for name in names:
            result = ExternalLoadResult(
                name=name,
                approved=name in self._approved,
                trusted=name in trusted_set,
            )
            results.append(result)

            if not result.approved and not result.trusted:
                result.warning = (
                    f"Plugin package '{name}' is not on the approved list and not "
                    "trusted in stack.yml; review it before relying on its fixes"
                )
                logger.warning("⚠️  %s", result.warning)

            plugins_before, fix_ids_before = dict(self._plugins), dict(self._fix_ids)
            try:
                module = importer(name)
                descriptors = _descriptors_of(module, name)
                for descriptor in descriptors:
                    registered = self.register(descriptor)
                    result.plugins.append(f"{registered.category}/{registered.id}")
            except Exception as e:
                # A package registers all of its plugins or none of them
                self._plugins, self._fix_ids = plugins_before, fix_ids_before
                result.plugins.clear()
                result.error = f"{type(e).__name__}: {e}"
                logger.error("❌ Failed to load plugin package %s: %s", name, e)
                continue

            result.loaded = True
            marker = "✅" if result.approved else "🔓"
            logger.info("%s Loaded plugin package %s (%s)", marker, name, ", ".join(result.plugins))

        return results


def _coerce(descriptor: Any) -> PluginDescriptor:
    """Check the closed plugin interface and return a PluginDescriptor."""
    if isinstance(descriptor, PluginDescriptor):
        return descriptor

    if isinstance(descriptor, dict):
        data = dict(descriptor)
    else:
        data = {
            field: getattr(descriptor, field)
            for field in PluginDescriptor.model_fields
            if hasattr(descriptor, field)
        }

    for member in ("id", "category", "fixes", "should_load"):
        if member not in data:
            raise PluginInterfaceError(f"Plugin object is missing required member '{member}'")
    if not callable(data["should_load"]):
        raise PluginInterfaceError(f"Plugin '{data['id']}': should_load is not callable")

    try:
        return PluginDescriptor.model_validate(data)
    except Exception as e:
        raise PluginInterfaceError(f"Plugin '{data.get('id')}' is malformed: {e}") from e


def _import_plugin_module(name: str) -> Any:
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        if ep.name == name:
            return ep.load()
    return importlib.import_module(name)


def _descriptors_of(module: Any, name: str) -> list[Any]:
    # An entry point may resolve straight to a descriptor
    if isinstance(module, PluginDescriptor):
        return [module]
    if hasattr(module, "PLUGINS"):
        return list(module.PLUGINS)
    if hasattr(module, "PLUGIN"):
        return [module.PLUGIN]
    raise PluginInterfaceError(f"Module '{name}' exposes neither PLUGIN nor PLUGINS")


def _default_targets(env: EnvironmentConfig) -> bool:
    return env.stage not in (None, Stage.DEV)


def _requirement_fixes(descriptor: PluginDescriptor, config: StackConfig) -> list[Fix]:
    if not descriptor.required_config and not descriptor.required_secrets:
        return []
    targets = descriptor.targets or _default_targets
    fixes: list[Fix] = []
    for env in config.environments.values():
        if env.stage is None or not targets(env):
            continue
        for key in descriptor.required_config:
            fixes.append(missing_config_fix(env, key, descriptor.id))
        for template in descriptor.required_secrets:
            secret = template.replace("{ENV}", env.name.upper().replace("-", "_"))
            fixes.append(missing_secret_fix(env, secret, descriptor.id))
    return fixes
