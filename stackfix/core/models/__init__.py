"""
Domain models — Pydantic types for stackfix.

All models are re-exported here for convenient access:

    from stackfix.core.models import Fix, Stage, StackConfig, Receipt
"""

from stackfix.core.models.action import Receipt
from stackfix.core.models.fix import STAGES, Fix, Platform, Severity, Stage
from stackfix.core.models.plugin import (
    CATEGORIES,
    ExternalLoadResult,
    PluginDescriptor,
    PluginInfo,
)
from stackfix.core.models.resource import ProvisionResult, ResourceHandle, ResourceState
from stackfix.core.models.stack import (
    EnvironmentConfig,
    SecretsConfig,
    StackConfig,
    stage_from_environment,
)

__all__ = [
    "CATEGORIES",
    "EnvironmentConfig",
    "ExternalLoadResult",
    # fix.py
    "Fix",
    "Platform",
    # plugin.py
    "PluginDescriptor",
    "PluginInfo",
    # resource.py
    "ProvisionResult",
    # action.py
    "Receipt",
    "ResourceHandle",
    "ResourceState",
    "STAGES",
    "SecretsConfig",
    "Severity",
    # stack.py
    "StackConfig",
    "Stage",
    "stage_from_environment",
]
