"""
Error taxonomy — every failure the engine classifies.

Adapters never raise (they return Receipts). Everything above them
raises one of these, and each layer decides what to do with it:

    ProbeError            scan raised       → treated as "no problem"
    RemediationError      fix raised/False  → item unresolved, batch continues
    ConfigurationError    missing config    → manual-only finding
    ProvisioningError     cloud step failed → cleanup, then escalate
    ReadinessTimeoutError wait expired      → terminal for the step
"""

from __future__ import annotations


class StackfixError(Exception):
    """Base class for all stackfix errors."""


# ── Scan / fix ──────────────────────────────────────────────────


class ProbeError(StackfixError):
    """A scan predicate could not determine the state of its target."""


class RemediationError(StackfixError):
    """A remediation could not bring its target to the desired state."""


class ConfigurationError(StackfixError):
    """A required config value or secret is missing.

    Raised from a scan, this becomes a manual-only finding: there is
    nothing a remediation can do until the operator supplies the value.
    """


class RemoteCommandError(StackfixError):
    """A command run through an executor exited non-zero or timed out."""

    def __init__(self, command: str, error: str, output: str = ""):
        super().__init__(f"{command!r} failed: {error}")
        self.command = command
        self.error = error
        self.output = output


# ── Provisioning ────────────────────────────────────────────────


class ProvisioningError(StackfixError):
    """A provisioning step failed.

    ``role`` names the plan step; ``cleaned_up`` lists the roles whose
    resources were deleted by the compensating cleanup.
    """

    def __init__(self, message: str, role: str | None = None):
        super().__init__(message)
        self.role = role
        self.cleaned_up: list[str] = []


class ReadinessTimeoutError(ProvisioningError):
    """A bounded readiness wait expired."""


class InvalidTransitionError(StackfixError):
    """A resource handle was moved along an edge its state machine forbids."""


# ── Plugin registry ─────────────────────────────────────────────


class PluginError(StackfixError):
    """Base class for plugin registry errors."""


class DuplicatePluginError(PluginError):
    """A plugin with the same (category, id) is already registered."""


class UnknownCategoryError(PluginError):
    """A plugin declared a category outside the fixed set."""


class PluginNotFoundError(PluginError):
    """No plugin is registered under the requested (category, id)."""


class PluginInterfaceError(PluginError):
    """A plugin object is missing a required member or has the wrong shape."""
