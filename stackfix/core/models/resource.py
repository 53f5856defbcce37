"""
Resource handles — what the provisioner knows about one cloud resource.

States:
    NOT_FOUND → Nothing with our tags exists yet.
    CREATING  → Create call issued, not yet confirmed.
    READY     → Discovered or created, usable by dependants.
    ERROR     → The step failed; dependants are not attempted.

Transitions:
    NOT_FOUND → CREATING:  find returned nothing
    NOT_FOUND → READY:     find returned an existing resource
    CREATING  → READY:     create succeeded
    any       → ERROR:     the step raised
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from stackfix.core.errors import InvalidTransitionError


class ResourceState(StrEnum):
    """Per-resource provisioning state."""

    NOT_FOUND = "not_found"
    CREATING = "creating"
    READY = "ready"
    ERROR = "error"


_TRANSITIONS: dict[ResourceState, frozenset[ResourceState]] = {
    ResourceState.NOT_FOUND: frozenset(
        {ResourceState.CREATING, ResourceState.READY, ResourceState.ERROR}
    ),
    ResourceState.CREATING: frozenset({ResourceState.READY, ResourceState.ERROR}),
    ResourceState.READY: frozenset({ResourceState.ERROR}),
    ResourceState.ERROR: frozenset(),
}


@dataclass
class ResourceHandle:
    """One provisioned (or discovered) resource.

    ``created`` is True only for resources created by the current run;
    those are the ones compensating cleanup may delete.
    """

    role: str
    resource_type: str
    resource_id: str | None = None
    created: bool = False
    state: ResourceState = ResourceState.NOT_FOUND
    attributes: dict[str, Any] = field(default_factory=dict)

    def transition(self, new_state: ResourceState) -> None:
        """Move to ``new_state`` or raise InvalidTransitionError."""
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"{self.role}: cannot go from {self.state} to {new_state}"
            )
        self.state = new_state

    @property
    def ready(self) -> bool:
        return self.state == ResourceState.READY

    def to_dict(self) -> dict:
        # Key material never leaves the process through a report
        attributes = {
            k: v for k, v in self.attributes.items()
            if k not in ("key_material", "master_password")
        }
        return {
            "role": self.role,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "created": self.created,
            "state": str(self.state),
            "attributes": attributes,
        }


@dataclass
class ProvisionResult:
    """Outcome of one provisioning run."""

    handles: dict[str, ResourceHandle] = field(default_factory=dict)
    ready: bool = False

    @property
    def created(self) -> list[str]:
        """Roles whose resources this run created."""
        return [role for role, h in self.handles.items() if h.created]

    def get(self, role: str) -> ResourceHandle | None:
        return self.handles.get(role)

    def to_dict(self) -> dict:
        return {
            "ready": self.ready,
            "created": self.created,
            "handles": {role: h.to_dict() for role, h in self.handles.items()},
        }
