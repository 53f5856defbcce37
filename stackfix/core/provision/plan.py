"""
Provisioning plan — steps with declared predecessors.

Each step knows how to find its resource by tags, create it, and
delete it. The plan is a DAG validated before anything runs.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from stackfix.core.models.resource import ResourceHandle

# find(handles) -> (resource_id, attributes) | None
Finder = Callable[[dict[str, ResourceHandle]], tuple[str, dict[str, Any]] | None]
# create(handles) -> (resource_id, attributes)
Creator = Callable[[dict[str, ResourceHandle]], tuple[str, dict[str, Any]]]
Deleter = Callable[[ResourceHandle], None]
ReadyCheck = Callable[[ResourceHandle, dict[str, ResourceHandle]], None]


@dataclass
class Step:
    """One node of the provisioning plan.

    ``ready`` (optional) blocks until the resource is usable and
    raises ReadinessTimeoutError when it isn't in time.
    """

    role: str
    resource_type: str
    find: Finder
    create: Creator
    delete: Deleter
    depends_on: list[str] = field(default_factory=list)
    ready: ReadyCheck | None = None


def validate_plan(steps: list[Step]) -> list[str]:
    """Validate the step dependency DAG.

    Checks for:
    - Duplicate step roles
    - References to non-existent steps
    - Cycles (Kahn's algorithm)

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    roles = {s.role for s in steps}

    seen: set[str] = set()
    for s in steps:
        if s.role in seen:
            errors.append(f"Duplicate step: {s.role}")
        seen.add(s.role)

    for s in steps:
        for dep in s.depends_on:
            if dep not in roles:
                errors.append(f"Step '{s.role}' depends on unknown step '{dep}'")

    if errors:
        return errors

    if len(execution_order(steps)) < len(steps):
        errors.append("Dependency cycle detected in provisioning plan")

    return errors


def execution_order(steps: list[Step]) -> list[Step]:
    """Steps in an order that respects ``depends_on``.

    Ties keep declaration order. Steps caught in a cycle are left out.
    """
    by_role = {s.role: s for s in steps}
    in_degree = {s.role: len(s.depends_on) for s in steps}
    successors: dict[str, list[str]] = {s.role: [] for s in steps}
    for s in steps:
        for dep in s.depends_on:
            successors[dep].append(s.role)

    position = {s.role: i for i, s in enumerate(steps)}
    queue = [s.role for s in steps if in_degree[s.role] == 0]
    ordered: list[Step] = []

    while queue:
        queue.sort(key=position.__getitem__)
        role = queue.pop(0)
        ordered.append(by_role[role])
        for successor in successors[role]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    return ordered


def ancestors(steps: list[Step], role: str) -> set[str]:
    """``role`` plus every step it transitively depends on."""
    by_role = {s.role: s for s in steps}
    if role not in by_role:
        raise KeyError(f"Unknown step: {role}")
    needed: set[str] = set()
    stack = [role]
    while stack:
        current = stack.pop()
        if current in needed:
            continue
        needed.add(current)
        stack.extend(by_role[current].depends_on)
    return needed
