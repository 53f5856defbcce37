"""
Provisioner — idempotent find-or-create over a provisioning plan.

Flow per step, in dependency order:
    find by tags → reuse (READY)
                 → or create (CREATING → READY)
    optional readiness wait
    any failure → ERROR, delete this run's creations (reverse order), raise

Resource tags are the only durable memory: a second run finds
everything the first one created and creates nothing.
"""

from __future__ import annotations

import logging

from stackfix.core.errors import ProvisioningError
from stackfix.core.models.resource import ProvisionResult, ResourceHandle, ResourceState
from stackfix.core.provision.plan import Step, ancestors, execution_order, validate_plan

logger = logging.getLogger(__name__)


class Provisioner:
    """Drive a plan of Steps for one project.

    Args:
        project: Project identity (used in logs and errors).
        steps: The provisioning plan.
    """

    def __init__(self, project: str, steps: list[Step]):
        errors = validate_plan(steps)
        if errors:
            raise ProvisioningError("Invalid provisioning plan: " + "; ".join(errors))
        self.project = project
        self.steps = execution_order(steps)

    @property
    def roles(self) -> list[str]:
        return [s.role for s in self.steps]

    def _select(self, until: str | None) -> list[Step]:
        if until is None:
            return list(self.steps)
        needed = ancestors(self.steps, until)
        return [s for s in self.steps if s.role in needed]

    # ── Discovery ───────────────────────────────────────────────

    def status(self, until: str | None = None) -> dict[str, ResourceHandle | None]:
        """Discover what exists, creating nothing.

        A step whose predecessor is missing is reported missing too.
        """
        handles: dict[str, ResourceHandle] = {}
        result: dict[str, ResourceHandle | None] = {}
        for step in self._select(until):
            if any(dep not in handles for dep in step.depends_on):
                result[step.role] = None
                continue
            found = step.find(handles)
            if found is None:
                result[step.role] = None
                continue
            handle = self._found(step, found)
            handles[step.role] = handle
            result[step.role] = handle
        return result

    # ── Provisioning ────────────────────────────────────────────

    def provision(self, until: str | None = None, wait_ready: bool = True) -> ProvisionResult:
        """Bring every step (or every step up to ``until``) to READY.

        Raises:
            ProvisioningError: a step failed. Resources created by this
                run have been deleted before it propagates.
            ReadinessTimeoutError: a readiness wait expired (same cleanup).
        """
        result = ProvisionResult()
        created: list[tuple[Step, ResourceHandle]] = []
        selected = self._select(until)

        for step in selected:
            handle = ResourceHandle(role=step.role, resource_type=step.resource_type)
            result.handles[step.role] = handle
            try:
                self._run_step(step, handle, result.handles, created, wait_ready)
            except Exception as e:
                if handle.state != ResourceState.ERROR:
                    handle.transition(ResourceState.ERROR)
                error = e if isinstance(e, ProvisioningError) else ProvisioningError(
                    f"{step.role}: {e}", role=step.role
                )
                if error.role is None:
                    error.role = step.role
                error.cleaned_up = self._cleanup(created)
                logger.error("✗ %s failed: %s", step.role, e)
                if error is e:
                    raise
                raise error from e

        # Skipped readiness checks mean readiness is unknown, not proven
        checked = wait_ready or not any(s.ready is not None for s in selected)
        result.ready = checked and all(h.ready for h in result.handles.values())
        return result

    def _run_step(
        self,
        step: Step,
        handle: ResourceHandle,
        handles: dict[str, ResourceHandle],
        created: list[tuple[Step, ResourceHandle]],
        wait_ready: bool,
    ) -> None:
        found = step.find(handles)
        if found is not None:
            handle.resource_id, handle.attributes = found
            handle.transition(ResourceState.READY)
            logger.info("⊘ %s exists: %s", step.role, handle.resource_id)
        else:
            handle.transition(ResourceState.CREATING)
            handle.resource_id, handle.attributes = step.create(handles)
            handle.created = True
            created.append((step, handle))
            handle.transition(ResourceState.READY)
            logger.info("✓ %s created: %s", step.role, handle.resource_id)

        if wait_ready and step.ready is not None:
            step.ready(handle, handles)

    def _cleanup(self, created: list[tuple[Step, ResourceHandle]]) -> list[str]:
        """Delete this run's creations, newest first. Failures are logged only."""
        cleaned: list[str] = []
        for step, handle in reversed(created):
            try:
                step.delete(handle)
                cleaned.append(step.role)
                logger.info("Cleaned up %s (%s)", step.role, handle.resource_id)
            except Exception as e:
                logger.warning(
                    "Cleanup of %s (%s) failed: %s", step.role, handle.resource_id, e
                )
        return cleaned

    @staticmethod
    def _found(step: Step, found: tuple) -> ResourceHandle:
        resource_id, attributes = found
        return ResourceHandle(
            role=step.role,
            resource_type=step.resource_type,
            resource_id=resource_id,
            state=ResourceState.READY,
            attributes=attributes,
        )
