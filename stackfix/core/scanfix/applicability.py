"""
Applicability filter — which declared fixes apply to a run.
"""

from __future__ import annotations

from collections.abc import Iterable

from stackfix.core.models.fix import Fix, Platform, Stage


def applicable_for(fix: Fix, stage: Stage | str, os: Platform | str | None = None) -> bool:
    """Stage matches exactly, and the fix is OS-agnostic or names ``os``."""
    if fix.stage != Stage(stage):
        return False
    if not fix.os:
        return True
    return os is not None and Platform(os) in fix.os


def filter_applicable(
    fixes: Iterable[Fix],
    stage: Stage | str,
    os: Platform | str | None = None,
) -> list[Fix]:
    """Fixes applicable to ``stage`` on ``os``, in declaration order.

    With ``os=None`` only OS-agnostic fixes survive; callers resolve the
    target OS (detected locally, from the environment remotely) first.
    """
    return [fix for fix in fixes if applicable_for(fix, stage, os)]
