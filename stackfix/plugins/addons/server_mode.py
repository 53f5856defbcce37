"""
Server-mode addon — keep staging/prod machines awake and reachable.

Checks are table driven: each entry names a check command, a predicate
on its output, and the command that brings the machine into line.
Environments opt out with ``server_mode: false`` in their settings.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from stackfix.core.models.fix import Fix, Platform, Severity, Stage
from stackfix.core.models.plugin import PluginDescriptor
from stackfix.core.models.stack import EnvironmentConfig, StackConfig
from stackfix.core.scanfix.context import FixContext
from stackfix.core.scanfix.platform import parse_systemctl_state, parse_ufw_status

logger = logging.getLogger(__name__)

ADDON_NAME = "server-mode"
SLEEP_TARGETS = "sleep.target suspend.target hibernate.target hybrid-sleep.target"
REQUIRED_PORTS = (22, 80, 443)


@dataclass(frozen=True)
class ServerCheck:
    """One server-mode check for one platform."""

    key: str
    platform: Platform
    description: str
    check: str
    # True when the check output means a problem
    is_problem: Callable[[str], bool]
    remedy: str | None
    manual_fix: str
    severity: Severity = Severity.WARNING


def _sleep_not_masked(output: str) -> bool:
    return parse_systemctl_state(output) != "masked"


def _ssh_inactive(output: str) -> bool:
    return parse_systemctl_state(output) != "active"


def _ports_closed(output: str) -> bool:
    active, ports = parse_ufw_status(output)
    return not active or not set(REQUIRED_PORTS) <= ports


def _reboot_not_scheduled(output: str) -> bool:
    return 'Automatic-Reboot "true"' not in output


def _pmset_sleep_enabled(output: str) -> bool:
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "sleep":
            return parts[1] != "0"
    return True


def _remote_login_off(output: str) -> bool:
    return "On" not in output


_UFW_ALLOW = " && ".join(f"sudo ufw allow {port}/tcp" for port in REQUIRED_PORTS)

CHECKS: tuple[ServerCheck, ...] = (
    ServerCheck(
        key="sleep-enabled",
        platform=Platform.UBUNTU,
        description="Sleep/suspend targets are not masked",
        check=f"systemctl is-enabled {SLEEP_TARGETS}",
        is_problem=_sleep_not_masked,
        remedy=f"sudo systemctl mask {SLEEP_TARGETS}",
        manual_fix=f"sudo systemctl mask {SLEEP_TARGETS}",
        severity=Severity.CRITICAL,
    ),
    ServerCheck(
        key="ssh-inactive",
        platform=Platform.UBUNTU,
        description="The SSH service is not active",
        check="systemctl is-active ssh",
        is_problem=_ssh_inactive,
        remedy="sudo apt-get install -y openssh-server && sudo systemctl enable --now ssh",
        manual_fix="sudo apt-get install -y openssh-server && sudo systemctl enable --now ssh",
        severity=Severity.CRITICAL,
    ),
    ServerCheck(
        key="firewall-ports",
        platform=Platform.UBUNTU,
        description="UFW is inactive or does not allow ports 22, 80 and 443",
        check="sudo ufw status",
        is_problem=_ports_closed,
        remedy=f"{_UFW_ALLOW} && sudo ufw --force enable",
        manual_fix=f"{_UFW_ALLOW} && sudo ufw enable",
    ),
    ServerCheck(
        key="auto-reboot",
        platform=Platform.UBUNTU,
        description="Unattended upgrades do not reboot automatically",
        check="cat /etc/apt/apt.conf.d/50unattended-upgrades",
        is_problem=_reboot_not_scheduled,
        remedy=None,
        manual_fix=(
            'Set Unattended-Upgrade::Automatic-Reboot "true"; in '
            "/etc/apt/apt.conf.d/50unattended-upgrades"
        ),
        severity=Severity.INFO,
    ),
    ServerCheck(
        key="sleep-enabled",
        platform=Platform.MAC,
        description="System sleep is enabled",
        check="pmset -g",
        is_problem=_pmset_sleep_enabled,
        remedy="sudo pmset -a sleep 0 disksleep 0 displaysleep 0",
        manual_fix="sudo pmset -a sleep 0 disksleep 0 displaysleep 0",
        severity=Severity.CRITICAL,
    ),
    ServerCheck(
        key="remote-login-off",
        platform=Platform.MAC,
        description="Remote Login (SSH) is off",
        check="sudo systemsetup -getremotelogin",
        is_problem=_remote_login_off,
        remedy="sudo systemsetup -setremotelogin on",
        manual_fix="System Settings → General → Sharing → Remote Login",
        severity=Severity.CRITICAL,
    ),
)


def server_mode_enabled(env: EnvironmentConfig | None) -> bool:
    if env is None or env.settings.get("server_mode") is False:
        return False
    return bool(env.domain or env.host)


def _check_fix(check: ServerCheck, stage: Stage) -> Fix:
    def scan(config: StackConfig, ctx: FixContext) -> bool:
        if not server_mode_enabled(ctx.env) or not ctx.target_configured:
            return False
        # systemctl and friends exit non-zero for the states we look for
        return check.is_problem(ctx.executor.execute(check.check).output)

    fix = None
    if check.remedy is not None:
        remedy = check.remedy

        def fix(config: StackConfig, ctx: FixContext) -> bool:
            ctx.note("%s %s", check.description, ctx.label)
            receipt = ctx.executor.execute(remedy)
            if receipt.failed:
                ctx.note("Failed: %s", receipt.error)
                return False
            return not check.is_problem(ctx.executor.execute(check.check).output)

    return Fix(
        id=f"{check.platform}-{stage}-server-{check.key}",
        stage=stage,
        os=check.platform,
        severity=check.severity,
        description=f"{check.description} on the {stage} server",
        scan=scan,
        fix=fix,
        manual_fix=check.manual_fix,
    )


def server_mode_fixes() -> list[Fix]:
    return [
        _check_fix(check, stage)
        for stage in (Stage.STAGING, Stage.PROD)
        for check in CHECKS
    ]


def _should_load(root_dir: Path, config: StackConfig) -> bool:
    if ADDON_NAME in config.addons:
        return True
    return any(
        env.stage in (Stage.STAGING, Stage.PROD) and server_mode_enabled(env)
        for env in config.environments.values()
    )


PLUGIN = PluginDescriptor(
    id=ADDON_NAME,
    category="addon",
    name="Server mode",
    version="1.0.0",
    description="Sleep disabled, SSH enabled and firewall ports open on servers",
    fixes=tuple(server_mode_fixes()),
    should_load=_should_load,
)
