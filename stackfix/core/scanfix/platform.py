"""
Platform detection and command-output parsers.

Parsers turn raw tool output into small structured values so the
fixes that depend on them can be tested without a real machine.
"""

from __future__ import annotations

import platform as _platform
import re
import sys
from pathlib import Path

from stackfix.core.models.fix import Platform

_OS_RELEASE = Path("/etc/os-release")


def detect_platform(os_release: Path = _OS_RELEASE) -> Platform:
    """Map the running interpreter's OS to a Platform.

    Linux distributions other than Amazon Linux are treated as Ubuntu
    (apt-based); that is the only Linux family with install commands.
    """
    if sys.platform == "darwin":
        return Platform.MAC
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    if _is_amazon_linux(os_release):
        return Platform.AMAZON_LINUX
    return Platform.UBUNTU


def _is_amazon_linux(os_release: Path) -> bool:
    try:
        content = os_release.read_text(encoding="utf-8")
    except OSError:
        return "amzn" in _platform.release()
    return 'ID="amzn"' in content or "ID=amzn" in content


# ── Parsers ─────────────────────────────────────────────────────

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def parse_version(output: str) -> tuple[int, int, int] | None:
    """First dotted version number in ``output``.

    >>> parse_version("v20.11.1")
    (20, 11, 1)
    >>> parse_version("Docker version 24.0.7, build afdd53b")
    (24, 0, 7)
    """
    match = _VERSION_RE.search(output or "")
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def parse_systemctl_state(output: str) -> str:
    """Normalise ``systemctl is-active`` / ``is-enabled`` output.

    Multi-unit queries print one state per line; the result is the
    first state that differs from the others' common value, so a
    single non-matching unit is not hidden.
    """
    states = [line.strip() for line in (output or "").splitlines() if line.strip()]
    if not states:
        return "unknown"
    first = states[0]
    for state in states[1:]:
        if state != first:
            return state
    return first


def parse_docker_info(output: str) -> dict[str, str]:
    """Key/value pairs from ``docker info`` output.

    A daemon that is not running prints an error instead; the result
    then carries ``{"running": "false"}``.
    """
    text = output or ""
    if "Cannot connect to the Docker daemon" in text or "error during connect" in text:
        return {"running": "false"}

    info: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.strip().partition(":")
        if sep and key and key not in info:
            info[key.strip()] = value.strip()
    info["running"] = "true" if "Server Version" in info else "false"
    return info


def parse_ufw_status(output: str) -> tuple[bool, set[int]]:
    """``(active, allowed_ports)`` from ``ufw status`` output."""
    text = output or ""
    active = bool(re.search(r"^Status:\s*active", text, re.MULTILINE))
    ports: set[int] = set()
    for line in text.splitlines():
        match = re.match(r"^\s*(\d+)(?:/(?:tcp|udp))?(?:\s+\(v6\))?\s+ALLOW", line)
        if match:
            ports.add(int(match.group(1)))
    return active, ports
