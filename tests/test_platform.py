"""
Tests for platform detection, command tables and output parsers.
"""

from pathlib import Path

import pytest

from stackfix.core.models.fix import Platform
from stackfix.core.scanfix.commands import COMMANDS, TOOLS, get_commands
from stackfix.core.scanfix.platform import (
    detect_platform,
    parse_docker_info,
    parse_systemctl_state,
    parse_ufw_status,
    parse_version,
)


# ── Commands ────────────────────────────────────────────────────


class TestCommands:
    def test_every_tool_covers_every_platform(self):
        for tool in TOOLS:
            assert set(COMMANDS[tool]) == set(Platform)

    def test_ubuntu_docker(self):
        commands = get_commands("docker", Platform.UBUNTU)
        assert commands.check == "which docker"
        assert commands.install.startswith("sudo apt-get update && sudo apt-get install -y docker.io")
        assert commands.start == "sudo systemctl start docker"

    def test_mac_docker_is_manual_install(self):
        commands = get_commands("docker", "mac")
        assert commands.install is None
        assert commands.start == "open -a Docker"
        assert "Docker Desktop" in commands.manual_fix

    def test_windows_uses_where(self):
        for tool in TOOLS:
            assert get_commands(tool, Platform.WINDOWS).check.startswith("where ")

    def test_amazon_linux_uses_dnf(self):
        assert "dnf" in get_commands("git", "amazon-linux").install

    def test_every_entry_has_manual_text(self):
        for tool in TOOLS:
            for platform in Platform:
                assert get_commands(tool, platform).manual_fix

    def test_unknown_tool(self):
        with pytest.raises(KeyError, match="Unknown tool"):
            get_commands("emacs", Platform.UBUNTU)

    def test_unknown_platform(self):
        with pytest.raises(KeyError, match="Unknown platform"):
            get_commands("docker", "beos")


# ── Parsers ─────────────────────────────────────────────────────


class TestParseVersion:
    @pytest.mark.parametrize("output,expected", [
        ("v20.11.1", (20, 11, 1)),
        ("Docker version 24.0.7, build afdd53b", (24, 0, 7)),
        ("git version 2.34", (2, 34, 0)),
        ("command not found", None),
        ("", None),
    ])
    def test_parse(self, output, expected):
        assert parse_version(output) == expected


class TestParseSystemctl:
    def test_single_state(self):
        assert parse_systemctl_state("active\n") == "active"

    def test_all_masked(self):
        assert parse_systemctl_state("masked\nmasked\nmasked\nmasked\n") == "masked"

    def test_one_unit_differs(self):
        assert parse_systemctl_state("masked\nenabled\nmasked\n") == "enabled"

    def test_empty_is_unknown(self):
        assert parse_systemctl_state("") == "unknown"


class TestParseDockerInfo:
    def test_running_daemon(self):
        output = "Client:\n Version: 24.0.7\nServer:\n Containers: 3\n Server Version: 24.0.7\n"
        info = parse_docker_info(output)
        assert info["running"] == "true"
        assert info["Server Version"] == "24.0.7"

    def test_daemon_down(self):
        output = "Cannot connect to the Docker daemon at unix:///var/run/docker.sock."
        assert parse_docker_info(output) == {"running": "false"}

    def test_client_only(self):
        assert parse_docker_info("Client:\n Version: 24.0.7\n")["running"] == "false"


class TestParseUfw:
    def test_active_with_ports(self):
        output = (
            "Status: active\n\n"
            "To                         Action      From\n"
            "--                         ------      ----\n"
            "22/tcp                     ALLOW       Anywhere\n"
            "80/tcp                     ALLOW       Anywhere\n"
            "443                        ALLOW       Anywhere\n"
            "22/tcp (v6)                ALLOW       Anywhere (v6)\n"
        )
        active, ports = parse_ufw_status(output)
        assert active
        assert ports == {22, 80, 443}

    def test_inactive(self):
        assert parse_ufw_status("Status: inactive\n") == (False, set())


# ── Detection ───────────────────────────────────────────────────


class TestDetectPlatform:
    def test_amazon_linux(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("sys.platform", "linux")
        release = tmp_path / "os-release"
        release.write_text('NAME="Amazon Linux"\nID="amzn"\n')
        assert detect_platform(release) == Platform.AMAZON_LINUX

    def test_other_linux_is_ubuntu(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("sys.platform", "linux")
        release = tmp_path / "os-release"
        release.write_text("ID=debian\n")
        assert detect_platform(release) == Platform.UBUNTU

    def test_mac(self, monkeypatch):
        monkeypatch.setattr("sys.platform", "darwin")
        assert detect_platform() == Platform.MAC

    def test_windows(self, monkeypatch):
        monkeypatch.setattr("sys.platform", "win32")
        assert detect_platform() == Platform.WINDOWS
