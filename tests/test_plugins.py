"""
Tests for the built-in plugins — servers, secrets, node, server mode, ECR.
"""

import json
from pathlib import Path

import pytest

from stackfix.adapters.mock import MockExecutor
from stackfix.core.models.fix import Platform, Severity, Stage
from stackfix.core.models.stack import EnvironmentConfig, SecretsConfig, StackConfig
from stackfix.core.scanfix.commands import get_commands
from stackfix.core.scanfix.context import FixContext
from stackfix.core.scanfix.fixes import docker_running_fix, tool_missing_fix
from stackfix.core.scanfix.orchestrator import ScanFixOrchestrator
from stackfix.core.secrets.store import DotenvSecretStore, EnvSecretStore, MemorySecretStore
from stackfix.plugins.addons import server_mode
from stackfix.plugins.builtin import build_default_registry, builtin_plugins
from stackfix.plugins.frameworks import node
from stackfix.plugins.frameworks.node import NodeProject
from stackfix.plugins.registries import ecr
from stackfix.plugins.secrets import stores
from stackfix.plugins.servers import mac, ubuntu
from stackfix.plugins.servers.base import ServerTarget

DOCKER_INFO_UP = "Server:\n Containers: 0\n Server Version: 24.0.7\n"
DOCKER_INFO_DOWN = "Cannot connect to the Docker daemon at unix:///var/run/docker.sock."


def _ctx(executor, stage=Stage.DEV, env=None, root=Path("."), platform=Platform.UBUNTU):
    return FixContext(
        root_dir=root,
        stage=stage,
        platform=platform,
        env=env,
        secrets=MemorySecretStore(),
        executor_factory=lambda *args: executor,
    )


def _fix_by_id(descriptor, fix_id):
    return {f.id: f for f in descriptor.fixes}[fix_id]


# ── Default registry ────────────────────────────────────────────


class TestDefaultRegistry:
    def test_all_builtins_register(self):
        registry = build_default_registry()
        assert len(registry) == len(builtin_plugins())
        categories = {row.category for row in registry.list()}
        assert categories == {"server", "secrets", "pipeline", "registry", "framework", "addon"}

    def test_fix_ids_unique(self):
        ids = [f.id for f in build_default_registry().fixes()]
        assert len(ids) == len(set(ids))


# ── Tool fixes ──────────────────────────────────────────────────


class TestToolMissingFix:
    def test_ids_and_os(self):
        fix = tool_missing_fix("docker", Stage.DEV, Platform.UBUNTU)
        assert fix.id == "ubuntu-dev-docker-missing"
        assert fix.os == frozenset({Platform.UBUNTU})
        assert not fix.manual_only

    def test_scan_and_fix(self):
        executor = MockExecutor()
        executor.set_failure("which docker")
        fix = tool_missing_fix("docker", Stage.DEV, Platform.UBUNTU)
        ctx = _ctx(executor)

        assert fix.scan(None, ctx) is True

        def install_clears_failure(command, timeout=120):
            executor.clear("which docker")
            return MockExecutor.execute(executor, command, timeout)

        executor.execute = install_clears_failure
        assert fix.fix(None, ctx) is True
        assert fix.scan(None, _ctx(executor)) is False
        assert any("apt-get install -y docker.io" in c for c in executor.call_log)

    def test_failed_install_reports_false(self):
        executor = MockExecutor()
        install = tool_missing_fix("git", Stage.DEV, Platform.UBUNTU)
        executor.set_failure("sudo apt-get update && sudo apt-get install -y git", "E: locked")
        ctx = _ctx(executor)
        assert install.fix(None, ctx) is False
        assert "Install failed: E: locked" in ctx.notes

    def test_mac_docker_is_manual(self):
        fix = tool_missing_fix("docker", Stage.DEV, Platform.MAC)
        assert fix.manual_only
        assert "Docker Desktop" in fix.manual_fix

    def test_min_version(self):
        executor = MockExecutor()
        executor.set_output("node --version", "v16.20.0")
        fix = tool_missing_fix(
            "node", Stage.DEV, Platform.UBUNTU,
            version_command="node --version", min_version=(18, 0, 0),
        )
        ctx = _ctx(executor)
        assert fix.scan(None, ctx) is True
        assert "node 16.20.0 is older than 18.0.0" in ctx.notes

        executor.set_output("node --version", "v20.11.1")
        assert fix.scan(None, _ctx(executor)) is False

    def test_install_leaving_old_version_is_not_resolved(self):
        executor = MockExecutor()
        executor.set_output("node --version", "v16.20.0")
        fix = tool_missing_fix(
            "node", Stage.DEV, Platform.UBUNTU,
            version_command="node --version", min_version=(18, 0, 0),
        )
        assert fix.scan(None, _ctx(executor)) is True

        ctx = _ctx(executor)
        assert fix.fix(None, ctx) is False
        assert "node 16.20.0 is older than 18.0.0" in ctx.notes
        assert fix.scan(None, _ctx(executor)) is True

    def test_unconfigured_remote_target_skipped(self):
        executor = MockExecutor()
        executor.set_failure("which docker")
        fix = tool_missing_fix("docker", Stage.PROD, Platform.UBUNTU)
        env = EnvironmentConfig(name="prod", domain="EXAMPLE.com")
        assert fix.scan(None, _ctx(executor, Stage.PROD, env)) is False
        assert executor.call_count == 0

    def test_when_narrows_scan(self):
        executor = MockExecutor()
        executor.set_failure("which pnpm")
        fix = tool_missing_fix(
            "pnpm", Stage.DEV, Platform.UBUNTU, when=lambda config, ctx: False
        )
        assert fix.scan(None, _ctx(executor)) is False


class TestDockerRunningFix:
    def test_scan_daemon_down(self):
        executor = MockExecutor()
        executor.set_failure("docker info", DOCKER_INFO_DOWN)
        fix = docker_running_fix(Stage.DEV, Platform.UBUNTU)
        assert fix.id == "ubuntu-dev-docker-not-running"
        assert fix.scan(None, _ctx(executor)) is True

    def test_scan_missing_docker_not_reported_twice(self):
        executor = MockExecutor()
        executor.set_failure("which docker")
        fix = docker_running_fix(Stage.DEV, Platform.UBUNTU)
        assert fix.scan(None, _ctx(executor)) is False

    def test_fix_starts_and_waits(self):
        executor = MockExecutor()
        executor.set_failure("docker info", DOCKER_INFO_DOWN)
        original = executor.execute

        def execute(command, timeout=120):
            if command == "sudo systemctl start docker":
                executor.set_output("docker info", DOCKER_INFO_UP)
            return original(command, timeout)

        executor.execute = execute
        fix = docker_running_fix(Stage.DEV, Platform.UBUNTU, poll_interval=0.01)
        ctx = _ctx(executor)
        assert fix.fix(None, ctx) is True
        assert "Docker started" in ctx.notes

    def test_fix_times_out(self):
        executor = MockExecutor()
        executor.set_failure("docker info", DOCKER_INFO_DOWN)
        fix = docker_running_fix(
            Stage.DEV, Platform.UBUNTU, start_timeout=0.05, poll_interval=0.01
        )
        assert fix.fix(None, _ctx(executor)) is False

    def test_windows_is_manual(self):
        assert docker_running_fix(Stage.DEV, Platform.WINDOWS).manual_only


# ── Server plugins ──────────────────────────────────────────────


class TestServerPlugins:
    def test_ubuntu_declares_every_stage(self):
        ids = {f.id for f in ubuntu.PLUGIN.fixes}
        for stage in ("dev", "staging", "prod"):
            assert f"ubuntu-{stage}-docker-missing" in ids
            assert f"ubuntu-{stage}-docker-not-running" in ids
            assert f"ubuntu-{stage}-git-missing" in ids
        assert "ubuntu-dev-node-missing" in ids
        assert "ubuntu-prod-node-missing" not in ids
        assert "ubuntu-prod-certbot-missing" in ids

    def test_targets_only_matching_remote_envs(self):
        assert ubuntu.PLUGIN.targets(EnvironmentConfig(name="prod"))
        assert not ubuntu.PLUGIN.targets(EnvironmentConfig(name="dev"))
        assert not ubuntu.PLUGIN.targets(EnvironmentConfig(name="prod", os="mac"))
        assert mac.PLUGIN.targets(EnvironmentConfig(name="prod", os="mac"))

    def test_ssh_key_required_for_remote(self, stack_config, tmp_path):
        registry = build_default_registry()
        ids = {f.id for f in registry.collect_fixes(tmp_path, stack_config)}
        assert "missing-secret-prod-prod-ssh" in ids
        assert "missing-secret-staging-staging-ssh" in ids

    def test_server_target(self, stack_config, secrets):
        target = ServerTarget(stack_config, secrets, Platform.UBUNTU)
        assert target.commands("git").check == "which git"
        assert target.executor("prod").target == "ubuntu@203.0.113.10"


class TestServerScenario:
    """Fresh Ubuntu dev machine: docker missing, nothing else wrong."""

    def test_scan_and_fix_dev(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "stackfix.plugins.servers.base.detect_platform", lambda: Platform.UBUNTU
        )
        executor = MockExecutor()
        executor.set_output("docker info", DOCKER_INFO_UP)
        executor.set_output("node --version", "v20.11.1")
        executor.set_failure("which docker")
        install = get_commands("docker", Platform.UBUNTU).install
        original = executor.execute

        def execute(command, timeout=120):
            if command == install:
                executor.clear("which docker")
            return original(command, timeout)

        executor.execute = execute
        registry = build_default_registry()
        config = StackConfig(name="shop", environments={"dev": EnvironmentConfig(name="dev")})
        orch = ScanFixOrchestrator(
            registry, config, tmp_path, MemorySecretStore(),
            executor_factory=lambda *args: executor,
            platform=Platform.UBUNTU,
        )

        scan = orch.scan("dev")
        assert [f.id for f in scan.problems] == ["ubuntu-dev-docker-missing"]
        assert not scan.ok

        report = orch.fix("dev")
        assert [o.status for o in report.outcomes] == ["fixed"]
        assert orch.scan("dev").problems == []


# ── Secrets plugins ─────────────────────────────────────────────


class TestSecretsPlugins:
    def test_env_store(self):
        store = build_default_registry().create_instance("secrets", "env", SecretsConfig())
        assert isinstance(store, EnvSecretStore)

    def test_dotenv_store_resolves_path(self, tmp_path: Path):
        (tmp_path / ".stackfix").mkdir()
        (tmp_path / ".stackfix" / "secrets.env").write_text("PROD_SSH=key\n")
        config = StackConfig(name="shop", secrets=SecretsConfig(backend="dotenv"))
        store = build_default_registry().create_instance(
            "secrets", "dotenv", stores.secrets_config_for(config, tmp_path)
        )
        assert isinstance(store, DotenvSecretStore)
        assert store.get("PROD_SSH") == "key"

    def test_should_load_follows_backend(self, tmp_path: Path):
        config = StackConfig(name="shop", secrets=SecretsConfig(backend="dotenv"))
        assert stores.DOTENV_PLUGIN.should_load(tmp_path, config)
        assert not stores.ENV_PLUGIN.should_load(tmp_path, config)

    def test_secrets_file_missing(self, tmp_path: Path):
        config = StackConfig(name="shop", secrets=SecretsConfig(backend="dotenv"))
        fix = _fix_by_id(stores.DOTENV_PLUGIN, "dev-secrets-file-missing")
        assert fix.scan(config, _ctx(MockExecutor(), root=tmp_path)) is True
        (tmp_path / ".stackfix").mkdir()
        (tmp_path / ".stackfix" / "secrets.env").write_text("")
        assert fix.scan(config, _ctx(MockExecutor(), root=tmp_path)) is False


# ── Node framework ──────────────────────────────────────────────


class TestNodeFramework:
    def _project(self, tmp_path: Path, **package) -> Path:
        (tmp_path / "package.json").write_text(json.dumps(package))
        return tmp_path

    def test_loads_only_with_package_json(self, tmp_path: Path):
        config = StackConfig(name="shop")
        assert not node.PLUGIN.should_load(tmp_path, config)
        self._project(tmp_path)
        assert node.PLUGIN.should_load(tmp_path, config)

    @pytest.mark.parametrize("lockfile,manager", [
        ("pnpm-lock.yaml", "pnpm"),
        ("yarn.lock", "yarn"),
        ("package-lock.json", "npm"),
    ])
    def test_package_manager_from_lockfile(self, tmp_path: Path, lockfile, manager):
        self._project(tmp_path)
        (tmp_path / lockfile).write_text("")
        assert NodeProject(tmp_path).package_manager == manager

    def test_package_manager_field_wins(self, tmp_path: Path):
        self._project(tmp_path, packageManager="pnpm@8.15.0")
        assert NodeProject(tmp_path).uses_pnpm

    def test_broken_package_json(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{not json")
        assert NodeProject(tmp_path).package_json == {}

    def test_pnpm_fix_only_when_project_uses_pnpm(self, tmp_path: Path):
        self._project(tmp_path)
        executor = MockExecutor()
        executor.set_failure("which pnpm")
        fix = _fix_by_id(node.PLUGIN, "ubuntu-dev-pnpm-missing")
        assert fix.severity == Severity.WARNING
        assert fix.scan(None, _ctx(executor, root=tmp_path)) is False
        (tmp_path / "pnpm-lock.yaml").write_text("")
        assert fix.scan(None, _ctx(executor, root=tmp_path)) is True

    def test_node_modules_missing(self, tmp_path: Path):
        self._project(tmp_path, dependencies={"express": "^4.0.0"})
        fix = _fix_by_id(node.PLUGIN, "dev-node-modules-missing")
        executor = MockExecutor()
        assert fix.scan(None, _ctx(executor, root=tmp_path)) is True
        assert fix.fix(None, _ctx(executor, root=tmp_path)) is True
        assert executor.call_log[-1].endswith("npm install")

    def test_no_dependencies_no_problem(self, tmp_path: Path):
        self._project(tmp_path)
        fix = _fix_by_id(node.PLUGIN, "dev-node-modules-missing")
        assert fix.scan(None, _ctx(MockExecutor(), root=tmp_path)) is False

    def test_env_file_created_from_example(self, tmp_path: Path):
        self._project(tmp_path)
        (tmp_path / ".env.example").write_text("API_KEY=\n")
        fix = _fix_by_id(node.PLUGIN, "dev-env-file-missing")
        ctx = _ctx(MockExecutor(), root=tmp_path)

        assert fix.scan(None, ctx) is True
        assert fix.fix(None, ctx) is True
        assert (tmp_path / ".env").read_text() == "API_KEY=\n"
        assert fix.scan(None, ctx) is False

    def test_instance_through_registry(self, tmp_path: Path):
        self._project(tmp_path)
        project = build_default_registry().create_instance(
            "framework", "node", StackConfig(name="shop"), path=tmp_path
        )
        assert project.install_command() == "npm install"


# ── Server mode addon ───────────────────────────────────────────


class TestServerMode:
    PROD = EnvironmentConfig(name="prod", domain="shop.example.org", host="203.0.113.10")

    def _fix(self, key, platform="ubuntu", stage="prod"):
        return _fix_by_id(server_mode.PLUGIN, f"{platform}-{stage}-server-{key}")

    def test_sleep_not_masked(self):
        executor = MockExecutor()
        executor.set_output(
            f"systemctl is-enabled {server_mode.SLEEP_TARGETS}", "static\nstatic\nstatic\nstatic"
        )
        fix = self._fix("sleep-enabled")
        assert fix.scan(None, _ctx(executor, Stage.PROD, self.PROD)) is True

    def test_sleep_masked(self):
        executor = MockExecutor()
        executor.set_output(
            f"systemctl is-enabled {server_mode.SLEEP_TARGETS}", "masked\nmasked\nmasked\nmasked"
        )
        assert self._fix("sleep-enabled").scan(None, _ctx(executor, Stage.PROD, self.PROD)) is False

    def test_fix_runs_remedy_then_rechecks(self):
        executor = MockExecutor()
        check = "systemctl is-active ssh"
        executor.set_output(check, "inactive")
        original = executor.execute

        def execute(command, timeout=120):
            if command.startswith("sudo apt-get install -y openssh-server"):
                executor.set_output(check, "active")
            return original(command, timeout)

        executor.execute = execute
        assert self._fix("ssh-inactive").fix(None, _ctx(executor, Stage.PROD, self.PROD)) is True

    def test_firewall_ports(self):
        executor = MockExecutor()
        executor.set_output("sudo ufw status", "Status: active\n22/tcp ALLOW Anywhere\n")
        assert self._fix("firewall-ports").scan(None, _ctx(executor, Stage.PROD, self.PROD)) is True

    def test_auto_reboot_is_manual_info(self):
        fix = self._fix("auto-reboot")
        assert fix.manual_only
        assert fix.severity == Severity.INFO

    def test_mac_checks(self):
        executor = MockExecutor()
        executor.set_output("pmset -g", "System-wide power settings:\n sleep 0\n disksleep 0")
        fix = self._fix("sleep-enabled", platform="mac")
        assert fix.os == frozenset({Platform.MAC})
        assert fix.scan(None, _ctx(executor, Stage.PROD, self.PROD, platform=Platform.MAC)) is False

    def test_opt_out(self):
        env = self.PROD.model_copy(update={"settings": {"server_mode": False}})
        executor = MockExecutor()
        assert self._fix("ssh-inactive").scan(None, _ctx(executor, Stage.PROD, env)) is False
        assert executor.call_count == 0

    def test_should_load(self, tmp_path: Path):
        assert server_mode.PLUGIN.should_load(
            tmp_path, StackConfig(name="s", environments={"prod": self.PROD})
        )
        assert not server_mode.PLUGIN.should_load(tmp_path, StackConfig(name="s"))
        assert server_mode.PLUGIN.should_load(
            tmp_path, StackConfig(name="s", addons=["server-mode"])
        )

    def test_dev_has_no_server_mode_fixes(self):
        assert all(f.stage != Stage.DEV for f in server_mode.PLUGIN.fixes)


# ── ECR registry ────────────────────────────────────────────────


class FakeSts:
    def get_caller_identity(self):
        return {"Account": "123456789012"}


class TestEcrRegistry:
    ENV = EnvironmentConfig(
        name="prod",
        domain="shop.example.org",
        host="203.0.113.10",
        provider="aws",
        settings={"aws": {"region": "eu-west-1", "container_registry": True}},
    )

    def test_login_command(self):
        registry = ecr.EcrRegistry(StackConfig(name="shop"), sts=FakeSts())
        assert registry.registry_host(self.ENV) == "123456789012.dkr.ecr.eu-west-1.amazonaws.com"
        assert registry.login_command(self.ENV) == (
            "aws ecr get-login-password --region eu-west-1"
            " | docker login --username AWS --password-stdin "
            "123456789012.dkr.ecr.eu-west-1.amazonaws.com"
        )
        assert registry.image_uri(self.ENV, "v1").endswith("/shop-prod:v1")

    def test_should_load_only_with_registry_enabled(self, tmp_path: Path):
        with_registry = StackConfig(name="shop", environments={"prod": self.ENV})
        assert ecr.PLUGIN.should_load(tmp_path, with_registry)
        plain = StackConfig(
            name="shop", environments={"prod": EnvironmentConfig(name="prod", provider="aws")}
        )
        assert not ecr.PLUGIN.should_load(tmp_path, plain)

    def test_aws_cli_fix_only_for_ecr_envs(self):
        executor = MockExecutor()
        executor.set_failure("which aws")
        fix = _fix_by_id(ecr.PLUGIN, "ubuntu-prod-aws-cli-missing")
        assert fix.scan(None, _ctx(executor, Stage.PROD, self.ENV)) is True
        plain = EnvironmentConfig(name="prod", domain="shop.example.org", provider="aws")
        assert fix.scan(None, _ctx(executor, Stage.PROD, plain)) is False
