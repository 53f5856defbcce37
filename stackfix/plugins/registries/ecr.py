"""
ECR registry plugin — container registry login on deployment targets.

Applies to AWS environments with ``container_registry: true`` under
``settings.aws``. The repository itself is provisioned by the AWS
pipeline; this plugin makes sure the target host can pull from it.
"""

from __future__ import annotations

import logging

import boto3

from stackfix.core.models.fix import Fix, Platform, Severity, Stage
from stackfix.core.models.plugin import PluginDescriptor
from stackfix.core.models.stack import EnvironmentConfig, StackConfig
from stackfix.core.provision.aws import AwsSettings
from stackfix.core.provision.tags import project_identity
from stackfix.core.scanfix.context import FixContext
from stackfix.core.scanfix.fixes import tool_missing_fix
from stackfix.core.secrets.store import SecretStore

logger = logging.getLogger(__name__)

DOCKER_CONFIG = "~/.docker/config.json"


def _uses_ecr(env: EnvironmentConfig) -> bool:
    if env.provider != "aws":
        return False
    return AwsSettings.from_environment(env).container_registry


class EcrRegistry:
    """Registry plugin instance: registry host, image URIs, login command."""

    def __init__(self, config: StackConfig, secrets: SecretStore | None = None, sts=None):
        self.config = config
        self.secrets = secrets
        self._sts = sts
        self._account: str | None = None

    def account_id(self, region: str) -> str:
        if self._account is None:
            sts = self._sts or boto3.Session(region_name=region).client("sts")
            self._account = sts.get_caller_identity()["Account"]
        return self._account

    def registry_host(self, env: EnvironmentConfig) -> str:
        region = AwsSettings.from_environment(env).region
        return f"{self.account_id(region)}.dkr.ecr.{region}.amazonaws.com"

    def image_uri(self, env: EnvironmentConfig, tag: str = "latest") -> str:
        repository = project_identity(self.config.name, env.name)
        return f"{self.registry_host(env)}/{repository}:{tag}"

    def login_command(self, env: EnvironmentConfig) -> str:
        region = AwsSettings.from_environment(env).region
        return (
            f"aws ecr get-login-password --region {region}"
            f" | docker login --username AWS --password-stdin {self.registry_host(env)}"
        )


def _login_fix(stage: Stage) -> Fix:
    def _registry(config: StackConfig, ctx: FixContext) -> EcrRegistry:
        return EcrRegistry(config, ctx.secrets)

    def scan(config: StackConfig, ctx: FixContext) -> bool:
        env = ctx.env
        if env is None or not env.is_configured or not _uses_ecr(env):
            return False
        host = _registry(config, ctx).registry_host(env)
        return not ctx.executor.succeeds(f"grep -q {host} {DOCKER_CONFIG}")

    def fix(config: StackConfig, ctx: FixContext) -> bool:
        env = ctx.env
        if env is None:
            return False
        ctx.note("Logging in to ECR %s", ctx.label)
        receipt = ctx.executor.execute(_registry(config, ctx).login_command(env))
        if receipt.failed:
            ctx.note("ECR login failed: %s", receipt.error)
            return False
        return True

    return Fix(
        id=f"{stage}-ecr-login-missing",
        stage=stage,
        severity=Severity.WARNING,
        description=f"Docker on the {stage} server is not logged in to ECR",
        scan=scan,
        fix=fix,
        manual_fix=(
            "On the server run: aws ecr get-login-password | "
            "docker login --username AWS --password-stdin <account>.dkr.ecr.<region>.amazonaws.com"
        ),
    )


def _env_uses_ecr(config: StackConfig, ctx: FixContext) -> bool:
    return ctx.env is not None and _uses_ecr(ctx.env)


def ecr_fixes() -> list[Fix]:
    fixes: list[Fix] = []
    for stage in (Stage.STAGING, Stage.PROD):
        # The login pipes through the AWS CLI on the server
        for platform in (Platform.UBUNTU, Platform.AMAZON_LINUX):
            fixes.append(
                tool_missing_fix(
                    "aws-cli", stage, platform, severity=Severity.WARNING, when=_env_uses_ecr
                )
            )
        fixes.append(_login_fix(stage))
    return fixes


PLUGIN = PluginDescriptor(
    id="ecr",
    category="registry",
    name="Amazon ECR",
    version="1.0.0",
    description="Registry login for AWS targets",
    fixes=tuple(ecr_fixes()),
    should_load=lambda root_dir, config: any(
        _uses_ecr(env) for env in config.environments.values()
    ),
    targets=_uses_ecr,
    factory=lambda config, secrets: EcrRegistry(config, secrets),
)
