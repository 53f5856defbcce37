"""
AWS pipeline plugin — brings an environment's AWS topology into being.

Every node of the provisioning plan is exposed as its own fix, so a
scan lists exactly which resources are missing and ``fix`` creates
them (and anything they depend on) with find-or-create semantics.

Applies to environments with ``provider: aws``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from stackfix.adapters.ssh import SshExecutor
from stackfix.core.errors import ConfigurationError
from stackfix.core.models.fix import Fix, Severity, Stage
from stackfix.core.models.plugin import PluginDescriptor
from stackfix.core.models.resource import ProvisionResult, ResourceHandle
from stackfix.core.models.stack import EnvironmentConfig, StackConfig
from stackfix.core.provision import aws
from stackfix.core.provision.aws import AwsResources, AwsSettings, InstanceReadiness
from stackfix.core.provision.provisioner import Provisioner
from stackfix.core.provision.readiness import tcp_probe
from stackfix.core.provision.tags import project_identity
from stackfix.core.scanfix.context import FixContext
from stackfix.core.secrets.store import SecretStore, ssh_key_secret_name, write_private_key

logger = logging.getLogger(__name__)

KEY_DIR = Path(".stackfix") / "keys"

# Plan roles with the description used for their "-missing" fix
ROLE_DESCRIPTIONS: dict[str, str] = {
    aws.NETWORK: "VPC",
    aws.SUBNET_PUBLIC: "public subnet",
    aws.SUBNET_PRIVATE_A: "first private subnet",
    aws.SUBNET_PRIVATE_B: "second private subnet",
    aws.GATEWAY: "internet gateway",
    aws.ROUTE_TABLE: "public route table",
    aws.SG_INSTANCE: "instance security group",
    aws.KEY_PAIR: "SSH key pair",
    aws.INSTANCE: "EC2 instance",
    aws.ELASTIC_IP: "Elastic IP",
    aws.SG_DATABASE: "database security group",
    aws.DB_SUBNET_GROUP: "database subnet group",
    aws.DATABASE: "RDS database",
    aws.BUCKET: "S3 bucket",
    aws.CONTAINER_REGISTRY: "ECR repository",
    aws.MAIL_DOMAIN: "SES domain identity",
}


class AwsPipeline:
    """Pipeline plugin instance: provisioning for AWS environments.

    Args:
        config: Stack configuration.
        secrets: Secret store (SSH keys for readiness probes).
        key_dir: Where newly created private keys are saved (0600).
        session_factory: Builds a boto3 session for a region.
        readiness_factory: Builds the readiness checks for an environment;
            None uses InstanceReadiness with real TCP/SSH probes.
    """

    def __init__(
        self,
        config: StackConfig,
        secrets: SecretStore,
        key_dir: Path | None = None,
        session_factory: Callable[[str], Any] | None = None,
        readiness_factory: Callable[..., InstanceReadiness | None] | None = None,
    ):
        self.config = config
        self.secrets = secrets
        self.key_dir = Path(key_dir) if key_dir else Path.cwd() / KEY_DIR
        self.session_factory = session_factory or (lambda region: boto3.Session(region_name=region))
        self.readiness_factory = readiness_factory or self._default_readiness

    def environment(self, name: str) -> EnvironmentConfig:
        env = self.config.get_environment(name)
        if env is None:
            raise ConfigurationError(f"Unknown environment: {name}")
        if env.provider != "aws":
            raise ConfigurationError(f"Environment '{name}' does not use provider 'aws'")
        return env

    def settings(self, env: EnvironmentConfig) -> AwsSettings:
        return AwsSettings.from_environment(env)

    def project(self, env: EnvironmentConfig) -> str:
        return project_identity(self.config.name, env.name)

    def resources(self, env: EnvironmentConfig) -> AwsResources:
        settings = self.settings(env)
        return AwsResources(
            session=self.session_factory(settings.region),
            project=self.project(env),
            settings=settings,
            domain=env.domain,
        )

    def provisioner(self, env: EnvironmentConfig) -> Provisioner:
        resources = self.resources(env)
        readiness = self.readiness_factory(env, resources.settings)
        return Provisioner(resources.project, aws.build_aws_plan(resources, readiness))

    def status(self, env: EnvironmentConfig, until: str | None = None) -> dict[str, ResourceHandle | None]:
        return self.provisioner(env).status(until=until)

    def provision(
        self,
        env: EnvironmentConfig,
        until: str | None = None,
        wait_ready: bool = True,
    ) -> ProvisionResult:
        """Find-or-create the environment's resources (up to ``until``).

        A freshly created key pair is saved under ``key_dir``; its path
        is recorded on the handle as ``key_file``.
        """
        result = self.provisioner(env).provision(until=until, wait_ready=wait_ready)
        key = result.get(aws.KEY_PAIR)
        if key is not None and key.created and key.attributes.get("key_material"):
            path = self.key_dir / f"{env.name}.pem"
            if path.exists():
                path = self.key_dir / f"{env.name}-{key.resource_id}.pem"
            key.attributes["key_file"] = str(
                write_private_key(path, key.attributes["key_material"])
            )
            logger.warning(
                "New key pair %s saved to %s; add it to the secret store as %s",
                key.resource_id, key.attributes["key_file"], ssh_key_secret_name(env.name),
            )
        return result

    # ── Readiness ───────────────────────────────────────────────

    def _key_material(self, env: EnvironmentConfig, handles: dict[str, ResourceHandle]) -> str:
        key = handles.get(aws.KEY_PAIR)
        if key is not None and key.attributes.get("key_material"):
            return key.attributes["key_material"]
        secret_name = ssh_key_secret_name(env.name)
        material = self.secrets.get(secret_name)
        if material:
            return material
        saved = self.key_dir / f"{env.name}.pem"
        if saved.is_file():
            return saved.read_text(encoding="utf-8")
        raise ConfigurationError(
            f"No SSH key for '{env.name}': set secret {secret_name} to probe the instance"
        )

    def _default_readiness(self, env: EnvironmentConfig, settings: AwsSettings) -> InstanceReadiness:
        def executor_for_host(host: str, handles: dict[str, ResourceHandle]) -> SshExecutor:
            return SshExecutor(
                host=host,
                user=env.ssh_user,
                key_material=self._key_material(env, handles),
            )

        return InstanceReadiness(
            timeout=settings.instance_timeout,
            interval=settings.ready_interval,
            port=settings.ssh_port,
            executor_for_host=executor_for_host,
        )


# ── Fixes ───────────────────────────────────────────────────────


def _aws_env(ctx: FixContext) -> EnvironmentConfig | None:
    env = ctx.env
    if env is None or env.provider != "aws" or not env.is_configured:
        return None
    return env


def _pipeline(config: StackConfig, ctx: FixContext) -> AwsPipeline:
    return AwsPipeline(config, ctx.secrets, key_dir=ctx.root_dir / KEY_DIR)


def _credentials_fix(stage: Stage) -> Fix:
    def scan(config: StackConfig, ctx: FixContext) -> bool:
        env = _aws_env(ctx)
        if env is None:
            return False
        settings = AwsSettings.from_environment(env)
        try:
            boto3.Session(region_name=settings.region).client("sts").get_caller_identity()
        except (NoCredentialsError, ClientError, BotoCoreError) as e:
            ctx.note("AWS credentials check failed: %s", e)
            return True
        return False

    return Fix(
        id=f"{stage}-aws-credentials-missing",
        stage=stage,
        severity=Severity.CRITICAL,
        description="AWS credentials are missing or invalid",
        scan=scan,
        manual_fix=(
            "Configure AWS credentials: run 'aws configure' or set "
            "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY"
        ),
    )


def _resource_fix(stage: Stage, role: str) -> Fix:
    what = ROLE_DESCRIPTIONS[role]

    def scan(config: StackConfig, ctx: FixContext) -> bool:
        env = _aws_env(ctx)
        if env is None:
            return False
        provisioner = _pipeline(config, ctx).provisioner(env)
        if role not in provisioner.roles:
            return False
        return provisioner.status(until=role).get(role) is None

    def fix(config: StackConfig, ctx: FixContext) -> bool:
        env = _aws_env(ctx)
        if env is None:
            return False
        result = _pipeline(config, ctx).provision(
            env, until=role, wait_ready=role == aws.INSTANCE
        )
        for created in result.created:
            ctx.note("Created %s (%s)", created, result.handles[created].resource_id)
        key = result.get(aws.KEY_PAIR)
        if key is not None and key.attributes.get("key_file"):
            ctx.note(
                "Private key saved to %s; add it to the secret store as %s",
                key.attributes["key_file"], ssh_key_secret_name(env.name),
            )
        handle = result.get(role)
        return handle is not None and handle.ready

    return Fix(
        id=f"{stage}-aws-{role}-missing",
        stage=stage,
        severity=Severity.CRITICAL,
        description=f"AWS {what} does not exist for {stage}",
        scan=scan,
        fix=fix,
        manual_fix=f"Run 'stackfix provision --env <{stage} environment>' to create the {what}",
    )


def _unreachable_fix(stage: Stage) -> Fix:
    def scan(config: StackConfig, ctx: FixContext) -> bool:
        env = _aws_env(ctx)
        if env is None:
            return False
        pipeline = _pipeline(config, ctx)
        address = pipeline.status(env, until=aws.ELASTIC_IP).get(aws.ELASTIC_IP)
        if address is None or not address.attributes.get("public_ip"):
            return False
        port = pipeline.settings(env).ssh_port
        return not tcp_probe(address.attributes["public_ip"], port)

    def fix(config: StackConfig, ctx: FixContext) -> bool:
        env = _aws_env(ctx)
        if env is None:
            return False
        result = _pipeline(config, ctx).provision(env, until=aws.ELASTIC_IP, wait_ready=True)
        address = result.get(aws.ELASTIC_IP)
        if address is not None:
            ctx.note("Instance reachable at %s", address.attributes.get("public_ip"))
        return result.ready

    return Fix(
        id=f"{stage}-aws-instance-unreachable",
        stage=stage,
        severity=Severity.CRITICAL,
        description=f"The {stage} EC2 instance does not accept SSH connections",
        scan=scan,
        fix=fix,
        manual_fix="Check the instance state and its security group in the EC2 console",
    )


def aws_fixes() -> list[Fix]:
    fixes: list[Fix] = []
    for stage in (Stage.STAGING, Stage.PROD):
        fixes.append(_credentials_fix(stage))
        fixes.extend(_resource_fix(stage, role) for role in ROLE_DESCRIPTIONS)
        fixes.append(_unreachable_fix(stage))
    return fixes


def _uses_aws(env: EnvironmentConfig) -> bool:
    return env.provider == "aws"


PLUGIN = PluginDescriptor(
    id="aws",
    category="pipeline",
    name="AWS",
    version="1.0.0",
    description="VPC, EC2, RDS, S3, ECR and SES provisioning",
    fixes=tuple(aws_fixes()),
    required_config=("domain",),
    should_load=lambda root_dir, config: any(
        _uses_aws(env) for env in config.environments.values()
    ),
    targets=_uses_aws,
    factory=lambda config, secrets: AwsPipeline(config, secrets),
)
