"""
AWS resources — find/create/delete for every node of the AWS plan.

Plan (each arrow is a declared dependency):

    network → subnet-public ─────────────┐
            → subnet-private-a/-b        │
            → internet-gateway → route-table
            → sg-instance → sg-database
    key-pair ─────────────→ instance → elastic-ip
    db-subnet-group, database, bucket, container-registry, mail-domain
    are optional and enabled per environment.

Discovery filters on the (project, managed, role) tag triple, except
where AWS names are unique anyway (key pair, bucket, repository,
RDS identifiers, SES identities). Elastic IPs are found by the
instance they are associated with.
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Callable
from typing import Any, Literal

from botocore.exceptions import ClientError
from pydantic import BaseModel, ConfigDict, Field

from stackfix.adapters.base import Executor
from stackfix.core.errors import ProvisioningError
from stackfix.core.models.resource import ResourceHandle
from stackfix.core.models.stack import EnvironmentConfig
from stackfix.core.provision.plan import Step
from stackfix.core.provision.readiness import tcp_probe, wait_until
from stackfix.core.provision.tags import (
    ec2_tags,
    resource_name,
    tag_filters,
    tag_specifications,
)

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"

# Canonical's account; Ubuntu 22.04 LTS images
UBUNTU_OWNER = "099720109477"
UBUNTU_NAME_PATTERN = "ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-amd64-server-*"

# ── Roles ───────────────────────────────────────────────────────

NETWORK = "network"
SUBNET_PUBLIC = "subnet-public"
SUBNET_PRIVATE_A = "subnet-private-a"
SUBNET_PRIVATE_B = "subnet-private-b"
GATEWAY = "internet-gateway"
ROUTE_TABLE = "route-table"
SG_INSTANCE = "sg-instance"
SG_DATABASE = "sg-database"
KEY_PAIR = "key-pair"
INSTANCE = "instance"
ELASTIC_IP = "elastic-ip"
DB_SUBNET_GROUP = "db-subnet-group"
DATABASE = "database"
BUCKET = "bucket"
CONTAINER_REGISTRY = "container-registry"
MAIL_DOMAIN = "mail-domain"

Found = tuple[str, dict[str, Any]] | None


class AwsSettings(BaseModel):
    """Per-environment AWS settings (``settings.aws`` in stack.yml)."""

    model_config = ConfigDict(extra="ignore")

    region: str = DEFAULT_REGION
    vpc_cidr: str = "10.0.0.0/16"
    public_subnet_cidr: str = "10.0.1.0/24"
    private_subnet_cidrs: list[str] = Field(
        default_factory=lambda: ["10.0.2.0/24", "10.0.3.0/24"]
    )
    instance_type: str = "t3.micro"
    ami_id: str | None = None
    key_type: Literal["ed25519", "rsa"] = "ed25519"
    ingress_ports: list[int] = Field(default_factory=lambda: [22, 80, 443])

    database: bool = False
    db_engine_version: str = "15"
    db_instance_class: str = "db.t3.micro"
    db_storage_gb: int = 20
    db_name: str = "app"
    db_username: str = "stackfix"

    bucket: bool = False
    container_registry: bool = False
    mail: bool = False

    instance_timeout: float = 300.0
    ready_interval: float = 5.0
    ssh_port: int = 22

    @classmethod
    def from_environment(cls, env: EnvironmentConfig) -> AwsSettings:
        data = dict(env.settings.get("aws") or {})
        if env.region and "region" not in data:
            data["region"] = env.region
        return cls.model_validate(data)


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


class AwsResources:
    """Find/create/delete operations for one project in one region."""

    def __init__(
        self,
        session: Any,
        project: str,
        settings: AwsSettings,
        domain: str | None = None,
    ):
        self.session = session
        self.project = project
        self.settings = settings
        self.domain = domain
        self._clients: dict[str, Any] = {}

    def client(self, service: str) -> Any:
        if service not in self._clients:
            self._clients[service] = self.session.client(
                service, region_name=self.settings.region
            )
        return self._clients[service]

    @property
    def ec2(self) -> Any:
        return self.client("ec2")

    def _filters(self, role: str) -> list[dict]:
        return tag_filters(self.project, role)

    # ── Network ─────────────────────────────────────────────────

    def find_network(self, handles: dict[str, ResourceHandle]) -> Found:
        vpcs = self.ec2.describe_vpcs(Filters=self._filters(NETWORK))["Vpcs"]
        if not vpcs:
            return None
        return vpcs[0]["VpcId"], {"cidr": vpcs[0].get("CidrBlock")}

    def create_network(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        vpc = self.ec2.create_vpc(
            CidrBlock=self.settings.vpc_cidr,
            TagSpecifications=tag_specifications("vpc", self.project, NETWORK),
        )["Vpc"]
        vpc_id = vpc["VpcId"]
        self.ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsSupport={"Value": True})
        self.ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsHostnames={"Value": True})
        return vpc_id, {"cidr": self.settings.vpc_cidr}

    def delete_network(self, handle: ResourceHandle) -> None:
        self.ec2.delete_vpc(VpcId=handle.resource_id)

    def _zones(self) -> list[str]:
        zones = self.ec2.describe_availability_zones()["AvailabilityZones"]
        names = sorted(
            z["ZoneName"] for z in zones if z.get("State", "available") == "available"
        )
        if not names:
            raise ProvisioningError(f"No availability zones in {self.settings.region}")
        return names

    def _find_subnet(self, role: str) -> Found:
        subnets = self.ec2.describe_subnets(Filters=self._filters(role))["Subnets"]
        if not subnets:
            return None
        subnet = subnets[0]
        return subnet["SubnetId"], {
            "cidr": subnet.get("CidrBlock"),
            "availability_zone": subnet.get("AvailabilityZone"),
        }

    def _create_subnet(
        self,
        role: str,
        cidr: str,
        zone_index: int,
        handles: dict[str, ResourceHandle],
        public: bool = False,
    ) -> tuple[str, dict]:
        zones = self._zones()
        zone = zones[zone_index % len(zones)]
        subnet = self.ec2.create_subnet(
            VpcId=handles[NETWORK].resource_id,
            CidrBlock=cidr,
            AvailabilityZone=zone,
            TagSpecifications=tag_specifications("subnet", self.project, role),
        )["Subnet"]
        subnet_id = subnet["SubnetId"]
        if public:
            self.ec2.modify_subnet_attribute(
                SubnetId=subnet_id, MapPublicIpOnLaunch={"Value": True}
            )
        return subnet_id, {"cidr": cidr, "availability_zone": zone}

    def delete_subnet(self, handle: ResourceHandle) -> None:
        self.ec2.delete_subnet(SubnetId=handle.resource_id)

    def subnet_step(self, role: str) -> Step:
        if role == SUBNET_PUBLIC:
            cidr, zone_index, public = self.settings.public_subnet_cidr, 0, True
        else:
            index = 0 if role == SUBNET_PRIVATE_A else 1
            cidr, zone_index, public = self.settings.private_subnet_cidrs[index], index, False
        return Step(
            role=role,
            resource_type="subnet",
            depends_on=[NETWORK],
            find=lambda handles: self._find_subnet(role),
            create=lambda handles: self._create_subnet(role, cidr, zone_index, handles, public),
            delete=self.delete_subnet,
        )

    def find_gateway(self, handles: dict[str, ResourceHandle]) -> Found:
        gateways = self.ec2.describe_internet_gateways(
            Filters=self._filters(GATEWAY)
        )["InternetGateways"]
        if not gateways:
            return None
        gateway = gateways[0]
        attached = [a["VpcId"] for a in gateway.get("Attachments", [])]
        return gateway["InternetGatewayId"], {"vpc_id": attached[0] if attached else None}

    def create_gateway(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        gateway_id = self.ec2.create_internet_gateway(
            TagSpecifications=tag_specifications("internet-gateway", self.project, GATEWAY),
        )["InternetGateway"]["InternetGatewayId"]
        vpc_id = handles[NETWORK].resource_id
        self.ec2.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)
        return gateway_id, {"vpc_id": vpc_id}

    def delete_gateway(self, handle: ResourceHandle) -> None:
        vpc_id = handle.attributes.get("vpc_id")
        if vpc_id:
            self.ec2.detach_internet_gateway(
                InternetGatewayId=handle.resource_id, VpcId=vpc_id
            )
        self.ec2.delete_internet_gateway(InternetGatewayId=handle.resource_id)

    def find_route_table(self, handles: dict[str, ResourceHandle]) -> Found:
        tables = self.ec2.describe_route_tables(
            Filters=self._filters(ROUTE_TABLE)
        )["RouteTables"]
        if not tables:
            return None
        table = tables[0]
        associations = [
            a["RouteTableAssociationId"]
            for a in table.get("Associations", [])
            if not a.get("Main")
        ]
        return table["RouteTableId"], {"associations": associations}

    def create_route_table(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        table_id = self.ec2.create_route_table(
            VpcId=handles[NETWORK].resource_id,
            TagSpecifications=tag_specifications("route-table", self.project, ROUTE_TABLE),
        )["RouteTable"]["RouteTableId"]
        self.ec2.create_route(
            RouteTableId=table_id,
            DestinationCidrBlock="0.0.0.0/0",
            GatewayId=handles[GATEWAY].resource_id,
        )
        association = self.ec2.associate_route_table(
            RouteTableId=table_id, SubnetId=handles[SUBNET_PUBLIC].resource_id
        )["AssociationId"]
        return table_id, {"associations": [association]}

    def delete_route_table(self, handle: ResourceHandle) -> None:
        for association in handle.attributes.get("associations", []):
            self.ec2.disassociate_route_table(AssociationId=association)
        self.ec2.delete_route_table(RouteTableId=handle.resource_id)

    # ── Security groups ─────────────────────────────────────────

    def _find_group(self, role: str, handles: dict[str, ResourceHandle]) -> Found:
        filters = self._filters(role) + [
            {"Name": "vpc-id", "Values": [handles[NETWORK].resource_id]}
        ]
        groups = self.ec2.describe_security_groups(Filters=filters)["SecurityGroups"]
        if not groups:
            return None
        return groups[0]["GroupId"], {"name": groups[0].get("GroupName")}

    def _create_group(
        self,
        role: str,
        suffix: str,
        description: str,
        permissions: list[dict],
        handles: dict[str, ResourceHandle],
    ) -> tuple[str, dict]:
        name = resource_name(self.project, suffix)
        group_id = self.ec2.create_security_group(
            GroupName=name,
            Description=description,
            VpcId=handles[NETWORK].resource_id,
            TagSpecifications=tag_specifications("security-group", self.project, role),
        )["GroupId"]
        self.ec2.authorize_security_group_ingress(GroupId=group_id, IpPermissions=permissions)
        return group_id, {"name": name}

    def create_instance_group(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        permissions = [
            {
                "IpProtocol": "tcp",
                "FromPort": port,
                "ToPort": port,
                "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
            }
            for port in self.settings.ingress_ports
        ]
        return self._create_group(
            SG_INSTANCE, "ec2", f"stackfix {self.project} instance", permissions, handles
        )

    def create_database_group(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        permissions = [
            {
                "IpProtocol": "tcp",
                "FromPort": 5432,
                "ToPort": 5432,
                "UserIdGroupPairs": [{"GroupId": handles[SG_INSTANCE].resource_id}],
            }
        ]
        return self._create_group(
            SG_DATABASE, "rds", f"stackfix {self.project} database", permissions, handles
        )

    def delete_group(self, handle: ResourceHandle) -> None:
        self.ec2.delete_security_group(GroupId=handle.resource_id)

    # ── Key pair ────────────────────────────────────────────────

    @property
    def key_name(self) -> str:
        return resource_name(self.project)

    def find_key_pair(self, handles: dict[str, ResourceHandle]) -> Found:
        try:
            pairs = self.ec2.describe_key_pairs(KeyNames=[self.key_name])["KeyPairs"]
        except ClientError as e:
            if _error_code(e) == "InvalidKeyPair.NotFound":
                return None
            raise
        if not pairs:
            return None
        return pairs[0]["KeyName"], {"fingerprint": pairs[0].get("KeyFingerprint")}

    def create_key_pair(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        response = self.ec2.create_key_pair(
            KeyName=self.key_name,
            KeyType=self.settings.key_type,
            TagSpecifications=tag_specifications("key-pair", self.project, KEY_PAIR),
        )
        return response["KeyName"], {
            "fingerprint": response.get("KeyFingerprint"),
            "key_material": response["KeyMaterial"],
        }

    def delete_key_pair(self, handle: ResourceHandle) -> None:
        self.ec2.delete_key_pair(KeyName=handle.resource_id)

    # ── Instance ────────────────────────────────────────────────

    def latest_ami(self) -> str:
        images = self.ec2.describe_images(
            Owners=[UBUNTU_OWNER],
            Filters=[
                {"Name": "name", "Values": [UBUNTU_NAME_PATTERN]},
                {"Name": "state", "Values": ["available"]},
            ],
        )["Images"]
        if not images:
            raise ProvisioningError("No Ubuntu 22.04 AMI found", role=INSTANCE)
        images.sort(key=lambda image: image.get("CreationDate", ""), reverse=True)
        return images[0]["ImageId"]

    def _describe_instance(self, instance: dict) -> tuple[str, dict]:
        return instance["InstanceId"], {
            "state": instance.get("State", {}).get("Name"),
            "public_ip": instance.get("PublicIpAddress"),
            "private_ip": instance.get("PrivateIpAddress"),
        }

    def find_instance(self, handles: dict[str, ResourceHandle]) -> Found:
        filters = self._filters(INSTANCE) + [
            {
                "Name": "instance-state-name",
                "Values": ["pending", "running", "stopping", "stopped"],
            }
        ]
        reservations = self.ec2.describe_instances(Filters=filters)["Reservations"]
        for reservation in reservations:
            for instance in reservation.get("Instances", []):
                return self._describe_instance(instance)
        return None

    def create_instance(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        instance = self.ec2.run_instances(
            ImageId=self.settings.ami_id or self.latest_ami(),
            InstanceType=self.settings.instance_type,
            MinCount=1,
            MaxCount=1,
            KeyName=handles[KEY_PAIR].resource_id,
            SubnetId=handles[SUBNET_PUBLIC].resource_id,
            SecurityGroupIds=[handles[SG_INSTANCE].resource_id],
            TagSpecifications=tag_specifications("instance", self.project, INSTANCE),
        )["Instances"][0]
        return self._describe_instance(instance)

    def delete_instance(self, handle: ResourceHandle) -> None:
        self.ec2.terminate_instances(InstanceIds=[handle.resource_id])
        wait_until(
            lambda: self.instance_state(handle.resource_id) == "terminated",
            timeout=self.settings.instance_timeout,
            interval=self.settings.ready_interval,
            description=f"termination of {handle.resource_id}",
        )

    def instance_state(self, instance_id: str) -> str | None:
        reservations = self.ec2.describe_instances(InstanceIds=[instance_id])["Reservations"]
        for reservation in reservations:
            for instance in reservation.get("Instances", []):
                return instance.get("State", {}).get("Name")
        return None

    # ── Elastic IP ──────────────────────────────────────────────

    def find_address(self, handles: dict[str, ResourceHandle]) -> Found:
        addresses = self.ec2.describe_addresses(
            Filters=[{"Name": "instance-id", "Values": [handles[INSTANCE].resource_id]}]
        )["Addresses"]
        if not addresses:
            return None
        address = addresses[0]
        return address["AllocationId"], {
            "public_ip": address.get("PublicIp"),
            "association_id": address.get("AssociationId"),
        }

    def create_address(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        allocation = self.ec2.allocate_address(
            Domain="vpc",
            TagSpecifications=tag_specifications("elastic-ip", self.project, ELASTIC_IP),
        )
        association = self.ec2.associate_address(
            InstanceId=handles[INSTANCE].resource_id,
            AllocationId=allocation["AllocationId"],
        )
        return allocation["AllocationId"], {
            "public_ip": allocation.get("PublicIp"),
            "association_id": association.get("AssociationId"),
        }

    def delete_address(self, handle: ResourceHandle) -> None:
        association = handle.attributes.get("association_id")
        if association:
            self.ec2.disassociate_address(AssociationId=association)
        self.ec2.release_address(AllocationId=handle.resource_id)

    # ── Database ────────────────────────────────────────────────

    @property
    def db_identifier(self) -> str:
        return resource_name(self.project, "db")

    def find_db_subnet_group(self, handles: dict[str, ResourceHandle]) -> Found:
        try:
            groups = self.client("rds").describe_db_subnet_groups(
                DBSubnetGroupName=self.db_identifier
            )["DBSubnetGroups"]
        except ClientError as e:
            if _error_code(e) == "DBSubnetGroupNotFoundFault":
                return None
            raise
        return (groups[0]["DBSubnetGroupName"], {}) if groups else None

    def create_db_subnet_group(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        self.client("rds").create_db_subnet_group(
            DBSubnetGroupName=self.db_identifier,
            DBSubnetGroupDescription=f"stackfix {self.project} database subnets",
            SubnetIds=[
                handles[SUBNET_PRIVATE_A].resource_id,
                handles[SUBNET_PRIVATE_B].resource_id,
            ],
            Tags=ec2_tags(self.project, DB_SUBNET_GROUP),
        )
        return self.db_identifier, {}

    def delete_db_subnet_group(self, handle: ResourceHandle) -> None:
        self.client("rds").delete_db_subnet_group(DBSubnetGroupName=handle.resource_id)

    def find_database(self, handles: dict[str, ResourceHandle]) -> Found:
        try:
            instances = self.client("rds").describe_db_instances(
                DBInstanceIdentifier=self.db_identifier
            )["DBInstances"]
        except ClientError as e:
            if _error_code(e) == "DBInstanceNotFound":
                return None
            raise
        if not instances:
            return None
        db = instances[0]
        return db["DBInstanceIdentifier"], {
            "status": db.get("DBInstanceStatus"),
            "endpoint": (db.get("Endpoint") or {}).get("Address"),
        }

    def create_database(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        password = secrets.token_urlsafe(24)
        self.client("rds").create_db_instance(
            DBInstanceIdentifier=self.db_identifier,
            DBInstanceClass=self.settings.db_instance_class,
            Engine="postgres",
            EngineVersion=self.settings.db_engine_version,
            AllocatedStorage=self.settings.db_storage_gb,
            DBName=self.settings.db_name,
            MasterUsername=self.settings.db_username,
            MasterUserPassword=password,
            VpcSecurityGroupIds=[handles[SG_DATABASE].resource_id],
            DBSubnetGroupName=handles[DB_SUBNET_GROUP].resource_id,
            PubliclyAccessible=False,
            StorageEncrypted=True,
            Tags=ec2_tags(self.project, DATABASE),
        )
        return self.db_identifier, {
            "username": self.settings.db_username,
            "master_password": password,
        }

    def delete_database(self, handle: ResourceHandle) -> None:
        self.client("rds").delete_db_instance(
            DBInstanceIdentifier=handle.resource_id,
            SkipFinalSnapshot=True,
            DeleteAutomatedBackups=True,
        )

    # ── Storage / registry / mail ───────────────────────────────

    @property
    def bucket_name(self) -> str:
        return resource_name(self.project)

    def find_bucket(self, handles: dict[str, ResourceHandle]) -> Found:
        try:
            self.client("s3").head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchBucket", "NotFound"):
                return None
            if _error_code(e) in ("403", "AccessDenied"):
                raise ProvisioningError(
                    f"Bucket {self.bucket_name} exists but belongs to another account",
                    role=BUCKET,
                ) from e
            raise
        return self.bucket_name, {"region": self.settings.region}

    def create_bucket(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        s3 = self.client("s3")
        name = self.bucket_name
        if self.settings.region == DEFAULT_REGION:
            s3.create_bucket(Bucket=name)
        else:
            s3.create_bucket(
                Bucket=name,
                CreateBucketConfiguration={"LocationConstraint": self.settings.region},
            )
        s3.put_public_access_block(
            Bucket=name,
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": True,
                "IgnorePublicAcls": True,
                "BlockPublicPolicy": True,
                "RestrictPublicBuckets": True,
            },
        )
        s3.put_bucket_encryption(
            Bucket=name,
            ServerSideEncryptionConfiguration={
                "Rules": [{"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}]
            },
        )
        s3.put_bucket_tagging(Bucket=name, Tagging={"TagSet": ec2_tags(self.project, BUCKET)})
        if self.domain:
            s3.put_bucket_cors(
                Bucket=name,
                CORSConfiguration={
                    "CORSRules": [
                        {
                            "AllowedOrigins": [f"https://{self.domain}"],
                            "AllowedMethods": ["GET", "PUT", "POST"],
                            "AllowedHeaders": ["*"],
                            "MaxAgeSeconds": 3000,
                        }
                    ]
                },
            )
        return name, {"region": self.settings.region}

    def delete_bucket(self, handle: ResourceHandle) -> None:
        self.client("s3").delete_bucket(Bucket=handle.resource_id)

    def find_repository(self, handles: dict[str, ResourceHandle]) -> Found:
        try:
            repos = self.client("ecr").describe_repositories(
                repositoryNames=[self.project]
            )["repositories"]
        except ClientError as e:
            if _error_code(e) == "RepositoryNotFoundException":
                return None
            raise
        if not repos:
            return None
        return repos[0]["repositoryName"], {"uri": repos[0].get("repositoryUri")}

    def create_repository(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        ecr = self.client("ecr")
        repo = ecr.create_repository(
            repositoryName=self.project,
            imageScanningConfiguration={"scanOnPush": True},
            tags=ec2_tags(self.project, CONTAINER_REGISTRY),
        )["repository"]
        policy = {
            "rules": [
                {
                    "rulePriority": 1,
                    "description": "Keep the last 10 images",
                    "selection": {
                        "tagStatus": "any",
                        "countType": "imageCountMoreThan",
                        "countNumber": 10,
                    },
                    "action": {"type": "expire"},
                }
            ]
        }
        ecr.put_lifecycle_policy(
            repositoryName=self.project, lifecyclePolicyText=json.dumps(policy)
        )
        return repo["repositoryName"], {"uri": repo.get("repositoryUri")}

    def delete_repository(self, handle: ResourceHandle) -> None:
        self.client("ecr").delete_repository(repositoryName=handle.resource_id, force=True)

    def find_mail_domain(self, handles: dict[str, ResourceHandle]) -> Found:
        attributes = self.client("ses").get_identity_verification_attributes(
            Identities=[self.domain]
        )["VerificationAttributes"]
        if self.domain not in attributes:
            return None
        return self.domain, {"status": attributes[self.domain].get("VerificationStatus")}

    def create_mail_domain(self, handles: dict[str, ResourceHandle]) -> tuple[str, dict]:
        ses = self.client("ses")
        token = ses.verify_domain_identity(Domain=self.domain)["VerificationToken"]
        dkim = ses.verify_domain_dkim(Domain=self.domain)["DkimTokens"]
        return self.domain, {"verification_token": token, "dkim_tokens": dkim}

    def delete_mail_domain(self, handle: ResourceHandle) -> None:
        self.client("ses").delete_identity(Identity=handle.resource_id)


class InstanceReadiness:
    """Bounded readiness checks for the instance and its public address.

    ``wait_running`` blocks until EC2 reports ``running``.
    ``wait_reachable`` then waits for a TCP connection on the SSH port
    and for an authenticated command to succeed over SSH.

    Args:
        timeout: Seconds allowed for each wait.
        interval: Seconds between polls.
        connect: TCP probe ``(host, port) -> bool``.
        executor_for_host: Builds an authenticated executor for
            ``(host, handles)``; None skips the command probe.
    """

    def __init__(
        self,
        timeout: float = 300.0,
        interval: float = 5.0,
        port: int = 22,
        connect: Callable[[str, int], bool] = tcp_probe,
        executor_for_host: Callable[[str, dict[str, ResourceHandle]], Executor] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.timeout = timeout
        self.interval = interval
        self.port = port
        self.connect = connect
        self.executor_for_host = executor_for_host
        self._sleep_kwargs = {"sleep": sleep} if sleep is not None else {}

    def wait_running(self, state_of: Callable[[str], str | None], instance_id: str) -> None:
        wait_until(
            lambda: state_of(instance_id) == "running",
            timeout=self.timeout,
            interval=self.interval,
            description=f"instance {instance_id} to reach running",
            **self._sleep_kwargs,
        )

    def wait_reachable(self, host: str, handles: dict[str, ResourceHandle]) -> None:
        wait_until(
            lambda: self.connect(host, self.port),
            timeout=self.timeout,
            interval=self.interval,
            description=f"{host}:{self.port} to accept connections",
            **self._sleep_kwargs,
        )
        if self.executor_for_host is None:
            return
        executor = self.executor_for_host(host, handles)
        wait_until(
            lambda: executor.succeeds("true", timeout=30),
            timeout=self.timeout,
            interval=self.interval,
            description=f"SSH login on {host}",
            **self._sleep_kwargs,
        )


def build_aws_plan(
    resources: AwsResources,
    readiness: InstanceReadiness | None = None,
) -> list[Step]:
    """The AWS provisioning plan for ``resources.settings``."""
    r = resources
    settings = r.settings

    instance_ready = None
    address_ready = None
    if readiness is not None:
        def instance_ready(handle: ResourceHandle, handles: dict[str, ResourceHandle]) -> None:
            readiness.wait_running(r.instance_state, handle.resource_id)

        def address_ready(handle: ResourceHandle, handles: dict[str, ResourceHandle]) -> None:
            readiness.wait_reachable(handle.attributes["public_ip"], handles)

    steps = [
        Step(NETWORK, "vpc", r.find_network, r.create_network, r.delete_network),
        r.subnet_step(SUBNET_PUBLIC),
        r.subnet_step(SUBNET_PRIVATE_A),
        r.subnet_step(SUBNET_PRIVATE_B),
        Step(
            GATEWAY, "internet-gateway", r.find_gateway, r.create_gateway, r.delete_gateway,
            depends_on=[NETWORK],
        ),
        Step(
            ROUTE_TABLE, "route-table", r.find_route_table, r.create_route_table,
            r.delete_route_table, depends_on=[SUBNET_PUBLIC, GATEWAY],
        ),
        Step(
            SG_INSTANCE, "security-group",
            lambda handles: r._find_group(SG_INSTANCE, handles),
            r.create_instance_group, r.delete_group, depends_on=[NETWORK],
        ),
        Step(KEY_PAIR, "key-pair", r.find_key_pair, r.create_key_pair, r.delete_key_pair),
        Step(
            INSTANCE, "instance", r.find_instance, r.create_instance, r.delete_instance,
            depends_on=[SUBNET_PUBLIC, SG_INSTANCE, KEY_PAIR, ROUTE_TABLE],
            ready=instance_ready,
        ),
        Step(
            ELASTIC_IP, "elastic-ip", r.find_address, r.create_address, r.delete_address,
            depends_on=[INSTANCE], ready=address_ready,
        ),
    ]

    if settings.database:
        steps += [
            Step(
                SG_DATABASE, "security-group",
                lambda handles: r._find_group(SG_DATABASE, handles),
                r.create_database_group, r.delete_group, depends_on=[SG_INSTANCE],
            ),
            Step(
                DB_SUBNET_GROUP, "db-subnet-group", r.find_db_subnet_group,
                r.create_db_subnet_group, r.delete_db_subnet_group,
                depends_on=[SUBNET_PRIVATE_A, SUBNET_PRIVATE_B],
            ),
            Step(
                DATABASE, "rds-instance", r.find_database, r.create_database,
                r.delete_database, depends_on=[DB_SUBNET_GROUP, SG_DATABASE],
            ),
        ]
    if settings.bucket:
        steps.append(Step(BUCKET, "s3-bucket", r.find_bucket, r.create_bucket, r.delete_bucket))
    if settings.container_registry:
        steps.append(
            Step(
                CONTAINER_REGISTRY, "ecr-repository", r.find_repository,
                r.create_repository, r.delete_repository,
            )
        )
    if settings.mail:
        if not r.domain:
            raise ProvisioningError("Mail needs a domain", role=MAIL_DOMAIN)
        steps.append(
            Step(
                MAIL_DOMAIN, "ses-identity", r.find_mail_domain,
                r.create_mail_domain, r.delete_mail_domain,
            )
        )
    return steps
