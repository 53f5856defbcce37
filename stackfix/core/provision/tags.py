"""
Resource tags — the provisioner's only durable memory.

Every managed resource carries the (project, managed, role) triple,
and discovery filters on it. Pipelines tag with the project identity
of one environment, so staging and prod never find each other's
resources.
"""

from __future__ import annotations

TAG_PROJECT = "stackfix:project"
TAG_MANAGED = "stackfix:managed"
TAG_ROLE = "stackfix:role"


def project_identity(project: str, environment: str) -> str:
    """Identity one environment's resources are tagged and named with."""
    return f"{project}-{environment}"


def resource_name(project: str, role: str | None = None) -> str:
    """``stackfix-{project}`` or ``stackfix-{project}-{role}``."""
    return f"stackfix-{project}-{role}" if role else f"stackfix-{project}"


def tag_dict(project: str, role: str) -> dict[str, str]:
    return {
        TAG_PROJECT: project,
        TAG_MANAGED: "true",
        TAG_ROLE: role,
        "Name": resource_name(project, role),
    }


def ec2_tags(project: str, role: str) -> list[dict[str, str]]:
    """Tags in the ``[{"Key": ..., "Value": ...}]`` shape EC2/RDS/S3 use."""
    return [{"Key": k, "Value": v} for k, v in tag_dict(project, role).items()]


def tag_specifications(resource_type: str, project: str, role: str) -> list[dict]:
    """``TagSpecifications`` for an EC2 create call."""
    return [{"ResourceType": resource_type, "Tags": ec2_tags(project, role)}]


def tag_filters(project: str, role: str) -> list[dict]:
    """EC2 ``Filters`` matching exactly one managed role of one project."""
    return [
        {"Name": f"tag:{TAG_PROJECT}", "Values": [project]},
        {"Name": f"tag:{TAG_MANAGED}", "Values": ["true"]},
        {"Name": f"tag:{TAG_ROLE}", "Values": [role]},
    ]
