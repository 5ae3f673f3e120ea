"""Governance baseline stages: roles, encryption, logging, guardrails, networking."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from landing_zone.errors import ValidationError
from landing_zone.providers import CloudProvider
from landing_zone.schemas import LandingZoneConfig

from .cleanup import CleanupStack
from .execution import CallExecutor
from .stages import Stage

SERVICE_ROLE_PATH = "/service-role/"
CLOUD_TRAIL_NAME = "aws-controltower-trail"

GLOBAL_SERVICE_ACTIONS = [
    "iam:*",
    "organizations:*",
    "route53:*",
    "cloudfront:*",
    "support:*",
    "sts:*",
]


@dataclass(frozen=True)
class RoleDefinition:
    name: str
    description: str
    service: str
    policy_arn: str

    def trust_policy(self) -> str:
        return json.dumps(
            {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"Service": self.service},
                        "Action": "sts:AssumeRole",
                    }
                ],
            }
        )


BASELINE_ROLES = (
    RoleDefinition(
        name="AWSControlTowerAdmin",
        description="Role for AWS Control Tower administration",
        service="controltower.amazonaws.com",
        policy_arn="arn:aws:iam::aws:policy/service-role/AWSControlTowerServiceRolePolicy",
    ),
    RoleDefinition(
        name="AWSControlTowerCloudTrailRole",
        description="Role used by CloudTrail to deliver events to CloudWatch Logs",
        service="cloudtrail.amazonaws.com",
        policy_arn="arn:aws:iam::aws:policy/CloudWatchLogsFullAccess",
    ),
    RoleDefinition(
        name="AWSControlTowerStackSetRole",
        description="Role used by CloudFormation StackSets to deploy baseline stacks",
        service="cloudformation.amazonaws.com",
        policy_arn="arn:aws:iam::aws:policy/AWSCloudFormationFullAccess",
    ),
)


def _deny(sid: str, action: Any, condition: dict | None = None, *, not_action: bool = False) -> dict:
    statement: dict[str, Any] = {"Sid": sid, "Effect": "Deny", "Resource": "*"}
    statement["NotAction" if not_action else "Action"] = action
    if condition:
        statement["Condition"] = condition
    return statement


GUARDRAIL_CATALOG: dict[str, dict] = {
    "DisallowRootAccessKeys": _deny(
        "DisallowRootAccessKeys",
        "iam:CreateAccessKey",
        {"StringLike": {"aws:PrincipalArn": "arn:aws:iam::*:root"}},
    ),
    "DisallowLeavingOrganization": _deny("DisallowLeavingOrganization", "organizations:LeaveOrganization"),
    "ProtectCloudTrail": _deny(
        "ProtectCloudTrail",
        ["cloudtrail:DeleteTrail", "cloudtrail:StopLogging", "cloudtrail:UpdateTrail"],
    ),
    "ProtectGuardrailRoles": _deny(
        "ProtectGuardrailRoles",
        ["iam:DeleteRole", "iam:DetachRolePolicy", "iam:UpdateAssumeRolePolicy"],
        {"ArnLike": {"aws:ResourceArn": "arn:aws:iam::*:role/service-role/AWSControlTower*"}},
    ),
}


@dataclass(frozen=True)
class GuardrailPolicy:
    name: str
    description: str
    statements: tuple[dict, ...]

    def content(self) -> str:
        return json.dumps({"Version": "2012-10-17", "Statement": list(self.statements)})


def plan_guardrails(config: LandingZoneConfig) -> list[GuardrailPolicy]:
    """Service control policies implied by the configuration. Unknown guardrail names are rejected."""
    policies: list[GuardrailPolicy] = []

    if config.require_mfa:
        policies.append(
            GuardrailPolicy(
                name="RequireMFA",
                description="Deny actions other than MFA self-service without multi-factor authentication",
                statements=(
                    _deny(
                        "DenyWithoutMFA",
                        ["iam:CreateVirtualMFADevice", "iam:EnableMFADevice", "iam:ListMFADevices", "sts:GetSessionToken"],
                        {"BoolIfExists": {"aws:MultiFactorAuthPresent": "false"}},
                        not_action=True,
                    ),
                ),
            )
        )

    if config.enable_ssl_requests:
        policies.append(
            GuardrailPolicy(
                name="RequireSSLRequests",
                description="Deny S3 requests made without TLS",
                statements=(_deny("DenyInsecureTransport", "s3:*", {"Bool": {"aws:SecureTransport": "false"}}),),
            )
        )

    if config.allowed_regions:
        policies.append(
            GuardrailPolicy(
                name="RestrictRegions",
                description="Deny regional actions outside the allowed regions",
                statements=(
                    _deny(
                        "DenyOutsideAllowedRegions",
                        GLOBAL_SERVICE_ACTIONS,
                        {"StringNotEquals": {"aws:RequestedRegion": list(config.allowed_regions)}},
                        not_action=True,
                    ),
                ),
            )
        )

    if config.restricted_services:
        policies.append(
            GuardrailPolicy(
                name="DenyRestrictedServices",
                description="Deny use of restricted services",
                statements=(_deny("DenyRestrictedServices", [f"{service}:*" for service in config.restricted_services]),),
            )
        )

    unknown = [name for name in config.enabled_guardrails if name not in GUARDRAIL_CATALOG]
    if unknown:
        raise ValidationError(f"unknown guardrails {unknown}; known: {sorted(GUARDRAIL_CATALOG)}")
    for name in config.enabled_guardrails:
        policies.append(GuardrailPolicy(name=name, description=f"Guardrail {name}", statements=(GUARDRAIL_CATALOG[name],)))

    return policies


def key_policy(config: LandingZoneConfig) -> str:
    if not config.management_account_id:
        return ""
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Sid": "EnableRootPermissions",
                    "Effect": "Allow",
                    "Principal": {"AWS": f"arn:aws:iam::{config.management_account_id}:root"},
                    "Action": "kms:*",
                    "Resource": "*",
                },
                {
                    "Sid": "AllowCloudTrailEncrypt",
                    "Effect": "Allow",
                    "Principal": {"Service": "cloudtrail.amazonaws.com"},
                    "Action": ["kms:GenerateDataKey*", "kms:DescribeKey"],
                    "Resource": "*",
                },
            ],
        }
    )


@dataclass
class BaselineOutputs:
    """Results of one baseline run; each stage writes only its own fields."""

    roles: dict[str, str] = field(default_factory=dict)
    kms_key_id: str | None = None
    kms_key_arn: str | None = None
    log_group_arn: str | None = None
    trail_arn: str | None = None
    policies: dict[str, str] = field(default_factory=dict)
    vpc_id: str | None = None
    subnets: dict[str, str] = field(default_factory=dict)


class LandingZoneBaseline:
    """The independent governance stages applied after the OU hierarchy exists."""

    def __init__(
        self,
        provider: CloudProvider,
        calls: CallExecutor,
        config: LandingZoneConfig,
        *,
        root_id: str,
        cleanup: CleanupStack | None = None,
    ) -> None:
        self._provider = provider
        self._calls = calls
        self._config = config
        self._root_id = root_id
        self._cleanup = cleanup or CleanupStack()
        self._logger = calls.context.logger
        self.outputs = BaselineOutputs()

    def stages(self) -> dict[str, Stage]:
        return {
            "roles": self.setup_roles,
            "encryption": self.setup_encryption,
            "logging": self.setup_logging,
            "guardrails": self.setup_guardrails,
            "networking": self.setup_networking,
        }

    async def setup_roles(self) -> None:
        for role in BASELINE_ROLES:
            created = await self._calls.call(
                f"create_role:{role.name}",
                self._provider.create_role,
                role.name,
                role.trust_policy(),
                self._config.tags,
                path=SERVICE_ROLE_PATH,
                description=role.description,
            )
            self._cleanup.push(f"delete_role:{role.name}", self._provider.delete_role, role.name, [role.policy_arn])
            await self._calls.call(
                f"attach_role_policy:{role.name}",
                self._provider.attach_role_policy,
                created["arn"],
                role.policy_arn,
            )
            self.outputs.roles[role.name] = created["arn"]
            self._logger.info("role_created", extra={"role_name": role.name, "role_arn": created["arn"]})

    async def setup_encryption(self) -> None:
        key = await self._calls.call(
            "create_encryption_key",
            self._provider.create_encryption_key,
            key_policy(self._config),
            self._config.tags,
        )
        self._cleanup.push("schedule_key_deletion", self._provider.schedule_key_deletion, key["id"])
        await self._calls.call("create_key_alias", self._provider.create_key_alias, self._config.kms_key_alias, key["id"])
        self.outputs.kms_key_id = key["id"]
        self.outputs.kms_key_arn = key["arn"]
        self._logger.info("encryption_key_created", extra={"key_id": key["id"], "alias": self._config.kms_key_alias})

    async def setup_logging(self) -> None:
        if not self._config.enable_cloud_trail:
            self._logger.info("logging_stage_skipped", extra={"reason": "cloud trail disabled"})
            return

        group = await self._calls.call(
            "create_log_group",
            self._provider.create_log_group,
            self._config.cloud_trail_log_group,
            self._config.log_retention_days,
            self._config.tags,
        )
        self.outputs.log_group_arn = group["arn"]

        trail = await self._calls.call(
            "create_log_trail",
            self._provider.create_log_trail,
            CLOUD_TRAIL_NAME,
            self._config.log_bucket_name,
            group["arn"],
            self._config.kms_key_arn,
            self._config.tags,
            logs_role_arn=self._config.cloud_trail_role_arn,
        )
        self._cleanup.push("delete_log_trail", self._provider.delete_log_trail, CLOUD_TRAIL_NAME)
        self.outputs.trail_arn = trail.get("arn")
        self._logger.info("log_trail_created", extra={"trail_name": CLOUD_TRAIL_NAME, "bucket": self._config.log_bucket_name})

    async def setup_guardrails(self) -> None:
        for policy in plan_guardrails(self._config):
            created = await self._calls.call(
                f"create_policy:{policy.name}",
                self._provider.create_policy,
                policy.name,
                policy.description,
                policy.content(),
                self._config.tags,
            )
            self._cleanup.push(
                f"delete_policy:{policy.name}",
                self._provider.delete_policy,
                created["id"],
                [self._root_id],
            )
            await self._calls.call(f"attach_policy:{policy.name}", self._provider.attach_policy, created["id"], self._root_id)
            self.outputs.policies[policy.name] = created["id"]
            self._logger.info("guardrail_enabled", extra={"guardrail": policy.name, "policy_id": created["id"]})

    async def setup_networking(self) -> None:
        vpc_settings = self._config.vpc_settings
        if vpc_settings is None:
            self._logger.info("networking_stage_skipped", extra={"reason": "no vpc settings"})
            return

        vpc = await self._calls.call(
            "create_vpc",
            self._provider.create_vpc,
            vpc_settings.cidr,
            self._config.tags,
            dns_support=vpc_settings.enable_dns_support,
            dns_hostnames=vpc_settings.enable_dns_hostnames,
        )
        self._cleanup.push("delete_vpc", self._provider.delete_vpc, vpc["id"])
        self.outputs.vpc_id = vpc["id"]

        for subnet in vpc_settings.subnets:
            created = await self._calls.call(
                f"create_subnet:{subnet.name}",
                self._provider.create_subnet,
                vpc["id"],
                subnet.cidr,
                subnet.availability_zone,
                {**self._config.tags, **subnet.tags, "Name": subnet.name},
            )
            self.outputs.subnets[subnet.name] = created["id"]
        self._logger.info("vpc_created", extra={"vpc_id": vpc["id"], "subnets": len(vpc_settings.subnets)})
