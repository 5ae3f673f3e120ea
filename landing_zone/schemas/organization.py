"""Provisioning input schemas."""

from __future__ import annotations

import ipaddress
import re
from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SECURITY_OU_NAME = "Security"
MIN_LOG_RETENTION_DAYS = 7
MAX_LOG_RETENTION_DAYS = 3653
DOMAIN_PATTERN = re.compile(r"^[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}$")


def _valid_cidr(value: str) -> str:
    try:
        ipaddress.ip_network(value, strict=False)
    except ValueError as exc:
        raise ValueError(f"invalid CIDR {value!r}") from exc
    return value


def _valid_account_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if len(value) != 12 or not value.isdigit():
        raise ValueError(f"invalid account id {value!r}: must be 12 digits")
    return value


class AccountSpec(BaseModel):
    name: str
    email: str
    tags: dict[str, str] = Field(default_factory=dict)
    role_arn: Optional[str] = None


class OUSpec(BaseModel):
    """Declarative organizational unit; children keep their declared order."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    tags: dict[str, str] = Field(default_factory=dict)
    accounts: List[AccountSpec] = Field(default_factory=list)
    children: List["OUSpec"] = Field(default_factory=list)

    def walk(self) -> Iterator["OUSpec"]:
        """Yield this node and its descendants in pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def size(self) -> int:
        return sum(1 for _ in self.walk())


class Subnet(BaseModel):
    name: str
    cidr: str
    availability_zone: Optional[str] = None
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("cidr")
    @classmethod
    def _validate_cidr(cls, value: str) -> str:
        return _valid_cidr(value)


class VPCConfig(BaseModel):
    cidr: str = "10.0.0.0/16"
    enable_transit_gw: bool = True
    enable_vpc_flow_logs: bool = True
    enable_dns_hostnames: bool = True
    enable_dns_support: bool = True
    subnets: List[Subnet] = Field(default_factory=list)

    @field_validator("cidr")
    @classmethod
    def _validate_cidr(cls, value: str) -> str:
        return _valid_cidr(value)


class LandingZoneConfig(BaseModel):
    model_config = ConfigDict(revalidate_instances="always")

    governed_regions: List[str] = Field(default_factory=lambda: ["us-east-1", "us-west-2"])
    default_ou_name: str = Field(default="Sandbox", min_length=1, max_length=128)
    organization_units: List[OUSpec] = Field(default_factory=list)
    log_bucket_name: Optional[str] = "aws-controltower-logs"
    log_retention_days: int = 90
    tags: dict[str, str] = Field(default_factory=lambda: {"ManagedBy": "landing-zone", "Project": "ControlTower"})

    kms_key_alias: str = "alias/landing-zone"
    kms_key_arn: Optional[str] = None

    account_email_domain: Optional[str] = None
    management_account_id: Optional[str] = None
    log_archive_account_id: Optional[str] = None
    audit_account_id: Optional[str] = None
    security_account_id: Optional[str] = None

    cloud_trail_role_arn: Optional[str] = None
    enabled_guardrails: List[str] = Field(default_factory=list)
    home_region: str = "us-east-1"
    allowed_regions: List[str] = Field(default_factory=list)

    cloud_trail_log_group: str = "/aws/controltower/cloudtrail"

    vpc_settings: Optional[VPCConfig] = Field(default_factory=VPCConfig)

    require_mfa: bool = True
    enable_ssl_requests: bool = True
    enable_cloud_trail: bool = True
    allowed_ip_ranges: List[str] = Field(default_factory=list)
    restricted_services: List[str] = Field(default_factory=list)

    @field_validator(
        "management_account_id",
        "log_archive_account_id",
        "audit_account_id",
        "security_account_id",
    )
    @classmethod
    def _validate_account_ids(cls, value: Optional[str]) -> Optional[str]:
        return _valid_account_id(value)

    @field_validator("allowed_ip_ranges")
    @classmethod
    def _validate_ip_ranges(cls, value: List[str]) -> List[str]:
        return [_valid_cidr(item) for item in value]

    @field_validator("account_email_domain")
    @classmethod
    def _validate_email_domain(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not DOMAIN_PATTERN.match(value):
            raise ValueError(f"invalid account email domain {value!r}")
        return value

    @model_validator(mode="after")
    def validate_landing_zone(self) -> "LandingZoneConfig":
        if not self.governed_regions:
            raise ValueError("at least one governed region is required")

        if not MIN_LOG_RETENTION_DAYS <= self.log_retention_days <= MAX_LOG_RETENTION_DAYS:
            raise ValueError(
                f"log retention days must be between {MIN_LOG_RETENTION_DAYS} and {MAX_LOG_RETENTION_DAYS}"
            )

        if self.enable_cloud_trail and not self.log_bucket_name:
            raise ValueError("log_bucket_name is required when CloudTrail is enabled")

        seen: set[str] = set()
        for name in self.ou_names():
            if name in seen:
                raise ValueError(f"duplicate organizational unit name {name!r}")
            seen.add(name)

        return self

    def top_level_units(self) -> List[OUSpec]:
        """Security OU, default OU, then user-declared units, in build order."""
        return [
            OUSpec(name=SECURITY_OU_NAME, tags=self.tags),
            OUSpec(name=self.default_ou_name, tags=self.tags),
            *self.organization_units,
        ]

    def ou_names(self) -> Iterator[str]:
        for unit in self.top_level_units():
            for node in unit.walk():
                yield node.name


class OrganizationConfig(BaseModel):
    model_config = ConfigDict(revalidate_instances="always")

    version: str = "1.0.0"
    aws_profile: Optional[str] = None
    landing_zone: LandingZoneConfig = Field(default_factory=LandingZoneConfig)
