"""boto3 implementation of the cloud resource provider."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Mapping, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from landing_zone.errors import ProviderError, TransientProviderError
from landing_zone.storage import AwsClientFactory

THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "TooManyRequestsException",
        "ConcurrentModificationException",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "RequestLimitExceeded",
    }
)

FEATURE_SET_ALL = "ALL"
POLICY_TYPE_SCP = "SERVICE_CONTROL_POLICY"
DEFAULT_ACCESS_ROLE_NAME = "OrganizationAccountAccessRole"


def _tag_list(tags: Mapping[str, str]) -> list[dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def translate_client_error(operation: str, exc: ClientError) -> ProviderError:
    error = exc.response.get("Error", {})
    code = error.get("Code", "")
    message = error.get("Message", str(exc))
    if code in THROTTLING_CODES:
        return TransientProviderError(operation, message, code=code)
    return ProviderError(operation, message, code=code)


class AwsCloudProvider:
    """Create organization and landing zone resources with boto3.

    Methods block; callers run them in worker threads.
    """

    def __init__(
        self,
        factory: AwsClientFactory,
        *,
        account_poll_interval: float = 10.0,
        account_max_wait: float = 600.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._factory = factory
        self._clients: dict[str, Any] = {}
        self._clients_lock = threading.Lock()
        self._account_poll_interval = account_poll_interval
        self._account_max_wait = account_max_wait
        self._sleep = sleep

    def _client(self, service: str) -> Any:
        with self._clients_lock:
            if service not in self._clients:
                self._clients[service] = self._factory.client(service)
            return self._clients[service]

    def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return func(**kwargs)
        except ClientError as exc:
            raise translate_client_error(operation, exc) from exc
        except BotoCoreError as exc:
            raise TransientProviderError(operation, str(exc)) from exc

    # Organization

    def create_organization(self, policy_types: Sequence[str]) -> dict[str, str]:
        orgs = self._client("organizations")
        response = self._call("create_organization", orgs.create_organization, FeatureSet=FEATURE_SET_ALL)
        organization = response["Organization"]
        root_id = self._root_id()
        for policy_type in policy_types:
            try:
                self._call("enable_policy_type", orgs.enable_policy_type, RootId=root_id, PolicyType=policy_type)
            except ProviderError as exc:
                if exc.code != "PolicyTypeAlreadyEnabledException":
                    raise
        return {"id": organization["Id"], "arn": organization["Arn"], "root_id": root_id}

    def _root_id(self) -> str:
        orgs = self._client("organizations")
        roots = self._call("list_roots", orgs.list_roots)["Roots"]
        if not roots:
            raise ProviderError("list_roots", "organization has no root")
        return roots[0]["Id"]

    def create_organizational_unit(self, name: str, parent_id: str, tags: Mapping[str, str]) -> dict[str, str]:
        orgs = self._client("organizations")
        response = self._call(
            "create_organizational_unit",
            orgs.create_organizational_unit,
            ParentId=parent_id,
            Name=name,
            Tags=_tag_list(tags),
        )
        unit = response["OrganizationalUnit"]
        return {"id": unit["Id"], "arn": unit["Arn"]}

    def create_account(self, name: str, email: str, parent_id: str, tags: Mapping[str, str]) -> dict[str, str]:
        orgs = self._client("organizations")
        response = self._call(
            "create_account",
            orgs.create_account,
            Email=email,
            AccountName=name,
            RoleName=DEFAULT_ACCESS_ROLE_NAME,
            Tags=_tag_list(tags),
        )
        account_id = self._wait_for_account(response["CreateAccountStatus"]["Id"])

        root_id = self._root_id()
        if parent_id != root_id:
            self._call(
                "move_account",
                orgs.move_account,
                AccountId=account_id,
                SourceParentId=root_id,
                DestinationParentId=parent_id,
            )

        account = self._call("describe_account", orgs.describe_account, AccountId=account_id)["Account"]
        return {"id": account_id, "arn": account["Arn"]}

    def _wait_for_account(self, request_id: str) -> str:
        orgs = self._client("organizations")
        waited = 0.0
        while True:
            status = self._call(
                "describe_create_account_status",
                orgs.describe_create_account_status,
                CreateAccountRequestId=request_id,
            )["CreateAccountStatus"]
            state = status.get("State")
            if state == "SUCCEEDED":
                return status["AccountId"]
            if state == "FAILED":
                raise ProviderError("create_account", status.get("FailureReason", "account creation failed"))
            if waited >= self._account_max_wait:
                raise TransientProviderError("create_account", f"account request {request_id} still {state}")
            self._sleep(self._account_poll_interval)
            waited += self._account_poll_interval

    # Encryption

    def create_encryption_key(self, policy: str, tags: Mapping[str, str]) -> dict[str, str]:
        kms = self._client("kms")
        kwargs: dict[str, Any] = {
            "Description": "Landing zone encryption key",
            "KeyUsage": "ENCRYPT_DECRYPT",
            "Tags": [{"TagKey": key, "TagValue": value} for key, value in tags.items()],
        }
        if policy:
            kwargs["Policy"] = policy
        response = self._call("create_key", kms.create_key, **kwargs)
        metadata = response["KeyMetadata"]
        self._call("enable_key_rotation", kms.enable_key_rotation, KeyId=metadata["KeyId"])
        return {"id": metadata["KeyId"], "arn": metadata["Arn"]}

    def create_key_alias(self, alias: str, key_id: str) -> None:
        kms = self._client("kms")
        self._call("create_alias", kms.create_alias, AliasName=alias, TargetKeyId=key_id)

    # IAM

    def create_role(
        self,
        name: str,
        trust_policy: str,
        tags: Mapping[str, str],
        *,
        path: str = "/",
        description: str = "",
    ) -> dict[str, str]:
        iam = self._client("iam")
        response = self._call(
            "create_role",
            iam.create_role,
            RoleName=name,
            Path=path,
            AssumeRolePolicyDocument=trust_policy,
            Description=description,
            Tags=_tag_list(tags),
        )
        return {"arn": response["Role"]["Arn"], "name": response["Role"]["RoleName"]}

    def attach_role_policy(self, role_arn: str, policy_arn: str) -> None:
        iam = self._client("iam")
        role_name = role_arn.rsplit("/", 1)[-1]
        self._call("attach_role_policy", iam.attach_role_policy, RoleName=role_name, PolicyArn=policy_arn)

    # Logging

    def create_log_group(self, name: str, retention_days: int, tags: Mapping[str, str]) -> dict[str, str]:
        logs = self._client("logs")
        try:
            self._call("create_log_group", logs.create_log_group, logGroupName=name, tags=dict(tags))
        except ProviderError as exc:
            if exc.code != "ResourceAlreadyExistsException":
                raise
        self._call(
            "put_retention_policy",
            logs.put_retention_policy,
            logGroupName=name,
            retentionInDays=retention_days,
        )
        groups = self._call("describe_log_groups", logs.describe_log_groups, logGroupNamePrefix=name)["logGroups"]
        for group in groups:
            if group["logGroupName"] == name:
                return {"name": name, "arn": group["arn"]}
        raise ProviderError("describe_log_groups", f"log group {name} not found after creation")

    def create_log_trail(
        self,
        name: str,
        bucket: str,
        log_group_arn: str | None,
        kms_key_arn: str | None,
        tags: Mapping[str, str],
        *,
        logs_role_arn: str | None = None,
    ) -> dict[str, str]:
        cloudtrail = self._client("cloudtrail")
        kwargs: dict[str, Any] = {
            "Name": name,
            "S3BucketName": bucket,
            "IsMultiRegionTrail": True,
            "IsOrganizationTrail": True,
            "EnableLogFileValidation": True,
            "TagsList": _tag_list(tags),
        }
        if kms_key_arn:
            kwargs["KmsKeyId"] = kms_key_arn
        if log_group_arn and logs_role_arn:
            kwargs["CloudWatchLogsLogGroupArn"] = log_group_arn
            kwargs["CloudWatchLogsRoleArn"] = logs_role_arn
        response = self._call("create_trail", cloudtrail.create_trail, **kwargs)
        self._call("start_logging", cloudtrail.start_logging, Name=name)
        return {"name": response["Name"], "arn": response["TrailARN"]}

    # Guardrails

    def create_policy(self, name: str, description: str, content: str, tags: Mapping[str, str]) -> dict[str, str]:
        orgs = self._client("organizations")
        response = self._call(
            "create_policy",
            orgs.create_policy,
            Content=content,
            Description=description,
            Name=name,
            Type=POLICY_TYPE_SCP,
            Tags=_tag_list(tags),
        )
        summary = response["Policy"]["PolicySummary"]
        return {"id": summary["Id"], "arn": summary["Arn"]}

    def attach_policy(self, policy_id: str, target_id: str) -> None:
        orgs = self._client("organizations")
        self._call("attach_policy", orgs.attach_policy, PolicyId=policy_id, TargetId=target_id)

    # Networking

    def create_vpc(
        self,
        cidr: str,
        tags: Mapping[str, str],
        *,
        dns_support: bool = True,
        dns_hostnames: bool = True,
    ) -> dict[str, str]:
        ec2 = self._client("ec2")
        response = self._call(
            "create_vpc",
            ec2.create_vpc,
            CidrBlock=cidr,
            TagSpecifications=[{"ResourceType": "vpc", "Tags": _tag_list(tags)}],
        )
        vpc_id = response["Vpc"]["VpcId"]
        self._call("modify_vpc_attribute", ec2.modify_vpc_attribute, VpcId=vpc_id, EnableDnsSupport={"Value": dns_support})
        self._call(
            "modify_vpc_attribute",
            ec2.modify_vpc_attribute,
            VpcId=vpc_id,
            EnableDnsHostnames={"Value": dns_hostnames},
        )
        return {"id": vpc_id}

    def create_subnet(
        self,
        vpc_id: str,
        cidr: str,
        availability_zone: str | None,
        tags: Mapping[str, str],
    ) -> dict[str, str]:
        ec2 = self._client("ec2")
        kwargs: dict[str, Any] = {
            "VpcId": vpc_id,
            "CidrBlock": cidr,
            "TagSpecifications": [{"ResourceType": "subnet", "Tags": _tag_list(tags)}],
        }
        if availability_zone:
            kwargs["AvailabilityZone"] = availability_zone
        response = self._call("create_subnet", ec2.create_subnet, **kwargs)
        return {"id": response["Subnet"]["SubnetId"]}

    # Parameter store

    def put_parameter(self, path: str, value: str, secure: bool, tags: Mapping[str, str]) -> None:
        ssm = self._client("ssm")
        self._call(
            "put_parameter",
            ssm.put_parameter,
            Name=path,
            Value=value,
            Type="SecureString" if secure else "String",
            Overwrite=True,
        )
        if tags:
            # put_parameter rejects Tags together with Overwrite.
            self._call(
                "add_tags_to_resource",
                ssm.add_tags_to_resource,
                ResourceType="Parameter",
                ResourceId=path,
                Tags=_tag_list(tags),
            )

    def get_parameter(self, path: str) -> str:
        ssm = self._client("ssm")
        response = self._call("get_parameter", ssm.get_parameter, Name=path, WithDecryption=True)
        return response["Parameter"]["Value"]

    # Inverse actions

    def delete_organization(self) -> None:
        orgs = self._client("organizations")
        self._call("delete_organization", orgs.delete_organization)

    def delete_organizational_unit(self, ou_id: str) -> None:
        orgs = self._client("organizations")
        self._call("delete_organizational_unit", orgs.delete_organizational_unit, OrganizationalUnitId=ou_id)

    def delete_role(self, name: str, policy_arns: Sequence[str] = ()) -> None:
        iam = self._client("iam")
        for policy_arn in policy_arns:
            self._call("detach_role_policy", iam.detach_role_policy, RoleName=name, PolicyArn=policy_arn)
        self._call("delete_role", iam.delete_role, RoleName=name)

    def schedule_key_deletion(self, key_id: str) -> None:
        kms = self._client("kms")
        self._call("schedule_key_deletion", kms.schedule_key_deletion, KeyId=key_id, PendingWindowInDays=7)

    def delete_log_trail(self, name: str) -> None:
        cloudtrail = self._client("cloudtrail")
        self._call("delete_trail", cloudtrail.delete_trail, Name=name)

    def delete_policy(self, policy_id: str, target_ids: Sequence[str] = ()) -> None:
        orgs = self._client("organizations")
        for target_id in target_ids:
            self._call("detach_policy", orgs.detach_policy, PolicyId=policy_id, TargetId=target_id)
        self._call("delete_policy", orgs.delete_policy, PolicyId=policy_id)

    def delete_vpc(self, vpc_id: str) -> None:
        ec2 = self._client("ec2")
        subnets = self._call(
            "describe_subnets",
            ec2.describe_subnets,
            Filters=[{"Name": "vpc-id", "Values": [vpc_id]}],
        )["Subnets"]
        for subnet in subnets:
            self._call("delete_subnet", ec2.delete_subnet, SubnetId=subnet["SubnetId"])
        self._call("delete_vpc", ec2.delete_vpc, VpcId=vpc_id)
