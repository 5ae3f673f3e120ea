"""Cloud resource provider interface.

Every method is a blocking remote call. The orchestrator never calls these
directly; it routes them through ``CallExecutor`` so each one is rate limited
and retried.
"""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence


class CloudProvider(Protocol):
    def create_organization(self, policy_types: Sequence[str]) -> dict[str, str]:
        """Return ``{"id", "arn", "root_id"}``."""

    def create_organizational_unit(self, name: str, parent_id: str, tags: Mapping[str, str]) -> dict[str, str]:
        """Return ``{"id", "arn"}``."""

    def create_account(self, name: str, email: str, parent_id: str, tags: Mapping[str, str]) -> dict[str, str]:
        """Return ``{"id", "arn"}`` once the account exists under ``parent_id``."""

    def create_encryption_key(self, policy: str, tags: Mapping[str, str]) -> dict[str, str]:
        ...

    def create_key_alias(self, alias: str, key_id: str) -> None:
        ...

    def create_role(self, name: str, trust_policy: str, tags: Mapping[str, str], *, path: str = "/", description: str = "") -> dict[str, str]:
        """Return ``{"arn"}``."""

    def attach_role_policy(self, role_arn: str, policy_arn: str) -> None:
        ...

    def create_log_group(self, name: str, retention_days: int, tags: Mapping[str, str]) -> dict[str, str]:
        ...

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
        ...

    def create_policy(self, name: str, description: str, content: str, tags: Mapping[str, str]) -> dict[str, str]:
        ...

    def attach_policy(self, policy_id: str, target_id: str) -> None:
        ...

    def create_vpc(self, cidr: str, tags: Mapping[str, str], *, dns_support: bool = True, dns_hostnames: bool = True) -> dict[str, str]:
        ...

    def create_subnet(self, vpc_id: str, cidr: str, availability_zone: str | None, tags: Mapping[str, str]) -> dict[str, str]:
        ...

    def put_parameter(self, path: str, value: str, secure: bool, tags: Mapping[str, str]) -> None:
        ...

    def get_parameter(self, path: str) -> str:
        ...

    # Inverse actions used by the orchestrator's cleanup hook.

    def delete_organization(self) -> None:
        ...

    def delete_organizational_unit(self, ou_id: str) -> None:
        ...

    def delete_role(self, name: str, policy_arns: Sequence[str] = ()) -> None:
        ...

    def schedule_key_deletion(self, key_id: str) -> None:
        ...

    def delete_log_trail(self, name: str) -> None:
        ...

    def delete_policy(self, policy_id: str, target_ids: Sequence[str] = ()) -> None:
        ...

    def delete_vpc(self, vpc_id: str) -> None:
        ...
