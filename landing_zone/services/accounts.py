"""Member account provisioning."""

from __future__ import annotations

from typing import Iterable, Mapping

import pydantic

from landing_zone.errors import ValidationError
from landing_zone.providers import CloudProvider
from landing_zone.schemas import AccountRecord, AccountStatus, LandingZoneConfig
from landing_zone.schemas.organization import SECURITY_OU_NAME

from .execution import CallExecutor
from .hierarchy import OURegistry

ACCOUNT_PARAMETER_PATH = "/organization/accounts/{name}"
DEFAULT_ACCOUNT_NAMES = ("AFT-Management", "AFT-Networking")


def build_account_record(
    name: str,
    email: str,
    parent_ou_id: str,
    tags: Mapping[str, str] | None = None,
) -> AccountRecord:
    try:
        return AccountRecord(name=name, email=email, parent_ou_id=parent_ou_id, tags=dict(tags or {}))
    except pydantic.ValidationError as exc:
        raise ValidationError(f"invalid account {name!r}: {exc}") from exc


def planned_accounts(config: LandingZoneConfig, registry: OURegistry) -> list[AccountRecord]:
    """Accounts to create: the default AFT accounts, then those declared on OUs in tree order."""
    records: list[AccountRecord] = []

    if config.account_email_domain:
        security = registry[SECURITY_OU_NAME]
        for name in DEFAULT_ACCOUNT_NAMES:
            records.append(
                build_account_record(
                    name,
                    f"{name.lower()}@{config.account_email_domain}",
                    security.id,
                    config.tags,
                )
            )

    for unit in config.top_level_units():
        for spec in unit.walk():
            parent = registry[spec.name]
            for account in spec.accounts:
                records.append(
                    build_account_record(account.name, account.email, parent.id, {**config.tags, **account.tags})
                )

    names = [record.name for record in records]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValidationError(f"duplicate account names {duplicates}")
    return records


class AccountManager:
    """Create member accounts and publish their identity to the parameter store."""

    def __init__(self, provider: CloudProvider, calls: CallExecutor) -> None:
        self._provider = provider
        self._calls = calls
        self._logger = calls.context.logger
        self._metrics = calls.context.metrics

    async def create_account(self, record: AccountRecord) -> AccountRecord:
        self._logger.info("creating_account", extra={"account_name": record.name, "email": record.email})
        with self._metrics.timer("account_creation"):
            try:
                created = await self._calls.call(
                    f"create_account:{record.name}",
                    self._provider.create_account,
                    record.name,
                    record.email,
                    record.parent_ou_id,
                    record.tags,
                )
            except Exception as exc:
                self._logger.error("account_creation_failed", extra={"account_name": record.name, "error": str(exc)})
                raise

        account = record.model_copy(update={"id": created["id"], "arn": created["arn"], "status": AccountStatus.ACTIVE})
        path = ACCOUNT_PARAMETER_PATH.format(name=account.name)
        await self._calls.call(
            f"put_parameter:{path}",
            self._provider.put_parameter,
            path,
            account.model_dump_json(by_alias=True),
            True,
            account.tags,
        )

        self._logger.info("account_created", extra={"account_name": account.name, "account_id": account.id})
        self._metrics.increment("accounts_created")
        return account

    async def create_accounts(self, records: Iterable[AccountRecord]) -> list[AccountRecord]:
        created: list[AccountRecord] = []
        for record in records:
            created.append(await self.create_account(record))
        return created
