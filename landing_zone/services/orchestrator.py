"""Provisioning orchestrator: organization, OU hierarchy, accounts, baseline, state."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Mapping, TypeVar

import pydantic

from landing_zone.context import RunContext
from landing_zone.errors import LandingZoneError, ProvisioningError, ValidationError
from landing_zone.providers import CloudProvider
from landing_zone.schemas import AccountRecord, Manifest, OrganizationConfig, StateSnapshot
from landing_zone.schemas.manifest import AccessManagement, CentralizedLogging

from .accounts import AccountManager, planned_accounts
from .baseline import BaselineOutputs, LandingZoneBaseline, plan_guardrails
from .cleanup import CleanupStack
from .execution import CallExecutor
from .hierarchy import HierarchyBuilder, OURegistry
from .ratelimit import RateLimiter
from .retry import RetryExecutor, RetryPolicy
from .stages import StageRunner
from .state import StateStore

T = TypeVar("T")

POLICY_TYPES = ("SERVICE_CONTROL_POLICY", "TAG_POLICY")
ORG_INFO_PARAMETER = "/organization/info"
MANIFEST_PARAMETER = "/organization/landing-zone/manifest"

PHASE_VALIDATION = "validation"
PHASE_ORGANIZATION = "organization creation"
PHASE_HIERARCHY = "hierarchy build"
PHASE_ACCOUNTS = "account provisioning"
PHASE_STAGES = "stage execution"
PHASE_MANIFEST = "manifest publication"
PHASE_STATE = "state save"


@dataclass
class ProvisioningResult:
    organization: dict[str, str]
    registry: OURegistry
    accounts: list[AccountRecord] = field(default_factory=list)
    baseline: BaselineOutputs = field(default_factory=BaselineOutputs)
    manifest: Manifest | None = None
    snapshot: StateSnapshot | None = None


class Orchestrator:
    """Sequence a provisioning run and clean up after a failure.

    Once the organization exists, any later failure runs the registered
    inverse actions before the error is raised. Cleanup failures are logged
    only, so the caller always sees the original error.
    """

    def __init__(
        self,
        provider: CloudProvider,
        state_store: StateStore,
        context: RunContext,
        *,
        limiter: RateLimiter | None = None,
        retry: RetryExecutor | None = None,
        stage_runner: StageRunner | None = None,
    ) -> None:
        self._provider = provider
        self._state = state_store
        self._context = context
        self._logger = context.logger
        self._metrics = context.metrics
        self._limiter = limiter or RateLimiter.from_settings(context.settings)
        self._retry = retry or RetryExecutor(
            RetryPolicy.for_provider(context.settings),
            on_retry=lambda _name: self._metrics.increment("retry_attempts"),
        )
        self._calls = CallExecutor(self._limiter, self._retry, context)
        self._stages = stage_runner or StageRunner(self._metrics)
        self.cleanup = CleanupStack()

    async def _phase(self, phase: str, awaitable: Awaitable[T]) -> T:
        self._logger.info("phase_started", extra={"phase": phase})
        with self._metrics.timer(f"phase:{phase}"):
            try:
                result = await awaitable
            except LandingZoneError as exc:
                self._logger.error("phase_failed", extra={"phase": phase, "error": str(exc)})
                raise ProvisioningError(phase, exc) from exc
        self._logger.info("phase_completed", extra={"phase": phase})
        return result

    def validate(self, config: OrganizationConfig | Mapping[str, Any]) -> OrganizationConfig:
        try:
            validated = OrganizationConfig.model_validate(config)
        except pydantic.ValidationError as exc:
            raise ProvisioningError(PHASE_VALIDATION, ValidationError(str(exc))) from exc
        try:
            plan_guardrails(validated.landing_zone)
        except ValidationError as exc:
            raise ProvisioningError(PHASE_VALIDATION, exc) from exc
        self._logger.info("configuration_validated", extra={"version": validated.version})
        return validated

    async def run(self, config: OrganizationConfig | Mapping[str, Any]) -> ProvisioningResult:
        validated = self.validate(config)
        landing_zone = validated.landing_zone

        try:
            organization = await self._phase(PHASE_ORGANIZATION, self._create_organization(landing_zone.tags))
            result = ProvisioningResult(organization=organization, registry=OURegistry(organization["root_id"]))
            result.registry = await self._phase(PHASE_HIERARCHY, self._build_hierarchy(validated, organization["root_id"]))
            result.accounts = await self._phase(PHASE_ACCOUNTS, self._create_accounts(validated, result.registry))
            result.baseline = await self._phase(PHASE_STAGES, self._run_baseline(validated, organization["root_id"]))
            result.manifest = await self._phase(PHASE_MANIFEST, self._publish_manifest(validated, result.registry))
            snapshot = self._state.build_snapshot(
                result.registry,
                organization=organization,
                accounts=result.accounts,
                tags={"service": "organization-config", **landing_zone.tags},
            )
            result.snapshot = await self._phase(PHASE_STATE, self._state.save(snapshot))
        except Exception:
            if not self.cleanup:
                raise
            failures = await self.cleanup.run()
            if failures:
                self._logger.error("cleanup_incomplete", extra={"failed_actions": [name for name, _ in failures]})
            raise

        self._logger.info(
            "provisioning_completed",
            extra={"organization_id": organization["id"], "ou_count": len(result.registry), "accounts": len(result.accounts)},
        )
        return result

    async def _create_organization(self, tags: Mapping[str, str]) -> dict[str, str]:
        organization = await self._calls.call("create_organization", self._provider.create_organization, list(POLICY_TYPES))
        self.cleanup.push("delete_organization", self._provider.delete_organization)
        await self._calls.call(
            "put_parameter:organization_info",
            self._provider.put_parameter,
            ORG_INFO_PARAMETER,
            json.dumps({"id": organization["id"], "arn": organization["arn"], "rootId": organization["root_id"]}),
            False,
            dict(tags),
        )
        self._metrics.increment("organization_created")
        self._logger.info("organization_created", extra={"organization_id": organization["id"], "root_id": organization["root_id"]})
        return organization

    async def _build_hierarchy(self, config: OrganizationConfig, root_id: str) -> OURegistry:
        builder = HierarchyBuilder(self._provider, self._calls, tags=config.landing_zone.tags, cleanup=self.cleanup)
        registry = OURegistry(root_id)
        for spec in config.landing_zone.top_level_units():
            _, subtree = await builder.build(root_id, spec)
            registry.extend(subtree)
        return registry

    async def _create_accounts(self, config: OrganizationConfig, registry: OURegistry) -> list[AccountRecord]:
        manager = AccountManager(self._provider, self._calls)
        return await manager.create_accounts(planned_accounts(config.landing_zone, registry))

    async def _run_baseline(self, config: OrganizationConfig, root_id: str) -> BaselineOutputs:
        baseline = LandingZoneBaseline(self._provider, self._calls, config.landing_zone, root_id=root_id, cleanup=self.cleanup)
        await self._stages.run(baseline.stages())
        return baseline.outputs

    async def _publish_manifest(self, config: OrganizationConfig, registry: OURegistry) -> Manifest:
        landing_zone = config.landing_zone
        manifest = Manifest(
            governed_regions=list(landing_zone.governed_regions),
            organization_structure=registry.structure(),
            centralized_logging=CentralizedLogging(
                enabled=landing_zone.enable_cloud_trail,
                retention_days=landing_zone.log_retention_days,
            ),
            access_management=AccessManagement(enabled=True),
        )
        await self._calls.call(
            "put_parameter:manifest",
            self._provider.put_parameter,
            MANIFEST_PARAMETER,
            manifest.to_json(),
            False,
            landing_zone.tags,
        )
        return manifest
