"""CLI entry point exposed as the ``landing-zone`` console script."""

from __future__ import annotations

import asyncio
import sys

import pydantic

from landing_zone import get_version
from landing_zone.config import Settings, get_settings
from landing_zone.context import RunContext
from landing_zone.errors import LandingZoneError
from landing_zone.logging_setup import configure_logging
from landing_zone.providers import AwsCloudProvider
from landing_zone.schemas import OrganizationConfig
from landing_zone.services import Orchestrator, StateStore
from landing_zone.storage import AwsClientFactory


def load_config(settings: Settings) -> OrganizationConfig:
    if settings.config_file is None:
        return OrganizationConfig(aws_profile=settings.aws_profile)
    return OrganizationConfig.model_validate_json(settings.config_file.read_text(encoding="utf-8"))


async def _provision(settings: Settings, context: RunContext) -> None:
    config = load_config(settings)
    factory = AwsClientFactory(settings.model_copy(update={"aws_profile": config.aws_profile or settings.aws_profile}))
    state_store = StateStore.from_settings(settings, factory)
    orchestrator = Orchestrator(AwsCloudProvider(factory), state_store, context)
    try:
        await orchestrator.run(config)
    finally:
        await state_store.close()
        context.metrics.close()


def run_provisioning(settings: Settings | None = None) -> int:
    """Provision the organization and landing zone; return the process exit code."""
    settings = settings or get_settings()
    context = RunContext.create(settings)
    logger = configure_logging(settings.log_level, context.run_id)
    logger.info("deployment_started", extra={"version": get_version(), "environment": settings.environment})

    try:
        asyncio.run(_provision(settings, context))
    except (LandingZoneError, pydantic.ValidationError, OSError) as exc:
        logger.error("deployment_failed", extra={"error": str(exc)})
        print(f"error: {exc}", file=sys.stderr)
        return 1

    logger.info("deployment_succeeded")
    return 0


def main() -> None:  # pragma: no cover - CLI entry
    sys.exit(run_provisioning())


__all__ = ["load_config", "main", "run_provisioning"]
