"""AWS Organization and landing zone provisioning.

``landing-zone`` (see ``landing_zone.cli``) runs one provisioning pass; the
``Orchestrator`` in ``landing_zone.services`` is the programmatic entry point.
"""

from importlib import metadata

from landing_zone.errors import LandingZoneError, ProvisioningError

DISTRIBUTION = "aws-landing-zone"


def get_version() -> str:
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:  # pragma: no cover - source checkout
        return "0.0.0-dev"


__all__ = ["DISTRIBUTION", "LandingZoneError", "ProvisioningError", "get_version"]
