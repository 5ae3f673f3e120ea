"""Pydantic schema exports."""

from .organization import AccountSpec, LandingZoneConfig, OrganizationConfig, OUSpec, Subnet, VPCConfig
from .topology import AccountRecord, AccountStatus, OUNode
from .state import StateSnapshot
from .manifest import Manifest

__all__ = [
    "AccountSpec",
    "LandingZoneConfig",
    "OrganizationConfig",
    "OUSpec",
    "Subnet",
    "VPCConfig",
    "AccountRecord",
    "AccountStatus",
    "OUNode",
    "StateSnapshot",
    "Manifest",
]
