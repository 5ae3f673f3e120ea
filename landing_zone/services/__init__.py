"""Service layer exported symbols."""

from .retry import RetryExecutor, RetryPolicy
from .ratelimit import RateLimiter
from .execution import CallExecutor
from .cleanup import CleanupStack
from .hierarchy import HierarchyBuilder, OURegistry
from .accounts import AccountManager
from .stages import StageRunner, StageOutcome
from .baseline import LandingZoneBaseline, BaselineOutputs
from .state import StateStore, CleanupReport, StateCleanupError
from .orchestrator import Orchestrator, ProvisioningResult

__all__ = [
    "RetryExecutor",
    "RetryPolicy",
    "RateLimiter",
    "CallExecutor",
    "CleanupStack",
    "HierarchyBuilder",
    "OURegistry",
    "AccountManager",
    "StageRunner",
    "StageOutcome",
    "LandingZoneBaseline",
    "BaselineOutputs",
    "StateStore",
    "CleanupReport",
    "StateCleanupError",
    "Orchestrator",
    "ProvisioningResult",
]
