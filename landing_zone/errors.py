"""
Error taxonomy.

Callers react to the kind of failure:
ValidationError stops a run before anything is created and is never retried.
TransientProviderError is retried by the retry executor.
CancellationError means the run deadline elapsed and is never retried.
AggregateStageError names every failed governance stage.
PersistenceError covers the state store.
"""

from __future__ import annotations

from typing import Mapping


class LandingZoneError(Exception):
    """Base class for all provisioning exceptions."""


class ValidationError(LandingZoneError):
    """Raised for bad input: configuration, account records, snapshots."""


class ProviderError(LandingZoneError):
    """Raised when a cloud provider call fails for a non-throttling reason."""

    def __init__(self, operation: str, message: str, code: str | None = None) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.code = code


class TransientProviderError(ProviderError):
    """Raised when a provider call was throttled or the service was briefly unavailable."""


class CancellationError(LandingZoneError):
    """Raised when the run deadline elapses while waiting for capacity."""


class RetryExhaustedError(LandingZoneError):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"operation failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class AggregateStageError(LandingZoneError):
    """Raised when one or more governance stages failed; names all of them."""

    def __init__(self, failures: Mapping[str, BaseException]) -> None:
        self.failures = dict(failures)
        details = "; ".join(f"{name}: {exc}" for name, exc in self.failures.items())
        super().__init__(f"{len(self.failures)} landing zone stage(s) failed: {details}")

    @property
    def stage_names(self) -> list[str]:
        return list(self.failures)


class PersistenceError(LandingZoneError):
    """Raised when the state store could not persist or read state."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class StateNotFoundError(PersistenceError):
    """Raised when no snapshot exists under the partition key."""


class BackupNotFoundError(PersistenceError):
    """Raised when a requested backup id does not exist."""


class ProvisioningError(LandingZoneError):
    """Raised by the orchestrator; records which phase failed and keeps the original error."""

    def __init__(self, phase: str, cause: BaseException) -> None:
        super().__init__(f"{phase} failed: {cause}")
        self.phase = phase
        self.cause = cause
