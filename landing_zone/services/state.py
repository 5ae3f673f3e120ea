"""Versioned, append-only state snapshots with backup, restore and expiry cleanup."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, TypeVar

import pydantic

from landing_zone.config import Settings
from landing_zone.errors import (
    BackupNotFoundError,
    PersistenceError,
    RetryExhaustedError,
    StateNotFoundError,
    ValidationError,
)
from landing_zone.metrics import MetricsCollector
from landing_zone.repos import StateRecord, StateRepository
from landing_zone.repos.state import (
    BACKUP_PREFIX,
    SNAPSHOT_PREFIX,
    backup_blob_key,
    format_backup_id,
    format_sort_key,
    snapshot_blob_key,
)
from landing_zone.schemas import AccountRecord, StateSnapshot
from landing_zone.storage import AwsClientFactory

from .hierarchy import OURegistry
from .retry import RetryExecutor, RetryPolicy

T = TypeVar("T")

logger = logging.getLogger("landing_zone.state")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CleanupReport:
    deleted_states: list[str] = field(default_factory=list)
    deleted_blobs: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class StateCleanupError(PersistenceError):
    """Raised when cleanup failed on at least one store; carries what was still removed."""

    def __init__(self, report: CleanupReport) -> None:
        details = "; ".join(f"{store}: {error}" for store, error in report.errors.items())
        super().__init__("cleanup", details)
        self.report = report


class StateStore:
    """Persist the provisioned topology.

    The table is append-only: saving writes a new item under the fixed
    partition key and "current state" is the newest sort key. Operations on
    one store never interleave with each other.
    """

    def __init__(
        self,
        repository: StateRepository,
        settings: Settings,
        *,
        metrics: MetricsCollector | None = None,
        retry: RetryExecutor | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._settings = settings
        self._metrics = metrics or MetricsCollector("state-manager")
        self._retry = retry or RetryExecutor(RetryPolicy.for_state(settings))
        self._clock = clock
        self._lock = asyncio.Lock()
        self._backup_tasks: set[asyncio.Task] = set()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, factory: AwsClientFactory, **kwargs: Any) -> "StateStore":
        repository = StateRepository(
            factory.client("dynamodb"),
            factory.client("s3"),
            table_name=settings.state_table_name,
            bucket_name=settings.state_backup_bucket,
            partition_key=settings.state_partition_key,
        )
        return cls(repository, settings, **kwargs)

    def build_snapshot(
        self,
        registry: OURegistry,
        *,
        organization: Mapping[str, str] | None = None,
        accounts: Iterable[AccountRecord] = (),
        tags: Mapping[str, str] | None = None,
    ) -> StateSnapshot:
        return StateSnapshot(
            version=self._settings.config_version,
            timestamp=self._clock(),
            component=self._settings.component,
            organization=dict(organization or {}),
            topology=registry.nodes(),
            accounts=tuple(accounts),
            tags=dict(tags or {"service": "organization-config"}),
        )

    @staticmethod
    def registry_from(snapshot: StateSnapshot) -> OURegistry:
        """A fresh registry rebuilt from a snapshot; never shares state with it."""
        return OURegistry.from_nodes(snapshot.topology, snapshot.organization.get("root_id"))

    async def _attempt(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        async def run() -> T:
            return await asyncio.to_thread(func, *args)

        try:
            return await self._retry.execute(run, name=f"state_{operation}")
        except RetryExhaustedError as exc:
            logger.error("state_operation_failed", extra={"operation": operation, "error": str(exc.last_error)})
            raise PersistenceError(operation, f"max retries exceeded: {exc}") from exc

    # Save

    def _validate(self, snapshot: Any) -> StateSnapshot:
        if not isinstance(snapshot, StateSnapshot):
            raise ValidationError(f"expected StateSnapshot, got {type(snapshot).__name__}")
        if snapshot.timestamp.tzinfo is None:
            raise ValidationError("snapshot timestamp must be timezone-aware")
        return snapshot

    async def save(self, snapshot: StateSnapshot) -> StateSnapshot:
        snapshot = self._validate(snapshot)
        sort_key = format_sort_key(snapshot.timestamp)
        payload = snapshot.to_json()
        record = StateRecord(
            partition_key=self._settings.state_partition_key,
            sort_key=sort_key,
            state=payload,
            version=snapshot.version,
        )

        async with self._lock:
            with self._metrics.timer("state_save_duration"):
                await self._attempt("save", self._repo.put_state, record)

        task = asyncio.create_task(self._copy_to_blob(sort_key, payload))
        self._backup_tasks.add(task)
        task.add_done_callback(self._backup_tasks.discard)

        self._metrics.increment("state_saves")
        logger.info("state_saved", extra={"version": snapshot.version, "sort_key": sort_key})
        return snapshot

    async def _copy_to_blob(self, sort_key: str, payload: str) -> None:
        try:
            await self._attempt("backup_copy", self._repo.put_blob, snapshot_blob_key(sort_key), payload)
        except PersistenceError as exc:
            logger.error("state_backup_failed", extra={"sort_key": sort_key, "error": str(exc)})
            return
        logger.info("state_backup_written", extra={"sort_key": sort_key})

    async def wait_for_backups(self) -> None:
        if self._backup_tasks:
            await asyncio.gather(*list(self._backup_tasks), return_exceptions=True)

    # Load

    async def load(self) -> StateSnapshot:
        async with self._lock:
            return await self._load_unlocked()

    async def _load_unlocked(self) -> StateSnapshot:
        with self._metrics.timer("state_load_duration"):
            record = await self._attempt("load", self._repo.latest_state)
        if record is None:
            raise StateNotFoundError("load", f"no state stored under partition {self._settings.state_partition_key!r}")

        snapshot = self._parse("load", record.state)
        self._metrics.increment("state_loads")
        logger.info("state_loaded", extra={"version": snapshot.version, "sort_key": record.sort_key})
        return snapshot

    @staticmethod
    def _parse(operation: str, payload: str) -> StateSnapshot:
        try:
            return StateSnapshot.from_json(payload)
        except pydantic.ValidationError as exc:
            raise PersistenceError(operation, f"stored state is not a valid snapshot: {exc}") from exc

    # Backup and restore

    async def create_backup(self) -> str:
        async with self._lock:
            with self._metrics.timer("backup_creation_duration"):
                snapshot = await self._load_unlocked()
                backup_id = format_backup_id(self._clock())
                backup = snapshot.model_copy(update={"backup_id": backup_id})
                await self._attempt("create_backup", self._repo.put_blob, backup_blob_key(backup_id), backup.to_json())

        self._metrics.increment("backups_created")
        logger.info("backup_created", extra={"backup_id": backup_id})
        return backup_id

    async def restore(self, backup_id: str) -> StateSnapshot:
        async with self._lock:
            payload = await self._attempt("restore", self._repo.get_blob, backup_blob_key(backup_id))
        if payload is None:
            raise BackupNotFoundError("restore", f"backup {backup_id!r} not found")

        snapshot = self._parse("restore", payload)
        logger.info("backup_restored", extra={"backup_id": backup_id, "version": snapshot.version})
        return snapshot

    # Expiry

    async def cleanup(self, retention: timedelta | None = None) -> CleanupReport:
        """Delete records strictly older than the retention horizon from both stores.

        Without an explicit horizon, snapshots use ``state_expiry_days`` and
        backups ``backup_retention_days``. A failure on one store does not
        stop cleanup of the other; it is raised afterwards as ``StateCleanupError``.
        """
        now = self._clock()
        state_retention = retention if retention is not None else timedelta(days=self._settings.state_expiry_days)
        backup_retention = retention if retention is not None else timedelta(days=self._settings.backup_retention_days)
        state_cutoff = now - state_retention
        backup_cutoff = now - backup_retention
        report = CleanupReport()

        async with self._lock:
            with self._metrics.timer("cleanup_duration"):
                try:
                    report.deleted_states = await asyncio.to_thread(self._repo.delete_states_before, state_cutoff)
                except Exception as exc:
                    report.errors["table"] = str(exc)
                    logger.error("state_cleanup_failed", extra={"store": "table", "error": str(exc)})

                for store, prefix, cutoff in (
                    ("snapshots", SNAPSHOT_PREFIX, state_cutoff),
                    ("backups", BACKUP_PREFIX, backup_cutoff),
                ):
                    try:
                        report.deleted_blobs.extend(
                            await asyncio.to_thread(self._repo.delete_blobs_before, prefix, cutoff)
                        )
                    except Exception as exc:
                        report.errors[store] = str(exc)
                        logger.error("state_cleanup_failed", extra={"store": store, "error": str(exc)})

        logger.info(
            "cleanup_completed",
            extra={
                "state_cutoff": state_cutoff.isoformat(),
                "backup_cutoff": backup_cutoff.isoformat(),
                "deleted_states": len(report.deleted_states),
                "deleted_blobs": len(report.deleted_blobs),
            },
        )
        if not report.ok:
            raise StateCleanupError(report)
        self._metrics.increment("cleanups_performed")
        return report

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.wait_for_backups()
        logger.info("closing_state_store")
        self._metrics.close()
