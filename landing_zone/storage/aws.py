"""boto3 client factory."""

from __future__ import annotations

import threading
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ProfileNotFound

from landing_zone.config import Settings
from landing_zone.errors import ValidationError


class AwsClientFactory:
    """Provide boto3 clients sharing one session.

    boto3 sessions are not thread-safe, so session and client creation are
    serialized; the clients themselves may be used from any thread.
    """

    def __init__(self, settings: Settings) -> None:
        self._region = settings.aws_region
        self._profile = settings.aws_profile
        self._session: boto3.session.Session | None = None
        self._lock = threading.Lock()
        # botocore makes a single attempt; RetryExecutor owns retries.
        self._config = Config(retries={"max_attempts": 1, "mode": "standard"})

    def _session_unlocked(self) -> boto3.session.Session:
        if self._session is None:
            if self._profile:
                try:
                    self._session = boto3.session.Session(profile_name=self._profile, region_name=self._region)
                except ProfileNotFound as exc:
                    raise ValidationError(f"aws profile '{self._profile}' not found") from exc
            else:
                self._session = boto3.session.Session(region_name=self._region)
        return self._session

    def session(self) -> boto3.session.Session:
        with self._lock:
            return self._session_unlocked()

    def client(self, service: str) -> Any:
        with self._lock:
            return self._session_unlocked().client(service, region_name=self._region, config=self._config)
