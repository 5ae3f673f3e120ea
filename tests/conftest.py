from __future__ import annotations

import io
import threading
from collections import defaultdict
from typing import Any

import pytest
from botocore.exceptions import ClientError

from landing_zone.config import Settings
from landing_zone.context import Deadline, RunContext
from landing_zone.errors import TransientProviderError
from landing_zone.metrics import MetricsCollector
from landing_zone.services import CallExecutor, RateLimiter, RetryExecutor, RetryPolicy


async def no_sleep(_seconds: float) -> None:
    return None


class FakeProvider:
    """In-memory cloud provider. ``failures`` maps "method" or "method:first_arg" to
    a list of exceptions raised on successive calls before succeeding; an entry of
    ``"always"`` fails every call."""

    def __init__(self, failures: dict[str, Any] | None = None) -> None:
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, tuple]] = []
        self.parameters: dict[str, str] = {}
        self.deleted: list[tuple[str, tuple]] = []
        self._counters: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def _record(self, method: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((method, args))
            for key in (f"{method}:{args[0]}" if args else None, method):
                if key is None or key not in self.failures:
                    continue
                plan = self.failures[key]
                if plan == "always":
                    raise TransientProviderError(method, f"{key} is unavailable", code="ServiceUnavailable")
                if plan:
                    raise plan.pop(0)

    def _next(self, kind: str) -> int:
        with self._lock:
            self._counters[kind] += 1
            return self._counters[kind]

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def args_of(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def create_organization(self, policy_types):
        self._record("create_organization", tuple(policy_types))
        return {"id": "o-1", "arn": "arn:aws:organizations::111111111111:organization/o-1", "root_id": "r-0"}

    def create_organizational_unit(self, name, parent_id, tags):
        self._record("create_organizational_unit", name, parent_id)
        number = self._next("ou")
        return {"id": f"ou-{number}", "arn": f"arn:aws:organizations::111111111111:ou/o-1/ou-{number}"}

    def create_account(self, name, email, parent_id, tags):
        self._record("create_account", name, email, parent_id)
        number = self._next("account")
        account_id = f"{number:012d}"
        return {"id": account_id, "arn": f"arn:aws:organizations::111111111111:account/o-1/{account_id}"}

    def create_encryption_key(self, policy, tags):
        self._record("create_encryption_key", policy)
        return {"id": "key-1", "arn": "arn:aws:kms:us-east-1:111111111111:key/key-1"}

    def create_key_alias(self, alias, key_id):
        self._record("create_key_alias", alias, key_id)

    def create_role(self, name, trust_policy, tags, *, path="/", description=""):
        self._record("create_role", name, path)
        return {"arn": f"arn:aws:iam::111111111111:role{path}{name}", "name": name}

    def attach_role_policy(self, role_arn, policy_arn):
        self._record("attach_role_policy", role_arn, policy_arn)

    def create_log_group(self, name, retention_days, tags):
        self._record("create_log_group", name, retention_days)
        return {"name": name, "arn": f"arn:aws:logs:us-east-1:111111111111:log-group:{name}:*"}

    def create_log_trail(self, name, bucket, log_group_arn, kms_key_arn, tags, *, logs_role_arn=None):
        self._record("create_log_trail", name, bucket, log_group_arn, kms_key_arn)
        return {"name": name, "arn": f"arn:aws:cloudtrail:us-east-1:111111111111:trail/{name}"}

    def create_policy(self, name, description, content, tags):
        self._record("create_policy", name, content)
        return {"id": f"p-{self._next('policy')}", "arn": f"arn:aws:organizations::111111111111:policy/{name}"}

    def attach_policy(self, policy_id, target_id):
        self._record("attach_policy", policy_id, target_id)

    def create_vpc(self, cidr, tags, *, dns_support=True, dns_hostnames=True):
        self._record("create_vpc", cidr)
        return {"id": "vpc-1"}

    def create_subnet(self, vpc_id, cidr, availability_zone, tags):
        self._record("create_subnet", vpc_id, cidr)
        return {"id": f"subnet-{self._next('subnet')}"}

    def put_parameter(self, path, value, secure, tags):
        self._record("put_parameter", path, secure)
        with self._lock:
            self.parameters[path] = value

    def get_parameter(self, path):
        self._record("get_parameter", path)
        return self.parameters[path]

    def _delete(self, method: str, *args: Any) -> None:
        self._record(method, *args)
        with self._lock:
            self.deleted.append((method, args))

    def delete_organization(self):
        self._delete("delete_organization")

    def delete_organizational_unit(self, ou_id):
        self._delete("delete_organizational_unit", ou_id)

    def delete_role(self, name, policy_arns=()):
        self._delete("delete_role", name)

    def schedule_key_deletion(self, key_id):
        self._delete("schedule_key_deletion", key_id)

    def delete_log_trail(self, name):
        self._delete("delete_log_trail", name)

    def delete_policy(self, policy_id, target_ids=()):
        self._delete("delete_policy", policy_id)

    def delete_vpc(self, vpc_id):
        self._delete("delete_vpc", vpc_id)


def client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} raised"}}, operation)


class FakeDynamoDB:
    """Low-level DynamoDB client double supporting the calls StateRepository makes."""

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict] = {}
        self.fail_puts = 0
        self.fail_queries = 0
        self.fail_deletes = False
        self.fail_delete_prefixes: set[str] = set()
        self.put_calls = 0

    def put_item(self, TableName, Item):
        self.put_calls += 1
        if self.fail_puts:
            self.fail_puts -= 1
            raise client_error("ProvisionedThroughputExceededException", "PutItem")
        self.items[(Item["pk"]["S"], Item["sk"]["S"])] = Item

    def query(self, TableName, KeyConditionExpression, ExpressionAttributeValues, **kwargs):
        if self.fail_queries:
            self.fail_queries -= 1
            raise client_error("InternalServerError", "Query")
        pk = ExpressionAttributeValues[":pk"]["S"]
        cutoff = ExpressionAttributeValues.get(":cutoff", {}).get("S")
        matches = sorted(
            (item for (item_pk, sk), item in self.items.items() if item_pk == pk and (cutoff is None or sk < cutoff)),
            key=lambda item: item["sk"]["S"],
            reverse=not kwargs.get("ScanIndexForward", True),
        )
        if "Limit" in kwargs:
            matches = matches[: kwargs["Limit"]]
        return {"Items": matches}

    def delete_item(self, TableName, Key):
        if self.fail_deletes:
            raise client_error("InternalServerError", "DeleteItem")
        self.items.pop((Key["pk"]["S"], Key["sk"]["S"]), None)

    def sort_keys(self) -> list[str]:
        return sorted(sk for _, sk in self.items)


class FakeS3:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.fail_puts = 0
        self.fail_deletes = False
        self.fail_delete_prefixes: set[str] = set()

    def put_object(self, Bucket, Key, Body, **kwargs):
        if self.fail_puts:
            self.fail_puts -= 1
            raise client_error("SlowDown", "PutObject")
        self.objects[Key] = Body

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def list_objects_v2(self, Bucket, Prefix="", **kwargs):
        keys = sorted(key for key in self.objects if key.startswith(Prefix))
        return {"Contents": [{"Key": key} for key in keys], "IsTruncated": False}

    def delete_objects(self, Bucket, Delete):
        keys = [entry["Key"] for entry in Delete["Objects"]]
        if self.fail_deletes or any(key.startswith(tuple(self.fail_delete_prefixes)) for key in keys):
            raise client_error("InternalError", "DeleteObjects")
        for entry in Delete["Objects"]:
            self.objects.pop(entry["Key"], None)
        return {}


def make_settings(**overrides: Any) -> Settings:
    values = {
        "retry_base_delay_seconds": 0.0,
        "retry_max_delay_seconds": 0.0,
        "state_base_delay_seconds": 0.0,
        "state_max_delay_seconds": 0.0,
        "config_file": None,
        "aws_profile": None,
    }
    values.update(overrides)
    return Settings(**values)


def make_context(settings: Settings | None = None, deadline: Deadline | None = None) -> RunContext:
    return RunContext(
        settings=settings or make_settings(),
        deadline=deadline or Deadline.never(),
        metrics=MetricsCollector("test"),
    )


def make_calls(context: RunContext | None = None, *, max_attempts: int = 3) -> CallExecutor:
    return CallExecutor(
        RateLimiter(1000, 1000),
        RetryExecutor(RetryPolicy(max_attempts=max_attempts, base_delay=0, max_delay=0), sleep=no_sleep),
        context or make_context(),
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def context(settings: Settings) -> RunContext:
    return make_context(settings)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def calls(context: RunContext) -> CallExecutor:
    return make_calls(context)
