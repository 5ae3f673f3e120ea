"""Repository for state snapshots and backups.

Snapshots live in a DynamoDB table under one fixed partition key, sorted by an
ISO-8601 timestamp. Backup blobs live in an S3 bucket. All methods block.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Iterator

from botocore.exceptions import ClientError

from .models import StateRecord

PK_ATTRIBUTE = "pk"
SK_ATTRIBUTE = "sk"
STATE_ATTRIBUTE = "state"
VERSION_ATTRIBUTE = "version"

SNAPSHOT_PREFIX = "snapshots/"
BACKUP_PREFIX = "backups/"
BACKUP_ID_PREFIX = "backup"

_SORT_KEY_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_BACKUP_ID_FORMAT = f"{BACKUP_ID_PREFIX}-%Y%m%d-%H%M%S-%f"
_DELETE_BATCH = 1000


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def format_sort_key(moment: datetime) -> str:
    """Fixed-width UTC timestamp, so lexical order equals chronological order."""
    return _utc(moment).strftime(_SORT_KEY_FORMAT)


def parse_sort_key(value: str) -> datetime:
    return datetime.strptime(value, _SORT_KEY_FORMAT).replace(tzinfo=timezone.utc)


def format_backup_id(moment: datetime) -> str:
    return _utc(moment).strftime(_BACKUP_ID_FORMAT)


def parse_backup_id(value: str) -> datetime:
    return datetime.strptime(value, _BACKUP_ID_FORMAT).replace(tzinfo=timezone.utc)


def snapshot_blob_key(sort_key: str) -> str:
    return f"{SNAPSHOT_PREFIX}{sort_key}.json"


def backup_blob_key(backup_id: str) -> str:
    return f"{BACKUP_PREFIX}{backup_id}.json"


def blob_timestamp(key: str) -> datetime | None:
    """Timestamp encoded in a blob key, or None for keys this repository did not write."""
    if not key.endswith(".json"):
        return None
    stem = key[: -len(".json")]
    try:
        if stem.startswith(SNAPSHOT_PREFIX):
            return parse_sort_key(stem[len(SNAPSHOT_PREFIX):])
        if stem.startswith(BACKUP_PREFIX):
            return parse_backup_id(stem[len(BACKUP_PREFIX):])
    except ValueError:
        return None
    return None


class StateRepository:
    """Persist state records in DynamoDB and blobs in S3."""

    def __init__(self, dynamodb: Any, s3: Any, *, table_name: str, bucket_name: str, partition_key: str) -> None:
        self._dynamodb = dynamodb
        self._s3 = s3
        self.table_name = table_name
        self.bucket_name = bucket_name
        self.partition_key = partition_key

    # Table

    def put_state(self, record: StateRecord) -> None:
        self._dynamodb.put_item(
            TableName=self.table_name,
            Item={
                PK_ATTRIBUTE: {"S": record.partition_key},
                SK_ATTRIBUTE: {"S": record.sort_key},
                STATE_ATTRIBUTE: {"S": record.state},
                VERSION_ATTRIBUTE: {"S": record.version},
            },
        )

    def latest_state(self) -> StateRecord | None:
        response = self._dynamodb.query(
            TableName=self.table_name,
            KeyConditionExpression=f"{PK_ATTRIBUTE} = :pk",
            ExpressionAttributeValues={":pk": {"S": self.partition_key}},
            ScanIndexForward=False,
            Limit=1,
        )
        items = response.get("Items", [])
        if not items:
            return None
        return self._to_record(items[0])

    def _to_record(self, item: dict[str, Any]) -> StateRecord:
        return StateRecord(
            partition_key=item[PK_ATTRIBUTE]["S"],
            sort_key=item[SK_ATTRIBUTE]["S"],
            state=item[STATE_ATTRIBUTE]["S"],
            version=item.get(VERSION_ATTRIBUTE, {}).get("S", ""),
        )

    def _sort_keys_before(self, cutoff_key: str) -> Iterator[str]:
        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": f"{PK_ATTRIBUTE} = :pk AND {SK_ATTRIBUTE} < :cutoff",
            "ExpressionAttributeValues": {":pk": {"S": self.partition_key}, ":cutoff": {"S": cutoff_key}},
            "ProjectionExpression": f"{PK_ATTRIBUTE}, {SK_ATTRIBUTE}",
        }
        while True:
            response = self._dynamodb.query(**kwargs)
            for item in response.get("Items", []):
                yield item[SK_ATTRIBUTE]["S"]
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return
            kwargs["ExclusiveStartKey"] = last_key

    def delete_states_before(self, cutoff: datetime) -> list[str]:
        """Delete every record strictly older than ``cutoff``; return the deleted sort keys."""
        expired = list(self._sort_keys_before(format_sort_key(cutoff)))
        for sort_key in expired:
            self._dynamodb.delete_item(
                TableName=self.table_name,
                Key={PK_ATTRIBUTE: {"S": self.partition_key}, SK_ATTRIBUTE: {"S": sort_key}},
            )
        return expired

    # Blobs

    def put_blob(self, key: str, body: str) -> None:
        self._s3.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=body.encode("utf-8"),
            ContentType="application/json",
            ServerSideEncryption="AES256",
        )

    def get_blob(self, key: str) -> str | None:
        try:
            response = self._s3.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                return None
            raise
        return response["Body"].read().decode("utf-8")

    def list_blobs(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        kwargs: dict[str, Any] = {"Bucket": self.bucket_name, "Prefix": prefix}
        while True:
            response = self._s3.list_objects_v2(**kwargs)
            keys.extend(item["Key"] for item in response.get("Contents", []))
            if not response.get("IsTruncated"):
                return keys
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

    def delete_blobs(self, keys: Iterable[str]) -> None:
        pending = list(keys)
        for start in range(0, len(pending), _DELETE_BATCH):
            batch = pending[start : start + _DELETE_BATCH]
            response = self._s3.delete_objects(
                Bucket=self.bucket_name,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )
            errors = response.get("Errors", [])
            if errors:
                failed = ", ".join(f"{error.get('Key')}: {error.get('Message', error.get('Code'))}" for error in errors)
                raise RuntimeError(f"failed to delete {len(errors)} blob(s): {failed}")

    def delete_blobs_before(self, prefix: str, cutoff: datetime) -> list[str]:
        expired = []
        for key in self.list_blobs(prefix):
            stamp = blob_timestamp(key)
            if stamp is not None and stamp < cutoff:
                expired.append(key)
        self.delete_blobs(expired)
        return expired
