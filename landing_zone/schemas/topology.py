"""Provisioned topology schemas."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MIN_ACCOUNT_NAME_LEN = 3
MAX_ACCOUNT_NAME_LEN = 50


class OUNode(BaseModel):
    """An organizational unit as created by the provider."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    arn: str
    name: str
    parent_id: str


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class AccountRecord(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=MIN_ACCOUNT_NAME_LEN, max_length=MAX_ACCOUNT_NAME_LEN)
    email: str
    parent_ou_id: str = Field(..., alias="parentOUId", min_length=1)
    tags: dict[str, str] = Field(default_factory=dict)
    status: AccountStatus = AccountStatus.ACTIVE
    id: str | None = None
    arn: str | None = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError(f"invalid email format: {value}")
        return value

    @field_validator("parent_ou_id")
    @classmethod
    def _validate_parent(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("parent OU ID is required")
        return value
