"""Persisted state snapshot schema."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .topology import AccountRecord, OUNode


class StateSnapshot(BaseModel):
    """A versioned record of provisioned topology. Never mutated once stored."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    version: str = Field(..., min_length=1)
    timestamp: datetime
    component: str = Field(..., min_length=1)
    organization: dict[str, str] = Field(default_factory=dict)
    topology: tuple[OUNode, ...] = ()
    accounts: tuple[AccountRecord, ...] = ()
    tags: dict[str, str] = Field(default_factory=dict)
    backup_id: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: str | bytes) -> "StateSnapshot":
        return cls.model_validate_json(payload)
