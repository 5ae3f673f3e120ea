"""Landing zone manifest consumed by downstream auditing."""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CentralizedLogging(_CamelModel):
    enabled: bool
    retention_days: int


class AccessManagement(_CamelModel):
    enabled: bool


class Manifest(_CamelModel):
    governed_regions: List[str]
    organization_structure: dict[str, Any] = Field(default_factory=dict)
    centralized_logging: CentralizedLogging
    access_management: AccessManagement

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
