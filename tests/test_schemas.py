from datetime import datetime, timezone

import pydantic
import pytest

from landing_zone.config import Settings
from landing_zone.schemas import (
    AccountRecord,
    LandingZoneConfig,
    Manifest,
    OrganizationConfig,
    OUNode,
    OUSpec,
    StateSnapshot,
    Subnet,
)
from landing_zone.schemas.manifest import AccessManagement, CentralizedLogging


def test_default_configuration_is_valid():
    config = OrganizationConfig()

    assert config.version == "1.0.0"
    assert config.landing_zone.governed_regions == ["us-east-1", "us-west-2"]
    assert [unit.name for unit in config.landing_zone.top_level_units()] == ["Security", "Sandbox"]


def test_configuration_parses_nested_units():
    config = OrganizationConfig.model_validate(
        {
            "landing_zone": {
                "organization_units": [
                    {"name": "Workloads", "children": [{"name": "Production"}, {"name": "Development"}]}
                ]
            }
        }
    )

    assert list(config.landing_zone.ou_names()) == ["Security", "Sandbox", "Workloads", "Production", "Development"]


@pytest.mark.parametrize(
    "landing_zone",
    [
        {"governed_regions": []},
        {"log_retention_days": 1},
        {"log_retention_days": 4000},
        {"log_bucket_name": None},
        {"organization_units": [{"name": "Security"}]},
        {"organization_units": [{"name": "A", "children": [{"name": "B"}, {"name": "B"}]}]},
        {"management_account_id": "12345"},
        {"account_email_domain": "not a domain"},
        {"allowed_ip_ranges": ["10.0.0.0/33"]},
        {"vpc_settings": {"cidr": "bogus"}},
        {"default_ou_name": ""},
    ],
)
def test_invalid_configuration_is_rejected(landing_zone):
    with pytest.raises(pydantic.ValidationError):
        OrganizationConfig.model_validate({"landing_zone": landing_zone})


def test_log_bucket_optional_when_trail_disabled():
    config = LandingZoneConfig(enable_cloud_trail=False, log_bucket_name=None)

    assert config.log_bucket_name is None


def test_subnet_cidr_is_validated():
    with pytest.raises(pydantic.ValidationError):
        Subnet(name="bad", cidr="300.0.0.0/24")


def test_ou_spec_size_counts_all_descendants():
    spec = OUSpec(name="A", children=[OUSpec(name="B", children=[OUSpec(name="C")]), OUSpec(name="D")])

    assert spec.size() == 4
    assert [node.name for node in spec.walk()] == ["A", "B", "C", "D"]


def test_account_record_serializes_with_camel_case_aliases():
    record = AccountRecord(name="audit", email="audit@example.com", parent_ou_id="ou-1")

    dumped = record.model_dump(by_alias=True, mode="json")

    assert dumped["parentOUId"] == "ou-1"
    assert dumped["status"] == "ACTIVE"
    assert AccountRecord.model_validate(dumped) == record


def test_snapshot_json_uses_camel_case_and_parses_back():
    snapshot = StateSnapshot(
        version="1.0.0",
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        component="aws-organization",
        topology=(OUNode(id="ou-1", arn="arn:1", name="Security", parent_id="r-0"),),
    )

    payload = snapshot.to_json()

    assert '"parentId":"r-0"' in payload
    assert '"backupId":null' in payload
    assert StateSnapshot.from_json(payload) == snapshot


def test_manifest_json_shape():
    manifest = Manifest(
        governed_regions=["us-east-1"],
        organization_structure={"Security": {"id": "ou-1", "arn": "arn:1", "children": {}}},
        centralized_logging=CentralizedLogging(enabled=True, retention_days=90),
        access_management=AccessManagement(enabled=True),
    )

    payload = manifest.model_dump(by_alias=True)

    assert payload["governedRegions"] == ["us-east-1"]
    assert payload["centralizedLogging"] == {"enabled": True, "retentionDays": 90}
    assert payload["accessManagement"] == {"enabled": True}


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("LZ_RETRY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("LZ_STATE_TABLE_NAME", "org-state")

    settings = Settings()

    assert settings.retry_max_attempts == 5
    assert settings.state_table_name == "org-state"
    assert settings.state_expiry_days == 30


@pytest.mark.parametrize(
    "overrides",
    [
        {"retry_max_attempts": 0},
        {"retry_base_delay_seconds": 60.0, "retry_max_delay_seconds": 30.0},
        {"rate_limit_per_second": 0},
        {"run_timeout_seconds": 0},
    ],
)
def test_settings_reject_inconsistent_resilience_values(overrides):
    with pytest.raises(pydantic.ValidationError):
        Settings(**overrides)
