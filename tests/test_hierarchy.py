import asyncio
import json

import pytest

from landing_zone.errors import RetryExhaustedError, ValidationError
from landing_zone.schemas import OUNode, OUSpec
from landing_zone.services import CleanupStack, HierarchyBuilder, OURegistry

from conftest import FakeProvider, make_calls

WORKLOADS = OUSpec(
    name="Workloads",
    children=[OUSpec(name="Development"), OUSpec(name="Production")],
)


def build(provider, spec, *, cleanup=None, root="r-0"):
    builder = HierarchyBuilder(provider, make_calls(), tags={"ManagedBy": "test"}, cleanup=cleanup)
    return asyncio.run(builder.build(root, spec))


def test_builds_tree_parent_before_children():
    provider = FakeProvider()

    node, registry = build(provider, WORKLOADS)

    assert node.id == "ou-1"
    assert node.parent_id == "r-0"
    assert registry.ids() == {"Workloads": "ou-1", "Development": "ou-2", "Production": "ou-3"}
    assert registry["Production"].parent_id == "ou-1"
    assert registry["Development"].parent_id == "ou-1"
    assert [args[0] for args in provider.args_of("create_organizational_unit")] == [
        "Workloads",
        "Development",
        "Production",
    ]


def test_registry_has_one_entry_per_spec_node_and_parents_resolve():
    node, registry = build(FakeProvider(), WORKLOADS)

    assert len(registry) == WORKLOADS.size() == 3
    assert registry.parent_of("Workloads") is None
    assert registry.parent_of("Production") == node
    assert [child.name for child in registry.children_of("Workloads")] == ["Development", "Production"]
    assert [top.name for top in registry.children_of(None)] == ["Workloads"]


def test_nested_children_keep_declared_order():
    spec = OUSpec(
        name="Infrastructure",
        children=[
            OUSpec(name="Network", children=[OUSpec(name="Transit")]),
            OUSpec(name="Shared"),
        ],
    )

    _, registry = build(FakeProvider(), spec)

    assert [n.name for n in registry] == ["Infrastructure", "Network", "Transit", "Shared"]
    assert registry["Transit"].parent_id == registry["Network"].id
    assert registry["Shared"].parent_id == registry["Infrastructure"].id
    assert registry.structure() == {
        "Infrastructure": {
            "id": "ou-1",
            "arn": registry["Infrastructure"].arn,
            "children": {
                "Network": {
                    "id": "ou-2",
                    "arn": registry["Network"].arn,
                    "children": {"Transit": {"id": "ou-3", "arn": registry["Transit"].arn, "children": {}}},
                },
                "Shared": {"id": "ou-4", "arn": registry["Shared"].arn, "children": {}},
            },
        }
    }


def test_publishes_parameter_record_per_unit():
    provider = FakeProvider()

    build(provider, WORKLOADS)

    record = json.loads(provider.parameters["/organization/ou/Production"])
    assert record == {
        "id": "ou-3",
        "arn": "arn:aws:organizations::111111111111:ou/o-1/ou-3",
        "name": "Production",
        "parentId": "ou-1",
    }
    assert len(provider.parameters) == 3


def test_duplicate_names_rejected_before_any_call():
    provider = FakeProvider()
    spec = OUSpec(name="Workloads", children=[OUSpec(name="Shared"), OUSpec(name="Shared")])

    with pytest.raises(ValidationError):
        build(provider, spec)

    assert provider.calls == []


def test_failure_aborts_remaining_build_and_keeps_cleanup():
    provider = FakeProvider(failures={"create_organizational_unit:Development": "always"})
    cleanup = CleanupStack()

    with pytest.raises(RetryExhaustedError):
        build(provider, WORKLOADS, cleanup=cleanup)

    assert provider.count("create_organizational_unit") == 4
    assert "Production" not in [args[0] for args in provider.args_of("create_organizational_unit")]
    assert cleanup.pending == ["delete_organizational_unit:Workloads"]


def test_transient_failure_is_retried():
    provider = FakeProvider(
        failures={"create_organizational_unit:Development": [RuntimeError("throttled")]},
    )

    _, registry = build(provider, WORKLOADS)

    assert len(registry) == 3
    assert provider.count("create_organizational_unit") == 4


def test_registry_rejects_duplicate_names():
    registry = OURegistry("r-0")
    registry.add(OUNode(id="ou-1", arn="arn:1", name="Security", parent_id="r-0"))

    with pytest.raises(ValidationError):
        registry.add(OUNode(id="ou-2", arn="arn:2", name="Security", parent_id="r-0"))

    assert registry["Security"].id == "ou-1"


def test_extend_rejects_overlapping_registries():
    first = OURegistry("r-0")
    first.add(OUNode(id="ou-1", arn="arn:1", name="Sandbox", parent_id="r-0"))
    second = OURegistry("r-0")
    second.add(OUNode(id="ou-2", arn="arn:2", name="Sandbox", parent_id="r-0"))

    with pytest.raises(ValidationError):
        first.extend(second)

    assert len(first) == 1


def test_from_nodes_rebuilds_parents_and_rejects_unknown_parent():
    nodes = [
        OUNode(id="ou-1", arn="arn:1", name="Workloads", parent_id="r-0"),
        OUNode(id="ou-2", arn="arn:2", name="Production", parent_id="ou-1"),
    ]

    registry = OURegistry.from_nodes(nodes, "r-0")

    assert registry.parent_of("Production").name == "Workloads"
    with pytest.raises(ValidationError):
        OURegistry.from_nodes([OUNode(id="ou-9", arn="arn:9", name="Orphan", parent_id="ou-404")], "r-0")


def test_copy_is_independent():
    registry = OURegistry("r-0")
    registry.add(OUNode(id="ou-1", arn="arn:1", name="Security", parent_id="r-0"))

    clone = registry.copy()
    clone.add(OUNode(id="ou-2", arn="arn:2", name="Sandbox", parent_id="r-0"))

    assert "Sandbox" not in registry
    assert len(clone) == 2
