"""Organizational unit tree construction."""

from __future__ import annotations

import json
from typing import Iterable, Iterator, Mapping

from landing_zone.errors import ValidationError
from landing_zone.providers import CloudProvider
from landing_zone.schemas import OUNode, OUSpec

from .cleanup import CleanupStack
from .execution import CallExecutor

OU_PARAMETER_PATH = "/organization/ou/{name}"


class OURegistry:
    """Flat, name-addressable view of a built OU tree.

    Nodes are stored as an arena in pre-order; each entry keeps the index of
    its parent (``None`` for nodes attached to the external root). Name lookups
    are a projection over the arena, and a repeated name is rejected instead of
    overwriting the earlier entry.
    """

    def __init__(self, root_id: str | None = None) -> None:
        self.root_id = root_id
        self._nodes: list[OUNode] = []
        self._parents: list[int | None] = []
        self._by_name: dict[str, int] = {}

    def add(self, node: OUNode, parent_index: int | None = None) -> int:
        if node.name in self._by_name:
            raise ValidationError(f"duplicate organizational unit name {node.name!r}")
        if parent_index is not None and not 0 <= parent_index < len(self._nodes):
            raise ValidationError(f"parent index {parent_index} is not in the registry")
        self._nodes.append(node)
        self._parents.append(parent_index)
        index = len(self._nodes) - 1
        self._by_name[node.name] = index
        return index

    def extend(self, other: "OURegistry", parent_index: int | None = None) -> None:
        """Copy another registry's nodes in, attaching its top-level nodes under ``parent_index``."""
        duplicates = [node.name for node in other if node.name in self._by_name]
        if duplicates:
            raise ValidationError(f"duplicate organizational unit names {sorted(duplicates)}")
        offset = len(self._nodes)
        for node, other_parent in zip(other._nodes, other._parents):
            self.add(node, parent_index if other_parent is None else offset + other_parent)

    def get(self, name: str) -> OUNode | None:
        index = self._by_name.get(name)
        return None if index is None else self._nodes[index]

    def __getitem__(self, name: str) -> OUNode:
        node = self.get(name)
        if node is None:
            raise KeyError(name)
        return node

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[OUNode]:
        return iter(list(self._nodes))

    def parent_of(self, name: str) -> OUNode | None:
        parent_index = self._parents[self._by_name[name]]
        return None if parent_index is None else self._nodes[parent_index]

    def children_of(self, name: str | None) -> list[OUNode]:
        """Direct children of ``name``; ``None`` returns the top-level nodes."""
        target = None if name is None else self._by_name[name]
        return [node for node, parent in zip(self._nodes, self._parents) if parent == target]

    def as_mapping(self) -> dict[str, OUNode]:
        return {node.name: node for node in self._nodes}

    def ids(self) -> dict[str, str]:
        return {node.name: node.id for node in self._nodes}

    def nodes(self) -> tuple[OUNode, ...]:
        return tuple(self._nodes)

    def copy(self) -> "OURegistry":
        clone = OURegistry(self.root_id)
        clone._nodes = list(self._nodes)
        clone._parents = list(self._parents)
        clone._by_name = dict(self._by_name)
        return clone

    def structure(self) -> dict[str, dict]:
        """Nested name -> descriptor mapping, used for the landing zone manifest."""

        def describe(index: int | None) -> dict[str, dict]:
            result: dict[str, dict] = {}
            for child_index, parent in enumerate(self._parents):
                if parent == index:
                    node = self._nodes[child_index]
                    result[node.name] = {"id": node.id, "arn": node.arn, "children": describe(child_index)}
            return result

        return describe(None)

    @classmethod
    def from_nodes(cls, nodes: Iterable[OUNode], root_id: str | None = None) -> "OURegistry":
        """Rebuild a registry from nodes listed parent-before-child, e.g. a stored snapshot."""
        registry = cls(root_id)
        index_by_id: dict[str, int] = {}
        for node in nodes:
            parent_index = index_by_id.get(node.parent_id)
            if parent_index is None and root_id is not None and node.parent_id != root_id:
                raise ValidationError(f"organizational unit {node.name!r} references unknown parent {node.parent_id!r}")
            index_by_id[node.id] = registry.add(node.model_copy(), parent_index)
        return registry


def ensure_unique_names(specs: Iterable[OUSpec]) -> None:
    seen: set[str] = set()
    for spec in specs:
        for node in spec.walk():
            if node.name in seen:
                raise ValidationError(f"duplicate organizational unit name {node.name!r}")
            seen.add(node.name)


class HierarchyBuilder:
    """Materialize an ``OUSpec`` tree parent-before-children.

    Children are processed in their declared order. A failure anywhere aborts
    the remaining build and propagates; nothing already created is rolled
    back here, but each created unit registers its inverse on ``cleanup``.
    """

    def __init__(
        self,
        provider: CloudProvider,
        calls: CallExecutor,
        *,
        tags: Mapping[str, str] | None = None,
        cleanup: CleanupStack | None = None,
    ) -> None:
        self._provider = provider
        self._calls = calls
        self._tags = dict(tags or {})
        self._cleanup = cleanup
        self._logger = calls.context.logger
        self._metrics = calls.context.metrics

    async def build(self, root_parent_id: str, spec: OUSpec) -> tuple[OUNode, OURegistry]:
        ensure_unique_names([spec])
        return await self._build(root_parent_id, spec)

    async def _build(self, parent_id: str, spec: OUSpec) -> tuple[OUNode, OURegistry]:
        node = await self._create(parent_id, spec)

        registry = OURegistry(parent_id)
        index = registry.add(node)
        for child in spec.children:
            _, child_registry = await self._build(node.id, child)
            registry.extend(child_registry, parent_index=index)
        return node, registry

    async def _create(self, parent_id: str, spec: OUSpec) -> OUNode:
        tags = {**self._tags, **spec.tags}
        try:
            created = await self._calls.call(
                f"create_organizational_unit:{spec.name}",
                self._provider.create_organizational_unit,
                spec.name,
                parent_id,
                tags,
            )
        except Exception as exc:
            self._logger.error("ou_creation_failed", extra={"ou_name": spec.name, "parent_id": parent_id, "error": str(exc)})
            raise

        node = OUNode(id=created["id"], arn=created["arn"], name=spec.name, parent_id=parent_id)
        if self._cleanup is not None:
            self._cleanup.push(f"delete_organizational_unit:{node.name}", self._provider.delete_organizational_unit, node.id)

        await self._calls.call(
            f"put_parameter:{OU_PARAMETER_PATH.format(name=node.name)}",
            self._provider.put_parameter,
            OU_PARAMETER_PATH.format(name=node.name),
            json.dumps({"id": node.id, "arn": node.arn, "name": node.name, "parentId": node.parent_id}),
            False,
            tags,
        )

        self._logger.info("ou_created", extra={"ou_name": node.name, "ou_id": node.id, "parent_id": parent_id})
        self._metrics.increment("ou_created")
        return node
