"""Aggregation result tree.

Two levels at most: the root holds first-level nodes, a ``BranchNode``
holds ``LeafNode``s only. Every node's seconds and cost equal the sum of
its children.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Union

from .dimensions import Dimension

__all__ = [
    "AggregationResult",
    "BranchNode",
    "GroupNode",
    "LeafNode",
]


@dataclass(frozen=True)
class LeafNode:
    """Grouped total without a further grouping level."""

    key: str | None
    seconds: int
    cost: int
    description: str | None = None
    color: str | None = None

    grouped_type = None
    grouped_data = None

    def to_dict(self, *, show_cost: bool = True, with_descriptions: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "key": self.key,
            "seconds": self.seconds,
            "cost": self.cost if show_cost else None,
            "grouped_type": None,
            "grouped_data": None,
        }
        if with_descriptions:
            data["description"] = self.description
            data["color"] = self.color
        return data


@dataclass(frozen=True)
class BranchNode:
    """First-level node grouped again by a second dimension."""

    key: str | None
    seconds: int
    cost: int
    grouped_type: Dimension
    children: tuple[LeafNode, ...] = field(default_factory=tuple)
    description: str | None = None
    color: str | None = None

    @property
    def grouped_data(self) -> tuple[LeafNode, ...]:
        return self.children

    @classmethod
    def from_children(
        cls,
        key: str | None,
        grouped_type: Dimension,
        children: tuple[LeafNode, ...] | list[LeafNode],
    ) -> BranchNode:
        children = tuple(children)
        return cls(
            key=key,
            seconds=sum(child.seconds for child in children),
            cost=sum(child.cost for child in children),
            grouped_type=grouped_type,
            children=children,
        )

    def with_children(self, children: tuple[LeafNode, ...] | list[LeafNode]) -> BranchNode:
        """Replace children and re-fold totals from them."""
        children = tuple(children)
        return replace(
            self,
            children=children,
            seconds=sum(child.seconds for child in children),
            cost=sum(child.cost for child in children),
        )

    def to_dict(self, *, show_cost: bool = True, with_descriptions: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "key": self.key,
            "seconds": self.seconds,
            "cost": self.cost if show_cost else None,
            "grouped_type": self.grouped_type.value,
            "grouped_data": [
                child.to_dict(show_cost=show_cost, with_descriptions=with_descriptions)
                for child in self.children
            ],
        }
        if with_descriptions:
            data["description"] = self.description
            data["color"] = self.color
        return data


GroupNode = Union[LeafNode, BranchNode]


@dataclass(frozen=True)
class AggregationResult:
    """Root of an aggregation: the grand total over the filtered set.

    Attributes
    ----------
    grouped_type : Dimension | None
        First grouping dimension, None when ungrouped
    grouped_data : tuple | None
        First-level nodes, None when ungrouped
    show_cost : bool
        Whether cost is serialized (hidden costs serialize as null)
    with_descriptions : bool
        Whether descriptors were attached to grouped nodes
    """

    seconds: int
    cost: int
    grouped_type: Dimension | None = None
    grouped_data: tuple[GroupNode, ...] | None = None
    show_cost: bool = True
    with_descriptions: bool = False

    @classmethod
    def from_nodes(
        cls,
        grouped_type: Dimension,
        nodes: tuple[GroupNode, ...] | list[GroupNode],
        *,
        show_cost: bool = True,
    ) -> AggregationResult:
        nodes = tuple(nodes)
        return cls(
            seconds=sum(node.seconds for node in nodes),
            cost=sum(node.cost for node in nodes),
            grouped_type=grouped_type,
            grouped_data=nodes,
            show_cost=show_cost,
        )

    @property
    def keys(self) -> list[str | None]:
        """Keys of the first-level nodes, in order."""
        return [node.key for node in self.grouped_data or ()]

    def is_consistent(self) -> bool:
        """Check that every total equals the sum of its children."""
        if self.grouped_data is None:
            return True
        nodes = self.grouped_data
        if self.seconds != sum(n.seconds for n in nodes) or self.cost != sum(n.cost for n in nodes):
            return False
        for node in nodes:
            if isinstance(node, BranchNode):
                if node.seconds != sum(c.seconds for c in node.children):
                    return False
                if node.cost != sum(c.cost for c in node.children):
                    return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape."""
        grouped_data = None
        if self.grouped_data is not None:
            grouped_data = [
                node.to_dict(show_cost=self.show_cost, with_descriptions=self.with_descriptions)
                for node in self.grouped_data
            ]
        return {
            "seconds": self.seconds,
            "cost": self.cost if self.show_cost else None,
            "grouped_type": self.grouped_type.value if self.grouped_type is not None else None,
            "grouped_data": grouped_data,
        }

    def to_json(self) -> str:
        """Deterministic JSON representation."""
        return json.dumps(self.to_dict(), sort_keys=True)
