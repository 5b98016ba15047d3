"""Human-readable descriptors for grouped keys.

Keys of categorical groups are ids; reports show names (and project
colors) next to them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace

from .dimensions import Dimension
from .result import AggregationResult, BranchNode, GroupNode, LeafNode

__all__ = ["Descriptor", "DescriptorLoader", "describe", "static_descriptors"]


@dataclass(frozen=True)
class Descriptor:
    description: str
    color: str | None = None


DescriptorLoader = Callable[[Dimension, list[str]], Mapping[str, Descriptor]]


def static_descriptors(dimension: Dimension, keys: Iterable[str]) -> dict[str, Descriptor] | None:
    """Descriptors that need no lookup, or None if the dimension needs one."""
    if dimension is Dimension.BILLABLE:
        return {key: Descriptor("Non-billable" if key == "0" else "Billable") for key in keys}
    if dimension is Dimension.DESCRIPTION:
        return {key: Descriptor(key) for key in keys}
    if dimension.is_temporal:
        return {}
    return None


def _load(dimension: Dimension | None, keys: Iterable[str | None], loader: DescriptorLoader) -> Mapping[str, Descriptor]:
    if dimension is None:
        return {}
    wanted = sorted({key for key in keys if key is not None})
    static = static_descriptors(dimension, wanted)
    if static is not None:
        return static
    if not wanted:
        return {}
    return loader(dimension, wanted)


def _apply(node: GroupNode, descriptors: Mapping[str, Descriptor]) -> GroupNode:
    descriptor = descriptors.get(node.key) if node.key is not None else None
    if descriptor is None:
        return node
    return replace(node, description=descriptor.description, color=descriptor.color)


def describe(result: AggregationResult, loader: DescriptorLoader) -> AggregationResult:
    """Attach descriptors to every grouped node.

    Parameters
    ----------
    result
        Aggregation result
    loader
        Looks up descriptors for ids of a categorical dimension

    Returns
    -------
    AggregationResult
        Same tree, serialized with ``description`` and ``color``
    """
    if result.grouped_data is None:
        return replace(result, with_descriptions=True)

    group2 = next(
        (node.grouped_type for node in result.grouped_data if isinstance(node, BranchNode)),
        None,
    )
    first_level = _load(result.grouped_type, (node.key for node in result.grouped_data), loader)
    second_level = _load(
        group2,
        (child.key for node in result.grouped_data if isinstance(node, BranchNode) for child in node.children),
        loader,
    )

    nodes: list[GroupNode] = []
    for node in result.grouped_data:
        described = _apply(node, first_level)
        if isinstance(described, BranchNode):
            children: list[LeafNode] = [_apply(child, second_level) for child in described.children]  # type: ignore[misc]
            described = replace(described, children=tuple(children))
        nodes.append(described)

    return replace(result, grouped_data=tuple(nodes), with_descriptions=True)
