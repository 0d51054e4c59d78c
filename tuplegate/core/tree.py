"""
Turn a flat page of groups into a parent/child forest for hierarchical
responses.

Groups whose parent is not part of the page are returned as roots. This
happens when pagination (or the caller's visibility) cuts an ancestor out of
the page; the descendant is surfaced as an orphaned root rather than dropped
or treated as an error.
"""

from .group import GroupData


def build_group_tree(groups: list[GroupData]) -> list[GroupData]:
    """
    Assemble `groups` into a forest, preserving input order. The input models
    are not modified; copies with populated `children` are returned.
    """
    nodes: dict[str, GroupData] = {}
    # Keyed by group id, holds the children of that group.
    buckets: dict[str, list[GroupData]] = {}

    for group in groups:
        if group.group_id not in nodes:
            nodes[group.group_id] = group.model_copy(update={"children": []})
            buckets[group.group_id] = []

    for node in nodes.values():
        if node.parent_id is not None and node.parent_id in buckets:
            buckets[node.parent_id].append(node)

    for node in nodes.values():
        node.children = buckets[node.group_id]

    return [
        node
        for node in nodes.values()
        if node.parent_id is None or not buckets.get(node.parent_id)
    ]


def build_group_list(groups: list[GroupData]) -> list[GroupData]:
    """
    The flat counterpart of `build_group_tree`: every group once, in input
    order, with no children attached.
    """
    seen = set()
    flat = []

    for group in groups:
        if group.group_id in seen:
            continue
        seen.add(group.group_id)
        flat.append(group.model_copy(update={"children": []}))

    return flat
