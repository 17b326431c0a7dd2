"""
Group hierarchy building
Pure functions over already-loaded groups; no database access.
"""
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from app.models.group import Group, GroupType

logger = logging.getLogger(__name__)


@dataclass
class GroupNode:
    id: uuid.UUID
    name: str
    type: GroupType
    description: Optional[str]
    parent_group_id: Optional[uuid.UUID]
    leader_id: Optional[uuid.UUID]
    max_members: Optional[int]
    is_active: bool
    member_count: int = 0
    subgroup_count: int = 0
    children: list["GroupNode"] = field(default_factory=list)

    @classmethod
    def from_group(cls, group: Group, member_count: int, subgroup_count: int) -> "GroupNode":
        return cls(
            id=group.id,
            name=group.name,
            type=group.type,
            description=group.description,
            parent_group_id=group.parent_group_id,
            leader_id=group.leader_id,
            max_members=group.max_members,
            is_active=group.is_active,
            member_count=member_count,
            subgroup_count=subgroup_count,
        )


def build_group_forest(
    groups: Iterable[Group],
    member_counts: Mapping[uuid.UUID, int],
    root_parent_id: Optional[uuid.UUID] = None,
) -> list[GroupNode]:
    """
    Arrange groups into a forest, breadth first.

    Roots are the groups whose parent_group_id equals root_parent_id (None
    for top-level groups). Each group is placed at most once: a group
    reached a second time, which only happens when parent links form a
    cycle, is skipped. Groups not reachable from a root are left out.

    Args:
        groups: Groups of one tenant
        member_counts: Active membership count per group id
        root_parent_id: Parent whose direct children are the roots

    Returns:
        Root nodes sorted by name, children sorted by name
    """
    by_parent: dict[Optional[uuid.UUID], list[Group]] = {}
    for group in groups:
        by_parent.setdefault(group.parent_group_id, []).append(group)
    for siblings in by_parent.values():
        siblings.sort(key=lambda g: (g.name.lower(), str(g.id)))

    def make_node(group: Group) -> GroupNode:
        return GroupNode.from_group(
            group,
            member_count=member_counts.get(group.id, 0),
            subgroup_count=len(by_parent.get(group.id, ())),
        )

    visited: set[uuid.UUID] = set()
    forest: list[GroupNode] = []
    queue: deque[GroupNode] = deque()

    for group in by_parent.get(root_parent_id, []):
        if group.id in visited:
            continue
        visited.add(group.id)
        node = make_node(group)
        forest.append(node)
        queue.append(node)

    while queue:
        parent = queue.popleft()
        for child in by_parent.get(parent.id, []):
            if child.id in visited:
                logger.warning(f"Group hierarchy cycle detected at group {child.id}; skipping")
                continue
            visited.add(child.id)
            node = make_node(child)
            parent.children.append(node)
            queue.append(node)

    return forest


def would_create_cycle(
    parents: Mapping[uuid.UUID, Optional[uuid.UUID]],
    group_id: uuid.UUID,
    new_parent_id: Optional[uuid.UUID],
) -> bool:
    """
    True if making new_parent_id the parent of group_id closes a loop.

    Walks up from the new parent; the walk stops at a top-level group, at a
    group missing from `parents`, or at an already visited group (an
    existing cycle that does not involve group_id).

    Args:
        parents: Mapping of group id to its current parent id, for one tenant
        group_id: Group being re-parented
        new_parent_id: Proposed parent
    """
    current = new_parent_id
    visited: set[uuid.UUID] = set()
    while current is not None:
        if current == group_id:
            return True
        if current in visited:
            return False
        visited.add(current)
        current = parents.get(current)
    return False
