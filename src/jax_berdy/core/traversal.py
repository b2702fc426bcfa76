"""Breadth-first traversal of the link/joint tree from a chosen base link."""

from collections import deque
from dataclasses import dataclass
from typing import List, Tuple

from .robot_model import RobotModel


@dataclass(frozen=True)
class Traversal:
    """Visit order of the links of a model, rooted at ``base``.

    Attributes:
        base: Index of the base link.
        order: Link indices in visit order; every link comes after its parent.
        parent_links: Parent link of every link (indexed by link), -1 for the base.
        parent_joints: Joint connecting every link to its parent, -1 for the base.
        child_links: Children of every link (indexed by link), in visit order.
    """
    base: int
    order: Tuple[int, ...]
    parent_links: Tuple[int, ...]
    parent_joints: Tuple[int, ...]
    child_links: Tuple[Tuple[int, ...], ...]

    def __len__(self) -> int:
        return len(self.order)

    def is_base(self, link: int) -> bool:
        return link == self.base


def compute_traversal(model: RobotModel, base_link: int) -> Traversal:
    """Compute the BFS traversal of ``model`` rooted at ``base_link``.

    Raises:
        ValueError: if the base link does not exist or the links do not form a
            single connected tree.
    """
    num_links = model.nr_of_links
    if not 0 <= base_link < num_links:
        raise ValueError(f"Base link index {base_link} out of range for {num_links} links")

    adjacency: List[List[Tuple[int, int]]] = [[] for _ in range(num_links)]
    for joint, (parent, child) in enumerate(zip(model.joint_parents, model.joint_children)):
        adjacency[parent].append((joint, child))
        adjacency[child].append((joint, parent))

    parent_links = [-1] * num_links
    parent_joints = [-1] * num_links
    child_links: List[List[int]] = [[] for _ in range(num_links)]
    order = []
    visited = {base_link}
    queue = deque([base_link])

    while queue:
        current = queue.popleft()
        order.append(current)

        for joint, neighbor in adjacency[current]:
            if neighbor in visited:
                if joint != parent_joints[current]:
                    raise ValueError(f"Joint '{model.joint_names[joint]}' closes a kinematic loop")
                continue
            visited.add(neighbor)
            parent_links[neighbor] = current
            parent_joints[neighbor] = joint
            child_links[current].append(neighbor)
            queue.append(neighbor)

    if len(order) != num_links:
        missing = sorted(set(range(num_links)) - visited)
        raise ValueError(f"Links {[model.link_names[i] for i in missing]} are not connected to the base")

    return Traversal(
        base=base_link,
        order=tuple(order),
        parent_links=tuple(parent_links),
        parent_joints=tuple(parent_joints),
        child_links=tuple(tuple(children) for children in child_links),
    )
