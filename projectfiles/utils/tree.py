"""In-memory index over a snapshot of one project's nodes"""
from collections import deque
from typing import Dict, Iterable, List, Optional

from projectfiles.core.exceptions import InvalidStateError


class TreeIndex:
    """
    Parent/child lookups over a list of nodes.

    Nodes only need ``id``, ``parent_id`` and ``name``. Ancestor
    chains and display paths are memoized; build a new index after the tree
    changes.
    """

    def __init__(self, nodes: Iterable):
        self.nodes: Dict[str, object] = {}
        self.children: Dict[Optional[str], List[object]] = {}
        for node in nodes:
            self.nodes[node.id] = node
            self.children.setdefault(node.parent_id, []).append(node)
        self._ancestors: Dict[str, List[str]] = {}
        self._paths: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id) -> bool:
        return node_id in self.nodes

    def ancestor_ids(self, node_id: str) -> List[str]:
        """Ids of every folder above node_id, nearest first"""
        if node_id in self._ancestors:
            return self._ancestors[node_id]

        chain: List[str] = []
        seen = {node_id}
        node = self.nodes.get(node_id)
        parent_id = node.parent_id if node else None
        while parent_id and parent_id in self.nodes:
            if parent_id in seen:
                raise InvalidStateError(f"Cycle detected in tree at node {parent_id}")
            seen.add(parent_id)
            if parent_id in self._ancestors:
                chain.append(parent_id)
                chain.extend(self._ancestors[parent_id])
                break
            chain.append(parent_id)
            parent_id = self.nodes[parent_id].parent_id

        self._ancestors[node_id] = chain
        return chain

    def is_descendant(self, node_id: str, ancestor_id: str) -> bool:
        """True when ancestor_id lies on node_id's parent chain"""
        return ancestor_id in self.ancestor_ids(node_id)

    def descendant_ids(self, node_id: str) -> List[str]:
        """Ids of every node below node_id, breadth first"""
        result: List[str] = []
        seen = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for child in self.children.get(current, []):
                if child.id in seen:
                    raise InvalidStateError(f"Cycle detected in tree at node {child.id}")
                seen.add(child.id)
                result.append(child.id)
                queue.append(child.id)
        return result

    def path(self, node_id: str, separator: str = "/") -> str:
        """Display path from the root, e.g. 'Documents/Contracts/v2.pdf'"""
        cache_key = f"{separator}{node_id}"
        if cache_key in self._paths:
            return self._paths[cache_key]
        names = [self.nodes[i].name for i in reversed(self.ancestor_ids(node_id))]
        names.append(self.nodes[node_id].name)
        result = separator.join(names)
        self._paths[cache_key] = result
        return result

    def breadcrumb(self, node_id: str) -> list:
        """Nodes from the root down to node_id"""
        ids = list(reversed(self.ancestor_ids(node_id))) + [node_id]
        return [self.nodes[i] for i in ids]
