"""
Tolerant span-tree construction.

Nodes are registered as (parent_id, id, value) in any order. build() always returns a
single rooted tree:

- exactly one parentless node and nothing dangling → that node is the root;
- otherwise a synthetic root (no value) is inserted and every parentless node, every
  orphan (parent id never registered, or equal to its own id) and the first-registered
  member of each parent cycle become its children.

Nodes live in a flat arena and refer to their parent and children by index.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

from servicemap.observe import LinkObserver

V = TypeVar("V")


@dataclass(frozen=True)
class Real(Generic[V]):
    value: V


class _Synthetic:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SYNTHETIC"


SYNTHETIC = _Synthetic()

Content = Union[Real, _Synthetic]


@dataclass
class TreeNode:
    index: int
    content: Content
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)

    @property
    def is_synthetic(self) -> bool:
        return self.content is SYNTHETIC

    @property
    def value(self) -> Any:
        return self.content.value if isinstance(self.content, Real) else None


class SpanTree:
    """Read-only tree over an index-addressed node arena; the root is always index 0."""

    def __init__(self, nodes: List[TreeNode]):
        if not nodes:
            raise ValueError("a tree needs at least a root node")
        self._nodes = nodes

    @property
    def root(self) -> TreeNode:
        return self._nodes[0]

    def __len__(self) -> int:
        return len(self._nodes)

    def is_root(self, node: TreeNode) -> bool:
        return node.index == 0

    def parent(self, node: TreeNode) -> Optional[TreeNode]:
        return None if node.parent is None else self._nodes[node.parent]

    def children(self, node: TreeNode) -> List[TreeNode]:
        return [self._nodes[i] for i in node.children]

    def ancestors(self, node: TreeNode) -> Iterator[TreeNode]:
        """Nearest first, ending at the root."""
        current = self.parent(node)
        while current is not None:
            yield current
            current = self.parent(current)

    def traverse(self) -> Iterator[TreeNode]:
        """Breadth-first from the root. Single pass: call again for a fresh walk."""
        queue = deque([0])
        while queue:
            node = self._nodes[queue.popleft()]
            yield node
            queue.extend(node.children)


class TreeBuilder(Generic[V]):
    def __init__(self, trace_id: Optional[str] = None, observer: Optional[LinkObserver] = None):
        self.trace_id = trace_id
        self.observer = observer or LinkObserver()
        self._entries: Dict[str, Tuple[Optional[str], V]] = {}

    def add_node(self, parent_id: Optional[str], id: str, value: V) -> bool:
        """Register a node; returns False (and keeps the first one) when the id was seen before."""
        if id in self._entries:
            self.observer.duplicate_span(self.trace_id, id)
            return False
        self._entries[id] = (parent_id, value)
        return True

    def build(self) -> SpanTree:
        ids = list(self._entries)
        position = {span_id: i for i, span_id in enumerate(ids)}

        parents: List[Optional[int]] = []
        headless: List[int] = []
        n_roots = 0
        for i, span_id in enumerate(ids):
            parent_id = self._entries[span_id][0]
            if parent_id is None:
                n_roots += 1
                parents.append(None)
                headless.append(i)
            elif parent_id == span_id or parent_id not in position:
                parents.append(None)
                headless.append(i)
            else:
                parents.append(position[parent_id])

        children: List[List[int]] = [[] for _ in ids]
        for i, p in enumerate(parents):
            if p is not None:
                children[p].append(i)

        # nodes not reachable from any headless node sit on a parent cycle
        reached = [False] * len(ids)

        def _mark(start: int) -> None:
            queue = deque([start])
            while queue:
                i = queue.popleft()
                if reached[i]:
                    continue
                reached[i] = True
                queue.extend(children[i])

        for i in headless:
            _mark(i)
        for i in range(len(ids)):
            if reached[i]:
                continue
            self.observer.cycle_broken(self.trace_id, ids[i])
            children[parents[i]].remove(i)
            parents[i] = None
            headless.append(i)
            _mark(i)

        if n_roots == 1 and len(headless) == 1:
            root = headless[0]
            order = [root] + [i for i in range(len(ids)) if i != root]
            return SpanTree(self._arena(ids, order, parents, children, synthetic_children=None))

        headless.sort()
        self.observer.synthetic_root(self.trace_id, len(headless))
        order = list(range(len(ids)))
        return SpanTree(self._arena(ids, order, parents, children, synthetic_children=headless))

    def _arena(self, ids, order, parents, children, synthetic_children) -> List[TreeNode]:
        # the root always lands at index 0: either the synthetic node or order[0]
        offset = 0 if synthetic_children is None else 1
        slot = {i: pos + offset for pos, i in enumerate(order)}

        nodes: List[TreeNode] = []
        if synthetic_children is not None:
            nodes.append(TreeNode(index=0, content=SYNTHETIC, children=[slot[i] for i in synthetic_children]))
        for i in order:
            if parents[i] is not None:
                parent = slot[parents[i]]
            elif synthetic_children is not None:
                parent = 0
            else:
                parent = None
            nodes.append(
                TreeNode(
                    index=slot[i],
                    content=Real(self._entries[ids[i]][1]),
                    parent=parent,
                    children=[slot[c] for c in children[i]],
                )
            )
        return nodes
