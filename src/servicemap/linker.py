"""
Service dependency links from span trees.

The tree of each trace is traversed breadth-first and only RPC spans produce links:

- SERVER span: callee is its service, caller its peer (the client). A root SERVER span
  without a known peer is skipped since its caller is uninstrumented and unnamed.
- CLIENT span: caller is its service, callee its peer. This accounts for uninstrumented
  services at the bottom of a trace.
- anything else is local work and never links.

When the caller is still unknown, ancestors are searched (nearest first) for a SERVER span;
its service is the caller. This bridges local spans that sit between a span and the RPC
that caused it.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from servicemap.model import AdaptedSpan, DependencyLink, Kind, RawSpan
from servicemap.observe import LinkObserver, LoggingObserver, SkipReason
from servicemap.preprocess import adapt_trace
from servicemap.tree import SpanTree, TreeBuilder, TreeNode


class DependencyLinker:
    """
    Accumulates (caller, callee) call counts over any number of traces.

    An instance owns its running counts and is meant for one worker: it is not safe to
    call submit_trace concurrently. Counts only grow; create a new instance to start over,
    and combine the snapshots of several instances with servicemap.aggregate.merge.
    """

    def __init__(self, observer: Optional[LinkObserver] = None):
        self.observer = observer or LoggingObserver()
        self._link_map: Dict[Tuple[str, str], int] = {}

    def put_trace(self, spans: Iterable[RawSpan]) -> "DependencyLinker":
        """Merge, adapt and submit the raw spans of one trace."""
        return self.submit_trace(adapt_trace(spans))

    def submit_trace(self, spans: Iterable[AdaptedSpan]) -> "DependencyLinker":
        """
        Add the links of one trace. Every span must carry the same trace id; this is not
        checked. Empty input leaves the counts untouched.
        """
        spans = list(spans)
        if not spans:
            return self

        builder: TreeBuilder[AdaptedSpan] = TreeBuilder(spans[0].trace_id, self.observer)
        for span in spans:
            builder.add_node(span.parent_id, span.id, span)
        tree = builder.build()

        for node in tree.traverse():
            pair = self._resolve(tree, node)
            if pair is None:
                continue
            self.observer.link_recorded(*pair)
            self._link_map[pair] = self._link_map.get(pair, 0) + 1
        return self

    def _resolve(self, tree: SpanTree, node: TreeNode) -> Optional[Tuple[str, str]]:
        if node.is_synthetic:
            self.observer.node_skipped(node, SkipReason.SYNTHETIC)
            return None

        span: AdaptedSpan = node.value
        if span.kind is Kind.SERVER:
            callee, caller = span.service, span.peer_service
            if caller is None and tree.is_root(node):
                self.observer.node_skipped(node, SkipReason.ROOT_PEER_UNKNOWN)
                return None
        elif span.kind is Kind.CLIENT:
            callee, caller = span.peer_service, span.service
        else:
            self.observer.node_skipped(node, SkipReason.NON_RPC)
            return None

        if caller is None:
            caller = _nearest_server_service(tree, node)

        if caller is None:
            self.observer.node_skipped(node, SkipReason.NO_CALLER)
            return None
        if callee is None:
            self.observer.node_skipped(node, SkipReason.NO_CALLEE)
            return None
        return caller, callee

    def link(self) -> List[DependencyLink]:
        """Current counts in first-seen order. Does not reset anything."""
        return [DependencyLink(parent, child, count) for (parent, child), count in self._link_map.items()]


def _nearest_server_service(tree: SpanTree, node: TreeNode) -> Optional[str]:
    for ancestor in tree.ancestors(node):
        if ancestor.is_synthetic:
            continue
        if ancestor.value.kind is Kind.SERVER:
            return ancestor.value.service
    return None
