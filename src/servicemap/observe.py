"""
Observation hooks for tree building and link inference.

The linker never logs or branches on diagnostics itself: it reports each decision to a
LinkObserver. The default LoggingObserver writes them at DEBUG level.
"""
from __future__ import annotations

import logging
import threading
from collections import Counter
from enum import Enum
from typing import Optional

logger = logging.getLogger("servicemap.linker")


class SkipReason(Enum):
    SYNTHETIC = "synthetic node for broken span tree"
    ROOT_PEER_UNKNOWN = "root's peer is unknown"
    NON_RPC = "non-rpc span"
    NO_CALLER = "cannot find server ancestor"
    NO_CALLEE = "callee is unknown"


class LinkObserver:
    """No-op base; override the hooks you care about."""

    def duplicate_span(self, trace_id: Optional[str], span_id: str) -> None:
        pass

    def synthetic_root(self, trace_id: Optional[str], n_children: int) -> None:
        pass

    def cycle_broken(self, trace_id: Optional[str], span_id: str) -> None:
        pass

    def node_skipped(self, node, reason: SkipReason) -> None:
        pass

    def link_recorded(self, caller: str, callee: str) -> None:
        pass


class LoggingObserver(LinkObserver):
    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def duplicate_span(self, trace_id, span_id):
        self.log.debug("trace %s: skipping duplicate span %s", trace_id, span_id)

    def synthetic_root(self, trace_id, n_children):
        self.log.debug("trace %s: attaching %d headless subtrees to a synthetic root", trace_id, n_children)

    def cycle_broken(self, trace_id, span_id):
        self.log.debug("trace %s: span %s is part of a parent cycle; detaching it", trace_id, span_id)

    def node_skipped(self, node, reason):
        self.log.debug("skipping %r: %s", node.content, reason.value)

    def link_recorded(self, caller, callee):
        self.log.debug("incrementing link %s -> %s", caller, callee)


class CountingObserver(LinkObserver):
    """Tallies skip reasons and structural repairs; may be shared by partition workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.skipped: Counter = Counter()
        self.duplicates = 0
        self.synthetic_roots = 0
        self.cycles = 0
        self.links = 0

    def duplicate_span(self, trace_id, span_id):
        with self._lock:
            self.duplicates += 1

    def synthetic_root(self, trace_id, n_children):
        with self._lock:
            self.synthetic_roots += 1

    def cycle_broken(self, trace_id, span_id):
        with self._lock:
            self.cycles += 1

    def node_skipped(self, node, reason):
        with self._lock:
            self.skipped[reason] += 1

    def link_recorded(self, caller, callee):
        with self._lock:
            self.links += 1
