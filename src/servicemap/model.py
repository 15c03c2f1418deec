"""
Span and link records shared by the readers, the linker and the writers.

RawSpan follows the annotation vocabulary of Zipkin v1 spans:
  - annotations 'cs'/'cr' (client send/receive) and 'sr'/'ss' (server receive/send)
    are timing markers whose endpoint service owns that side of the RPC.
  - binary annotations 'ca'/'sa' (client/server address) name the remote endpoint,
    'lc' (local component) marks in-process work.

Readers for other formats (OTLP, Jaeger) translate their span kinds into this vocabulary
so that a single adaptation step derives AdaptedSpan.kind/service/peer_service.
"""
from __future__ import annotations

import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


CLIENT_SEND = "cs"
CLIENT_RECV = "cr"
SERVER_RECV = "sr"
SERVER_SEND = "ss"
CLIENT_ADDR = "ca"
SERVER_ADDR = "sa"
LOCAL_COMPONENT = "lc"

CLIENT_ANNOTATIONS = frozenset({CLIENT_SEND, CLIENT_RECV})
SERVER_ANNOTATIONS = frozenset({SERVER_RECV, SERVER_SEND})


class Kind(Enum):
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Annotation:
    timestamp: Optional[int]
    value: str
    service: Optional[str] = None


@dataclass(frozen=True)
class BinaryAnnotation:
    key: str
    value: Any = True
    service: Optional[str] = None


@dataclass(frozen=True)
class RawSpan:
    trace_id: str
    id: str
    parent_id: Optional[str] = None
    name: Optional[str] = None
    timestamp: Optional[int] = None  # microseconds since epoch
    duration: Optional[int] = None  # microseconds
    annotations: Tuple[Annotation, ...] = ()
    binary_annotations: Tuple[BinaryAnnotation, ...] = ()
    debug: bool = False


@dataclass(frozen=True)
class AdaptedSpan:
    """The minimal view of a span the linker needs."""

    trace_id: str
    id: str
    parent_id: Optional[str]
    kind: Kind
    service: Optional[str] = None
    peer_service: Optional[str] = None


@dataclass(frozen=True)
class DependencyLink:
    """Directed caller -> callee edge weighted by the number of observed calls."""

    parent: str
    child: str
    call_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"parent": self.parent, "child": self.child, "callCount": self.call_count}

    @classmethod
    def checked(cls, parent: Any, child: Any, count: Any) -> "DependencyLink":
        """Build a link from file input; raises ValueError on a blank name or a non-count."""
        for field, name in (("parent", parent), ("child", child)):
            if not isinstance(name, str) or not name:
                raise ValueError(f"{field} must be a non-empty service name, got {name!r}")
        if isinstance(count, bool) or not isinstance(count, numbers.Real) or not float(count).is_integer():
            raise ValueError(f"callCount must be an integer, got {count!r}")
        if count < 0:
            raise ValueError(f"callCount must not be negative, got {count!r}")
        return cls(parent=parent, child=child, call_count=int(count))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DependencyLink":
        count = d.get("callCount", d.get("call_count", 0))
        return cls.checked(d.get("parent"), d.get("child"), count)
