"""
Span preprocessing: merge duplicate reports of one span id, then adapt to AdaptedSpan.

The same RPC is often reported twice under one span id: once by the client-side
instrumentation ('cs'/'cr') and once by the server-side one ('sr'/'ss'). Those records
are merged into one before adaptation.

Kind resolution when a merged span carries both client and server evidence:
server-side evidence wins. The span becomes SERVER owned by the 'sr'/'ss' service and
its peer is the client address ('ca') or, failing that, the 'cs'/'cr' service.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from servicemap.model import (
    CLIENT_ADDR,
    CLIENT_ANNOTATIONS,
    LOCAL_COMPONENT,
    SERVER_ADDR,
    SERVER_ANNOTATIONS,
    AdaptedSpan,
    Kind,
    RawSpan,
)


def _clean_service(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = str(name).strip()
    return name or None


def _is_placeholder_name(name: Optional[str]) -> bool:
    return not name or name == "unknown"


def _unique(items: Iterable) -> tuple:
    return tuple(dict.fromkeys(items))


def _merge_pair(left: RawSpan, right: RawSpan) -> RawSpan:
    parent_id = left.parent_id if left.parent_id is not None else right.parent_id
    name = right.name if _is_placeholder_name(left.name) and not _is_placeholder_name(right.name) else left.name

    starts = [s.timestamp for s in (left, right) if s.timestamp is not None]
    ends = [s.timestamp + s.duration for s in (left, right) if s.timestamp is not None and s.duration is not None]
    timestamp = min(starts) if starts else None
    duration = (max(ends) - timestamp) if (ends and timestamp is not None) else (left.duration or right.duration)

    annotations = _unique(left.annotations + right.annotations)
    # stable sort; annotations without a timestamp stay at the end
    annotations = tuple(sorted(annotations, key=lambda a: (a.timestamp is None, a.timestamp or 0)))

    return RawSpan(
        trace_id=left.trace_id,
        id=left.id,
        parent_id=parent_id,
        name=name,
        timestamp=timestamp,
        duration=duration,
        annotations=annotations,
        binary_annotations=_unique(left.binary_annotations + right.binary_annotations),
        debug=left.debug or right.debug,
    )


def merge_by_id(spans: Iterable[RawSpan]) -> List[RawSpan]:
    """
    Return exactly one record per span id, in order of first appearance.

    Merge rules: first known parent id, first meaningful name, earliest start, a duration
    covering every merged record, unioned annotations, and OR-ed debug flag.
    """
    merged: Dict[str, RawSpan] = {}
    for span in spans:
        seen = merged.get(span.id)
        merged[span.id] = span if seen is None else _merge_pair(seen, span)
    return list(merged.values())


def adapt(span: RawSpan) -> AdaptedSpan:
    """Derive kind, service and peer service from a (merged) span's annotations."""
    sr_service = cs_service = ca_service = sa_service = lc_service = any_service = None

    for a in span.annotations:
        service = _clean_service(a.service)
        if service is None:
            continue
        if a.value in SERVER_ANNOTATIONS and sr_service is None:
            sr_service = service
        elif a.value in CLIENT_ANNOTATIONS and cs_service is None:
            cs_service = service
        if any_service is None:
            any_service = service

    saw_server_addr = False
    for b in span.binary_annotations:
        service = _clean_service(b.service)
        if b.key == SERVER_ADDR:
            saw_server_addr = True
            if sa_service is None:
                sa_service = service
        elif b.key == CLIENT_ADDR and ca_service is None:
            ca_service = service
        elif b.key == LOCAL_COMPONENT and lc_service is None:
            lc_service = service

    if sr_service is not None:
        kind, service, peer = Kind.SERVER, sr_service, ca_service or cs_service
    elif cs_service is not None or saw_server_addr:
        kind, service, peer = Kind.CLIENT, cs_service or ca_service, sa_service
    else:
        kind, service, peer = Kind.OTHER, lc_service or any_service, None

    return AdaptedSpan(
        trace_id=span.trace_id,
        id=span.id,
        parent_id=span.parent_id,
        kind=kind,
        service=service,
        peer_service=peer,
    )


def adapt_trace(spans: Iterable[RawSpan]) -> List[AdaptedSpan]:
    return [adapt(s) for s in merge_by_id(spans)]
