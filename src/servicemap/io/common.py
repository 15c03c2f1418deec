"""
Helpers shared by the trace readers.

- JSON document iteration tolerant of concatenated documents and NDJSON.
- Translation of an explicit span kind (OTLP/Jaeger style) into RawSpan annotations.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional

import orjson

from servicemap.model import (
    CLIENT_ADDR,
    CLIENT_RECV,
    CLIENT_SEND,
    LOCAL_COMPONENT,
    SERVER_ADDR,
    SERVER_RECV,
    SERVER_SEND,
    Annotation,
    BinaryAnnotation,
    RawSpan,
)


class SpanFormatError(ValueError):
    pass


def iter_json_documents(path: Path) -> Generator[Any, None, None]:
    """
    Yield one JSON value at a time from a file that holds either:
      - a single JSON document, or
      - multiple concatenated JSON documents (no commas between), or
      - one JSON document per line (NDJSON-like).
    """
    data = path.read_bytes()

    # Fast path: a single document.
    try:
        yield orjson.loads(data)
        return
    except orjson.JSONDecodeError:
        pass

    # Fallback: peel off one object at a time.
    txt = data.decode("utf-8", errors="ignore")
    dec = json.JSONDecoder()
    i = 0
    n = len(txt)
    while i < n:
        while i < n and txt[i].isspace():
            i += 1
        if i >= n:
            break
        try:
            obj, end = dec.raw_decode(txt, i)
        except json.JSONDecodeError as exc:
            raise SpanFormatError(f"{path}: invalid JSON at offset {i}: {exc.msg}") from exc
        yield obj
        i = end


def norm_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip().lower()
    # all-zero ids mean "no parent" in several exporters
    if not s or set(s) == {"0"}:
        return None
    return s


def span_from_kind(
    *,
    trace_id: str,
    span_id: str,
    parent_id: Optional[str],
    name: Optional[str],
    kind: str,
    service: Optional[str],
    peer_service: Optional[str],
    start_us: Optional[int],
    duration_us: Optional[int],
    messaging_as_rpc: bool = False,
) -> RawSpan:
    """
    Express an explicitly-kinded span with annotations:
      SERVER → 'sr'/'ss' by the service, 'ca' naming the peer
      CLIENT → 'cs'/'cr' by the service, 'sa' naming the peer
      other  → 'lc' by the service
    PRODUCER/CONSUMER count as CLIENT/SERVER only when messaging_as_rpc is set.
    """
    kind = (kind or "").upper()
    if messaging_as_rpc:
        kind = {"PRODUCER": "CLIENT", "CONSUMER": "SERVER"}.get(kind, kind)

    end_us = start_us + duration_us if (start_us is not None and duration_us is not None) else None
    annotations: List[Annotation] = []
    binary: List[BinaryAnnotation] = []

    if kind == "SERVER":
        annotations = [Annotation(start_us, SERVER_RECV, service), Annotation(end_us, SERVER_SEND, service)]
        if peer_service:
            binary.append(BinaryAnnotation(CLIENT_ADDR, True, peer_service))
    elif kind == "CLIENT":
        annotations = [Annotation(start_us, CLIENT_SEND, service), Annotation(end_us, CLIENT_RECV, service)]
        if peer_service:
            binary.append(BinaryAnnotation(SERVER_ADDR, True, peer_service))
    else:
        binary.append(BinaryAnnotation(LOCAL_COMPONENT, name or "", service))

    return RawSpan(
        trace_id=trace_id,
        id=span_id,
        parent_id=parent_id,
        name=name,
        timestamp=start_us,
        duration=duration_us,
        annotations=tuple(annotations),
        binary_annotations=tuple(binary),
    )


def first_present(attrs: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = attrs.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def group_by_trace(spans: Iterable[RawSpan]) -> Dict[str, List[RawSpan]]:
    """Spans bucketed by trace id, traces in first-seen order."""
    traces: Dict[str, List[RawSpan]] = {}
    for span in spans:
        traces.setdefault(span.trace_id, []).append(span)
    return traces
