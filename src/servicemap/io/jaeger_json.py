"""
Jaeger query-API JSON reader.

Accepts the /api/traces response ({"data": [trace, ...]}), a bare list of traces, or a
single trace object, each trace carrying "spans" and "processes".
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from servicemap.config import LinkerConfig
from servicemap.io.common import SpanFormatError, first_present, iter_json_documents, norm_id, span_from_kind
from servicemap.model import RawSpan


def _iter_traces(doc: Any) -> Iterable[Dict[str, Any]]:
    if isinstance(doc, dict) and "data" in doc:
        doc = doc.get("data") or []
    if isinstance(doc, dict):
        doc = [doc]
    if not isinstance(doc, list):
        raise SpanFormatError("expected Jaeger traces with 'spans' and 'processes'")
    for trace in doc:
        if not isinstance(trace, dict) or "spans" not in trace:
            raise SpanFormatError("expected Jaeger traces with 'spans' and 'processes'")
        yield trace


def _parent_of(span: Dict[str, Any]) -> Optional[str]:
    for ref in span.get("references", []) or []:
        if ref.get("refType") == "CHILD_OF":
            return norm_id(ref.get("spanID"))
    return norm_id(span.get("parentSpanID"))


def flatten_jaeger(data: Any, config: Optional[LinkerConfig] = None) -> List[RawSpan]:
    config = config or LinkerConfig()
    out: List[RawSpan] = []
    for trace in _iter_traces(data):
        procs = trace.get("processes", {}) or {}
        for s in trace.get("spans", []):
            proc = procs.get(s.get("processID"), {}) or {}
            tags = {t.get("key"): t.get("value") for t in s.get("tags", []) or [] if "key" in t}
            out.append(
                span_from_kind(
                    trace_id=norm_id(s.get("traceID")) or "",
                    span_id=norm_id(s.get("spanID")) or "",
                    parent_id=_parent_of(s),
                    name=s.get("operationName"),
                    kind=str(tags.get("span.kind", "")),
                    service=proc.get("serviceName"),
                    peer_service=first_present(tags, config.peer_service_keys),
                    start_us=s.get("startTime"),
                    duration_us=s.get("duration"),
                    messaging_as_rpc=config.messaging_as_rpc,
                )
            )
    return out


def read_jaeger_json(path: Path, config: Optional[LinkerConfig] = None) -> List[RawSpan]:
    spans: List[RawSpan] = []
    for doc in iter_json_documents(Path(path)):
        try:
            spans.extend(flatten_jaeger(doc, config))
        except SpanFormatError as exc:
            raise SpanFormatError(f"{path}: {exc}") from exc
    return spans
