"""
Zipkin v1 JSON reader.

Accepts a list of spans (POST /api/v1/spans body), a list of traces (GET /api/v1/traces
response), or NDJSON with one span per line. Annotations and binary annotations are kept
as-is: they already carry the 'cs'/'sr'/'ca'/'sa' vocabulary the adapter understands.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from servicemap.io.common import SpanFormatError, iter_json_documents, norm_id
from servicemap.model import Annotation, BinaryAnnotation, RawSpan


def _endpoint_service(obj: Dict[str, Any]) -> Optional[str]:
    endpoint = obj.get("endpoint") or {}
    name = endpoint.get("serviceName")
    # Zipkin v1 lower-cases service names on ingest
    return str(name).lower() if name else None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _iter_span_dicts(doc: Any) -> Iterable[Dict[str, Any]]:
    items = doc if isinstance(doc, list) else [doc]
    for item in items:
        if isinstance(item, list):
            yield from _iter_span_dicts(item)
        elif isinstance(item, dict) and "traceId" in item and "id" in item:
            yield item
        else:
            raise SpanFormatError("expected Zipkin v1 spans with 'traceId' and 'id'")


def parse_zipkin_span(d: Dict[str, Any]) -> RawSpan:
    annotations = tuple(
        Annotation(_to_int(a.get("timestamp")), str(a.get("value")), _endpoint_service(a))
        for a in d.get("annotations") or []
    )
    binary = tuple(
        BinaryAnnotation(str(b.get("key")), _hashable(b.get("value")), _endpoint_service(b))
        for b in d.get("binaryAnnotations") or []
    )
    return RawSpan(
        trace_id=norm_id(d.get("traceId")) or "",
        id=norm_id(d.get("id")) or "",
        parent_id=norm_id(d.get("parentId")),
        name=d.get("name"),
        timestamp=_to_int(d.get("timestamp")),
        duration=_to_int(d.get("duration")),
        annotations=annotations,
        binary_annotations=binary,
        debug=bool(d.get("debug", False)),
    )


def _hashable(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return str(value)
    return value


def read_zipkin_json(path: Path) -> List[RawSpan]:
    spans: List[RawSpan] = []
    for doc in iter_json_documents(Path(path)):
        try:
            spans.extend(parse_zipkin_span(d) for d in _iter_span_dicts(doc))
        except SpanFormatError as exc:
            raise SpanFormatError(f"{path}: {exc}") from exc
    return spans
