"""
OTLP-JSON trace reader (compatible with the OpenTelemetry Collector 'file' exporter).

- Accepts files containing one or more concatenated JSON documents.
- Flattens Resource attributes and Span attributes.
- Normalizes span kinds to {'CLIENT','SERVER','PRODUCER','CONSUMER','INTERNAL','UNSPECIFIED'}.
- Returns RawSpan records whose annotations encode the span kind (see io.common.span_from_kind).

References:
  - OTLP JSON mapping (Protobuf JSON for TracesData)
  - OTel span kinds (CLIENT/SERVER/PRODUCER/CONSUMER)
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from servicemap.config import LinkerConfig
from servicemap.io.common import SpanFormatError, first_present, iter_json_documents, norm_id, span_from_kind
from servicemap.model import RawSpan


# --- Span kind normalization ----------------------------------------------------

_NUMERIC_KIND_TO_NAME = {
    0: "UNSPECIFIED",
    1: "INTERNAL",
    2: "SERVER",
    3: "CLIENT",
    4: "PRODUCER",
    5: "CONSUMER",
}

_STR_KIND_ALIASES = {
    "SPAN_KIND_UNSPECIFIED": "UNSPECIFIED",
    "SPAN_KIND_INTERNAL": "INTERNAL",
    "SPAN_KIND_SERVER": "SERVER",
    "SPAN_KIND_CLIENT": "CLIENT",
    "SPAN_KIND_PRODUCER": "PRODUCER",
    "SPAN_KIND_CONSUMER": "CONSUMER",
    # Sometimes exporters emit bare names:
    "UNSPECIFIED": "UNSPECIFIED",
    "INTERNAL": "INTERNAL",
    "SERVER": "SERVER",
    "CLIENT": "CLIENT",
    "PRODUCER": "PRODUCER",
    "CONSUMER": "CONSUMER",
}


def norm_span_kind(kind_value: Any) -> str:
    if isinstance(kind_value, int):
        return _NUMERIC_KIND_TO_NAME.get(kind_value, "UNSPECIFIED")
    if isinstance(kind_value, str):
        return _STR_KIND_ALIASES.get(kind_value.upper(), "UNSPECIFIED")
    return "UNSPECIFIED"


# --- Attribute flattening -------------------------------------------------------

def _attr_value_to_python(v: Any) -> Any:
    """
    Convert an OTel AttributeValue (oneof) to a native Python value.
    Example forms:
      {"stringValue": "checkout"}
      {"intValue": "1"}         # note: numbers often encoded as strings in JSON
      {"boolValue": true}
      {"arrayValue": {"values": [ ... ]}}
    """
    if not isinstance(v, dict):
        return v
    if "stringValue" in v:
        return v["stringValue"]
    if "boolValue" in v:
        return bool(v["boolValue"])
    if "intValue" in v:
        try:
            return int(v["intValue"])
        except (TypeError, ValueError):
            return v["intValue"]
    if "doubleValue" in v:
        try:
            return float(v["doubleValue"])
        except (TypeError, ValueError):
            return v["doubleValue"]
    if "arrayValue" in v and isinstance(v["arrayValue"], dict):
        return [_attr_value_to_python(item) for item in v["arrayValue"].get("values", [])]
    if "kvlistValue" in v and isinstance(v["kvlistValue"], dict):
        return {kv.get("key"): _attr_value_to_python(kv.get("value")) for kv in v["kvlistValue"].get("values", [])}
    return v


def flatten_attributes(attrs: Any) -> Dict[str, Any]:
    """
    Handle both canonical list-of-kv and already-flattened dict forms.
    """
    flat: Dict[str, Any] = {}
    if isinstance(attrs, list):
        for item in attrs:
            k = item.get("key")
            if k is not None:
                flat[k] = _attr_value_to_python(item.get("value"))
    elif isinstance(attrs, dict):
        flat.update(attrs)
    return flat


def _extract_service_name(resource: Dict[str, Any], default_attr: str = "service.name") -> Optional[str]:
    attrs = flatten_attributes(resource.get("attributes", {}))
    for key in (default_attr, "service"):
        if key in attrs and isinstance(attrs[key], (str, int, float, bool)) and str(attrs[key]).strip():
            return str(attrs[key])
    return None


def _parse_unix_nano(value: Any) -> Optional[int]:
    """
    Convert Protobuf-JSON representations of time (int or str-encoded int) to nanoseconds.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


# --- Public API ----------------------------------------------------------------

def read_otlp_json(path: Path, config: Optional[LinkerConfig] = None) -> List[RawSpan]:
    """
    Read an OTLP-JSON file (Collector 'file' exporter) into RawSpan records.

    The resource attribute config.service_attr_key names the owning service and the first
    present span attribute among config.peer_service_keys names the remote peer.
    """
    config = config or LinkerConfig()
    spans: List[RawSpan] = []

    for doc in iter_json_documents(Path(path)):
        docs = doc if isinstance(doc, list) else [doc]
        for d in docs:
            if not isinstance(d, dict) or "resourceSpans" not in d:
                raise SpanFormatError(f"{path}: expected OTLP TracesData documents with 'resourceSpans'")
            for r in d.get("resourceSpans") or []:
                service_name = _extract_service_name(r.get("resource", {}), default_attr=config.service_attr_key)
                scope_spans = r.get("scopeSpans") or r.get("instrumentationLibrarySpans") or []
                for s in scope_spans:
                    for sp in s.get("spans", []):
                        spans.append(_to_raw_span(sp, service_name, config))
    return spans


def _to_raw_span(sp: Dict[str, Any], service_name: Optional[str], config: LinkerConfig) -> RawSpan:
    attrs = flatten_attributes(sp.get("attributes", {}))
    start_ns = _parse_unix_nano(sp.get("startTimeUnixNano"))
    end_ns = _parse_unix_nano(sp.get("endTimeUnixNano"))
    start_us = start_ns // 1000 if start_ns else None
    duration_us = (end_ns - start_ns) // 1000 if (end_ns and start_ns) else None

    return span_from_kind(
        trace_id=norm_id(sp.get("traceId")) or "",
        span_id=norm_id(sp.get("spanId")) or "",
        parent_id=norm_id(sp.get("parentSpanId")),
        name=sp.get("name"),
        kind=norm_span_kind(sp.get("kind")),
        service=service_name,
        peer_service=first_present(attrs, config.peer_service_keys),
        start_us=start_us,
        duration_us=duration_us,
        messaging_as_rpc=config.messaging_as_rpc,
    )
