from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

from servicemap.config import LinkerConfig
from servicemap.io.common import SpanFormatError, group_by_trace, iter_json_documents
from servicemap.io.jaeger_json import read_jaeger_json
from servicemap.io.otlp_json import read_otlp_json
from servicemap.io.zipkin_json import read_zipkin_json
from servicemap.model import RawSpan

FORMATS = ("auto", "otlp", "jaeger", "zipkin")

__all__ = [
    "FORMATS",
    "SpanFormatError",
    "detect_format",
    "group_by_trace",
    "read_jaeger_json",
    "read_otlp_json",
    "read_spans",
    "read_zipkin_json",
]


def _sniff(doc: Any) -> Optional[str]:
    if isinstance(doc, list):
        return _sniff(doc[0]) if doc else "zipkin"
    if not isinstance(doc, dict):
        return None
    if "resourceSpans" in doc:
        return "otlp"
    if "data" in doc or ("spans" in doc and "processes" in doc):
        return "jaeger"
    if "traceId" in doc and "id" in doc:
        return "zipkin"
    return None


def detect_format(path: Path) -> str:
    for doc in iter_json_documents(Path(path)):
        fmt = _sniff(doc)
        if fmt is None:
            break
        return fmt
    raise SpanFormatError(f"{path}: cannot detect trace format (expected OTLP, Jaeger or Zipkin v1 JSON)")


def read_spans(path: Path, fmt: str = "auto", config: Optional[LinkerConfig] = None) -> List[RawSpan]:
    fmt = fmt.lower()
    if fmt == "auto":
        fmt = detect_format(path)
    if fmt == "otlp":
        return read_otlp_json(path, config)
    if fmt == "jaeger":
        return read_jaeger_json(path, config)
    if fmt == "zipkin":
        return read_zipkin_json(path)
    raise SpanFormatError(f"unknown trace format {fmt!r}; expected one of {', '.join(FORMATS)}")
