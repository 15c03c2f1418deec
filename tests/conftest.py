from __future__ import annotations

from typing import Optional

import orjson
import pytest

from servicemap.model import AdaptedSpan, Annotation, BinaryAnnotation, Kind, RawSpan

TRACE = "t1"


def server(id: str, service: Optional[str], peer: Optional[str] = None, parent: Optional[str] = None,
           trace: str = TRACE) -> AdaptedSpan:
    return AdaptedSpan(trace, id, parent, Kind.SERVER, service, peer)


def client(id: str, service: Optional[str], peer: Optional[str] = None, parent: Optional[str] = None,
           trace: str = TRACE) -> AdaptedSpan:
    return AdaptedSpan(trace, id, parent, Kind.CLIENT, service, peer)


def local(id: str, service: Optional[str] = None, parent: Optional[str] = None, trace: str = TRACE) -> AdaptedSpan:
    return AdaptedSpan(trace, id, parent, Kind.OTHER, service, None)


def raw(id: str, parent: Optional[str] = None, annotations=(), binary=(), trace: str = TRACE, **kw) -> RawSpan:
    return RawSpan(
        trace_id=trace,
        id=id,
        parent_id=parent,
        annotations=tuple(Annotation(ts, value, svc) for ts, value, svc in annotations),
        binary_annotations=tuple(BinaryAnnotation(key, True, svc) for key, svc in binary),
        **kw,
    )


def pairs(links):
    return [(link.parent, link.child, link.call_count) for link in links]


@pytest.fixture
def write_json(tmp_path):
    def _write(name, payload):
        path = tmp_path / name
        path.write_bytes(orjson.dumps(payload))
        return path

    return _write


@pytest.fixture
def otlp_doc():
    """frontend (SERVER root) → CLIENT → checkout (SERVER) → local work → CLIENT to an uninstrumented db."""

    def _attr(key, value):
        return {"key": key, "value": {"stringValue": value}}

    def _span(span_id, parent, kind, name, attrs=()):
        sp = {
            "traceId": "AAAA0001",
            "spanId": span_id,
            "name": name,
            "kind": kind,
            "startTimeUnixNano": "1700000000000000000",
            "endTimeUnixNano": "1700000000005000000",
            "attributes": [_attr(k, v) for k, v in attrs],
        }
        if parent:
            sp["parentSpanId"] = parent
        return sp

    return {
        "resourceSpans": [
            {
                "resource": {"attributes": [_attr("service.name", "frontend")]},
                "scopeSpans": [{"spans": [
                    _span("01", None, "SPAN_KIND_SERVER", "GET /"),
                    _span("02", "01", "SPAN_KIND_CLIENT", "POST /checkout"),
                ]}],
            },
            {
                "resource": {"attributes": [_attr("service.name", "checkout")]},
                "scopeSpans": [{"spans": [
                    _span("03", "02", 2, "POST /checkout"),
                    _span("04", "03", 1, "validate"),
                    _span("05", "04", 3, "SELECT", attrs=[("peer.service", "postgres")]),
                ]}],
            },
        ]
    }
