from servicemap.model import Annotation, Kind
from servicemap.preprocess import adapt, adapt_trace, merge_by_id

from tests.conftest import raw


def test_server_span():
    span = adapt(raw("1", annotations=[(1, "sr", "users"), (9, "ss", "users")], binary=[("ca", "gateway")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.SERVER, "users", "gateway")


def test_client_span():
    span = adapt(raw("1", annotations=[(1, "cs", "gateway"), (9, "cr", "gateway")], binary=[("sa", "mysql")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.CLIENT, "gateway", "mysql")


def test_client_span_without_server_address_has_no_peer():
    span = adapt(raw("1", annotations=[(1, "cs", "gateway")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.CLIENT, "gateway", None)


def test_proxy_reported_addresses_make_a_client_span():
    span = adapt(raw("1", binary=[("ca", "edge"), ("sa", "backend")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.CLIENT, "edge", "backend")


def test_local_span():
    span = adapt(raw("1", binary=[("lc", "worker")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.OTHER, "worker", None)


def test_span_without_evidence_is_other_with_no_service():
    span = adapt(raw("1", parent="0a"))

    assert (span.kind, span.service, span.peer_service, span.parent_id) == (Kind.OTHER, None, None, "0a")


def test_blank_service_names_are_absent():
    span = adapt(raw("1", annotations=[(1, "sr", "  ")], binary=[("ca", "")]))

    assert span.service is None
    assert span.peer_service is None


# --- merged spans carrying both client and server evidence ---------------------

def test_shared_span_prefers_server_evidence():
    span = adapt(raw("1", annotations=[(1, "cs", "web"), (2, "sr", "api"), (3, "ss", "api"), (4, "cr", "web")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.SERVER, "api", "web")


def test_shared_span_client_address_beats_client_annotation():
    span = adapt(raw("1", annotations=[(1, "cs", "web"), (2, "sr", "api")], binary=[("ca", "web-proxy")]))

    assert span.peer_service == "web-proxy"


def test_shared_span_ignores_server_address_when_server_side_present():
    span = adapt(raw("1", annotations=[(1, "cs", "web"), (2, "sr", "api")], binary=[("sa", "api-lb")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.SERVER, "api", "web")


def test_loopback_call_keeps_both_sides():
    span = adapt(raw("1", annotations=[(1, "cs", "api"), (2, "sr", "api")]))

    assert (span.kind, span.service, span.peer_service) == (Kind.SERVER, "api", "api")


# --- merge by id -----------------------------------------------------------------

def test_merge_by_id_combines_client_and_server_reports():
    client_side = raw("2", parent="1", annotations=[(100, "cs", "web"), (400, "cr", "web")],
                      name="get", timestamp=100, duration=300)
    server_side = raw("2", annotations=[(150, "sr", "api"), (350, "ss", "api")],
                      name="unknown", timestamp=150, duration=200, debug=True)

    (merged,) = merge_by_id([server_side, client_side])

    assert merged.parent_id == "1"
    assert merged.name == "get"
    assert merged.timestamp == 100
    assert merged.duration == 300
    assert merged.debug
    assert [a.value for a in merged.annotations] == ["cs", "sr", "ss", "cr"]


def test_merge_by_id_keeps_first_seen_order_and_drops_repeats():
    a = raw("a", annotations=[(1, "sr", "x")])
    b = raw("b", parent="a")
    merged = merge_by_id([a, b, a])

    assert [s.id for s in merged] == ["a", "b"]
    assert merged[0].annotations == (Annotation(1, "sr", "x"),)


def test_adapt_trace_yields_one_span_per_id():
    spans = [
        raw("1", annotations=[(1, "sr", "web")], binary=[("ca", "browser")]),
        raw("2", parent="1", annotations=[(2, "cs", "web")]),
        raw("2", parent="1", annotations=[(3, "sr", "api")]),
    ]
    adapted = adapt_trace(spans)

    assert [(s.id, s.kind, s.service, s.peer_service) for s in adapted] == [
        ("1", Kind.SERVER, "web", "browser"),
        ("2", Kind.SERVER, "api", "web"),
    ]
