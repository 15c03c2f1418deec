from servicemap.linker import DependencyLinker
from servicemap.model import DependencyLink
from servicemap.observe import CountingObserver, LinkObserver, SkipReason

from tests.conftest import client, local, pairs, raw, server


class RecordingObserver(LinkObserver):
    def __init__(self):
        self.events = []

    def node_skipped(self, node, reason):
        self.events.append(("skip", node.value.id if node.value else None, reason))

    def link_recorded(self, caller, callee):
        self.events.append(("link", caller, callee))


def test_root_server_without_peer_is_skipped():
    linker = DependencyLinker().submit_trace([server("1", "A")])

    assert linker.link() == []


def test_root_server_with_peer_links_peer_to_service():
    linker = DependencyLinker().submit_trace([server("1", "A", peer="B")])

    assert linker.link() == [DependencyLink("B", "A", 1)]


def test_local_span_is_bridged_to_nearest_server_ancestor():
    trace = [
        server("1", "A", peer="B"),
        local("2", parent="1"),
        server("3", "C", parent="2"),
    ]
    linker = DependencyLinker().submit_trace(trace)

    assert pairs(linker.link()) == [("B", "A", 1), ("A", "C", 1)]


def test_client_span_links_to_uninstrumented_peer():
    trace = [
        server("1", "frontend", peer="browser"),
        client("2", "frontend", peer="mysql", parent="1"),
    ]
    linker = DependencyLinker().submit_trace(trace)

    assert pairs(linker.link()) == [("browser", "frontend", 1), ("frontend", "mysql", 1)]


def test_client_and_server_sides_of_an_rpc():
    # the client span has no peer, so only the server side produces A -> B
    trace = [
        server("1", "A", peer="user"),
        client("2", "A", parent="1"),
        server("3", "B", parent="2"),
    ]
    linker = DependencyLinker().submit_trace(trace)

    assert pairs(linker.link()) == [("user", "A", 1), ("A", "B", 1)]


def test_client_without_service_uses_server_ancestor_as_caller():
    trace = [server("1", "A", peer="B"), client("2", None, peer="redis", parent="1")]
    linker = DependencyLinker().submit_trace(trace)

    assert pairs(linker.link()) == [("B", "A", 1), ("A", "redis", 1)]


def test_server_ancestor_without_service_leaves_caller_unknown():
    observer = CountingObserver()
    trace = [server("1", None, peer="B"), server("2", "C", parent="1")]
    linker = DependencyLinker(observer).submit_trace(trace)

    assert linker.link() == []
    assert observer.skipped[SkipReason.NO_CALLEE] == 1
    assert observer.skipped[SkipReason.NO_CALLER] == 1


def test_same_trace_twice_doubles_counts():
    trace = [server("1", "A", peer="B"), local("2", parent="1"), server("3", "C", parent="2")]
    once = DependencyLinker().submit_trace(trace).link()
    twice = DependencyLinker().submit_trace(trace).submit_trace(trace).link()

    assert pairs(twice) == [(p, c, n * 2) for p, c, n in pairs(once)]


def test_empty_trace_is_a_noop():
    linker = DependencyLinker().submit_trace([server("1", "A", peer="B")])
    before = linker.link()

    assert linker.submit_trace([]) is linker
    assert linker.put_trace([]) is linker
    assert linker.link() == before


def test_link_is_repeatable():
    linker = DependencyLinker().submit_trace([server("1", "A", peer="B")])

    assert linker.link() == linker.link() == [DependencyLink("B", "A", 1)]


def test_links_keep_first_insertion_order():
    linker = DependencyLinker()
    linker.submit_trace([server("1", "X", peer="Y", trace="t1")])
    linker.submit_trace([server("1", "A", peer="B", trace="t2")])
    linker.submit_trace([server("1", "X", peer="Y", trace="t3")])

    assert pairs(linker.link()) == [("Y", "X", 2), ("B", "A", 1)]


def test_direction_matters():
    linker = DependencyLinker()
    linker.submit_trace([server("1", "A", peer="B", trace="t1")])
    linker.submit_trace([server("1", "B", peer="A", trace="t2")])

    assert pairs(linker.link()) == [("B", "A", 1), ("A", "B", 1)]


def test_orphans_are_linked_under_synthetic_root():
    observer = CountingObserver()
    trace = [
        server("1", "A", peer="B", parent="missing"),
        client("2", "C", peer="D", parent="missing"),
    ]
    linker = DependencyLinker(observer).submit_trace(trace)

    assert pairs(linker.link()) == [("B", "A", 1), ("C", "D", 1)]
    assert observer.synthetic_roots == 1
    assert observer.skipped[SkipReason.SYNTHETIC] == 1


def test_orphan_server_without_peer_finds_no_caller():
    observer = CountingObserver()
    linker = DependencyLinker(observer).submit_trace([server("1", "A", parent="missing")])

    assert linker.link() == []
    assert observer.skipped[SkipReason.NO_CALLER] == 1


def test_duplicate_span_id_is_linked_once():
    trace = [server("1", "A", peer="B"), server("1", "A", peer="B")]
    linker = DependencyLinker().submit_trace(trace)

    assert linker.link() == [DependencyLink("B", "A", 1)]


def test_cyclic_parents_do_not_hang_or_fail():
    trace = [
        server("1", "A", peer="B", parent="2"),
        server("2", "C", peer="D", parent="1"),
    ]
    linker = DependencyLinker().submit_trace(trace)

    assert sorted(pairs(linker.link())) == [("B", "A", 1), ("D", "C", 1)]


def test_observer_sees_decisions_in_traversal_order():
    observer = RecordingObserver()
    trace = [server("1", "A"), local("2", parent="1"), server("3", "C", parent="2")]
    DependencyLinker(observer).submit_trace(trace)

    assert observer.events == [
        ("skip", "1", SkipReason.ROOT_PEER_UNKNOWN),
        ("skip", "2", SkipReason.NON_RPC),
        ("link", "A", "C"),
    ]


def test_put_trace_merges_shared_span_before_linking():
    # one RPC reported by both sides under the same span id
    spans = [
        raw("1", annotations=[(10, "sr", "gateway"), (90, "ss", "gateway")], binary=[("ca", "browser")]),
        raw("2", parent="1", annotations=[(20, "cs", "gateway"), (80, "cr", "gateway")]),
        raw("2", parent="1", annotations=[(30, "sr", "users"), (70, "ss", "users")]),
    ]
    linker = DependencyLinker().put_trace(spans)

    assert pairs(linker.link()) == [("browser", "gateway", 1), ("gateway", "users", 1)]
