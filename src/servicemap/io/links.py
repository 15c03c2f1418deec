"""
Writers and readers for dependency links and the service-map graph.

Links are stored either as JSON (an array of {"parent","child","callCount"}, the shape the
dependency endpoint of a tracing UI serves) or as CSV with the same three columns.
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Iterable, List

import orjson
import pandas as pd

from servicemap.aggregate import links_from_frame, links_to_frame
from servicemap.io.common import SpanFormatError
from servicemap.model import DependencyLink

GRAPH_SCHEMA = "servicemap-graph@v1"


def write_links(links: Iterable[DependencyLink], path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".csv":
        links_to_frame(links).to_csv(path, index=False)
    else:
        path.write_bytes(orjson.dumps([link.to_dict() for link in links], option=orjson.OPT_INDENT_2))


def read_links(path: Path) -> List[DependencyLink]:
    path = Path(path)
    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, dtype={"parent": "string", "child": "string"})
        try:
            return links_from_frame(df)
        except ValueError as exc:
            raise SpanFormatError(f"{path}: {exc}") from exc

    try:
        data = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as exc:
        raise SpanFormatError(f"{path}: invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise SpanFormatError(f"{path}: expected a JSON array of links")
    try:
        return [DependencyLink.from_dict(d) for d in data]
    except (KeyError, TypeError, ValueError) as exc:
        raise SpanFormatError(f"{path}: malformed link entry: {exc}") from exc


def graph_payload(links: Iterable[DependencyLink]) -> Dict[str, Any]:
    """Nodes with degrees and call totals, plus one edge per link."""
    links = list(links)
    nodes: Dict[str, Dict[str, Any]] = {}

    def _node(name: str) -> Dict[str, Any]:
        return nodes.setdefault(
            name, {"id": name, "label": name, "in_degree": 0, "out_degree": 0, "calls_in": 0, "calls_out": 0}
        )

    edges = []
    for link in links:
        src, dst = _node(link.parent), _node(link.child)
        src["out_degree"] += 1
        src["calls_out"] += link.call_count
        dst["in_degree"] += 1
        dst["calls_in"] += link.call_count
        edges.append({"source": link.parent, "target": link.child, "callCount": link.call_count})

    return {
        "schema": GRAPH_SCHEMA,
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "nodes": list(nodes.values()),
        "edges": edges,
    }


def write_graph(links: Iterable[DependencyLink], path: Path) -> Dict[str, Any]:
    graph = graph_payload(links)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(graph, option=orjson.OPT_INDENT_2))
    return graph
