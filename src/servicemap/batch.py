"""
Partitioned linking: many traces, several independent linkers, one merged result.

Traces are assigned to partitions by a stable hash of their trace id. Each partition is
driven by its own DependencyLinker on a worker thread; the partition snapshots are then
combined with merge(), in partition order, so the result does not depend on scheduling.
"""
from __future__ import annotations

import concurrent.futures
import logging
import zlib
from typing import Dict, List, Mapping, Optional, Sequence, Union

from servicemap.aggregate import merge
from servicemap.linker import DependencyLinker
from servicemap.model import AdaptedSpan, DependencyLink, RawSpan
from servicemap.observe import LinkObserver

logger = logging.getLogger(__name__)

Trace = Sequence[Union[RawSpan, AdaptedSpan]]


def partition_of(trace_id: str, partitions: int) -> int:
    return zlib.crc32(trace_id.encode("utf-8")) % partitions


def partition_traces(traces: Mapping[str, Trace], partitions: int) -> List[Dict[str, Trace]]:
    if partitions < 1:
        raise ValueError(f"partitions must be >= 1, got {partitions}")
    parts: List[Dict[str, Trace]] = [{} for _ in range(partitions)]
    for trace_id, spans in traces.items():
        parts[partition_of(trace_id, partitions)][trace_id] = spans
    return parts


def _link_partition(part: Mapping[str, Trace], observer: Optional[LinkObserver], preprocess: bool) -> List[DependencyLink]:
    linker = DependencyLinker(observer)
    for spans in part.values():
        if preprocess:
            linker.put_trace(spans)
        else:
            linker.submit_trace(spans)
    return linker.link()


def link_traces(
    traces: Mapping[str, Trace],
    partitions: int = 1,
    workers: Optional[int] = None,
    observer: Optional[LinkObserver] = None,
    preprocess: bool = True,
) -> List[DependencyLink]:
    """
    Link every trace of the mapping (trace id -> spans).

    preprocess=True expects RawSpan lists (merged by id and adapted first); False expects
    AdaptedSpan lists. A shared observer must tolerate calls from several threads.
    """
    if partitions == 1:
        return _link_partition(traces, observer, preprocess)

    parts = partition_traces(traces, partitions)
    logger.info("linking %d traces in %d partitions", len(traces), partitions)
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers or partitions) as executor:
        futures = [executor.submit(_link_partition, part, observer, preprocess) for part in parts]
        # results are collected in partition order so merge keeps a deterministic order
        results = [f.result() for f in futures]
    return merge(results)
