"""
Combine dependency-link lists by summing call counts per (parent, child).

merge() is pure, commutative and associative over the multiset of input links, with the
empty list as identity, so partial results may be reduced in any order.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

import pandas as pd

from servicemap.model import DependencyLink

LINK_COLUMNS = ["parent", "child", "callCount"]


def merge(link_lists: Iterable[Iterable[DependencyLink]]) -> List[DependencyLink]:
    counts: Dict[Tuple[str, str], int] = {}
    for links in link_lists:
        for link in links:
            key = (link.parent, link.child)
            counts[key] = counts.get(key, 0) + link.call_count
    return [DependencyLink(parent, child, count) for (parent, child), count in counts.items()]


def links_to_frame(links: Iterable[DependencyLink]) -> pd.DataFrame:
    rows = [link.to_dict() for link in links]
    return pd.DataFrame.from_records(rows, columns=LINK_COLUMNS)


def links_from_frame(df: pd.DataFrame) -> List[DependencyLink]:
    missing = sorted(set(LINK_COLUMNS) - set(df.columns))
    if missing:
        raise ValueError(f"links table missing columns: {missing}")
    return [
        DependencyLink.checked(parent, child, count)
        for parent, child, count in df[LINK_COLUMNS].itertuples(index=False, name=None)
    ]

