"""
Adapted-span tables: the intermediate artifact between 'extract' and 'link'.

Columns: trace_id, span_id, parent_span_id, kind, service, peer_service
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

import pandas as pd

from servicemap.io.common import SpanFormatError
from servicemap.model import AdaptedSpan, Kind

SPAN_COLUMNS = ["trace_id", "span_id", "parent_span_id", "kind", "service", "peer_service"]


def spans_frame(spans: Iterable[AdaptedSpan]) -> pd.DataFrame:
    rows = [
        {
            "trace_id": s.trace_id,
            "span_id": s.id,
            "parent_span_id": s.parent_id,
            "kind": s.kind.value,
            "service": s.service,
            "peer_service": s.peer_service,
        }
        for s in spans
    ]
    df = pd.DataFrame.from_records(rows, columns=SPAN_COLUMNS)
    for col in SPAN_COLUMNS:
        df[col] = df[col].astype("string")
    return df


def adapted_from_frame(df: pd.DataFrame) -> List[AdaptedSpan]:
    missing = sorted(set(SPAN_COLUMNS) - set(df.columns))
    if missing:
        raise SpanFormatError(f"spans table missing columns: {missing}")
    out: List[AdaptedSpan] = []
    for row in df[SPAN_COLUMNS].itertuples(index=False, name=None):
        trace_id, span_id, parent_id, kind, service, peer = (None if pd.isna(v) else str(v) for v in row)
        try:
            kind = Kind(str(kind).upper()) if kind is not None else Kind.OTHER
        except ValueError:
            kind = Kind.OTHER
        out.append(AdaptedSpan(str(trace_id), str(span_id), parent_id, kind, service, peer))
    return out


def write_spans_table(df: pd.DataFrame, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".parquet":
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)


def read_spans_table(path: Path) -> pd.DataFrame:
    path = Path(path)
    if path.suffix.lower() == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path, dtype="string", keep_default_na=False, na_values=[""])
