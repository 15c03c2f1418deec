from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import click

from servicemap.aggregate import merge
from servicemap.batch import link_traces
from servicemap.config import LOG_LEVELS, ConfigError, LinkerConfig, load_config
from servicemap.io import FORMATS, SpanFormatError, group_by_trace, read_spans
from servicemap.io.links import read_links, write_graph, write_links
from servicemap.io.tables import adapted_from_frame, read_spans_table, spans_frame, write_spans_table
from servicemap.observe import CountingObserver
from servicemap.preprocess import adapt_trace

logger = logging.getLogger("servicemap")


def _config(ctx: click.Context) -> LinkerConfig:
    return ctx.obj["config"]


def _read_raw(input_path: Path, fmt: str, config: LinkerConfig):
    try:
        return read_spans(input_path, fmt, config)
    except SpanFormatError as exc:
        raise click.ClickException(str(exc))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="YAML configuration (see servicemap.config).")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), default=None,
              help="Overrides log_level from the configuration.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], log_level: Optional[str]) -> None:
    """servicemap CLI (trace files → service dependency links)."""
    if config_path is not None and not config_path.exists():
        raise click.ClickException(f"config file not found: {config_path}")
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc))
    if log_level:
        config.log_level = log_level.upper()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.debug("configuration: %s", config)
    ctx.obj = {"config": config}


# ---------------- extract ----------------
@main.command("extract")
@click.option("--input", "input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True)
@click.option("--format", "fmt", type=click.Choice(FORMATS, case_sensitive=False), default="auto", show_default=True)
@click.option("--out", "out_path", type=click.Path(dir_okay=False, path_type=Path), required=True,
              help="Adapted-span table (.csv or .parquet).")
@click.pass_context
def extract_cmd(ctx: click.Context, input_path: Path, fmt: str, out_path: Path) -> None:
    """Parse a trace file into an adapted-span table (one row per merged span)."""
    raw = _read_raw(input_path, fmt, _config(ctx))
    adapted = []
    for spans in group_by_trace(raw).values():
        adapted.extend(adapt_trace(spans))
    write_spans_table(spans_frame(adapted), out_path)
    click.echo(f"[extract] {len(raw)} span records → {len(adapted)} spans → {out_path}")


# ---------------- link ----------------
@main.command("link")
@click.option("--input", "input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Trace file (OTLP, Jaeger or Zipkin v1 JSON).")
@click.option("--format", "fmt", type=click.Choice(FORMATS, case_sensitive=False), default="auto", show_default=True)
@click.option("--spans", "spans_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Adapted-span table written by 'servicemap extract'.")
@click.option("--out", "out_path", type=click.Path(dir_okay=False, path_type=Path), required=True,
              help="Links file (.json or .csv).")
@click.option("--partitions", type=click.IntRange(min=1), default=None, help="Overrides partitions from the configuration.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Overrides workers from the configuration.")
@click.pass_context
def link_cmd(ctx: click.Context, input_path: Optional[Path], fmt: str, spans_path: Optional[Path], out_path: Path,
             partitions: Optional[int], workers: Optional[int]) -> None:
    """Infer caller → callee links with call counts."""
    if (input_path is None) == (spans_path is None):
        raise click.UsageError("give exactly one of --input or --spans")
    config = _config(ctx)

    if input_path is not None:
        traces = group_by_trace(_read_raw(input_path, fmt, config))
        preprocess = True
    else:
        try:
            adapted = adapted_from_frame(read_spans_table(spans_path))
        except SpanFormatError as exc:
            raise click.ClickException(f"{spans_path}: {exc}")
        traces = group_by_trace(adapted)
        preprocess = False

    observer = CountingObserver()
    links = link_traces(
        traces,
        partitions=partitions or config.partitions,
        workers=workers or config.workers,
        observer=observer,
        preprocess=preprocess,
    )
    write_links(links, out_path)

    skipped = ", ".join(f"{reason.name.lower()}={n}" for reason, n in observer.skipped.most_common())
    click.echo(f"[link] traces={len(traces)} links={len(links)} calls={sum(link.call_count for link in links)} → {out_path}")
    if skipped:
        click.echo(f"[link] skipped nodes: {skipped}")
    if observer.synthetic_roots or observer.duplicates:
        click.echo(f"[link] repaired: synthetic_roots={observer.synthetic_roots} "
                   f"cycles={observer.cycles} duplicate_spans={observer.duplicates}")


# ---------------- merge ----------------
@main.command("merge")
@click.argument("links_paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--out", "out_path", type=click.Path(dir_okay=False, path_type=Path), required=True)
def merge_cmd(links_paths: List[Path], out_path: Path) -> None:
    """Sum call counts of several links files (e.g. one per partition or per day)."""
    try:
        parts = [read_links(p) for p in links_paths]
    except SpanFormatError as exc:
        raise click.ClickException(str(exc))
    merged = merge(parts)
    write_links(merged, out_path)
    click.echo(f"[merge] {len(links_paths)} files → {len(merged)} links → {out_path}")


# ---------------- graph ----------------
@main.command("graph")
@click.option("--links", "links_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True)
@click.option("--out", "out_path", type=click.Path(dir_okay=False, path_type=Path), required=True)
def graph_cmd(links_path: Path, out_path: Path) -> None:
    """Export the service map as nodes/edges JSON."""
    try:
        links = read_links(links_path)
    except SpanFormatError as exc:
        raise click.ClickException(str(exc))
    graph = write_graph(links, out_path)
    click.echo(f"[graph] wrote {out_path}  (nodes={len(graph['nodes'])}, edges={len(graph['edges'])})")


if __name__ == "__main__":
    main()
