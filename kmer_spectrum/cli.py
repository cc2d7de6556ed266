"""
Command-line interface for the canonical k-mer histogram.

Examples:

# 1) Histogram of 31-mers from a FASTA on stdin (one table row per non-empty bucket):
zcat reads.fa.gz | python -m kmer_spectrum.cli count > reads.hist

# 2) Same, 21-mers over 64 shards, also exporting Parquet:
python -m kmer_spectrum.cli count --input reads.fa.gz -k 21 --shards 64 \
  --parquet results/reads.hist.parquet --progress

# 3) Plot a histogram written by 'count':
python -m kmer_spectrum.cli plot reads.hist --output reads.png

# 4) Inspect a k-mer code:
python -m kmer_spectrum.cli decode -k 5 27 341
"""

from __future__ import annotations

import argparse
import contextlib
import gzip
import io
import sys
from pathlib import Path
from typing import ContextManager, Iterator, List, Optional, TextIO

from . import config as cfg
from .config import PipelineConfig
from .encoder import decode_kmer
from .exceptions import ConfigurationError, KmerSpectrumError
from .histogram import plot_histogram, read_histogram, summarize, write_histogram, write_parquet
from .log import get_logger, set_verbose
from .pipeline import run_pipeline

LOGGER = get_logger("cli")


@contextlib.contextmanager
def _stdin_text() -> Iterator[TextIO]:
    buffer = getattr(sys.stdin, "buffer", None)
    if buffer is None:
        # already a text stream (e.g. replaced by the caller)
        yield sys.stdin
        return
    stream = io.TextIOWrapper(buffer, encoding=cfg.INPUT_ENCODING)
    try:
        yield stream
    finally:
        # leave the process stdin open
        stream.detach()


def _open_input(path: str) -> ContextManager[TextIO]:
    # latin-1 maps every byte to one character: any byte decodes, and
    # non-ACGT bytes end up as fragment separators
    if path == "-":
        return _stdin_text()
    if path.endswith(".gz"):
        return gzip.open(path, "rt", encoding=cfg.INPUT_ENCODING)
    return open(path, "r", encoding=cfg.INPUT_ENCODING)


def _open_output(path: str) -> ContextManager[TextIO]:
    if path == "-":
        return contextlib.nullcontext(sys.stdout)
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    return open(out, "w")


def config_from_args(args) -> PipelineConfig:
    return PipelineConfig(
        k=args.kmer_length,
        shards=args.shards,
        splitter_workers=args.splitters,
        encoder_workers=args.encoders,
        queue_capacity=args.queue_capacity,
        max_line_length=args.max_line_length,
        header_marker=args.header_marker,
        routing=args.routing,
        progress=args.progress,
    )


def cmd_count(args) -> int:
    # fail on bad options before touching the input
    config = config_from_args(args).validate()
    with _open_input(args.input) as stream:
        result = run_pipeline(stream, config)
    with _open_output(args.output) as out:
        rows = write_histogram(result.histogram, out)
    LOGGER.info("Wrote %d histogram rows.", rows)
    if args.parquet:
        write_parquet(result.histogram, Path(args.parquet), config.k)
    return 0


def cmd_plot(args) -> int:
    hist = read_histogram(Path(args.histogram))
    summary = summarize(hist)
    LOGGER.info("Distinct k-mers: %s; modal bucket: %d; saturated (>=%d): %s",
                f"{summary.distinct_kmers:,}", summary.modal_bucket, cfg.HISTOGRAM_MAX,
                f"{summary.saturated_kmers:,}")
    output = Path(args.output) if args.output else Path(args.histogram).with_suffix(".png")
    plot_histogram(hist, output, title=args.title)
    return 0


def cmd_decode(args) -> int:
    if not 1 <= args.kmer_length <= cfg.MAX_K:
        raise ConfigurationError(f"k-mer length must be between 1 and {cfg.MAX_K}",
                                 {"k": args.kmer_length})
    limit = 1 << (2 * args.kmer_length)
    for code in args.codes:
        if not 0 <= code < limit:
            raise ConfigurationError("code does not fit in 2k bits", {"code": code, "k": args.kmer_length})
        print(f"{code}\t{decode_kmer(code, args.kmer_length)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="kmer_spectrum",
                                 description="Canonical k-mer frequency histogram of sequence text.")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr.")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_count = sub.add_parser("count", help="Count canonical k-mers and print the count histogram.",
                              formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    ap_count.add_argument("--input", default="-", help="Sequence text ('-' for stdin; .gz is decompressed).")
    ap_count.add_argument("--output", default="-", help="Histogram table ('-' for stdout).")
    ap_count.add_argument("-k", "--kmer-length", type=int, default=cfg.K, help=f"k-mer length (1..{cfg.MAX_K}).")
    ap_count.add_argument("-n", "--shards", type=int, default=cfg.SHARDS, help="Count shards (power of two).")
    ap_count.add_argument("--splitters", type=int, default=cfg.SPLITTER_WORKERS, help="Fragment splitter workers.")
    ap_count.add_argument("--encoders", type=int, default=cfg.ENCODER_WORKERS, help="k-mer encoder workers.")
    ap_count.add_argument("--queue-capacity", type=int, default=cfg.QUEUE_CAPACITY, help="Capacity of each stage queue.")
    ap_count.add_argument("--max-line-length", type=int, default=cfg.MAX_LINE_LENGTH,
                          help="Longest accepted input line; longer lines abort the run.")
    ap_count.add_argument("--header-marker", default=cfg.HEADER_MARKER, help="Lines starting with this are skipped.")
    ap_count.add_argument("--routing", choices=cfg.ROUTING_MODES, default="broadcast",
                          help="Send each batch to every shard, or only each shard's own codes.")
    ap_count.add_argument("--parquet", default=None, help="Also export the histogram as Parquet.")
    ap_count.add_argument("--progress", action="store_true", help="Show a progress bar over input lines.")
    ap_count.set_defaults(func=cmd_count)

    ap_plot = sub.add_parser("plot", help="Plot a histogram table written by 'count'.")
    ap_plot.add_argument("histogram", help="Histogram table (bucket<TAB>distinct k-mers).")
    ap_plot.add_argument("-o", "--output", default=None, help="PNG path (default: <histogram>.png).")
    ap_plot.add_argument("--title", default="k-mer spectrum", help="Plot title.")
    ap_plot.set_defaults(func=cmd_plot)

    ap_dec = sub.add_parser("decode", help="Print the bases of integer k-mer codes.")
    ap_dec.add_argument("-k", "--kmer-length", type=int, default=cfg.K, help="k-mer length.")
    ap_dec.add_argument("codes", nargs="+", type=int, help="k-mer codes.")
    ap_dec.set_defaults(func=cmd_decode)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    set_verbose(args.verbose)
    try:
        return args.func(args)
    except ConfigurationError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2
    except KmerSpectrumError as exc:
        LOGGER.error("%s", exc)
        return 1
    except OSError as exc:
        LOGGER.error("I/O error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
