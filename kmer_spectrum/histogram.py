"""
Histogram Aggregator: count-of-counts over every shard map.

Bucket i (1..255) holds the number of distinct k-mers seen exactly i times;
bucket 255 also absorbs everything seen more often. Bucket 0 is never
reported since count maps only hold observed k-mers.

Besides the tab-separated table written to stdout, a histogram can be
exported to Parquet (pandas + pyarrow) or plotted (matplotlib).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, TextIO, Tuple

import numpy as np
import pandas as pd

from .config import HISTOGRAM_MAX
from .log import get_logger

LOGGER = get_logger("histogram")

N_BUCKETS = HISTOGRAM_MAX + 1


def build_histogram(count_maps: Iterable[Mapping[int, int]]) -> np.ndarray:
    """
    Merge count maps into a 256-entry int64 array indexed by clamped count.

    The maps are only read. Callers must not pass a map whose owner may still write.
    """
    hist = np.zeros(N_BUCKETS, dtype=np.int64)
    for counts in count_maps:
        if not counts:
            continue
        values = np.fromiter(counts.values(), dtype=np.int64, count=len(counts))
        np.minimum(values, HISTOGRAM_MAX, out=values)
        hist += np.bincount(values, minlength=N_BUCKETS)
    return hist


def histogram_rows(hist: np.ndarray) -> List[Tuple[int, int]]:
    """(bucket, distinct k-mers) for every non-empty bucket >= 1, ascending."""
    return [(int(i), int(hist[i])) for i in np.flatnonzero(hist) if i > 0]


def write_histogram(hist: np.ndarray, out: TextIO) -> int:
    """Write '<bucket>\\t<distinct>' lines; returns the number of lines written."""
    rows = histogram_rows(hist)
    for bucket, distinct in rows:
        out.write(f"{bucket}\t{distinct}\n")
    return len(rows)


def read_histogram(path: Path) -> np.ndarray:
    """Load a table written by write_histogram back into a 256-entry array."""
    hist = np.zeros(N_BUCKETS, dtype=np.int64)
    with open(path) as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split("\t")
            if len(fields) != 2:
                raise ValueError(f"{path}:{lineno}: expected 2 tab-separated columns, got {len(fields)}")
            bucket, distinct = int(fields[0]), int(fields[1])
            if not 1 <= bucket <= HISTOGRAM_MAX:
                raise ValueError(f"{path}:{lineno}: bucket {bucket} outside 1..{HISTOGRAM_MAX}")
            hist[bucket] = distinct
    return hist


def histogram_frame(hist: np.ndarray) -> pd.DataFrame:
    rows = histogram_rows(hist)
    return pd.DataFrame(rows, columns=["bucket", "distinct_kmers"]).astype("int64")


def write_parquet(hist: np.ndarray, out_path: Path, k: int) -> Path:
    """Export non-empty buckets to a ZSTD-compressed Parquet table."""
    df = histogram_frame(hist)
    df.insert(0, "k", k)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(out_path, compression="zstd", index=False)
    LOGGER.info("Wrote %d histogram rows to %s", len(df), out_path)
    return out_path


@dataclass
class HistogramSummary:
    distinct_kmers: int
    clamped_occurrences: int
    saturated_kmers: int
    modal_bucket: int


def summarize(hist: np.ndarray) -> HistogramSummary:
    """
    Totals over buckets 1..255. clamped_occurrences counts a k-mer in bucket 255
    as 255 occurrences, so it is a lower bound on the true total.
    """
    body = hist[1:]
    buckets = np.arange(1, N_BUCKETS, dtype=np.int64)
    distinct = int(body.sum())
    return HistogramSummary(
        distinct_kmers=distinct,
        clamped_occurrences=int((body * buckets).sum()),
        saturated_kmers=int(hist[HISTOGRAM_MAX]),
        modal_bucket=int(np.argmax(body)) + 1 if distinct else 0,
    )


def plot_histogram(hist: np.ndarray, save_path: Path, title: str = "k-mer spectrum") -> Tuple[Path, Path]:
    """
    Save a linear and a log-scale bar chart of the histogram.

    Returns (linear_path, log_path); the log-scale file gets a '_log' suffix.
    """
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)
    log_path = save_path.with_name(f"{save_path.stem}_log{save_path.suffix or '.png'}")
    buckets = np.arange(1, N_BUCKETS)
    heights = hist[1:]

    for path, log_scale in ((save_path, False), (log_path, True)):
        fig, ax = plt.subplots(figsize=(14, 6))
        ax.bar(buckets, heights, width=1.0, edgecolor="black", alpha=0.7, color="steelblue")
        xticks = [x for x in range(0, HISTOGRAM_MAX, 25) if x > 0] + [HISTOGRAM_MAX]
        ax.set_xticks(xticks)
        ax.set_xticklabels([str(x) for x in xticks[:-1]] + [f"≥{HISTOGRAM_MAX}"], rotation=45, ha="right")
        ax.set_xlim(0, HISTOGRAM_MAX + 1)
        ax.set_xlabel("Occurrences", fontsize=12)
        if log_scale:
            ax.set_yscale("log")
            ax.set_ylabel("Distinct k-mers (log scale)", fontsize=12)
            ax.set_title(f"{title} (log scale)", fontsize=14, fontweight="bold")
            ax.grid(axis="y", alpha=0.3, which="both")
        else:
            ax.set_ylabel("Distinct k-mers", fontsize=12)
            ax.set_title(title, fontsize=14, fontweight="bold")
            ax.grid(axis="y", alpha=0.3)
            ax.yaxis.set_major_formatter(plt.FuncFormatter(lambda x, p: f"{int(x):,}"))
        fig.tight_layout()
        fig.savefig(path, dpi=150, bbox_inches="tight")
        plt.close(fig)
        LOGGER.info("Histogram plot saved to %s", path)
    return save_path, log_path
