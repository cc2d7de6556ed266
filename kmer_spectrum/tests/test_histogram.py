import io

import numpy as np
import pandas as pd
import pytest

from kmer_spectrum.histogram import (
    build_histogram,
    histogram_frame,
    histogram_rows,
    plot_histogram,
    read_histogram,
    summarize,
    write_histogram,
    write_parquet,
)

MAPS = [{1: 1, 2: 1, 3: 2}, {}, {4: 300, 5: 255}]


def test_counts_are_clamped_to_255():
    hist = build_histogram(MAPS)
    assert hist.shape == (256,)
    assert hist[0] == 0
    assert hist[1] == 2
    assert hist[2] == 1
    assert hist[255] == 2
    assert hist.sum() == 5


def test_rows_skip_empty_buckets():
    assert histogram_rows(build_histogram(MAPS)) == [(1, 2), (2, 1), (255, 2)]


def test_write_histogram_table():
    out = io.StringIO()
    assert write_histogram(build_histogram(MAPS), out) == 3
    assert out.getvalue() == "1\t2\n2\t1\n255\t2\n"


def test_empty_histogram_writes_nothing():
    out = io.StringIO()
    assert write_histogram(build_histogram([{}, {}]), out) == 0
    assert out.getvalue() == ""


def test_read_histogram(tmp_path):
    path = tmp_path / "h.tsv"
    path.write_text("# bucket\tdistinct\n1\t10\n\n7\t3\n255\t1\n")
    hist = read_histogram(path)
    assert histogram_rows(hist) == [(1, 10), (7, 3), (255, 1)]


@pytest.mark.parametrize("content", ["0\t4\n", "256\t1\n", "1 2\n"])
def test_read_histogram_rejects_bad_rows(tmp_path, content):
    path = tmp_path / "bad.tsv"
    path.write_text(content)
    with pytest.raises(ValueError):
        read_histogram(path)


def test_summarize():
    summary = summarize(build_histogram(MAPS))
    assert summary.distinct_kmers == 5
    assert summary.clamped_occurrences == 1 + 1 + 2 + 255 + 255
    assert summary.saturated_kmers == 2
    assert summary.modal_bucket == 1


def test_summarize_empty():
    summary = summarize(np.zeros(256, dtype=np.int64))
    assert summary.distinct_kmers == 0
    assert summary.modal_bucket == 0


def test_histogram_frame_and_parquet(tmp_path):
    hist = build_histogram(MAPS)
    df = histogram_frame(hist)
    assert list(df.columns) == ["bucket", "distinct_kmers"]
    assert df["bucket"].tolist() == [1, 2, 255]

    out = write_parquet(hist, tmp_path / "out" / "hist.parquet", k=31)
    back = pd.read_parquet(out)
    assert back["k"].unique().tolist() == [31]
    assert back["distinct_kmers"].tolist() == [2, 1, 2]


def test_plot_histogram_writes_linear_and_log(tmp_path):
    linear, log = plot_histogram(build_histogram(MAPS), tmp_path / "spectrum.png")
    assert linear.exists()
    assert log.name == "spectrum_log.png"
    assert log.exists()
