import gzip
import io

import pandas as pd

from kmer_spectrum.cli import main


def write_fasta(path, text):
    path.write_text(text)
    return str(path)


def test_count_to_stdout(tmp_path, capsys):
    fasta = write_fasta(tmp_path / "in.fa", ">seq1\nNNNN" + "ACGT" * 8 + "N\n")
    assert main(["count", "--input", fasta]) == 0
    assert capsys.readouterr().out == "2\t1\n"


def test_count_reads_stdin(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("ACGT" * 8 + "\n" + "ACGT" * 8 + "\n"))
    assert main(["count"]) == 0
    assert capsys.readouterr().out == "4\t1\n"


def test_count_gzip_input_and_outputs(tmp_path, capsys):
    gz = tmp_path / "in.fa.gz"
    with gzip.open(gz, "wt") as fh:
        fh.write(">r\nGATTACAGATTACA\n>r2\nGATTACAGATTACA\n")
    out = tmp_path / "res" / "out.hist"
    pq = tmp_path / "res" / "out.parquet"
    assert main(["count", "--input", str(gz), "--output", str(out), "-k", "7",
                 "--shards", "4", "--routing", "direct", "--parquet", str(pq)]) == 0
    assert capsys.readouterr().out == ""
    rows = [line.split("\t") for line in out.read_text().splitlines()]
    assert rows
    df = pd.read_parquet(pq)
    assert df["bucket"].astype(str).tolist() == [r[0] for r in rows]


def test_empty_input_prints_nothing(tmp_path, capsys):
    fasta = write_fasta(tmp_path / "in.fa", ">h1\n>h2\n")
    assert main(["count", "--input", fasta]) == 0
    assert capsys.readouterr().out == ""


def test_bad_k_exit_code(tmp_path, capsys):
    fasta = write_fasta(tmp_path / "in.fa", "ACGT\n")
    assert main(["count", "--input", fasta, "-k", "40"]) == 2
    assert capsys.readouterr().out == ""


def test_bad_shards_exit_code(tmp_path):
    fasta = write_fasta(tmp_path / "in.fa", "ACGT\n")
    assert main(["count", "--input", fasta, "--shards", "6"]) == 2


def test_oversized_line_exit_code(tmp_path, capsys):
    fasta = write_fasta(tmp_path / "in.fa", "ACGTACGT\n")
    assert main(["count", "--input", fasta, "-k", "3", "--max-line-length", "5"]) == 1
    assert capsys.readouterr().out == ""


def test_decode(capsys):
    assert main(["decode", "-k", "4", "27", "0"]) == 0
    assert capsys.readouterr().out == "27\tACGT\n0\tAAAA\n"


def test_decode_rejects_oversized_code():
    assert main(["decode", "-k", "2", "16"]) == 2


def test_plot(tmp_path):
    hist = tmp_path / "h.hist"
    hist.write_text("1\t40\n2\t12\n255\t1\n")
    assert main(["plot", str(hist)]) == 0
    assert (tmp_path / "h.png").exists()
    assert (tmp_path / "h_log.png").exists()


NON_UTF8 = b">s\xe9q1 caf\xe9\n" + b"ACGT" * 8 + b"\n"


def test_non_utf8_header(tmp_path, capsys):
    fasta = tmp_path / "latin1.fa"
    fasta.write_bytes(NON_UTF8)
    assert main(["count", "--input", str(fasta)]) == 0
    assert capsys.readouterr().out == "2\t1\n"


def test_non_utf8_gzip_input(tmp_path, capsys):
    gz = tmp_path / "latin1.fa.gz"
    with gzip.open(gz, "wb") as fh:
        fh.write(NON_UTF8)
    assert main(["count", "--input", str(gz)]) == 0
    assert capsys.readouterr().out == "2\t1\n"


def test_non_utf8_stdin(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.TextIOWrapper(io.BytesIO(NON_UTF8), encoding="utf-8"))
    assert main(["count"]) == 0
    assert capsys.readouterr().out == "2\t1\n"


def test_high_bytes_split_fragments(tmp_path, capsys):
    fasta = tmp_path / "in.fa"
    fasta.write_bytes(b"ACGT" * 8 + b"\xff\xfe" + b"ACGT" * 8 + b"\n")
    assert main(["count", "--input", str(fasta)]) == 0
    assert capsys.readouterr().out == "4\t1\n"


def test_line_limit_counts_bytes(tmp_path):
    # 10 bytes; 19 bytes if the high characters were re-encoded as UTF-8
    at_limit = tmp_path / "ok.fa"
    at_limit.write_bytes(b">" + b"\xe9" * 9 + b"\nACGT\n")
    assert main(["count", "--input", str(at_limit), "-k", "3", "--max-line-length", "10"]) == 0
    over_limit = tmp_path / "long.fa"
    over_limit.write_bytes(b">" + b"\xe9" * 10 + b"\nACGT\n")
    assert main(["count", "--input", str(over_limit), "-k", "3", "--max-line-length", "10"]) == 1


def test_missing_input_exit_code(tmp_path, capsys):
    assert main(["count", "--input", str(tmp_path / "absent.fa")]) == 1
    assert capsys.readouterr().out == ""
