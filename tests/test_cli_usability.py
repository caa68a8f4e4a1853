import json
import subprocess
import sys
from pathlib import Path

from harmony.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "harmony"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "harmony profile" in cp.stdout
    assert "--region" in cp.stdout


def test_make_toy_data_dry_run_does_not_write(tmp_path: Path) -> None:
    outdir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(outdir), "--dry-run"])
    assert cp.returncode == 0
    assert "Would write" in cp.stdout
    assert not outdir.exists()


def test_make_toy_data_and_profile(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir), "--index", "pbi"])
    assert cp.returncode == 0
    assert (toy_dir / "toy_0.bam.pbi").exists()

    out = tmp_path / "out.harmony.txt"
    summary = tmp_path / "summary.json"
    cp = _run_cli(
        [
            "profile",
            str(toy_dir / "toy.fofn"),
            str(toy_dir / "toy_ref.fa"),
            str(out),
            "-e",
            "-j",
            "2",
            "--region",
            "chr1;chr2:100-200",
            "--no-progress",
            "--summary-json",
            str(summary),
        ]
    )
    assert cp.returncode == 0, cp.stderr
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0].split()[-1] == "del_all_T"
    data = json.loads(summary.read_text(encoding="utf-8"))
    assert data["counts"]["records"] == len(lines) - 1
    assert data["extended"] is True


def test_profile_to_stdout_with_qv_csv(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy", n_files=1)
    qv = tmp_path / "qv.csv"
    cp = _run_cli(["profile", toy["bams"][0], "-", "--qv-analysis", str(qv)])
    assert cp.returncode == 0, cp.stderr
    rows = cp.stdout.splitlines()
    assert rows[0].startswith("name passes ec rq")
    assert len(rows) == 13
    assert qv.read_text(encoding="utf-8").startswith("#PredictedQV")


def test_bad_region_exits_with_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy", n_files=1)
    cp = _run_cli(["profile", toy["bams"][0], str(tmp_path / "o.txt"), "--region", "chr1:200-100"])
    assert cp.returncode == 2
    assert "ConfigurationError" in cp.stderr


def test_region_without_matching_index_exits(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy", n_files=1, index="none")
    cp = _run_cli(["profile", toy["bams"][0], str(tmp_path / "o.txt"), "--region", "chr1"])
    assert cp.returncode == 2
    assert "Index mismatch" in cp.stderr


def test_wrong_number_of_positionals(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy", n_files=1)
    cp = _run_cli(["profile", toy["bams"][0]])
    assert cp.returncode == 2

    cp = _run_cli(["profile", toy["bams"][0], toy["bams"][0], str(tmp_path / "o.txt")])
    assert cp.returncode == 2


def test_bad_thread_count_is_rejected_by_parser(tmp_path: Path) -> None:
    cp = _run_cli(["profile", "in.bam", "out.txt", "-j", "0"])
    assert cp.returncode == 2
    assert "Must be >= 1" in cp.stderr
