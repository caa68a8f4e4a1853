import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "harmony", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "harmony" in cp.stdout.lower()
    assert "profile" in cp.stdout


def test_profile_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "harmony", "profile", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "--region" in cp.stdout
    assert "--qv-analysis" in cp.stdout
