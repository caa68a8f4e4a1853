from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .pipeline import DEFAULT_BATCH_SIZE, DEFAULT_QUEUE_DEPTH, run_profile
from .settings import ProfileSettings
from .toy_data import INDEX_CHOICES, make_toy_data
from .utils import STDOUT


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _positive_int(s: str) -> int:
    try:
        v = int(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Not an integer: {s}") from e
    if v < 1:
        raise argparse.ArgumentTypeError(f"Must be >= 1: {s}")
    return v


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="harmony",
        description=(
            "Harmony: compute per-read error profiles (concordance, QV, indel and "
            "substitution counts) from =/X-encoded alignments."
        ),
    )
    p.add_argument("--version", action="version", version=f"harmony {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser("quickstart", help="Print ready-to-run recipes for common scenarios.")

    # -----------------
    # profile
    # -----------------
    pr = sub.add_parser(
        "profile",
        help="Compute error profiles from alignments.",
        description=(
            "Compute error profiles from alignments. Positionals: IN.aligned.bam "
            "(BAM, .fofn or dataset .xml), optional IN.ref.fasta, OUT.harmony.txt ('-' for stdout)."
        ),
    )
    pr.add_argument(
        "files",
        nargs="+",
        metavar="FILE",
        help="IN.aligned.bam [IN.ref.fasta] OUT.harmony.txt",
    )
    pr.add_argument(
        "--region",
        default="",
        help="Genomic region(s), ';'-separated: 'chr1', 'chr1:1000' or 'chr1:1,000-2,000'.",
    )
    pr.add_argument(
        "-e",
        "--extended-metrics",
        action="store_true",
        help="Output extended per-base substitution/indel tables (requires a reference).",
    )
    pr.add_argument(
        "-j",
        "--num-threads",
        type=_positive_int,
        default=1,
        help="Number of worker threads (1 = serial).",
    )
    pr.add_argument(
        "--queue-depth",
        type=_positive_int,
        default=DEFAULT_QUEUE_DEPTH,
        help="Maximum number of queued batches in multi-threaded mode.",
    )
    pr.add_argument(
        "--batch-size",
        type=_positive_int,
        default=DEFAULT_BATCH_SIZE,
        help="Records per batch in multi-threaded mode.",
    )
    pr.add_argument(
        "--qv-analysis",
        default=None,
        help="Also write predicted vs empirical QV (.csv, .html, .png or '-').",
    )
    pr.add_argument("--log-file", default=None, help="Also write log messages to this file.")
    pr.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    pr.add_argument("--summary-json", default=None, help="Write a machine-readable run summary.")
    pr.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference and several sorted BAMs for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--files", type=_positive_int, default=3, help="Number of BAM files.")
    t.add_argument("--index", choices=INDEX_CHOICES, default="bai", help="Index files to create.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    return p


# -----------------
# commands
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "Harmony quickstart (copy/paste):",
        "",
        "1) Basic profile (no reference):",
        "   harmony profile aligned.bam out.harmony.txt",
        "",
        "2) Extended metrics, 8 threads, QV calibration report:",
        "   harmony profile aligned.bam ref.fasta out.harmony.txt \\",
        "     -e -j 8 --qv-analysis qv.html",
        "",
        "3) Restrict to regions (needs .pbi for several regions, .bai for one):",
        "   harmony profile movie.consensusalignmentset.xml ref.fasta out.txt \\",
        "     --region 'chr1:1,000,000-2,000,000;chr2'",
        "",
        "Tip: use 'harmony make-toy-data --outdir toy/' to get inputs to try these on.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir, n_files=int(args.files), index=str(args.index))
    print(json.dumps(summary, indent=2))
    return 0


def cmd_profile(args: argparse.Namespace) -> int:
    log_path = Path(args.log_file).expanduser().resolve() if args.log_file else None
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("harmony")
    logger.info("harmony %s", __version__)

    try:
        settings = ProfileSettings.from_positionals(
            args.files,
            region=str(args.region),
            extended=bool(args.extended_metrics),
            threads=int(args.num_threads),
            queue_depth=int(args.queue_depth),
            batch_size=int(args.batch_size),
            qv_output=args.qv_analysis,
        )
        if settings.extended and settings.reference is None:
            logger.warning("Extended metrics requested without a reference; tables will be zero.")

        summary = run_profile(
            alignments=settings.alignments,
            output=settings.output,
            reference=settings.reference,
            region=settings.region,
            extended=settings.extended,
            threads=settings.threads,
            queue_depth=settings.queue_depth,
            batch_size=settings.batch_size,
            qv_output=settings.qv_output,
            progress=not bool(args.no_progress) and settings.output != STDOUT,
        )

        if args.summary_json:
            Path(args.summary_json).write_text(json.dumps(summary, indent=2, sort_keys=True), encoding="utf-8")

        logger.info("Profiles written: %s", settings.output)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "profile":
        return cmd_profile(args)
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
