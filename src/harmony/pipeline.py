"""Serial and multi-threaded profiling of a record stream.

The parallel path uses explicit message passing:

- the calling thread is the only reader; it cuts the stream into fixed-size
  batches and puts ``(seq, batch)`` on a bounded work queue;
- worker threads profile batches and put ``(seq, rows)`` on a result
  queue; a stop sentinel ends each worker, which answers with a done message;
- one writer thread restores input order by ``seq`` and writes rows.

Output order is therefore identical to the serial path. The number of batches
in flight (queued, being profiled, or waiting to be written) is bounded by a
semaphore, so memory stays bounded even if one batch is slow.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set, TextIO

from tqdm import tqdm

from .models import AlignmentRecord, ProfileRow
from .profiler import format_header, format_row, profile_record
from .qv_analysis import QVTally
from .readers import bam_query
from .reference import load_references
from .utils import chunked, close_output, open_output

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_QUEUE_DEPTH = 10
LOG_EVERY = 1000

_STOP = object()
_DONE = object()


class _RowWriter:
    """Writes rows, counts them and warns once per missing reference name."""

    def __init__(self, sink: TextIO) -> None:
        self.sink = sink
        self.rows = 0
        self.missing_reference_rows = 0
        self._warned: Set[str] = set()

    def write(self, row: ProfileRow) -> None:
        if not row.reference_found:
            self.missing_reference_rows += 1
            if row.reference_name not in self._warned:
                self._warned.add(row.reference_name)
                logger.warning(
                    "Reference %s not found in reference FASTA; extended metrics are zero for its reads",
                    row.reference_name,
                )
        self.sink.write(format_row(row))
        self.rows += 1
        if self.rows % LOG_EVERY == 0:
            logger.debug("%d records written", self.rows)

    def counts(self) -> Dict[str, int]:
        return {"records": self.rows, "missing_reference_records": self.missing_reference_rows}


def run_serial(
    records: Iterable[AlignmentRecord],
    sink: TextIO,
    *,
    references: Optional[Mapping[str, str]] = None,
    extended: bool = False,
    qv_tally: Optional[QVTally] = None,
) -> Dict[str, int]:
    """Profile and write one record at a time, in input order."""
    writer = _RowWriter(sink)
    for rec in records:
        writer.write(profile_record(rec, references, extended))
        if qv_tally is not None:
            qv_tally.add_record(rec)
    return writer.counts()


class ParallelPipeline:
    """Bounded producer / worker-pool / ordered-writer pipeline (single use).

    The first error raised while profiling (e.g. an unsupported CIGAR
    operation) or writing stops the producer; it is re-raised from
    :meth:`run` once every thread has finished.
    """

    def __init__(
        self,
        *,
        references: Optional[Mapping[str, str]] = None,
        extended: bool = False,
        threads: int = 2,
        queue_depth: int = DEFAULT_QUEUE_DEPTH,
        batch_size: int = DEFAULT_BATCH_SIZE,
        qv_tally: Optional[QVTally] = None,
    ) -> None:
        if threads < 1:
            raise ValueError("threads must be >= 1")
        if queue_depth < 1:
            raise ValueError("queue_depth must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.references = references
        self.extended = extended
        self.threads = int(threads)
        self.queue_depth = int(queue_depth)
        self.batch_size = int(batch_size)
        self.qv_tally = qv_tally

        self._work: "queue.Queue[object]" = queue.Queue(maxsize=self.queue_depth)
        self._results: "queue.Queue[object]" = queue.Queue()
        self._slots = threading.Semaphore(self.queue_depth + self.threads)
        self._failed = threading.Event()
        self._error: Optional[BaseException] = None
        self._error_lock = threading.Lock()

    def _fail(self, err: BaseException) -> None:
        with self._error_lock:
            if self._error is None:
                self._error = err
        self._failed.set()

    def _worker(self, tally: Optional[QVTally]) -> None:
        while True:
            item = self._work.get()
            if item is _STOP:
                self._results.put(_DONE)
                return
            seq, batch = item  # type: ignore[misc]
            if self._failed.is_set():
                # drain without work so the writer still frees the slot
                self._results.put((seq, None))
                continue
            try:
                rows = [profile_record(rec, self.references, self.extended) for rec in batch]
                if tally is not None:
                    for rec in batch:
                        tally.add_record(rec)
            except Exception as e:
                self._fail(e)
                rows = None
            self._results.put((seq, rows))

    def _writer(self, writer: _RowWriter) -> None:
        pending: Dict[int, Optional[List[ProfileRow]]] = {}
        next_seq = 0
        done = 0
        while done < self.threads:
            item = self._results.get()
            if item is _DONE:
                done += 1
                continue
            seq, rows = item  # type: ignore[misc]
            pending[seq] = rows
            while next_seq in pending:
                ready = pending.pop(next_seq)
                if ready is not None and not self._failed.is_set():
                    try:
                        for row in ready:
                            writer.write(row)
                    except Exception as e:
                        self._fail(e)
                next_seq += 1
                self._slots.release()

    def run(self, records: Iterable[AlignmentRecord], sink: TextIO) -> Dict[str, int]:
        tallies = [QVTally() if self.qv_tally is not None else None for _ in range(self.threads)]
        workers = [
            threading.Thread(target=self._worker, args=(tallies[i],), name=f"harmony-worker-{i}", daemon=True)
            for i in range(self.threads)
        ]
        row_writer = _RowWriter(sink)
        writer = threading.Thread(target=self._writer, args=(row_writer,), name="harmony-writer", daemon=True)
        for t in workers:
            t.start()
        writer.start()

        batches = 0
        try:
            for batch in chunked(records, self.batch_size):
                self._slots.acquire()
                if self._failed.is_set():
                    self._slots.release()
                    break
                self._work.put((batches, batch))
                batches += 1
        finally:
            for _ in workers:
                self._work.put(_STOP)
            for t in workers:
                t.join()
            writer.join()

        if self._error is not None:
            raise self._error

        if self.qv_tally is not None:
            for t in tallies:
                if t is not None:
                    self.qv_tally.merge(t)

        logger.debug("Parallel pipeline processed %d batch(es) with %d worker(s)", batches, self.threads)
        return row_writer.counts()


def run_profile(
    *,
    alignments: str | Path,
    output: str | Path,
    reference: Optional[str | Path] = None,
    region: str = "",
    extended: bool = False,
    threads: int = 1,
    queue_depth: int = DEFAULT_QUEUE_DEPTH,
    batch_size: int = DEFAULT_BATCH_SIZE,
    qv_output: Optional[str | Path] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Profile every record of ``alignments`` and write the table to ``output``.

    Returns a summary dict (counts, settings, runtime).
    """
    t0 = time.time()

    # Open the input first: region and index problems surface before the
    # (possibly large) reference is read.
    reader = bam_query(alignments, region)
    try:
        references: Dict[str, str] = {}
        if reference is not None:
            logger.info("Start reading reference")
            references = load_references(reference)
            logger.info("Finished reading reference")

        tally = QVTally() if qv_output is not None else None

        records: Iterable[AlignmentRecord] = reader
        if progress:
            records = tqdm(records, unit="read", desc="Profiling")

        out = open_output(output)
        try:
            out.write(format_header(extended))
            if threads == 1:
                counts = run_serial(
                    records, out, references=references, extended=extended, qv_tally=tally
                )
            else:
                pipeline = ParallelPipeline(
                    references=references,
                    extended=extended,
                    threads=threads,
                    queue_depth=queue_depth,
                    batch_size=batch_size,
                    qv_tally=tally,
                )
                counts = pipeline.run(records, out)
        finally:
            close_output(out)
    finally:
        reader.close()

    if tally is not None and qv_output is not None:
        tally.write(qv_output)

    dt = time.time() - t0
    logger.info("Run Time : %.3f s", dt)
    logger.info("Records  : %d", counts["records"])

    return {
        "alignments": str(alignments),
        "reference": str(reference) if reference is not None else None,
        "output": str(output),
        "region": region,
        "extended": bool(extended),
        "threads": int(threads),
        "qv_output": str(qv_output) if qv_output is not None else None,
        "counts": counts,
        "runtime_seconds": float(dt),
    }
