"""
Orchestration of the counting pipeline.

  line source (1) -> lines -> splitters (S) -> fragments -> encoders (E)
      -> shard queues (N) -> shard counters (N) -> histogram

Stages run as thread pools joined by bounded queues, so a fast producer
blocks once its downstream queue is full. A queue is closed only after every
worker that writes to it has finished: the orchestrator waits on the futures
of a whole stage (the barrier) and then puts one end-of-stream marker per
consumer. The histogram is built after the counter barrier, when no shard
map can change any more.

If any worker fails the abort event is set; workers blocked on a queue give
up with PipelineAbortedError, every stage still joins, and run_pipeline
re-raises the first real failure. Nothing is printed for an aborted run.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple

import numpy as np

from .config import PipelineConfig
from .encoder import encode_fragment
from .exceptions import PipelineAbortedError
from .fragments import split_fragments
from .histogram import build_histogram
from .line_source import LineSource
from .log import get_logger
from .shard_counter import ShardCounter, partition_batch

LOGGER = get_logger("pipeline")

# how long a blocked put/get sleeps before re-checking the abort event
POLL_INTERVAL = 0.05

_END = object()


class StageQueue:
    """
    Bounded FIFO between two stages.

    'consumers' is the number of workers reading from the queue; close()
    enqueues that many end markers so each of them stops exactly once.
    """

    def __init__(self, name: str, capacity: int, consumers: int, abort: threading.Event):
        self.name = name
        self.consumers = consumers
        self._abort = abort
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=capacity)
        self._closed = False

    def put(self, item: Any) -> None:
        while True:
            if self._abort.is_set():
                raise PipelineAbortedError(f"queue '{self.name}' aborted")
            try:
                self._queue.put(item, timeout=POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def get(self) -> Any:
        while True:
            if self._abort.is_set():
                raise PipelineAbortedError(f"queue '{self.name}' aborted")
            try:
                return self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            for _ in range(self.consumers):
                self.put(_END)
        except PipelineAbortedError:
            # consumers are leaving through the abort path already
            pass

    def __iter__(self) -> Iterator[Any]:
        while True:
            item = self.get()
            if item is _END:
                return
            yield item


@dataclass
class RunStats:
    lines_read: int = 0
    header_lines: int = 0
    empty_lines: int = 0
    sequence_lines: int = 0
    fragments: int = 0
    windows: int = 0
    counted: int = 0


@dataclass
class PipelineResult:
    config: PipelineConfig
    shard_counts: List[Dict[int, int]]
    histogram: np.ndarray
    stats: RunStats = field(default_factory=RunStats)

    @property
    def distinct_kmers(self) -> int:
        return sum(len(c) for c in self.shard_counts)

    @property
    def total_kmers(self) -> int:
        return sum(sum(c.values()) for c in self.shard_counts)


# ---------------------------------------------------------------------------
# stage workers; each returns the number of items it sent downstream

def _read_lines(source: LineSource, out: StageQueue) -> int:
    sent = 0
    for line in source:
        out.put(line)
        sent += 1
    LOGGER.debug("Line source finished: %s sequence lines.", f"{sent:,}")
    return sent


def _split_lines(k: int, lines: StageQueue, out: StageQueue) -> int:
    sent = 0
    for line in lines:
        for fragment in split_fragments(line, k):
            out.put(fragment)
            sent += 1
    return sent


def _encode_fragments(k: int, routing: str, fragments: StageQueue,
                      shard_queues: Sequence[StageQueue]) -> int:
    windows = 0
    shards = len(shard_queues)
    for fragment in fragments:
        batch = encode_fragment(fragment, k)
        windows += batch.size
        if routing == "direct":
            for sq, sub in zip(shard_queues, partition_batch(batch, shards)):
                if sub.size:
                    sq.put(sub)
        else:
            # same read-only batch object for every shard
            for sq in shard_queues:
                sq.put(batch)
    return windows


def _count_shard(counter: ShardCounter, batches: StageQueue) -> int:
    for batch in batches:
        counter.consume(batch)
    LOGGER.debug("Shard %d finished: %s distinct k-mers.", counter.shard_id, f"{counter.distinct:,}")
    return counter.kept


def _guarded(abort: threading.Event, fn: Callable[..., int]) -> Callable[..., int]:
    def run(*args) -> int:
        try:
            return fn(*args)
        except BaseException:
            abort.set()
            raise
    return run


def _barrier(futures: Sequence[Future]) -> Tuple[List[int], List[BaseException]]:
    """Wait for every future of a stage; returns (results, exceptions)."""
    wait(futures)
    results, errors = [], []
    for f in futures:
        exc = f.exception()
        if exc is None:
            results.append(f.result())
        else:
            errors.append(exc)
    return results, errors


def _root_cause(errors: Sequence[BaseException]) -> Optional[BaseException]:
    for exc in errors:
        if not isinstance(exc, PipelineAbortedError):
            return exc
    return errors[0] if errors else None


def run_pipeline(stream: TextIO, config: Optional[PipelineConfig] = None) -> PipelineResult:
    """
    Count canonical k-mers of every sequence line in 'stream' and build the histogram.

    The configuration is validated before any thread starts. Any failure
    aborts the whole run and is re-raised here.
    """
    config = (config or PipelineConfig()).validate()
    LOGGER.info("Counting %d-mers: %d shards, %d splitters, %d encoders, queue capacity %d, %s routing.",
                config.k, config.shards, config.splitter_workers, config.encoder_workers,
                config.queue_capacity, config.routing)

    abort = threading.Event()
    cap = config.queue_capacity
    lines_q = StageQueue("lines", cap, config.splitter_workers, abort)
    fragments_q = StageQueue("fragments", cap, config.encoder_workers, abort)
    shard_qs = [StageQueue(f"shard-{i}", cap, 1, abort) for i in range(config.shards)]
    counters = [ShardCounter(i, config.shards) for i in range(config.shards)]
    source = LineSource(stream, config.header_marker, config.max_line_length, config.progress)

    n_threads = 1 + config.splitter_workers + config.encoder_workers + config.shards
    errors: List[BaseException] = []
    stats = RunStats()
    with ThreadPoolExecutor(max_workers=n_threads, thread_name_prefix="kmer") as pool:
        read_f = [pool.submit(_guarded(abort, _read_lines), source, lines_q)]
        split_f = [pool.submit(_guarded(abort, _split_lines), config.k, lines_q, fragments_q)
                   for _ in range(config.splitter_workers)]
        encode_f = [pool.submit(_guarded(abort, _encode_fragments), config.k, config.routing,
                                fragments_q, shard_qs)
                    for _ in range(config.encoder_workers)]
        count_f = [pool.submit(_guarded(abort, _count_shard), counter, sq)
                   for counter, sq in zip(counters, shard_qs)]

        stages = (
            ("line source", read_f, [lines_q]),
            ("splitters", split_f, [fragments_q]),
            ("encoders", encode_f, shard_qs),
            ("counters", count_f, []),
        )
        totals = {}
        for name, futures, downstream in stages:
            results, stage_errors = _barrier(futures)
            errors.extend(stage_errors)
            for q in downstream:
                q.close()
            totals[name] = sum(results)
            if not stage_errors:
                LOGGER.info("Stage '%s' done (%d workers, %s items).", name, len(futures),
                            f"{totals[name]:,}")

    root = _root_cause(errors)
    if root is not None:
        LOGGER.error("Pipeline aborted: %s", root)
        raise root

    stats.lines_read = source.lines_read
    stats.header_lines = source.header_lines
    stats.empty_lines = source.empty_lines
    stats.sequence_lines = totals["line source"]
    stats.fragments = totals["splitters"]
    stats.windows = totals["encoders"]
    stats.counted = totals["counters"]

    shard_counts = [c.counts for c in counters]
    hist = build_histogram(shard_counts)
    result = PipelineResult(config=config, shard_counts=shard_counts, histogram=hist, stats=stats)
    LOGGER.info("Read %s lines (%s headers, %s empty); %s fragments, %s k-mer windows, %s distinct k-mers.",
                f"{stats.lines_read:,}", f"{stats.header_lines:,}", f"{stats.empty_lines:,}",
                f"{stats.fragments:,}", f"{stats.windows:,}", f"{result.distinct_kmers:,}")
    return result
