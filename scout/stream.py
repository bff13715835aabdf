"""
Output Stream: hands CommitReports from the runner to the caller as soon as
each commit is done.

ReportStream is a single-producer, single-consumer channel. The producer
publishes reports and closes the stream, optionally with the error that
ended the run; the consumer iterates and receives that error after the
last report.

IncrementalJSONWriter keeps what has been emitted on disk, so an
interrupted run still leaves every finished commit behind.
"""

import json
import logging
import os
import queue
import tempfile
import threading
from typing import Any, Dict, List, Optional

from .errors import StreamClosedError
from .models import CommitReport

logger = logging.getLogger(__name__)

_CLOSED = object()


class ReportStream:
    def __init__(self):
        self._queue: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._error: Optional[BaseException] = None
        self.thread: Optional[threading.Thread] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, report: CommitReport):
        with self._lock:
            if self._closed:
                raise StreamClosedError(f"Cannot publish report for {report.commit}: stream is closed")
            self._queue.put(report)

    def close(self, error: Optional[BaseException] = None):
        """End the stream. Closing twice is a no-op."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._error = error
            self._queue.put(_CLOSED)

    def __iter__(self):
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                break
            yield item
        if self._error is not None:
            raise self._error

    def join(self, timeout: Optional[float] = None):
        if self.thread is not None:
            self.thread.join(timeout)


def run_in_background(runner, batch) -> ReportStream:
    """Run the batch on a worker thread; reports arrive through the returned stream."""
    stream = ReportStream()

    def produce():
        try:
            runner.run_into(batch, stream)
        except Exception:
            # Already delivered to the consumer through the stream
            logger.debug("Background run ended with an error", exc_info=True)

    stream.thread = threading.Thread(target=produce, name="scout-runner", daemon=True)
    stream.thread.start()
    return stream


class IncrementalJSONWriter:
    """
    Accumulates reports into a JSON array file, rewritten after every append.

    The file is replaced atomically, so readers never see a partial array.
    A commit already written is not written again.
    """

    def __init__(self, output_path: str):
        self.output_path = output_path
        self._results: List[Dict[str, Any]] = []
        self._commits = set()

    @property
    def results(self) -> List[Dict[str, Any]]:
        return list(self._results)

    def append(self, report: CommitReport) -> bool:
        """Add report and flush. Returns False when its commit was already written."""
        if report.commit in self._commits:
            logger.debug(f"Report for {report.commit} already written, skipping")
            return False
        results = self._results + [report.to_dict()]
        self._flush(results)
        self._results = results
        self._commits.add(report.commit)
        return True

    def _flush(self, results: List[Dict[str, Any]]):
        directory = os.path.dirname(os.path.abspath(self.output_path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".scout-", suffix=".json.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(results, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.output_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug(f"Wrote {len(results)} report(s) to {self.output_path}")
