"""
Analysis Runner: drives checkout -> repair -> setup -> dispatch -> collect -> emit
for every commit of a CommitBatch.

Commits are processed strictly one after another because the working tree
is a single shared resource. Setup steps that write to the tree (build
settings setup commands) run one at a time first; after that the requests
at the same commit only read the tree, so they may run concurrently on a
thread pool.

A failure is contained at the smallest scope that produced it:
- checkout (or a mandatory repair) fails -> that commit's report is degraded
- one setup step or analysis raises -> only that request's slot records the error
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence

from .analyses import ANALYSES, SETUP_STEPS, AnalysisContext, get_analysis
from .errors import CheckoutError, RepairError, ScoutError
from .git import RepositoryNormalizer, short_hash
from .models import AnalysisResult, CommitReport, MetricRequest
from .planner import CommitBatch

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


class RunnerState(Enum):
    IDLE = "idle"
    CHECKOUT = "checkout"
    REPAIR = "repair"
    SETUP = "setup"
    DISPATCH = "dispatch"
    COLLECT = "collect"
    EMIT = "emit"
    FAILED = "failed"


class CancellationToken:
    """
    Cooperative cancellation, observed only between commits.

    Cancelling never interrupts a checkout or an analysis already running;
    their external processes run to completion.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AnalysisRunner:
    def __init__(
        self,
        normalizer: RepositoryNormalizer,
        analyses: Optional[Dict] = None,
        max_workers: int = DEFAULT_WORKERS,
        parser=None,
        cancel_token: Optional[CancellationToken] = None,
        setup_steps: Optional[Dict] = None,
    ):
        self.normalizer = normalizer
        self.analyses = analyses if analyses is not None else ANALYSES
        self.setup_steps = setup_steps if setup_steps is not None else SETUP_STEPS
        self.max_workers = max(1, max_workers)
        self.parser = parser
        self.cancel_token = cancel_token or CancellationToken()
        self.state = RunnerState.IDLE
        self.commits_processed = 0
        self.failed_commits = 0
        self.failed_requests = 0
        self.errors: List[str] = []

    def _transition(self, state: RunnerState, commit: str = ""):
        logger.debug(f"[{short_hash(commit)}] {self.state.value} -> {state.value}")
        self.state = state

    def run(self, batch: CommitBatch) -> Iterator[CommitReport]:
        """Yield one CommitReport per batched commit, in batch order."""
        total = len(batch)
        for index, (commit, requests) in enumerate(batch.items(), start=1):
            if self.cancel_token.cancelled:
                logger.warning(
                    f"Cancelled before commit {short_hash(commit)}; "
                    f"{total - index + 1} commit(s) not analyzed"
                )
                break

            logger.info(f"Processing commit {index}/{total}: {commit} ({len(requests)} request(s))")
            report = self.process_commit(commit, requests)
            self.commits_processed += 1
            yield report
            self._transition(RunnerState.IDLE, commit)

    def run_into(self, batch: CommitBatch, stream):
        """
        Publish every report into stream, then close it.

        A fatal error closes the stream with that error, so the consumer sees
        it after the reports already published.
        """
        try:
            for report in self.run(batch):
                stream.publish(report)
        except Exception as e:
            logger.error(f"Run aborted: {e}")
            stream.close(error=e)
            raise
        stream.close()

    def process_commit(self, commit: str, requests: Sequence[MetricRequest]) -> CommitReport:
        warnings = []

        self._transition(RunnerState.CHECKOUT, commit)
        try:
            self.normalizer.checkout(commit)
        except CheckoutError as e:
            return self._fail(commit, requests, str(e))

        if self.normalizer.config.needs_repair:
            self._transition(RunnerState.REPAIR, commit)
            try:
                self.normalizer.prepare()
            except RepairError as e:
                if self.normalizer.config.repair_required:
                    return self._fail(commit, requests, str(e))
                logger.warning(f"[{short_hash(commit)}] {e}; continuing")
                warnings.append(str(e))

        context = AnalysisContext(self.normalizer.repo_path, commit, self.parser)
        setup_failures = self._run_setup(context, requests)

        self._transition(RunnerState.DISPATCH, commit)
        pending = [r for i, r in enumerate(requests) if i not in setup_failures]
        dispatched = iter(self._dispatch(context, pending))
        results = [
            setup_failures[i] if i in setup_failures else next(dispatched)
            for i in range(len(requests))
        ]

        self._transition(RunnerState.COLLECT, commit)
        for result in results:
            if result.ok:
                logger.info(f"[{short_hash(commit)}] {result.request}: {_describe(result)}")
            else:
                self.failed_requests += 1
                self.errors.append(f"{commit} {result.request}: {result.error}")

        self._transition(RunnerState.EMIT, commit)
        return CommitReport(
            commit=commit,
            date=self._commit_date(commit),
            results=tuple(results),
            warnings=tuple(warnings),
        )

    def _dispatch(self, context: AnalysisContext, requests: Sequence[MetricRequest]) -> List[AnalysisResult]:
        if self.max_workers == 1 or len(requests) <= 1:
            return [self._run_request(context, r) for r in requests]

        workers = min(self.max_workers, len(requests))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scout-analysis") as pool:
            futures = [pool.submit(self._run_request, context, r) for r in requests]
            return [f.result() for f in futures]

    def _run_setup(self, context: AnalysisContext, requests: Sequence[MetricRequest]) -> Dict[int, AnalysisResult]:
        """
        Run the tree-writing setup step of each request, serially, in request order.

        Returns the failed slots by request index; those requests are not dispatched.
        """
        failures: Dict[int, AnalysisResult] = {}
        steps = [(i, r, self.setup_steps.get(r.kind)) for i, r in enumerate(requests)]
        steps = [(i, r, step) for i, r, step in steps if step is not None]
        if not steps:
            return failures

        self._transition(RunnerState.SETUP, context.commit)
        for index, request, step in steps:
            try:
                step(context, request)
            except Exception as e:
                logger.warning(f"[{short_hash(context.commit)}] Setup for {request.identity} failed: {e}")
                failures[index] = AnalysisResult.failure(request, str(e))
        return failures

    def _run_request(self, context: AnalysisContext, request: MetricRequest) -> AnalysisResult:
        try:
            analysis = get_analysis(request.kind, self.analyses)
            payload = analysis(context, request)
        except Exception as e:
            logger.warning(f"[{short_hash(context.commit)}] {request.identity} failed: {e}")
            return AnalysisResult.failure(request, str(e))
        return AnalysisResult(request=request.identity, kind=request.kind, payload=payload)

    def _fail(self, commit: str, requests: Sequence[MetricRequest], error: str) -> CommitReport:
        self._transition(RunnerState.FAILED, commit)
        logger.error(f"[{short_hash(commit)}] {error}; skipping analyses for this commit")
        self.failed_commits += 1
        self.errors.append(f"{commit}: {error}")
        return CommitReport(
            commit=commit,
            date=self._commit_date(commit),
            results=tuple(AnalysisResult.failure(r, error) for r in requests),
            error=error,
        )

    def _commit_date(self, commit: str) -> Optional[str]:
        try:
            return self.normalizer.commit_date(commit)
        except (ScoutError, ValueError) as e:
            logger.warning(f"[{short_hash(commit)}] Could not read commit date: {e}")
            return None


def _describe(result: AnalysisResult) -> str:
    payload = result.payload
    if "count" in payload:
        return f"{payload['count']} found"
    if "lines_of_code" in payload:
        return f"{payload['lines_of_code']} lines"
    if "targets" in payload:
        return f"{len(payload['targets'])} targets"
    return "done"
