"""
Commit Planner: resolves the HEAD token and groups requests by commit so
that every commit is checked out exactly once.
"""

import logging
from typing import Iterable, List, Sequence

from .git import short_hash
from .models import HEAD, MetricRequest

logger = logging.getLogger(__name__)


class CommitBatch(dict):
    """
    Requests grouped by resolved commit hash.

    Iteration order is the order in which commits were first referenced
    across all requests, never a sorted order.
    """

    @property
    def commits(self) -> List[str]:
        return list(self.keys())

    @property
    def request_count(self) -> int:
        return sum(len(requests) for requests in self.values())


def resolve_head(requests: Sequence[MetricRequest], normalizer) -> List[MetricRequest]:
    """
    Replace every HEAD token with the current head hash.

    The normalizer is queried once, and only if some request references HEAD.

    Raises:
        ResolutionError: the head lookup failed
    """
    if not any(HEAD in request.commits for request in requests):
        return list(requests)

    head = normalizer.head_hash()
    logger.info(f"Resolved HEAD to: {head}")
    return [
        request.with_commits([head if c == HEAD else c for c in request.commits])
        for request in requests
    ]


def group_by_commit(requests: Iterable[MetricRequest]) -> CommitBatch:
    batch = CommitBatch()
    for request in requests:
        for commit in request.commits:
            pending = batch.setdefault(commit, [])
            # A request listing the same commit twice is still analyzed once
            if not any(existing is request for existing in pending):
                pending.append(request)
    return batch


def plan(requests: Sequence[MetricRequest], normalizer) -> CommitBatch:
    """Resolve HEAD and group requests by concrete commit."""
    batch = group_by_commit(resolve_head(requests, normalizer))
    logger.info(
        f"Will analyze {len(batch)} commit(s) for {len(requests)} metric(s): "
        f"{', '.join(short_hash(c) for c in batch.commits)}"
    )
    return batch
