"""
scout: code metrics across the git history of a repository.

    from scout import GitConfiguration, RepositoryNormalizer, AnalysisRunner, MetricRequest, plan

    normalizer = RepositoryNormalizer(GitConfiguration(repo_path="path/to/repo"))
    batch = plan([MetricRequest("files", {"extension": "swift"}, ("HEAD", "3f2a1c9"))], normalizer)
    for report in AnalysisRunner(normalizer).run(batch):
        print(report.to_dict())
"""

__version__ = "1.0.0"

from .declarations import DeclarationGraph, DeclarationNode, is_inherited
from .errors import (
    AnalysisError,
    CheckoutError,
    ConfigurationError,
    MalformedOutputError,
    ParseError,
    RepairError,
    ResolutionError,
    ScoutError,
    ToolNotInstalledError,
)
from .git import GitConfiguration, RepositoryNormalizer
from .models import HEAD, AnalysisResult, CommitReport, MetricRequest
from .planner import CommitBatch, group_by_commit, plan, resolve_head
from .runner import AnalysisRunner, CancellationToken, RunnerState
from .stream import IncrementalJSONWriter, ReportStream, run_in_background
