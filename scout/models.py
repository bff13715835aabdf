"""
Data structures shared by the planner, the runner and the analyses.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

HEAD = "HEAD"

KIND_FILES = "files"
KIND_LOC = "loc"
KIND_PATTERN = "pattern"
KIND_TYPES = "types"
KIND_BUILD_SETTINGS = "build_settings"

ANALYSIS_KINDS = (KIND_FILES, KIND_LOC, KIND_PATTERN, KIND_TYPES, KIND_BUILD_SETTINGS)

# Parameter naming the request in reports, per kind
_IDENTITY_PARAMS = {
    KIND_FILES: "extension",
    KIND_PATTERN: "pattern",
    KIND_TYPES: "type",
    KIND_BUILD_SETTINGS: "configuration",
}


@dataclass(frozen=True)
class MetricRequest:
    """
    One analysis to run against a list of commits.

    params are kind-specific (e.g. {"extension": "swift"} for files).
    commits may contain the symbolic HEAD token until the planner resolves it.
    """

    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)
    commits: Tuple[str, ...] = (HEAD,)

    def __post_init__(self):
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "commits", tuple(self.commits))

    def with_commits(self, commits: Sequence[str]) -> "MetricRequest":
        return MetricRequest(kind=self.kind, params=dict(self.params), commits=tuple(commits))

    @property
    def identity(self) -> str:
        """Human-readable key used to label this request's result"""
        if self.params.get("name"):
            return str(self.params["name"])
        if self.kind == KIND_LOC:
            languages = self.params.get("languages") or []
            identity = f"{self.kind}:{', '.join(languages) or 'Unknown'}"
            scope = [
                f"{key}: {', '.join(self.params[key])}"
                for key in ("include", "exclude")
                if self.params.get(key)
            ]
            return f"{identity} [{'; '.join(scope)}]" if scope else identity
        key = _IDENTITY_PARAMS.get(self.kind)
        if not key or key not in self.params:
            return self.kind
        identity = f"{self.kind}:{self.params[key]}"
        if self.kind == KIND_PATTERN and self.params.get("extensions"):
            identity += f" [{', '.join(self.params['extensions'])}]"
        return identity


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one request at one commit: a payload or an error"""

    request: str
    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, request: MetricRequest, error: str) -> "AnalysisResult":
        return cls(request=request.identity, kind=request.kind, error=error)

    def to_dict(self) -> Dict[str, Any]:
        data = {"request": self.request, "kind": self.kind}
        if self.error is not None:
            data["error"] = self.error
        else:
            data.update(self.payload)
        return data


@dataclass(frozen=True)
class CommitReport:
    """
    Everything measured at one commit. Emitted once, never mutated.

    error is set when the commit itself could not be prepared (checkout or
    mandatory repair failed); such a report is degraded and each request slot
    carries that error. warnings hold non-fatal repair failures.
    """

    commit: str
    date: Optional[str]
    results: Tuple[AnalysisResult, ...] = ()
    error: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return self.error is not None

    def result_for(self, identity: str) -> Optional[AnalysisResult]:
        for result in self.results:
            if result.request == identity:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "commit": self.commit,
            "date": self.date,
            "results": [r.to_dict() for r in self.results],
        }
        if self.error is not None:
            data["error"] = self.error
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data
