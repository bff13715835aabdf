"""
Analysis functions and the registry the runner dispatches through.

Every analysis has the signature

    analysis(context: AnalysisContext, request: MetricRequest) -> dict

reads the checked-out tree under context.repo_path and returns the payload
of its AnalysisResult. Analyses hold no state between calls; the context
lives for exactly one commit. Analyses only read the tree; anything that
writes to it belongs in SETUP_STEPS.
"""

import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional

from . import build_settings, loc
from .declarations import DeclarationGraph, iter_source_files
from .errors import AnalysisError
from .models import KIND_BUILD_SETTINGS, KIND_FILES, KIND_LOC, KIND_PATTERN, KIND_TYPES, MetricRequest
from .swift_parser import SwiftParser

logger = logging.getLogger(__name__)


class AnalysisContext:
    """
    Per-commit view of the working tree shared by the requests of one commit.

    The declaration graph is built lazily, once, by the first types request
    that needs it; afterwards it is only read.
    """

    def __init__(self, repo_path: str, commit: str = "", parser=None):
        self.repo_path = os.path.abspath(repo_path)
        self.commit = commit
        self.parser = parser or SwiftParser()
        self._graph: Optional[DeclarationGraph] = None
        self._graph_lock = threading.Lock()

    def declaration_graph(self) -> DeclarationGraph:
        with self._graph_lock:
            if self._graph is None:
                self._graph = DeclarationGraph.build(self.repo_path, self.parser)
            return self._graph

    def relative(self, path: str) -> str:
        return os.path.relpath(path, self.repo_path)


def require_param(request: MetricRequest, key: str) -> Any:
    value = request.params.get(key)
    if value is None or value == "" or value == []:
        raise AnalysisError(f"{request.kind} request is missing required parameter '{key}'")
    return value


def count_files(context: AnalysisContext, request: MetricRequest) -> Dict[str, Any]:
    """Files with the requested extension (hidden entries skipped)."""
    extension = str(require_param(request, "extension")).lstrip(".")
    files = [context.relative(p) for p in iter_source_files(context.repo_path, extension)]
    logger.debug(f"Found {len(files)} files of type '{extension}'")
    return {"filetype": extension, "count": len(files), "files": files}


def search_pattern(context: AnalysisContext, request: MetricRequest) -> Dict[str, Any]:
    """Lines containing a literal pattern, across files of the given extensions."""
    pattern = str(require_param(request, "pattern"))
    extensions = request.params.get("extensions") or ["swift"]

    matches: List[Dict[str, Any]] = []
    for extension in extensions:
        for file_path in iter_source_files(context.repo_path, extension):
            relative_path = context.relative(file_path)
            with open(file_path, "r", encoding="utf-8", errors="replace") as f:
                for line_no, line in enumerate(f, start=1):
                    if pattern in line:
                        matches.append({"file": relative_path, "line": line_no})

    return {"pattern": pattern, "count": len(matches), "matches": matches}


def count_types(context: AnalysisContext, request: MetricRequest) -> Dict[str, Any]:
    """Declarations inheriting (transitively) from the requested base type."""
    type_name = str(require_param(request, "type"))
    graph = context.declaration_graph()
    found = graph.find_inheriting(type_name)
    logger.debug(f"Types conforming to {type_name}: {[n.name for n in found]}")
    return {
        "type_name": type_name,
        "count": len(found),
        "types": [
            {"name": n.name, "full_name": n.full_name, "path": context.relative(n.file_path)}
            for n in found
        ],
    }


Analysis = Callable[[AnalysisContext, MetricRequest], Dict[str, Any]]

ANALYSES: Dict[str, Analysis] = {
    KIND_FILES: count_files,
    KIND_PATTERN: search_pattern,
    KIND_TYPES: count_types,
    KIND_LOC: loc.count_lines,
    KIND_BUILD_SETTINGS: build_settings.extract_build_settings,
}


# Steps that modify the working tree; run one at a time before dispatch
SETUP_STEPS: Dict[str, Callable[[AnalysisContext, MetricRequest], None]] = {
    KIND_BUILD_SETTINGS: build_settings.prepare_tree,
}


def get_analysis(kind: str, registry: Optional[Dict[str, Analysis]] = None) -> Analysis:
    registry = ANALYSES if registry is None else registry
    try:
        return registry[kind]
    except KeyError:
        raise AnalysisError(f"Unknown analysis kind: {kind}")
