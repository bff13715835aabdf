import pytest

from scout.analyses import (
    ANALYSES,
    SETUP_STEPS,
    AnalysisContext,
    count_files,
    count_types,
    get_analysis,
    require_param,
    search_pattern,
)
from scout.declarations import DeclarationNode
from scout.errors import AnalysisError
from scout.models import ANALYSIS_KINDS, MetricRequest


@pytest.fixture
def tree(tmp_path):
    """3 swift files + 1 xib, one hidden swift file"""
    sources = tmp_path / "Sources"
    sources.mkdir()
    (sources / "App.swift").write_text("import UIKit\nclass App: UIResponder {}\n", encoding="utf-8")
    (sources / "View.swift").write_text("import SwiftUI\nimport UIKit\n", encoding="utf-8")
    (sources / "Main.xib").write_text("<document>import UIKit</document>\n", encoding="utf-8")
    (tmp_path / "Model.swift").write_text("struct Model {}\n", encoding="utf-8")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "Hook.swift").write_text("import UIKit\n", encoding="utf-8")
    return tmp_path


# ============================================================================
# FILES
# ============================================================================


class TestCountFiles:
    def test_counts_only_the_extension(self, tree):
        result = count_files(AnalysisContext(str(tree)), MetricRequest("files", {"extension": "swift"}))

        assert result["filetype"] == "swift"
        assert result["count"] == 3
        assert result["files"] == ["Model.swift", "Sources/App.swift", "Sources/View.swift"]

    def test_leading_dot_is_ignored(self, tree):
        result = count_files(AnalysisContext(str(tree)), MetricRequest("files", {"extension": ".xib"}))
        assert result["count"] == 1

    def test_no_matches(self, tree):
        result = count_files(AnalysisContext(str(tree)), MetricRequest("files", {"extension": "storyboard"}))
        assert result == {"filetype": "storyboard", "count": 0, "files": []}

    def test_missing_extension(self, tree):
        with pytest.raises(AnalysisError, match="extension"):
            count_files(AnalysisContext(str(tree)), MetricRequest("files", {}))


# ============================================================================
# PATTERN
# ============================================================================


class TestSearchPattern:
    def test_matches_with_line_numbers(self, tree):
        request = MetricRequest("pattern", {"pattern": "import UIKit"})
        result = search_pattern(AnalysisContext(str(tree)), request)

        assert result["count"] == 2
        assert result["matches"] == [
            {"file": "Sources/App.swift", "line": 1},
            {"file": "Sources/View.swift", "line": 2},
        ]

    def test_custom_extensions(self, tree):
        request = MetricRequest("pattern", {"pattern": "import UIKit", "extensions": ["xib"]})
        result = search_pattern(AnalysisContext(str(tree)), request)

        assert result["count"] == 1
        assert result["matches"][0]["file"] == "Sources/Main.xib"

    def test_undecodable_bytes_do_not_fail(self, tree):
        (tree / "Binary.swift").write_bytes(b"\xff\xfe import UIKit\n")
        request = MetricRequest("pattern", {"pattern": "import UIKit"})

        assert search_pattern(AnalysisContext(str(tree)), request)["count"] == 3


# ============================================================================
# TYPES
# ============================================================================


class TestCountTypes:
    def test_uses_declaration_graph(self, tree, fake_parser):
        parser = fake_parser(
            {
                "App.swift": [DeclarationNode("App", "App", "", ("BaseApp",))],
                "View.swift": [DeclarationNode("BaseApp", "BaseApp", "", ("UIResponder",))],
            }
        )
        context = AnalysisContext(str(tree), parser=parser)
        result = count_types(context, MetricRequest("types", {"type": "UIResponder"}))

        assert result["type_name"] == "UIResponder"
        assert result["count"] == 2
        assert result["types"] == [
            {"name": "App", "full_name": "App", "path": "Sources/App.swift"},
            {"name": "BaseApp", "full_name": "BaseApp", "path": "Sources/View.swift"},
        ]

    def test_graph_is_built_once_per_context(self, tree, fake_parser):
        parser = fake_parser()
        context = AnalysisContext(str(tree), parser=parser)

        count_types(context, MetricRequest("types", {"type": "UIView"}))
        count_types(context, MetricRequest("types", {"type": "UIResponder"}))

        assert len(parser.parsed) == 3


# ============================================================================
# REGISTRY
# ============================================================================


def test_registry_covers_every_kind():
    assert set(ANALYSES) == set(ANALYSIS_KINDS)


def test_unknown_kind():
    with pytest.raises(AnalysisError, match="Unknown analysis kind"):
        get_analysis("complexity")


def test_get_analysis_from_custom_registry():
    custom = {"files": count_types}
    assert get_analysis("files", custom) is count_types
    with pytest.raises(AnalysisError, match="Unknown analysis kind: pattern"):
        get_analysis("pattern", custom)


def test_only_build_settings_writes_the_tree():
    assert set(SETUP_STEPS) == {"build_settings"}


def test_require_param_rejects_empty():
    with pytest.raises(AnalysisError):
        require_param(MetricRequest("pattern", {"pattern": ""}), "pattern")
