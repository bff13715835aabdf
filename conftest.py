import os
import subprocess
from unittest.mock import MagicMock

import pytest

from scout.declarations import DeclarationNode
from scout.git import GitConfiguration
from scout.reporting import ProgressReporter


@pytest.fixture
def quiet_reporter():
    return ProgressReporter(quiet=True)


@pytest.fixture
def mock_normalizer(tmp_path):
    """Normalizer double: every git operation succeeds, HEAD is 'head000'."""
    n = MagicMock()
    n.config = GitConfiguration(repo_path=str(tmp_path))
    n.repo_path = str(tmp_path)
    n.head_hash.return_value = "head000"
    n.commit_date.return_value = "2025-01-15T07:30:00Z"
    return n


class FakeParser:
    """Returns canned declarations per file name instead of calling sourcekitten."""

    def __init__(self, nodes_by_file=None):
        self.nodes_by_file = nodes_by_file or {}
        self.parsed = []

    def parse(self, file_path):
        self.parsed.append(file_path)
        name = os.path.basename(file_path)
        return [
            DeclarationNode(n.name, n.full_name, file_path, n.inherited_types, n.is_alias)
            for n in self.nodes_by_file.get(name, [])
        ]


@pytest.fixture
def fake_parser():
    return FakeParser


@pytest.fixture
def git_repo(tmp_path):
    """
    Four commits of a small Swift project:
    1. App.swift, README.md
    2. + View.swift, Main.xib
    3. + Model.swift, .build/Generated.swift (hidden)
    4. View.swift rewritten without UIKit
    """
    repo = tmp_path / "repo"
    repo.mkdir()

    def run(*args):
        subprocess.run(["git", "-C", str(repo)] + list(args), check=True, capture_output=True)

    run("init")
    run("config", "user.email", "tester@test.com")
    run("config", "user.name", "Tester")
    run("config", "commit.gpgsign", "false")

    sources = repo / "Sources"
    sources.mkdir()

    # Commit 1
    (sources / "App.swift").write_text(
        "import UIKit\n\nclass AppDelegate: UIResponder, UIApplicationDelegate {}\n", encoding="utf-8"
    )
    (repo / "README.md").write_text("# App\nimport UIKit is mentioned here too\n", encoding="utf-8")
    run("add", ".")
    run("commit", "-m", "initial")

    # Commit 2
    (sources / "View.swift").write_text(
        "import UIKit\nimport SwiftUI\n\nfinal class HomeView: UIView {}\n", encoding="utf-8"
    )
    (sources / "Main.xib").write_text("<document/>\n", encoding="utf-8")
    run("add", ".")
    run("commit", "-m", "add view")

    # Commit 3
    (sources / "Model.swift").write_text("struct Item: Codable {}\n", encoding="utf-8")
    hidden = repo / ".build"
    hidden.mkdir()
    (hidden / "Generated.swift").write_text("import UIKit\n", encoding="utf-8")
    run("add", "-f", ".")
    run("commit", "-m", "add model")

    # Commit 4
    (sources / "View.swift").write_text(
        "import SwiftUI\n\nstruct HomeView: View {}\n", encoding="utf-8"
    )
    run("add", ".")
    run("commit", "-m", "move to SwiftUI")

    return str(repo)


@pytest.fixture
def repo_commits(git_repo):
    """Commit hashes of git_repo, oldest first."""
    result = subprocess.run(
        ["git", "-C", git_repo, "rev-list", "--reverse", "HEAD"],
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.split()
