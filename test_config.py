import json
import os

import pytest

from scout.config import ConfigResolver, build_request, find_config_file, load_config_file
from scout.errors import ConfigurationError
from scout.models import HEAD


# ============================================================================
# LOADING & DISCOVERY
# ============================================================================


def test_config_loading(tmp_path):
    f = tmp_path / "config.json"
    f.write_text('{"workers": 2}', encoding="utf-8")
    assert load_config_file(str(f)) == {"workers": 2}

    y = tmp_path / "config.yaml"
    y.write_text("workers: 3\ngit:\n  clean: true\n", encoding="utf-8")
    assert load_config_file(str(y)) == {"workers": 3, "git": {"clean": True}}

    with pytest.raises(FileNotFoundError):
        load_config_file(str(tmp_path / "nonexistent.json"))

    bad = tmp_path / "config.txt"
    bad.touch()
    with pytest.raises(ConfigurationError, match="Unsupported"):
        load_config_file(str(bad))


def test_empty_yaml_is_empty_config(tmp_path):
    f = tmp_path / ".scout.yml"
    f.write_text("", encoding="utf-8")
    assert load_config_file(str(f)) == {}


def test_unparseable_config(tmp_path):
    f = tmp_path / "config.json"
    f.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Invalid configuration file"):
        load_config_file(str(f))


def test_config_must_be_mapping(tmp_path):
    f = tmp_path / "config.yaml"
    f.write_text("- files\n- types\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_config_file(str(f))


def test_find_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    repo = tmp_path / "repo"
    repo.mkdir()
    assert find_config_file(str(repo)) is None

    (tmp_path / ".scout.json").write_text("{}", encoding="utf-8")
    assert find_config_file(str(repo)) == os.path.join(str(tmp_path), ".scout.json")

    (repo / ".scout.yaml").write_text("{}", encoding="utf-8")
    assert find_config_file(str(repo)) == os.path.join(str(repo), ".scout.yaml")


# ============================================================================
# RESOLUTION
# ============================================================================


class TestConfigResolver:
    def _write(self, tmp_path, data):
        path = tmp_path / "scout.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    def test_precedence(self, tmp_path):
        path = self._write(tmp_path, {"workers": 2, "output": "from-file.json"})
        resolver = ConfigResolver({"workers": 8, "output": None}, path, str(tmp_path))

        assert resolver.get("workers") == 8
        assert resolver.get("output") == "from-file.json"
        assert resolver.get("quiet", False) is False

    def test_kebab_case_keys(self, tmp_path):
        path = self._write(
            tmp_path,
            {
                "repo-path": "/src/app",
                "git": {"fix-lfs": True, "initialize-submodules": True},
                "metrics": [{"kind": "build_settings", "on-missing-project": "empty"}],
            },
        )
        resolver = ConfigResolver({}, path, str(tmp_path))

        assert resolver.get("repo_path") == "/src/app"
        git = resolver.git_configuration("/src/app")
        assert git.fix_lfs and git.initialize_submodules and not git.clean
        assert resolver.metric_requests()[0].params["on_missing_project"] == "empty"

    def test_cli_flags_enable_git_steps(self, tmp_path):
        path = self._write(tmp_path, {"git": {"clean": False}})
        resolver = ConfigResolver({"clean": True}, path, str(tmp_path))

        assert resolver.git_configuration(str(tmp_path)).clean

    def test_auto_discovery(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".scout.yaml").write_text("workers: 6\n", encoding="utf-8")
        resolver = ConfigResolver({}, None, str(tmp_path))

        assert resolver.get("workers") == 6
        assert resolver.config_path.endswith(".scout.yaml")

    @pytest.mark.parametrize(
        "data, location",
        [
            ({"workers": 0}, "workers"),
            ({"git": {"rebase": True}}, "git"),
            ({"metrics": [{"extension": "swift"}]}, "metrics.0"),
            ({"metrics": [{"kind": "complexity"}]}, "metrics.0.kind"),
            ({"metrics": [{"kind": "files", "commits": "HEAD"}]}, "metrics.0.commits"),
            ({"metrics": [{"kind": "build_settings", "configuration": "Debug"}]}, "metrics.0"),
        ],
    )
    def test_schema_errors(self, tmp_path, data, location):
        path = self._write(tmp_path, data)
        with pytest.raises(ConfigurationError, match=f"at {location}"):
            ConfigResolver({}, path, str(tmp_path))

    def test_build_settings_metrics_declare_missing_project_policy(self, tmp_path):
        path = self._write(tmp_path, {"metrics": [{"kind": "build_settings", "parameters": ["SWIFT_VERSION"]}]})
        with pytest.raises(ConfigurationError, match="on_missing_project"):
            ConfigResolver({}, path, str(tmp_path))


class TestMetricRequests:
    def test_requests_from_config(self, tmp_path):
        path = tmp_path / ".scout.yaml"
        path.write_text(
            "metrics:\n"
            "  - kind: files\n"
            "    extension: swift\n"
            "    commits: [abc1234, HEAD]\n"
            "  - kind: types\n"
            "    type: UIView\n",
            encoding="utf-8",
        )
        requests = ConfigResolver({}, str(path), str(tmp_path)).metric_requests()

        assert [r.kind for r in requests] == ["files", "types"]
        assert requests[0].commits == ("abc1234", HEAD)
        assert requests[0].params == {"extension": "swift"}
        assert requests[1].commits == (HEAD,)

    def test_cli_commits_replace_config_commits(self, tmp_path):
        path = tmp_path / ".scout.json"
        path.write_text(json.dumps({"metrics": [{"kind": "files", "extension": "swift", "commits": ["a"]}]}), encoding="utf-8")
        requests = ConfigResolver({}, str(path), str(tmp_path)).metric_requests(["b", "c"])

        assert requests[0].commits == ("b", "c")
        assert "commits" not in requests[0].params


def test_build_request_defaults_only_the_configuration():
    request = build_request("build_settings", {"parameters": ["SWIFT_VERSION"]}, ["HEAD"])

    assert request.params["configuration"] == "Debug"
    assert "on_missing_project" not in request.params


def test_build_request_keeps_explicit_values():
    request = build_request("build_settings", {"configuration": "Release", "on_missing_project": "empty"}, [])

    assert request.params["configuration"] == "Release"
    assert request.params["on_missing_project"] == "empty"
    assert request.commits == (HEAD,)
