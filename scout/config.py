"""
Configuration file support and option resolution for the scout CLI.

A configuration file (YAML or JSON) looks like:

    repo_path: .
    workers: 4
    git:
      clean: true
      fix-lfs: false
      initialize-submodules: true
      repair-required: false
    metrics:
      - kind: files
        extension: swift
        commits: [HEAD, 3f2a1c9]
      - kind: types
        type: UIView
      - kind: build_settings
        configuration: Release
        parameters: [SWIFT_VERSION]
        on-missing-project: fail

Keys may be written in kebab-case or snake_case.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from .build_settings import ON_MISSING_CHOICES
from .errors import ConfigurationError
from .git import GitConfiguration
from .models import ANALYSIS_KINDS, HEAD, KIND_BUILD_SETTINGS, MetricRequest

logger = logging.getLogger(__name__)

CONFIG_NAMES = [".scout.yaml", ".scout.yml", ".scout.json"]

DEFAULT_CONFIGURATION = "Debug"

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "repo_path": {"type": "string"},
        "workers": {"type": "integer", "minimum": 1},
        "git": {
            "type": "object",
            "properties": {
                "clean": {"type": "boolean"},
                "fix_lfs": {"type": "boolean"},
                "initialize_submodules": {"type": "boolean"},
                "repair_required": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
        "metrics": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["kind"],
                "properties": {
                    "kind": {"enum": list(ANALYSIS_KINDS)},
                    "commits": {"type": "array", "items": {"type": "string"}},
                    "on_missing_project": {"enum": list(ON_MISSING_CHOICES)},
                },
                "if": {"required": ["kind"], "properties": {"kind": {"const": KIND_BUILD_SETTINGS}}},
                "then": {"required": ["on_missing_project"]},
            },
        },
    },
}


def normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """kebab-case to snake_case, one level deep"""
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def load_config_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from a YAML or JSON file.

    Raises:
        FileNotFoundError: the file does not exist
        ConfigurationError: unsupported extension or unparseable content
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    file_ext = os.path.splitext(config_path)[1].lower()

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            if file_ext in [".yaml", ".yml"]:
                data = yaml.safe_load(f)
            elif file_ext == ".json":
                data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported config file format: {file_ext}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Invalid configuration file {config_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return data


def find_config_file(repo_path: str) -> Optional[str]:
    """
    Auto-discover a configuration file in the repository, then the current
    directory. Searches for: .scout.yaml, .scout.yml, .scout.json
    """
    search_paths = [repo_path, os.getcwd()]

    for search_dir in search_paths:
        for config_name in CONFIG_NAMES:
            config_path = os.path.join(search_dir, config_name)
            if os.path.exists(config_path):
                return config_path

    return None


def validate_config(config: Dict[str, Any]):
    try:
        jsonschema.validate(instance=config, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid configuration at {location}: {e.message}")


class ConfigResolver:
    """
    Resolve options with precedence: CLI > config file > defaults.

    CLI values of None mean "not given" and fall through to the file.
    """

    def __init__(self, cli_args: Dict[str, Any], config_path: Optional[str], repo_path: str):
        self.cli = {k: v for k, v in cli_args.items() if v is not None}
        self.config: Dict[str, Any] = {}
        self.config_path = config_path

        if config_path:
            self.config = load_config_file(config_path)
        else:
            auto_path = find_config_file(repo_path)
            if auto_path:
                self.config = load_config_file(auto_path)
                self.config_path = auto_path
                logger.info(f"Auto-discovered configuration: {auto_path}")

        self.config = normalize_keys(self.config)
        if isinstance(self.config.get("git"), dict):
            self.config["git"] = normalize_keys(self.config["git"])
        if isinstance(self.config.get("metrics"), list):
            self.config["metrics"] = [
                normalize_keys(m) if isinstance(m, dict) else m for m in self.config["metrics"]
            ]
        validate_config(self.config)

    def get(self, key: str, default: Any = None) -> Any:
        """Resolve value based on precedence"""
        if key in self.cli:
            return self.cli[key]
        if key in self.config:
            return self.config[key]
        return default

    def git_configuration(self, repo_path: str) -> GitConfiguration:
        git = self.config.get("git") or {}

        def flag(name: str) -> bool:
            if self.cli.get(name):
                return True
            return bool(git.get(name, False))

        return GitConfiguration(
            repo_path=repo_path,
            clean=flag("clean"),
            fix_lfs=flag("fix_lfs"),
            initialize_submodules=flag("initialize_submodules"),
            repair_required=flag("repair_required"),
        )

    def metric_requests(self, commits: Optional[List[str]] = None) -> List[MetricRequest]:
        """
        Requests declared in the config file's `metrics` list.

        commits, when given, replaces the commits of every request.
        """
        requests = []
        for entry in self.config.get("metrics") or []:
            params = dict(entry)
            kind = params.pop("kind")
            entry_commits = commits or params.pop("commits", None) or [HEAD]
            params.pop("commits", None)
            requests.append(build_request(kind, params, entry_commits))
        return requests


def build_request(kind: str, params: Dict[str, Any], commits: List[str]) -> MetricRequest:
    """
    Apply shell-level defaults and create the request.

    on_missing_project is never defaulted: config entries must declare it and
    the build-settings command sets it from --allow-missing-project.
    """
    params = dict(params)
    if kind == KIND_BUILD_SETTINGS:
        params.setdefault("configuration", DEFAULT_CONFIGURATION)
    return MetricRequest(kind=kind, params=params, commits=tuple(commits or [HEAD]))
