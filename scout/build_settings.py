"""
Build-settings extraction from Xcode projects via `xcodebuild -json`.

Projects are discovered as *.xcodeproj bundles whose repo-relative path
matches the include globs and none of the exclude globs (gitignore-style
patterns). For each project the targets are listed, then the settings of
every target are read for one build configuration.

Both xcodebuild outputs are validated against a schema before use; a
mismatch is a MalformedOutputError rather than an empty result.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import jsonschema
import pathspec

from .errors import AnalysisError, CommandError, MalformedOutputError
from .shell import run_command

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE = ["**/*.xcodeproj"]

ON_MISSING_FAIL = "fail"
ON_MISSING_EMPTY = "empty"
ON_MISSING_CHOICES = (ON_MISSING_FAIL, ON_MISSING_EMPTY)

LIST_SCHEMA = {
    "type": "object",
    "required": ["project"],
    "properties": {
        "project": {
            "type": "object",
            "required": ["targets"],
            "properties": {"targets": {"type": "array", "items": {"type": "string"}}},
        }
    },
}

SETTINGS_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["target", "buildSettings"],
        "properties": {
            "target": {"type": "string"},
            "buildSettings": {"type": "object"},
        },
    },
}


@dataclass(frozen=True)
class SetupCommand:
    """Shell command run in the checked-out tree before project discovery"""

    command: str
    working_directory: Optional[str] = None
    optional: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SetupCommand":
        return cls(
            command=data["command"],
            working_directory=data.get("working_directory") or data.get("workingDirectory"),
            optional=bool(data.get("optional", False)),
        )


LIST_VALIDATOR = jsonschema.Draft202012Validator(LIST_SCHEMA)
SETTINGS_VALIDATOR = jsonschema.Draft202012Validator(SETTINGS_SCHEMA)


def decode_json(output: str, validator: jsonschema.Draft202012Validator, what: str) -> Any:
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise MalformedOutputError("xcodebuild", f"invalid JSON from {what}: {e}", output)
    try:
        validator.validate(data)
    except jsonschema.ValidationError as e:
        raise MalformedOutputError("xcodebuild", f"{what}: {e.message}")
    return data


def stringify_settings(settings: Dict[str, Any]) -> Dict[str, str]:
    return {
        key: value if isinstance(value, str) else json.dumps(value)
        for key, value in settings.items()
    }


def run_setup_commands(commands: Sequence[SetupCommand], repo_path: str):
    for setup in commands:
        cwd = os.path.join(repo_path, setup.working_directory) if setup.working_directory else repo_path
        logger.info(f"Executing setup command: {setup.command} (in {cwd})")
        try:
            run_command(["/bin/bash", "-c", setup.command], cwd=cwd)
        except CommandError as e:
            if not setup.optional:
                raise AnalysisError(f"Setup command '{setup.command}' failed: {e}")
            logger.warning(f"Optional setup command failed, continuing: {setup.command}: {e}")


def discover_projects(repo_path: str, include: Sequence[str], exclude: Sequence[str]) -> List[str]:
    """Absolute paths of matching .xcodeproj bundles, sorted."""
    include_spec = pathspec.GitIgnoreSpec.from_lines(include)
    exclude_spec = pathspec.GitIgnoreSpec.from_lines(exclude)

    projects = []
    for dirpath, dirnames, _ in os.walk(repo_path):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for dirname in list(dirnames):
            if not dirname.endswith(".xcodeproj"):
                continue
            # Never descend into project bundles
            dirnames.remove(dirname)
            full_path = os.path.join(dirpath, dirname)
            relative_path = os.path.relpath(full_path, repo_path).replace(os.sep, "/")
            if not include_spec.match_file(relative_path):
                continue
            if exclude_spec.match_file(relative_path):
                continue
            logger.debug(f"Discovered project: {relative_path}")
            projects.append(full_path)

    return sorted(projects)


class XcodeBuild:
    def __init__(self, executable: str = "xcodebuild"):
        self.executable = executable

    def list_targets(self, project_path: str) -> List[str]:
        output = run_command(
            [self.executable, "-list", "-json", "-project", os.path.basename(project_path)],
            cwd=os.path.dirname(project_path),
        )
        data = decode_json(output, LIST_VALIDATOR, "-list")
        return sorted(data["project"]["targets"])

    def show_build_settings(
        self, project_path: str, target: str, configuration: str
    ) -> Optional[Dict[str, str]]:
        """Settings of target, or None when xcodebuild reports no such target."""
        output = run_command(
            [
                self.executable,
                "-showBuildSettings",
                "-target",
                target,
                "-json",
                "-configuration",
                configuration,
                "-project",
                os.path.basename(project_path),
            ],
            cwd=os.path.dirname(project_path),
        )
        for entry in decode_json(output, SETTINGS_VALIDATOR, "-showBuildSettings"):
            if entry["target"] == target:
                return stringify_settings(entry["buildSettings"])
        return None


def prepare_tree(context, request):
    """
    Run the request's setup_commands in the checked-out tree.

    These commands write to the working tree, so the runner calls this
    serially for every request of a commit before any analysis starts.
    """
    commands = [
        c if isinstance(c, SetupCommand) else SetupCommand.from_dict(c)
        for c in request.params.get("setup_commands") or []
    ]
    run_setup_commands(commands, context.repo_path)


def extract_build_settings(context, request, xcodebuild: XcodeBuild = None) -> Dict[str, Any]:
    """
    Build settings per target for one configuration.

    Only reads the tree; setup_commands have already run via prepare_tree.
    on_missing_project must be given explicitly: "fail" turns a missing
    project or target into an AnalysisError, "empty" reports nothing for it.
    """
    xcodebuild = xcodebuild or XcodeBuild()
    params = request.params

    configuration = params.get("configuration")
    if not configuration:
        raise AnalysisError("build_settings request is missing required parameter 'configuration'")
    on_missing = params.get("on_missing_project")
    if on_missing not in ON_MISSING_CHOICES:
        raise AnalysisError(
            f"build_settings parameter 'on_missing_project' must be one of "
            f"{', '.join(ON_MISSING_CHOICES)}, got {on_missing!r}"
        )
    wanted = list(params.get("parameters") or [])

    projects = discover_projects(
        context.repo_path,
        params.get("include") or DEFAULT_INCLUDE,
        params.get("exclude") or [],
    )
    if not projects:
        if on_missing == ON_MISSING_FAIL:
            raise AnalysisError(f"No Xcode project found in {context.repo_path}")
        logger.warning("No Xcode project found, reporting empty build settings")

    targets: Dict[str, Dict[str, Optional[str]]] = {}
    for project in projects:
        for target in xcodebuild.list_targets(project):
            settings = xcodebuild.show_build_settings(project, target, configuration)
            if settings is None:
                if on_missing == ON_MISSING_FAIL:
                    raise AnalysisError(f"Target {target} not found in {os.path.basename(project)}")
                settings = {}
            if wanted:
                targets[target] = {name: settings.get(name) for name in wanted}
            else:
                targets[target] = settings

    logger.debug(f"Extracted build settings for {len(targets)} targets")
    return {"configuration": configuration, "targets": targets}
