"""
Command-line interface.

    scout files swift xib --commits HEAD --commits 3f2a1c9
    scout pattern "import UIKit" --extension swift
    scout types UIView "Store<*>"
    scout loc Swift --include Sources --exclude Tests
    scout build-settings SWIFT_VERSION --configuration Release
    scout run --config .scout.yaml

Every subcommand falls back to the `metrics` of the configuration file
(filtered to its own kind) when no arguments are given.
"""

import os
import sys
from typing import Any, Dict, List, Optional

import click

from . import __version__
from .build_settings import ON_MISSING_EMPTY, ON_MISSING_FAIL
from .config import ConfigResolver, build_request
from .errors import ConfigurationError, ScoutError
from .git import RepositoryNormalizer
from .models import HEAD, KIND_BUILD_SETTINGS, KIND_FILES, KIND_LOC, KIND_PATTERN, KIND_TYPES
from .planner import plan
from .reporting import ProgressReporter, setup_logging, write_step_summary
from .runner import DEFAULT_WORKERS, AnalysisRunner, CancellationToken
from .stream import IncrementalJSONWriter, run_in_background


def common_options(func):
    """Options shared by every analysis subcommand"""
    options = [
        click.option(
            "-r",
            "--repo-path",
            type=click.Path(exists=True, file_okay=False),
            help="Path to repository (default: current directory)",
        ),
        click.option(
            "--config",
            type=click.Path(exists=True, dir_okay=False),
            help="Configuration file path (.yaml, .yml or .json)",
        ),
        click.option(
            "-c",
            "--commits",
            multiple=True,
            help="Commit to analyze; repeat for several (default: HEAD)",
        ),
        click.option("-o", "--output", type=click.Path(dir_okay=False), help="Path to save JSON results"),
        click.option(
            "--git-clean",
            is_flag=True,
            default=None,
            help="Run 'git clean -ffdx && git reset --hard HEAD' before each checkout",
        ),
        click.option(
            "--fix-lfs",
            is_flag=True,
            default=None,
            help="Fix broken LFS pointers by committing modified files after checkout",
        ),
        click.option(
            "--initialize-submodules",
            is_flag=True,
            default=None,
            help="Initialize submodules (reset and update to correct commits)",
        ),
        click.option(
            "--repair-required",
            is_flag=True,
            default=None,
            help="Fail the commit when an LFS or submodule repair fails",
        ),
        click.option("--workers", type=click.IntRange(min=1), help=f"Concurrent analyses per commit (default: {DEFAULT_WORKERS})"),
        click.option("-q", "--quiet", is_flag=True, default=None, help="Suppress progress output"),
        click.option("-v", "--verbose", is_flag=True, default=None, help="Show debug logging"),
        click.option("--no-color", is_flag=True, default=None, help="Disable colored output"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(version=__version__)
def cli():
    """Collect code metrics across the git history of a repository."""


@cli.command()
@click.argument("extensions", nargs=-1)
@common_options
def files(extensions, **options):
    """Count files with the given EXTENSIONS (e.g. swift storyboard xib)."""
    execute(KIND_FILES, [{"extension": e.lstrip(".")} for e in extensions], options)


@cli.command()
@click.argument("patterns", nargs=-1)
@click.option(
    "-e",
    "--extension",
    "extensions",
    multiple=True,
    help="File extension to search; repeat for several (default: swift)",
)
@common_options
def pattern(patterns, extensions, **options):
    """Count lines containing each of PATTERNS (e.g. "import UIKit")."""
    params = [{"pattern": p} for p in patterns]
    if extensions:
        for p in params:
            p["extensions"] = [e.lstrip(".") for e in extensions]
    execute(KIND_PATTERN, params, options)


@cli.command()
@click.argument("type_names", nargs=-1)
@common_options
def types(type_names, **options):
    """
    Count Swift types inheriting from each of TYPE_NAMES.

    Append <*> to match any specialization of a generic base, e.g. "Store<*>".
    """
    execute(KIND_TYPES, [{"type": t} for t in type_names], options)


@cli.command()
@click.argument("languages", nargs=-1)
@click.option("--include", multiple=True, help="Folder to count (path suffix); repeat for several")
@click.option("--exclude", multiple=True, help="Skip folders whose path contains this text")
@click.option("--name-template", help="Metric name, with %langs%, %include% and %exclude% placeholders")
@common_options
def loc(languages, include, exclude, name_template, **options):
    """Count lines of code in LANGUAGES with cloc (e.g. Swift "Objective-C")."""
    params = []
    if languages:
        entry = {"languages": list(languages), "include": list(include), "exclude": list(exclude)}
        if name_template:
            entry["name_template"] = name_template
        params.append(entry)
    execute(KIND_LOC, params, options)


@cli.command("build-settings")
@click.argument("parameters", nargs=-1)
@click.option("--configuration", help="Build configuration (default: Debug)")
@click.option("--include", multiple=True, help="Glob of .xcodeproj paths to include")
@click.option("--exclude", multiple=True, help="Glob of .xcodeproj paths to exclude")
@click.option(
    "--allow-missing-project",
    is_flag=True,
    help="Report empty settings instead of failing when no project or target is found",
)
@common_options
def build_settings_command(parameters, configuration, include, exclude, allow_missing_project, **options):
    """Extract build settings PARAMETERS per target (all settings when none given)."""
    entry: Dict[str, Any] = {
        "parameters": list(parameters),
        "on_missing_project": ON_MISSING_EMPTY if allow_missing_project else ON_MISSING_FAIL,
    }
    if configuration:
        entry["configuration"] = configuration
    if include:
        entry["include"] = list(include)
    if exclude:
        entry["exclude"] = list(exclude)

    params = [entry] if parameters or configuration or include or exclude or allow_missing_project else []
    execute(KIND_BUILD_SETTINGS, params, options)


@cli.command()
@common_options
def run(**options):
    """Run every metric listed in the configuration file."""
    execute(None, [], options)


def execute(kind: Optional[str], arg_params: List[Dict[str, Any]], options: Dict[str, Any]):
    """Resolve configuration, plan the commits, run them and report."""
    cli_args = {
        "repo_path": options.get("repo_path"),
        "output": options.get("output"),
        "workers": options.get("workers"),
        "clean": options.get("git_clean"),
        "fix_lfs": options.get("fix_lfs"),
        "initialize_submodules": options.get("initialize_submodules"),
        "repair_required": options.get("repair_required"),
        "quiet": options.get("quiet"),
        "verbose": options.get("verbose"),
        "no_color": options.get("no_color"),
    }

    try:
        resolver = ConfigResolver(cli_args, options.get("config"), options.get("repo_path") or os.getcwd())
    except (ConfigurationError, FileNotFoundError) as e:
        ProgressReporter(use_colors=not options.get("no_color")).error(str(e))
        sys.exit(1)

    quiet = resolver.get("quiet", False)
    verbose = resolver.get("verbose", False)
    reporter = ProgressReporter(quiet=quiet, use_colors=not resolver.get("no_color", False))
    setup_logging(verbose=verbose, quiet=quiet)

    repo_path = os.path.abspath(resolver.get("repo_path", "."))
    if not os.path.isdir(os.path.join(repo_path, ".git")):
        reporter.error(f"Not a git repository: {repo_path}")
        sys.exit(1)

    commits = list(options.get("commits") or [])
    if arg_params:
        requests = [build_request(kind, params, commits or [HEAD]) for params in arg_params]
    else:
        requests = [r for r in resolver.metric_requests(commits or None) if kind is None or r.kind == kind]
    if not requests:
        raise click.UsageError(
            "Nothing to analyze: pass arguments or list metrics in a configuration file"
        )

    normalizer = RepositoryNormalizer(resolver.git_configuration(repo_path))
    output = resolver.get("output")
    writer = IncrementalJSONWriter(output) if output else None

    try:
        batch = plan(requests, normalizer)
        reporter.plan(repo_path, len(batch), batch.request_count)

        token = CancellationToken()
        runner = AnalysisRunner(
            normalizer,
            max_workers=resolver.get("workers", DEFAULT_WORKERS),
            cancel_token=token,
        )

        progress_bar = reporter.create_progress_bar(len(batch))
        reports = []

        def handle(report):
            reports.append(report)
            if writer:
                writer.append(report)
            if progress_bar:
                progress_bar.update(1)
            reporter.report(report)

        stream = run_in_background(runner, batch)
        try:
            for report in stream:
                handle(report)
        except KeyboardInterrupt:
            token.cancel()
            reporter.warning("Interrupted: finishing the current commit, then stopping")
            for report in stream:
                handle(report)
        finally:
            if progress_bar:
                progress_bar.close()
        stream.join()

        write_step_summary(reports)

        reporter.summary(runner, len(batch), output=output, cancelled=token.cancelled)

        if runner.errors:
            for error in runner.errors:
                reporter.warning(error)
        reporter.success("Analysis complete!")

    except ScoutError as e:
        reporter.error(f"Analysis failed: {str(e)}")
        if verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


def main():
    cli(prog_name="scout")


if __name__ == "__main__":
    main()
