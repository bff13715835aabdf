"""
Console output for the scout CLI: the plan banner, a progress bar over
commits, per-commit results and the final summary, plus the markdown table
for CI step summaries.
"""

import logging
import os
import sys
import time
from typing import Any, Dict, Iterable, Optional

from colorama import Fore, Style
from colorama import init as colorama_init
from tqdm import tqdm

from .git import short_hash
from .models import CommitReport

colorama_init(autoreset=True)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, quiet: bool = False):
    """Configure logging: DEBUG when verbose, WARNING when quiet, INFO otherwise."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )
    return logging.getLogger("scout")


class ProgressReporter:
    """
    Console output of one run: the plan banner, a tqdm bar over commits,
    a block per finished commit and the closing summary.

    Errors always go to stderr; quiet silences everything else. Lines are
    written through tqdm.write so they never tear the progress bar.
    """

    def __init__(self, quiet: bool = False, use_colors: bool = True):
        self.quiet = quiet
        self.use_colors = use_colors
        self.start_time = time.time()

    def _colorize(self, text: str, color: str) -> str:
        if self.use_colors:
            return f"{color}{text}{Style.RESET_ALL}"
        return text

    def _write(self, line: str = ""):
        tqdm.write(line)

    def _banner(self, title: str):
        separator = self._colorize("=" * 70, Fore.CYAN)
        self._write(f"\n{separator}")
        self._write(title)
        self._write(separator)

    def plan(self, repo_path: str, commits: int, requests: int):
        if self.quiet:
            return
        self._banner(self._colorize(f"🔍 {repo_path}", Fore.BLUE + Style.BRIGHT))
        self._write(f"   {commits} commit(s), {requests} request(s)")

    def create_progress_bar(self, total: int) -> Optional[tqdm]:
        if self.quiet:
            return None

        return tqdm(
            total=total,
            desc=self._colorize("Analyzing", Fore.CYAN),
            unit=" commits",
            ncols=100,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
        )

    def warning(self, message: str):
        if not self.quiet:
            self._write(f"{self._colorize('⚠️  ', Fore.YELLOW + Style.BRIGHT)}{message}")

    def error(self, message: str):
        print(self._colorize(f"❌ ERROR: {message}", Fore.RED + Style.BRIGHT), file=sys.stderr)

    def success(self, message: str):
        if not self.quiet:
            self._write(self._colorize(f"✨ {message}", Fore.GREEN + Style.BRIGHT))

    def report(self, report: CommitReport):
        """One line per request of a finished commit"""
        if self.quiet:
            return
        header = f"{short_hash(report.commit)} ({report.date or 'unknown date'})"
        if report.degraded:
            self._write(self._colorize(f"❌ {header}: {report.error}", Fore.RED))
            return
        self._write(self._colorize(f"📌 {header}", Fore.MAGENTA))
        for warning in report.warnings:
            self.warning(warning)
        for result in report.results:
            if result.ok:
                self._write(f"   {result.request}: {summarize_payload(result.payload)}")
            else:
                self._write(self._colorize(f"   {result.request}: {result.error}", Fore.RED))

    def summary(self, runner, total_commits: int, output: Optional[str] = None, cancelled: bool = False):
        """Counters of a finished (or cancelled) AnalysisRunner."""
        if self.quiet:
            return
        stats: Dict[str, Any] = {
            "Commits analyzed": f"{runner.commits_processed}/{total_commits}",
            "Failed commits": runner.failed_commits,
            "Failed requests": runner.failed_requests,
        }
        if output:
            stats["Output"] = output
        if cancelled:
            stats["Cancelled"] = "yes"

        self._banner(self._colorize("📊 ANALYSIS SUMMARY", Fore.MAGENTA + Style.BRIGHT))
        for key, value in stats.items():
            self._write(f"   {key}: {value}")
        self._write(self._colorize(f"⏱️  Total time: {time.time() - self.start_time:.2f}s", Fore.YELLOW))


def summarize_payload(payload: Dict[str, Any]) -> str:
    if "count" in payload:
        return str(payload["count"])
    if "lines_of_code" in payload:
        return f"{payload['lines_of_code']:,} lines"
    if "targets" in payload:
        return ", ".join(
            f"{target}: {settings}" for target, settings in sorted(payload["targets"].items())
        ) or "no targets"
    return "-"


def markdown_summary(reports: Iterable[CommitReport]) -> str:
    """Markdown table of every request result per commit."""
    lines = ["## Scout results", "", "| Commit | Date | Metric | Value |", "| --- | --- | --- | --- |"]
    for report in reports:
        date = report.date or ""
        if report.degraded:
            lines.append(f"| `{short_hash(report.commit)}` | {date} | - | ❌ {report.error} |")
            continue
        for result in report.results:
            value = summarize_payload(result.payload) if result.ok else f"❌ {result.error}"
            lines.append(f"| `{short_hash(report.commit)}` | {date} | {result.request} | {value} |")
    return "\n".join(lines) + "\n"


def write_step_summary(reports: Iterable[CommitReport], path: Optional[str] = None) -> bool:
    """Append the markdown summary to $GITHUB_STEP_SUMMARY when it is set."""
    path = path or os.environ.get("GITHUB_STEP_SUMMARY")
    if not path:
        return False
    with open(path, "a", encoding="utf-8") as f:
        f.write(markdown_summary(reports))
    return True
