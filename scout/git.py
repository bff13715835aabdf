"""
Repository Normalizer: every git operation scout performs on the
working tree of the analyzed repository.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

from .errors import CheckoutError, RepairError, ResolutionError, ScoutError
from .shell import run_command

logger = logging.getLogger(__name__)

SHORT_HASH_LENGTH = 7


def short_hash(commit: str) -> str:
    return commit[:SHORT_HASH_LENGTH]


@dataclass(frozen=True)
class GitConfiguration:
    """
    Resolved git settings shared by all analyses.

    clean: run `git clean -ffdx && git reset --hard HEAD` before checkout
    fix_lfs: commit files left modified by broken LFS pointers after checkout
    initialize_submodules: reset and update submodules after checkout
    repair_required: a failed repair step fails the whole commit
    """

    repo_path: str = "."
    clean: bool = False
    fix_lfs: bool = False
    initialize_submodules: bool = False
    repair_required: bool = False

    @property
    def needs_repair(self) -> bool:
        return self.fix_lfs or self.initialize_submodules


def normalize_commit_date(raw: str) -> str:
    """
    Convert a git ISO 8601 timestamp to UTC (e.g. '2025-01-15T07:30:00Z').

    Raises:
        ValueError: the timestamp is not ISO 8601
    """
    raw = raw.strip()
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class RepositoryNormalizer:
    """Performs checkout, reset/clean and repair on one working tree."""

    def __init__(self, config: GitConfiguration):
        self.config = config
        self.repo_path = os.path.abspath(config.repo_path)

    def _git(self, *args: str) -> str:
        return run_command(["git"] + list(args), cwd=self.repo_path)

    def head_hash(self) -> str:
        """Return the hash of the currently checked-out commit."""
        try:
            head = self._git("rev-parse", "HEAD").strip()
        except ScoutError as e:
            raise ResolutionError(f"Failed to resolve HEAD in {self.repo_path}: {e}")
        if not head:
            raise ResolutionError(f"git rev-parse HEAD returned nothing in {self.repo_path}")
        return head

    def commit_date(self, commit: str) -> str:
        output = self._git("show", "-s", "--format=%cI", commit)
        return normalize_commit_date(output)

    def checkout(self, commit: str):
        """Clean the tree when configured, then check out the commit."""
        try:
            if self.config.clean:
                self.reset_and_clean()
            self._git("checkout", commit)
        except ScoutError as e:
            raise CheckoutError(commit, str(e))
        logger.debug(f"Checked out {short_hash(commit)}")

    def reset_and_clean(self):
        logger.debug("Cleaning untracked files and resetting working directory")
        self._git("clean", "-ffdx")
        self._git("reset", "--hard", "HEAD")
        logger.debug("Working directory cleaned and reset")

    def repair_large_file_pointers(self):
        """
        Commit files left modified after checkout.

        Some repositories contain commits where files are tracked by LFS but
        their content never reached LFS storage. After checkout they show up
        as modified (pointer text instead of content) and block later
        checkouts, so they are committed away.
        """
        try:
            modified = self._git("ls-files", "-m")
            if modified.strip():
                logger.debug("Found modified files (possibly broken LFS), committing fix")
                self._git("add", "-A")
                self._git("commit", "-m", "LFS Fix")
                logger.debug("LFS fix committed")
        except ScoutError as e:
            raise RepairError("fix-lfs", str(e))

    def sync_submodules(self):
        """Reset submodules to the commits recorded in the parent repository."""
        try:
            self._git("reset", "--hard", "HEAD")
            status = self._git("submodule", "status", "--recursive")
            initialized = any(
                line.strip() and not line.strip().startswith("-")
                for line in status.splitlines()
            )
            if initialized:
                self._git("submodule", "foreach", "--recursive", "git", "reset", "--hard", "HEAD")
            self._git("submodule", "update", "--init", "--recursive")
        except ScoutError as e:
            raise RepairError("submodules", str(e))

    def prepare(self):
        """Run the configured repair steps against the current checkout."""
        if self.config.fix_lfs:
            self.repair_large_file_pointers()
        if self.config.initialize_submodules:
            self.sync_submodules()
