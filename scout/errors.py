"""
Error taxonomy for scout.

Fatal errors (ResolutionError) abort a run before any commit is processed.
Everything else is recorded inside the CommitReport of the commit or the
request that produced it.
"""

from typing import List, Optional


class ScoutError(Exception):
    """Base class for all scout errors"""


class ConfigurationError(ScoutError):
    """Invalid configuration file or request parameters"""


class CommandError(ScoutError):
    """An external command exited with a non-zero status"""

    def __init__(self, command: List[str], exit_code: int, stderr: str = ""):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"Command failed: '{' '.join(self.command)}' (exit code: {exit_code})"
        if stderr.strip():
            message += f": {stderr.strip()[:500]}"
        super().__init__(message)


class ResolutionError(ScoutError):
    """Symbolic commit lookup (HEAD) failed"""


class CheckoutError(ScoutError):
    """Checking out a commit failed"""

    def __init__(self, commit: str, reason: str):
        self.commit = commit
        self.reason = reason
        super().__init__(f"Failed to checkout {commit}: {reason}")


class RepairError(ScoutError):
    """A working-tree repair step (LFS fix, submodule sync) failed"""

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"Repair step '{step}' failed: {reason}")


class AnalysisError(ScoutError):
    """A single analysis request failed"""


class ParseError(AnalysisError):
    """External tool output could not be interpreted"""


class MalformedOutputError(ParseError):
    """External tool output did not match its expected schema"""

    def __init__(self, tool: str, reason: str, output: Optional[str] = None):
        self.tool = tool
        self.reason = reason
        message = f"Unexpected output from {tool}: {reason}"
        if output:
            message += f". Output preview: {output[:200]}"
        super().__init__(message)


class ToolNotInstalledError(AnalysisError):
    """Required external binary is not available on PATH"""

    def __init__(self, tool: str, hint: str = ""):
        self.tool = tool
        message = f"{tool} is not installed"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class StreamClosedError(ScoutError):
    """A report was published to a stream that is already closed"""
