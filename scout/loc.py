"""
Lines-of-code analysis through the external `cloc` tool.

cloc prints a free-text table; only the row of the requested language is
read, and its last column (code lines) is the value:

    Language      files     blank   comment      code
    Swift            12       140        35      1024
"""

import logging
import os
from typing import Any, Dict, List, Sequence

from .errors import MalformedOutputError, ToolNotInstalledError
from .shell import is_installed, run_command

logger = logging.getLogger(__name__)

DEFAULT_NAME_TEMPLATE = "%langs% | %include%"

CLOC_INSTALL_HINT = (
    "Install it with 'brew install cloc' (macOS), 'sudo apt-get install -y cloc' "
    "(Debian/Ubuntu) or from https://github.com/AlDanial/cloc/releases"
)


def metric_identifier(params: Dict[str, Any]) -> str:
    """Fill the %langs%, %include%, %exclude% placeholders of the name template."""
    template = params.get("name_template") or DEFAULT_NAME_TEMPLATE
    languages = params.get("languages") or []
    include = params.get("include") or []
    exclude = params.get("exclude") or []
    return (
        template.replace("%langs%", ", ".join(languages) or "Unknown")
        .replace("%include%", ", ".join(include) or ".")
        .replace("%exclude%", ", ".join(exclude))
    )


def parse_cloc_output(output: str, language: str) -> int:
    """
    Code-line count for language from cloc's table; 0 when it has no row.

    Raises:
        MalformedOutputError: the row exists but does not end in four counts
    """
    for line in output.splitlines():
        if not line.startswith(language):
            continue
        rest = line[len(language):]
        if rest[:1] and not rest[:1].isspace():
            # e.g. "Swift" requested, row is "Swift Package"
            continue
        columns = rest.split()
        if len(columns) < 4 or not all(c.isdigit() for c in columns[-4:]):
            raise MalformedOutputError("cloc", f"unexpected row for {language}", line)
        return int(columns[-1])
    return 0


def folders_to_analyze(repo_path: str, include: Sequence[str], exclude: Sequence[str]) -> List[str]:
    """
    Directories whose path ends with an include entry and contains no
    exclude entry (case-insensitive). An empty include, or ".", is the root.
    """
    if not include or "." in include:
        folders = [repo_path]
    else:
        suffixes = [i.rstrip("/") for i in include]
        folders = []
        for dirpath, dirnames, _ in os.walk(repo_path):
            dirnames.sort()
            for dirname in dirnames:
                path = os.path.join(dirpath, dirname)
                if any(path.endswith(s) for s in suffixes):
                    folders.append(path)

    lowered = [e.lower() for e in exclude]
    return [f for f in folders if not any(e in f.lower() for e in lowered)]


class ClocRunner:
    def __init__(self, executable: str = "cloc"):
        self.executable = executable

    def check_installed(self):
        if not is_installed(self.executable):
            raise ToolNotInstalledError(self.executable, CLOC_INSTALL_HINT)

    def lines_of_code(self, path: str, language: str) -> int:
        output = run_command(
            [self.executable, "--quiet", f"--include-lang={language}", path]
        )
        return parse_cloc_output(output, language)


def count_lines(context, request, runner: ClocRunner = None) -> Dict[str, Any]:
    """Sum cloc's code lines over every (language, folder) pair of the request."""
    runner = runner or ClocRunner()
    languages = request.params.get("languages") or []
    include = request.params.get("include") or []
    exclude = request.params.get("exclude") or []

    runner.check_installed()
    folders = folders_to_analyze(context.repo_path, include, exclude)
    logger.debug(f"Counting {languages} in {len(folders)} folder(s)")

    total = 0
    for language in languages:
        for folder in folders:
            total += runner.lines_of_code(folder, language)

    return {"metric": metric_identifier(dict(request.params)), "lines_of_code": total}
