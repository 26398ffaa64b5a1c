"""Template expansion for assistant prompts and shell commands.

Prompt placeholders::

    $INPUT            natural string form of the candidate
    $INPUT[n]         n-th array element (0-based), empty when out of bounds
    $INPUT[n:]        JSON array of the elements from n onward
    $INPUT["key"]     object field, empty when absent or not an object
    $TASK_ID          iteration number of the current run
    $ARGUMENT         first element
    $ARGUMENT_N       N-th element (1-based)
    $REMAINING_ARGUMENTS  elements from the second onward, comma-joined

Command placeholders::

    $CANDIDATE        candidate key, single-quoted for the shell
    $TASK_NAME        task name, verbatim

Unknown placeholders are left untouched.
"""

from __future__ import annotations

import re

from nigel.loop.errors import InterpolationError
from nigel.loop.models import Candidate, CandidateShape

_PROMPT_TOKEN_RE = re.compile(
    r"""
    \$INPUT\[(?:(?P<index>\d+)(?P<slice>:)?|"(?P<field>[^"]*)")\]
    | \$INPUT(?![A-Za-z0-9_])
    | \$TASK_ID(?![A-Za-z0-9_])
    | \$REMAINING_ARGUMENTS(?![A-Za-z0-9_])
    | \$ARGUMENT_(?P<position>\d+)(?![A-Za-z0-9_])
    | \$ARGUMENT(?![A-Za-z0-9_])
    """,
    re.VERBOSE,
)
_COMMAND_TOKEN_RE = re.compile(r"\$CANDIDATE(?![A-Za-z0-9_])|\$TASK_NAME(?![A-Za-z0-9_])")


def interpolate_prompt(template: str, candidate: Candidate, *, task_id: int) -> str:
    """Expand prompt placeholders in one left-to-right pass.

    Raises ``InterpolationError`` for ``$INPUT[n]`` / ``$INPUT[n:]`` on a
    candidate that is not an array; nothing is substituted in that case.
    """

    elements = candidate.elements

    def _replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if token.startswith("$INPUT["):
            return _typed_access(token, match, candidate)
        if token == "$INPUT":
            return candidate.as_text()
        if token == "$TASK_ID":
            return str(task_id)
        if token == "$REMAINING_ARGUMENTS":
            return ", ".join(elements[1:])
        if match.group("position") is not None:
            position = int(match.group("position"))
            if 1 <= position <= len(elements):
                return elements[position - 1]
            return token
        return elements[0] if elements else token

    return _PROMPT_TOKEN_RE.sub(_replace, template)


def _typed_access(token: str, match: re.Match[str], candidate: Candidate) -> str:
    field = match.group("field")
    if field is not None:
        return candidate.get_field(field) or ""

    if candidate.shape is not CandidateShape.ARRAY:
        raise InterpolationError(token, candidate.shape.value)

    start = int(match.group("index"))
    if match.group("slice"):
        return candidate.get_slice(start) or "[]"
    return candidate.get_index(start) or ""


def interpolate_command(command: str, candidate: Candidate, task_name: str) -> str:
    """Expand ``$CANDIDATE`` (shell-quoted key) and ``$TASK_NAME``."""

    def _replace(match: re.Match[str]) -> str:
        if match.group(0) == "$CANDIDATE":
            return shell_quote(candidate.key)
        return task_name

    return _COMMAND_TOKEN_RE.sub(_replace, command)


def shell_quote(value: str) -> str:
    """Always single-quote ``value``; embedded quotes become ``'"'"'``."""

    return "'" + value.replace("'", "'\"'\"'") + "'"
