"""Inspect and patch the max-old-space-size flag in the server startup script.

Only the final line of the script is ever looked at or changed. The file is
read fully into memory, the last line is rewritten, and the result replaces
the original through a temporary file in the same directory.
"""

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from vsmem.config import DEFAULT_NODEAPP, MAX_OLD_SPACE_FLAG
from vsmem.errors import PatchError, PatchWriteError
from vsmem.models import PatchOutcome, PatchState

logger = logging.getLogger(__name__)

FLAG_PATTERN = re.compile(re.escape(MAX_OLD_SPACE_FLAG) + r"=(\d+)")
LINE_PATTERN = re.compile(r"[^\n]*\n|[^\n]+")


def _runtime_pattern(runtime: str) -> re.Pattern[str]:
    """Match a word invoking the runtime, e.g. ``"$ROOT/node"`` or ``node``."""
    return re.compile(
        r"(?<!\S)([\"']?)(?:[^\s\"']*/)?" + re.escape(runtime) + r"\1(?!\S)"
    )


def _read_lines(script: Path) -> list[str]:
    # surrogateescape round-trips bytes that are not valid UTF-8
    with script.open("r", encoding="utf-8", errors="surrogateescape", newline="") as f:
        return LINE_PATTERN.findall(f.read())


def _split_ending(line: str) -> tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def _write_lines(script: Path, lines: list[str]) -> None:
    """Replace the file script points to with lines, keeping its permission bits."""
    target = script.resolve()
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.writelines(lines)
        shutil.copymode(target, tmp_name)
        os.replace(tmp_name, target)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def parse_patch_state(line: str) -> PatchState:
    """Get the patch state of a single script line."""
    match = FLAG_PATTERN.search(line)
    if match is None:
        return PatchState(present=False)
    return PatchState(present=True, value=int(match.group(1)))


def read_patch_state(script: Path) -> PatchState:
    """Read the patch state from the final line of the script."""
    lines = _read_lines(script)
    if not lines:
        return PatchState(present=False)
    return parse_patch_state(lines[-1])


def patch_line(
    line: str, value: int, runtime: str = DEFAULT_NODEAPP
) -> tuple[str, PatchOutcome]:
    """
    Set the max-old-space-size flag on one line.

    Args:
        line: The line to patch, with or without its line ending.
        value: The limit in megabytes.
        runtime: Name of the runtime binary after which a new flag is inserted.

    Returns:
        The patched line (unchanged for ALREADY_SET) and what was done.

    Raises:
        PatchError: The line has neither the flag nor a runtime invocation.
    """
    body, ending = _split_ending(line)

    match = FLAG_PATTERN.search(body)
    if match is not None:
        if int(match.group(1)) == value:
            return line, PatchOutcome.ALREADY_SET
        patched = body[: match.start(1)] + str(value) + body[match.end(1):]
        return patched + ending, PatchOutcome.CHANGED

    invocation = _runtime_pattern(runtime).search(body)
    if invocation is None:
        raise PatchError(f"No '{runtime}' invocation found on the last line")
    patched = (
        body[: invocation.end()]
        + f" {MAX_OLD_SPACE_FLAG}={value}"
        + body[invocation.end():]
    )
    return patched + ending, PatchOutcome.INSERTED


def apply_max_old_space_size(
    script: Path, value: int, runtime: str = DEFAULT_NODEAPP
) -> PatchOutcome:
    """
    Insert or update ``--max-old-space-size`` on the last line of script.

    Applying the same value twice is a no-op; the file is not written when
    the flag is already set to value. There is no locking: concurrent
    invocations race and the last write wins.

    Raises:
        PatchError: The last line cannot be patched.
        PatchWriteError: The script could not be read or replaced.
    """
    try:
        lines = _read_lines(script)
    except OSError as e:
        raise PatchWriteError(f"Cannot read {script}: {e}") from e

    if not lines:
        raise PatchError(f"{script} is empty")

    patched, outcome = patch_line(lines[-1], value, runtime)
    logger.debug("Patch outcome for %s: %s", script, outcome.value)
    if outcome is PatchOutcome.ALREADY_SET:
        return outcome

    lines[-1] = patched
    try:
        _write_lines(script, lines)
    except OSError as e:
        raise PatchWriteError(f"Cannot write {script}: {e}") from e
    return outcome
