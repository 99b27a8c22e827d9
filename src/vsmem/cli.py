#!/usr/bin/env python3
"""
vsmem - cap the Node.js heap of the VS Code remote server.

Usage:
    vsmem                                 Show patch status and process memory
    vsmem --set-max-old-space-size=8192   Patch the server startup script
    vsmem --help                          Show help
"""

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from vsmem.config import DEFAULT_MAX_OLD_SPACE_SIZE, DEFAULT_NODEAPP, MAX_OLD_SPACE_FLAG
from vsmem.errors import UsageError, VsmemError
from vsmem.inspector import inspect_processes, virtual_memory_limit_mb
from vsmem.locator import find_installation
from vsmem.models import Config, Installation, PatchOutcome, ProcessSample
from vsmem.osfacts import OsFacts, PsutilOsFacts
from vsmem.patcher import apply_max_old_space_size, read_patch_state

__version__ = "0.1.0"

PROG = "vsmem"

USAGE = (
    f"{PROG} [-h|--help] [--set-max-old-space-size[=N]] [--nodeapp=NAME] "
    "[--vscode-dir=DIR] [--quiet] [--debug]"
)

DESCRIPTION = (
    "Show and limit the memory used by the VS Code remote server. Without "
    "flags, prints whether the server startup script passes "
    f"{MAX_OLD_SPACE_FLAG} to Node.js, the virtual and resident memory of the "
    "running server Node processes, and the virtual memory limit of this shell."
)

GLOSSARY = (
    ("VmPeak", "peak virtual memory size"),
    ("VmSize", "current virtual memory size"),
    ("VmHWM", "peak resident set size (high water mark)"),
    ("VmRSS", "current resident set size"),
)

COLUMNS = ("PID", "VmPeak", "VmSize", "VmHWM", "VmRSS")

console = Console(soft_wrap=True, highlight=False, emoji=False)
err_console = Console(stderr=True, soft_wrap=True, highlight=False, emoji=False)

logger = logging.getLogger(__name__)


class CliParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def build_parser() -> CliParser:
    """Build the command line parser."""
    parser = CliParser(
        prog=PROG,
        usage=USAGE,
        description=DESCRIPTION,
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("-h", "--help", action="store_true", help="Show this help and exit")
    parser.add_argument(
        "--set-max-old-space-size",
        dest="max_old_space_size",
        nargs="?",
        const="",
        default=None,
        metavar="N",
        help=(
            f"Add or update {MAX_OLD_SPACE_FLAG}=N (megabytes) in the server "
            f"startup script (default: {DEFAULT_MAX_OLD_SPACE_SIZE})"
        ),
    )
    parser.add_argument(
        "--nodeapp",
        metavar="NAME",
        default=DEFAULT_NODEAPP,
        help=f"Runtime binary name to match (default: {DEFAULT_NODEAPP})",
    )
    parser.add_argument(
        "--vscode-dir",
        metavar="DIR",
        help="Server installation directory (default: newest Stable-* install)",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress normal output")
    parser.add_argument("--debug", action="store_true", help="Print diagnostic output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _parse_limit(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise UsageError(f"--set-max-old-space-size: invalid value {raw!r}") from None
    if value <= 0:
        raise UsageError(f"--set-max-old-space-size: value must be positive, got {value}")
    return value


def parse_args(argv: Sequence[str]) -> Config:
    """
    Parse command line arguments into a Config.

    ``--flag=value`` and ``--flag value`` are equivalent. A missing value for
    ``--set-max-old-space-size`` falls back to the default with a warning on
    stdout, printed even in quiet mode.

    Raises:
        UsageError: Unknown flag or missing/invalid flag value.
    """
    args = build_parser().parse_args(list(argv))

    if not args.nodeapp:
        raise UsageError("--nodeapp: expected a name")
    if args.vscode_dir is not None and not args.vscode_dir:
        raise UsageError("--vscode-dir: expected a directory")

    apply_patch = args.max_old_space_size is not None
    limit = DEFAULT_MAX_OLD_SPACE_SIZE
    if apply_patch:
        raw = args.max_old_space_size
        if not raw or raw.startswith("-"):
            console.print(
                f"Warning: --set-max-old-space-size needs a value, "
                f"using default {DEFAULT_MAX_OLD_SPACE_SIZE}"
            )
        else:
            limit = _parse_limit(raw)

    return Config(
        max_old_space_size=limit,
        apply_patch=apply_patch,
        nodeapp=args.nodeapp,
        vscode_dir=Path(args.vscode_dir) if args.vscode_dir else None,
        quiet=args.quiet,
        debug=args.debug,
        help=args.help,
    )


def render_help() -> None:
    """Print usage, description and flag reference."""
    console.print(escape(build_parser().format_help()), end="")


def render_usage_error(error: UsageError) -> None:
    err_console.print(f"[red]Error:[/red] {escape(str(error))}")
    err_console.print(f"Usage: {escape(USAGE)}")
    err_console.print(f"Try '{PROG} --help' for more information.")


def format_process_table(samples: list[ProcessSample]) -> list[str]:
    """Format samples as fixed-width, right-aligned rows with a header."""
    lines = [f"{COLUMNS[0]:>8}" + "".join(f"{name:>10}" for name in COLUMNS[1:])]
    for sample in samples:
        values = (sample.vm_peak_mb, sample.vm_size_mb, sample.vm_hwm_mb, sample.vm_rss_mb)
        lines.append(f"{sample.pid:>8}" + "".join(f"{f'{mb} MB':>10}" for mb in values))
    return lines


def render_patch_outcome(
    installation: Installation, outcome: PatchOutcome, value: int, previous: int | None
) -> None:
    script = escape(str(installation.script))
    flag = f"{MAX_OLD_SPACE_FLAG}={value}"
    if outcome is PatchOutcome.ALREADY_SET:
        console.print(f"No update needed, {flag} already set in {script}")
    elif outcome is PatchOutcome.INSERTED:
        console.print(f"[green]Updated[/green] {script}: inserted {flag}")
    else:
        console.print(
            f"[green]Updated[/green] {script}: changed {MAX_OLD_SPACE_FLAG} "
            f"from {previous} to {value}"
        )


def render_status(config: Config, installation: Installation, facts: OsFacts) -> None:
    """Print patch status, process memory, the memory limit and a glossary."""
    state = read_patch_state(installation.script)
    console.print(f"Script: {escape(str(installation.script))}")
    if state.present:
        console.print(f"Status: [green]{MAX_OLD_SPACE_FLAG}={state.value}[/green]")
    else:
        console.print(f"Status: [yellow]{MAX_OLD_SPACE_FLAG} not set[/yellow]")
    console.print()

    samples = inspect_processes(facts, installation, config.nodeapp)
    if samples:
        console.print(f"{escape(config.nodeapp)} processes of {escape(installation.identifier)}:")
        for line in format_process_table(samples):
            console.print(line)
    else:
        console.print(
            f"No {escape(config.nodeapp)} processes found for "
            f"{escape(installation.identifier)}"
        )
    console.print()

    limit_mb = virtual_memory_limit_mb(facts)
    limit_text = "unlimited" if limit_mb is None else f"{limit_mb} MB"
    console.print(f"Max virtual memory (ulimit -v): {limit_text}")
    console.print()

    for name, meaning in GLOSSARY:
        console.print(f"  {name:<7} {meaning}")
    console.print()
    console.print(
        f"To set the limit run: {PROG} --set-max-old-space-size={DEFAULT_MAX_OLD_SPACE_SIZE}"
    )


def configure_logging(debug: bool) -> None:
    """Send vsmem log records to stderr, at DEBUG level with --debug."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("vsmem").setLevel(logging.DEBUG if debug else logging.WARNING)


def main(argv: Sequence[str] | None = None, facts: OsFacts | None = None) -> int:
    """Entry point for the vsmem command."""
    console.quiet = False
    if argv is None:
        argv = sys.argv[1:]

    try:
        config = parse_args(argv)
    except UsageError as e:
        render_usage_error(e)
        return e.exit_code

    if config.help:
        render_help()
        return 0

    configure_logging(config.debug)
    logger.debug("Parsed %s", config)
    console.quiet = config.quiet

    try:
        installation = find_installation(config)
        if config.apply_patch:
            previous = read_patch_state(installation.script).value
            outcome = apply_max_old_space_size(
                installation.script, config.max_old_space_size, config.nodeapp
            )
            render_patch_outcome(installation, outcome, config.max_old_space_size, previous)
        else:
            render_status(config, installation, facts or PsutilOsFacts())
    except VsmemError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return e.exit_code
    except OSError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1
    finally:
        console.quiet = False

    return 0


if __name__ == "__main__":
    sys.exit(main())
