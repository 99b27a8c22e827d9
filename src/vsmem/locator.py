"""Locate the most recent remote server installation."""

import logging
from pathlib import Path

from vsmem.config import INSTALL_GLOB, SCRIPT_RELPATH, servers_dir
from vsmem.errors import InstallationNotFoundError
from vsmem.models import Config, Installation

logger = logging.getLogger(__name__)


def latest_installation_dir(base: Path) -> Path | None:
    """
    Return the most recently modified installation directory under base.

    Args:
        base: Directory holding the versioned ``Stable-*`` installations.

    Returns:
        The newest matching directory, or None if there is none.
    """
    if not base.is_dir():
        return None

    candidates = [path for path in base.glob(INSTALL_GLOB) if path.is_dir()]
    if not candidates:
        return None

    candidates.sort(key=lambda path: path.stat().st_mtime, reverse=True)
    return candidates[0]


def find_installation(config: Config, base: Path | None = None) -> Installation:
    """
    Resolve the installation and its startup script.

    An explicit ``config.vscode_dir`` is used verbatim. Otherwise the newest
    ``Stable-*`` directory under ``base`` (default: the server install folder)
    is selected.

    Raises:
        InstallationNotFoundError: No installation matched or the startup
            script is missing.
    """
    if config.vscode_dir is not None:
        directory = config.vscode_dir
        logger.debug("Using installation override %s", directory)
    else:
        base = base if base is not None else servers_dir()
        logger.debug("Searching %s for %s", base, INSTALL_GLOB)
        found = latest_installation_dir(base)
        if found is None:
            raise InstallationNotFoundError(
                f"No VS Code server installation found in {base}"
            )
        directory = found

    script = directory / SCRIPT_RELPATH
    if not script.is_file():
        raise InstallationNotFoundError(f"Startup script not found: {script}")

    installation = Installation(directory=directory, script=script)
    logger.debug("Installation %s, identifier %s", directory, installation.identifier)
    return installation
