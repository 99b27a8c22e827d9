"""Defaults and environment-derived locations."""

import os
from pathlib import Path

DEFAULT_MAX_OLD_SPACE_SIZE = 8192
DEFAULT_NODEAPP = "node"

MAX_OLD_SPACE_FLAG = "--max-old-space-size"

INSTALL_GLOB = "Stable-*"
SCRIPT_RELPATH = Path("server") / "bin" / "code-server"


def server_root() -> Path:
    """Get the remote server data folder ($VSCODE_AGENT_FOLDER or ~/.vscode-server)."""
    agent_folder = os.getenv("VSCODE_AGENT_FOLDER")
    if agent_folder:
        return Path(agent_folder)
    return Path.home() / ".vscode-server"


def servers_dir() -> Path:
    """Get the directory holding the versioned server installations."""
    return server_root() / "cli" / "servers"
