"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path

import pytest

from vsmem.models import MemoryCounters

CODE_SERVER_SCRIPT = """#!/usr/bin/env sh
#
# Copyright (c) Microsoft Corporation. All rights reserved.
#

case "$1" in
\t--inspect*) INSPECT="$1"; shift;;
esac

ROOT="$(dirname "$(dirname "$(readlink -f "$0")")")"

"$ROOT/node" ${INSPECT:-} "$ROOT/out/server-main.js" "$@"
"""


def create_installation(
    base: Path,
    name: str,
    script: str = CODE_SERVER_SCRIPT,
    mtime: float | None = None,
) -> Path:
    """Create a fake server installation directory with a startup script."""
    directory = base / name
    bin_dir = directory / "server" / "bin"
    bin_dir.mkdir(parents=True)
    (bin_dir / "code-server").write_text(script, encoding="utf-8")
    if mtime is not None:
        os.utime(directory, (mtime, mtime))
    return directory


class FakeOsFacts:
    """In-memory OsFacts for inspector and renderer tests."""

    def __init__(
        self,
        processes: list[tuple[int, str]] | None = None,
        counters: dict[int, MemoryCounters] | None = None,
        limit: int | None = None,
    ) -> None:
        self.processes = processes or []
        self.counters = counters or {}
        self.limit = limit
        self.matches: list[str] = []

    def list_processes(self, match: str) -> list[tuple[int, str]]:
        self.matches.append(match)
        return [(pid, cmd) for pid, cmd in self.processes if match in cmd]

    def read_memory_counters(self, pid: int) -> MemoryCounters | None:
        return self.counters.get(pid)

    def read_virtual_memory_limit(self) -> int | None:
        return self.limit


@pytest.fixture
def servers_dir(tmp_path):
    """Directory holding the versioned installations."""
    path = tmp_path / ".vscode-server" / "cli" / "servers"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def installation_dir(servers_dir):
    """A single Stable-* installation with an unpatched startup script."""
    return create_installation(servers_dir, "Stable-abc123")


@pytest.fixture
def script(installation_dir):
    """Path to the startup script of the installation."""
    return installation_dir / "server" / "bin" / "code-server"


@pytest.fixture
def home(tmp_path, monkeypatch):
    """Point $HOME at tmp_path so the default search path is isolated."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("VSCODE_AGENT_FOLDER", raising=False)
    return tmp_path


@pytest.fixture
def make_installation():
    """Factory creating installation directories: make_installation(base, name, ...)."""
    return create_installation


@pytest.fixture
def fake_os_facts():
    """Factory for in-memory OsFacts: fake_os_facts(processes=..., counters=..., limit=...)."""
    return FakeOsFacts
